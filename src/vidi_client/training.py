"""Training workspace handle.

Wraps the ``vidi_training_*`` calls used to build, label, train and export a
workspace. A typical red-tool session reads::

    workspace = session.create_training_workspace("textile", "ws/textile")
    workspace.add_stream("default")
    workspace.add_tool("default", "analyze", ToolType.RED)
    workspace.add_images("default", image_paths)
    workspace.process_database("default", "analyze")
    workspace.wait("default", "analyze")
    workspace.label_views("default", "analyze", "'bad'", "Bad")
    workspace.label_views("default", "analyze", "not labeled", "")
    workspace.train("default", "analyze")
    workspace.wait_for_training("default", "analyze")
    workspace.export_runtime("textile.vrws")
    workspace.save()
    workspace.close(discard_autosave=True)

Blue tools are labelled with ``set_feature`` and ``create_model`` /
``add_model_node`` instead of ``label_views``.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Union

from vidi_client.domain.exceptions import ResourceNotFoundError, VendorInternalError
from vidi_client.domain.models import ToolStatus
from vidi_client.domain.types import ToolType
from vidi_client.images import ManagedImage
from vidi_client.responses import parse_tool_status

if TYPE_CHECKING:
    from vidi_client.session import Session

logger = logging.getLogger(__name__)


class TrainingWorkspace:
    """A training workspace. Create with ``Session.create_training_workspace``."""

    def __init__(self, session: "Session", name: str, path: Path):
        self.session = session
        self.name = name
        self.path = path
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        self.session._ensure_open()
        if self._closed:
            raise ResourceNotFoundError(f"Training workspace '{self.name}' is closed", context={"workspace": self.name})

    def _call(self, status_fn: Callable[[], int], action: str, **context) -> None:
        self._ensure_open()
        self.session.check(status_fn(), action, workspace=self.name, **context)

    # ------------------------------------------------------------------
    # Structure and database
    # ------------------------------------------------------------------

    def add_stream(self, stream: str) -> None:
        library = self.session.library
        self._call(lambda: library.training_workspace_add_stream(self.name, stream), f"add stream '{stream}'", stream=stream)

    def add_tool(self, stream: str, tool: str, tool_type: Union[ToolType, str], parent: str = "") -> None:
        """Add a tool after ``parent`` ("" puts it at the beginning of the chain)."""
        tool_type = ToolType(tool_type)
        library = self.session.library
        self._call(
            lambda: library.training_stream_add_tool(self.name, stream, tool, parent, tool_type.value),
            f"add {tool_type.value} tool '{tool}' to stream '{stream}'",
            stream=stream,
            tool=tool,
        )

    def add_image(self, stream: str, image: ManagedImage, name: str) -> None:
        library = self.session.library
        self._call(
            lambda: library.training_stream_add_image_to_database(self.name, stream, image.handle, name),
            f"add image '{name}' to the database",
            stream=stream,
            image=name,
        )

    def add_images(self, stream: str, paths: Iterable[Union[str, Path]]) -> List[str]:
        """Load each file and add it to the database under its file name.

        Returns:
            Names added, in order
        """
        names = []
        for path in paths:
            path = Path(path)
            with self.session.load_image(path) as image:
                self.add_image(stream, image, path.name)
            names.append(path.name)
        logger.info(f"Added {len(names)} images to the database of {self.name}/{stream}")
        return names

    def process_database(self, stream: str, tool: str, view_filter: str = "", parameters: str = "") -> None:
        library = self.session.library
        self._call(
            lambda: library.training_tool_process_database(self.name, stream, tool, view_filter, parameters),
            f"process database of tool '{tool}'",
            stream=stream,
            tool=tool,
        )

    def wait(self, stream: str, tool: str, timeout_ms: int = 0) -> None:
        """Block until the tool is idle (``timeout_ms`` 0 waits without limit)."""
        library = self.session.library
        self._call(lambda: library.training_tool_wait(self.name, stream, tool, int(timeout_ms)), f"wait for tool '{tool}'", tool=tool)

    def label_views(self, stream: str, tool: str, view_filter: str, label: str) -> None:
        """Label the views matched by ``view_filter`` ("'bad'", "not labeled", "")."""
        library = self.session.library
        self._call(
            lambda: library.training_red_label_views(self.name, stream, tool, view_filter, label),
            f"label views {view_filter!r} as {label!r}",
            stream=stream,
            tool=tool,
        )

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def get_parameter(self, stream: str, tool: str, parameter: str) -> str:
        self._ensure_open()
        library = self.session.library
        with self.session.buffer() as buffer:
            buffer.fill(
                lambda handle: library.training_tool_get_parameter(self.name, stream, tool, parameter, handle),
                f"get parameter '{parameter}' of tool '{tool}'",
                workspace=self.name,
                tool=tool,
            )
            return buffer.text

    def set_parameter(self, stream: str, tool: str, parameter: str, value: str) -> None:
        library = self.session.library
        self._call(
            lambda: library.training_tool_set_parameter(self.name, stream, tool, parameter, str(value)),
            f"set parameter '{parameter}' of tool '{tool}' to '{value}'",
            tool=tool,
        )

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self, stream: str, tool: str, devices: str = "") -> None:
        library = self.session.library
        self._call(lambda: library.training_tool_train(self.name, stream, tool, devices), f"train tool '{tool}'", tool=tool)

    def status(self, stream: str, tool: str) -> ToolStatus:
        self._ensure_open()
        library = self.session.library
        with self.session.buffer() as buffer:
            buffer.fill(
                lambda handle: library.training_tool_get_status(self.name, stream, tool, handle),
                f"get status of tool '{tool}'",
                workspace=self.name,
                tool=tool,
            )
            return parse_tool_status(buffer.data)

    def wait_for_training(
        self,
        stream: str,
        tool: str,
        poll_ms: int = 1000,
        on_progress: Optional[Callable[[ToolStatus], None]] = None,
    ) -> ToolStatus:
        """Poll the tool status until it is no longer busy.

        Raises:
            VendorInternalError: If the status reports an error
        """
        while True:
            self.wait(stream, tool, poll_ms)
            status = self.status(stream, tool)
            if status.error:
                raise VendorInternalError(
                    f"Training of tool '{tool}' failed: {status.error}",
                    context={"workspace": self.name, "tool": tool},
                )
            if on_progress is not None:
                on_progress(status)
            if not status.busy:
                logger.info(f"Training of {self.name}/{stream}/{tool} finished: {status.progress}")
                return status

    # ------------------------------------------------------------------
    # Blue tools
    # ------------------------------------------------------------------

    def set_feature(
        self,
        stream: str,
        tool: str,
        view: str,
        feature: str,
        x: float,
        y: float,
        index: int = -1,
        angle: float = 0.0,
        size: float = 0.0,
    ) -> None:
        """Place ``feature`` on ``view`` ("image.png:0"); ``index`` -1 appends."""
        library = self.session.library
        self._call(
            lambda: library.training_blue_set_feature(self.name, stream, tool, view, int(index), feature, float(x), float(y), float(angle), float(size)),
            f"set feature '{feature}' on view '{view}'",
            tool=tool,
        )

    def create_model(self, stream: str, tool: str, model: str, flags: int = 0) -> None:
        library = self.session.library
        self._call(lambda: library.training_blue_create_model(self.name, stream, tool, model, flags), f"create model '{model}'", tool=tool)

    def add_model_node(self, stream: str, tool: str, model: str) -> None:
        library = self.session.library
        self._call(lambda: library.training_model_add_node(self.name, stream, tool, model), f"add node to model '{model}'", tool=tool)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_archive(self, path: Union[str, Path], include_images: bool = True) -> Path:
        library = self.session.library
        self._call(
            lambda: library.training_export_workspace_to_file(self.name, str(path), int(include_images)),
            f"export workspace archive to {path}",
            path=str(path),
        )
        return Path(path)

    def export_runtime(self, path: Union[str, Path]) -> Path:
        library = self.session.library
        self._call(
            lambda: library.training_export_runtime_workspace_to_file(self.name, str(path)),
            f"export runtime workspace to {path}",
            path=str(path),
        )
        return Path(path)

    def save(self) -> None:
        library = self.session.library
        self._call(lambda: library.training_save_workspace(self.name, 0), "save workspace")

    def close(self, discard_autosave: bool = False) -> None:
        """Close the workspace; unsaved state is autosaved unless discarded."""
        library = self.session.library
        self._call(lambda: library.training_close_workspace(self.name, int(discard_autosave)), "close workspace")
        self._mark_closed()
        logger.info(f"Closed training workspace '{self.name}'")

    def _mark_closed(self) -> None:
        self._closed = True
        self.session._forget_training_workspace(self.name)

    def __enter__(self) -> "TrainingWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._closed and self.session.is_open:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<TrainingWorkspace '{self.name}' {state}>"
