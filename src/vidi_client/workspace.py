"""Runtime workspace handle.

A ``RuntimeWorkspace`` is a named, opened runtime archive: one or more
streams, each holding an ordered chain of tools. Operations are addressed by
(workspace, stream, tool) names; every live sample created through the handle
is tracked so that ``close`` can free them first.

Concurrency:
------------
Workers may share one workspace, but each must use its own sample names.
The sample table is lock-protected; the vendor calls are not serialized.
"""

import logging
from pathlib import Path
import threading
from typing import TYPE_CHECKING, Dict, List, Tuple

from vidi_client.domain.exceptions import ConfigError, InvalidStateError, ResourceNotFoundError
from vidi_client.domain.models import SampleKey, SampleResult
from vidi_client.images import ManagedImage
from vidi_client.responses import parse_tool_list
from vidi_client.sample import Sample

if TYPE_CHECKING:
    from vidi_client.session import Session

logger = logging.getLogger(__name__)


class RuntimeWorkspace:
    """An opened runtime workspace. Create with ``Session.open_workspace``."""

    def __init__(self, session: "Session", name: str, path: Path):
        self.session = session
        self.name = name
        self.path = path
        self._closed = False
        self._lock = threading.Lock()
        self._samples: Dict[Tuple[str, str], Sample] = {}

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        self.session._ensure_open()
        if self._closed:
            raise ResourceNotFoundError(f"Workspace '{self.name}' is not opened", context={"workspace": self.name})

    def list_tools(self, stream: str = "default") -> List[str]:
        """Tool names of ``stream`` in chain order."""
        self._ensure_open()
        library = self.session.library
        with self.session.buffer() as buffer:
            buffer.fill(
                lambda handle: library.runtime_list_tools(self.name, stream, handle),
                f"list tools of {self.name}/{stream}",
                workspace=self.name,
                stream=stream,
            )
            return parse_tool_list(buffer.data)

    def create_sample(self, stream: str, name: str) -> Sample:
        """Create an empty sample.

        Raises:
            InvalidStateError: If a live sample already uses ``name`` in ``stream``
        """
        self._ensure_open()
        try:
            key = SampleKey(workspace=self.name, stream=stream, sample=name)
        except ValueError as e:
            raise ConfigError(f"Invalid sample address: {e}") from e

        with self._lock:
            if (stream, name) in self._samples:
                raise InvalidStateError(f"Sample '{key}' already exists", context={"sample": str(key)})

        self.session.check(
            self.session.library.runtime_create_sample(self.name, stream, name),
            f"create sample '{key}'",
            sample=str(key),
        )
        sample = Sample(self, key)
        with self._lock:
            self._samples[(stream, name)] = sample
        return sample

    def sample(self, stream: str, name: str) -> Sample:
        with self._lock:
            try:
                return self._samples[(stream, name)]
            except KeyError:
                raise ResourceNotFoundError(f"Sample '{self.name}/{stream}/{name}' does not exist") from None

    def samples(self) -> List[SampleKey]:
        """Keys of the live samples, sorted."""
        with self._lock:
            return sorted((s.key for s in self._samples.values()), key=str)

    def _forget_sample(self, sample: Sample) -> None:
        with self._lock:
            self._samples.pop((sample.key.stream, sample.key.sample), None)

    def inspect(self, image: ManagedImage, stream: str, tool: str, sample: str, parameters: str = "") -> SampleResult:
        """Create a sample, attach ``image``, process ``tool`` and return the parsed result.

        The sample is freed before returning, including on failure.
        """
        with self.create_sample(stream, sample) as handle:
            handle.attach_image(image)
            handle.process(tool, parameters)
            return handle.result()

    def close(self) -> None:
        """Free live samples, then close the workspace in the library.

        Raises:
            ResourceNotFoundError: If the workspace is already closed
        """
        self._ensure_open()
        with self._lock:
            samples = list(self._samples.values())
        for sample in samples:
            sample.free()

        self.session.check(
            self.session.library.runtime_close_workspace(self.name),
            f"close workspace '{self.name}'",
            workspace=self.name,
        )
        self._mark_closed()
        logger.info(f"Closed workspace '{self.name}'")

    def _mark_closed(self) -> None:
        with self._lock:
            for sample in self._samples.values():
                sample._mark_freed()
            self._samples.clear()
        self._closed = True
        self.session._forget_workspace(self.name)

    def __enter__(self) -> "RuntimeWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._closed and self.session.is_open:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<RuntimeWorkspace '{self.name}' {state}>"
