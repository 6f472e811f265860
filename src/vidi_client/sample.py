"""Per-inference sample state machine.

States and transitions::

    CREATED --attach_image--> IMAGE_ATTACHED --process--> PROCESSED
    PROCESSED --read_result--> RESULTS_READ
    PROCESSED / RESULTS_READ --process--> PROCESSED   (re-run overwrites)
    any live state --free--> FREED                    (terminal)

Processing the last tool of a chain runs the predecessors that have not run
yet; re-processing a tool overwrites its stored marking. A failing vendor
call leaves the state unchanged. Buffers returned by ``read_result`` are
separate allocations and stay valid after the sample is freed.
"""

import logging
from typing import TYPE_CHECKING, List

from vidi_client.buffers import ManagedBuffer
from vidi_client.domain.exceptions import InvalidStateError
from vidi_client.domain.models import SampleKey, SampleResult
from vidi_client.domain.types import SampleState
from vidi_client.images import ManagedImage
from vidi_client.responses import parse_sample_result

if TYPE_CHECKING:
    from vidi_client.workspace import RuntimeWorkspace

logger = logging.getLogger(__name__)

_PROCESSABLE = (SampleState.IMAGE_ATTACHED, SampleState.PROCESSED, SampleState.RESULTS_READ)
_READABLE = (SampleState.PROCESSED, SampleState.RESULTS_READ)


class Sample:
    """A sample of a runtime workspace. Create with ``RuntimeWorkspace.create_sample``."""

    def __init__(self, workspace: "RuntimeWorkspace", key: SampleKey):
        self.workspace = workspace
        self.key = key
        self._state = SampleState.CREATED
        self._processed: List[str] = []

    @property
    def state(self) -> SampleState:
        return self._state

    @property
    def processed_tools(self) -> List[str]:
        """Tools explicitly processed on this sample, in first-run order."""
        return list(self._processed)

    def _require(self, allowed, action: str) -> None:
        if self._state is SampleState.FREED:
            raise InvalidStateError(f"Cannot {action}: sample '{self.key}' has been freed", context={"sample": str(self.key)})
        if self._state not in allowed:
            raise InvalidStateError(
                f"Cannot {action}: sample '{self.key}' is {self._state.value}",
                context={"sample": str(self.key), "state": self._state.value},
            )
        self.workspace._ensure_open()

    def attach_image(self, image: ManagedImage) -> None:
        """Attach the single image of the sample."""
        self._require((SampleState.CREATED,), "attach image")
        session = self.workspace.session
        session.check(
            session.library.runtime_sample_add_image(self.key.workspace, self.key.stream, self.key.sample, image.handle),
            f"attach image to sample '{self.key}'",
            sample=str(self.key),
        )
        self._state = SampleState.IMAGE_ATTACHED

    def process(self, tool: str, parameters: str = "") -> None:
        """Process ``tool`` (and its not-yet-run predecessors) on the sample."""
        self._require(_PROCESSABLE, f"process tool '{tool}'")
        session = self.workspace.session
        session.check(
            session.library.runtime_sample_process(self.key.workspace, self.key.stream, tool, self.key.sample, parameters),
            f"process tool '{tool}' on sample '{self.key}'",
            sample=str(self.key),
            tool=tool,
        )
        if tool not in self._processed:
            self._processed.append(tool)
        self._state = SampleState.PROCESSED

    def read_result(self) -> ManagedBuffer:
        """Return the serialized markings in a buffer owned by the caller."""
        self._require(_READABLE, "read result")
        session = self.workspace.session
        buffer = session.buffer()
        try:
            buffer.fill(
                lambda handle: session.library.runtime_get_sample(self.key.workspace, self.key.stream, self.key.sample, handle),
                f"read result of sample '{self.key}'",
                sample=str(self.key),
            )
        except Exception:
            buffer.release()
            raise
        self._state = SampleState.RESULTS_READ
        return buffer

    def result(self) -> SampleResult:
        """Read and parse the markings, releasing the intermediate buffer."""
        with self.read_result() as buffer:
            return parse_sample_result(buffer.data)

    def free(self) -> None:
        """Free the sample in the library.

        Raises:
            InvalidStateError: If the sample was already freed
        """
        if self._state is SampleState.FREED:
            raise InvalidStateError(f"Sample '{self.key}' has already been freed", context={"sample": str(self.key)})
        session = self.workspace.session
        session.check(
            session.library.runtime_free_sample(self.key.workspace, self.key.stream, self.key.sample),
            f"free sample '{self.key}'",
            sample=str(self.key),
        )
        self._mark_freed()
        self.workspace._forget_sample(self)

    def _mark_freed(self) -> None:
        self._state = SampleState.FREED

    def __enter__(self) -> "Sample":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._state is not SampleState.FREED and not self.workspace.closed and self.workspace.session.is_open:
            self.free()

    def __repr__(self) -> str:
        return f"<Sample '{self.key}' {self._state.value}>"
