"""Session: the scoped handle to an initialized vendor library.

A ``Session`` owns one ``vidi_initialize`` / ``vidi_deinitialize`` pair and
all the client-side bookkeeping hanging off it:

- response buffers and images created through it
- runtime workspaces opened through it, and their samples
- training workspaces created through it

At most one session may be active per library (the native library is a
process-wide singleton): opening a second one fails with
``AlreadyInitializedError`` and leaves the first usable. ``close`` closes the
workspaces still open, deinitializes the library and marks every tracked
buffer and image released, so a fresh ``open`` succeeds afterwards.

Thread-safety:
--------------
The bookkeeping tables are protected by a lock. Vendor calls themselves are
not serialized: concurrent workers sharing a session and a workspace must use
distinct sample names. This is a caller obligation and is not enforced.

Example:
--------
>>> from vidi_client.native import SimulatedLibrary
>>> with Session.open(SimulatedLibrary(), GpuMode.SINGLE_DEVICE_PER_TOOL, "0") as session:
...     print(session.version())
...     workspace = session.open_workspace("textile", "textile.vrws")
...     with workspace.create_sample("default", "s1") as sample:
...         ...
"""

import logging
from pathlib import Path
import threading
from typing import Any, Dict, List, Optional, Union

import numpy as np

from vidi_client.buffers import ManagedBuffer
from vidi_client.domain.exceptions import ConfigError, InvalidStateError, NotInitializedError, ResourceNotFoundError
from vidi_client.domain.models import ComputeDevice, DeviceSelector, validate_identifier
from vidi_client.domain.types import ChannelDepth, DebugSink, GpuMode, ImageFormat
from vidi_client.errors import check_status
from vidi_client.images import CallerOwnedImage, LibraryOwnedImage, ManagedImage
from vidi_client.native.protocols import VidiLibrary
from vidi_client.responses import parse_compute_devices, parse_workspace_list
from vidi_client.training import TrainingWorkspace
from vidi_client.workspace import RuntimeWorkspace

logger = logging.getLogger(__name__)

DeviceSpec = Union[str, DeviceSelector]


def _selector(devices: DeviceSpec) -> DeviceSelector:
    if isinstance(devices, DeviceSelector):
        return devices
    try:
        return DeviceSelector.parse(devices)
    except ValueError as e:
        raise ConfigError(f"Invalid device selector '{devices}': {e}") from e


def _identifier(value: str, kind: str) -> str:
    try:
        return validate_identifier(value, kind)
    except ValueError as e:
        raise ConfigError(str(e)) from e


class Session:
    """An initialized vendor library. Create with ``Session.open``."""

    def __init__(self, library: VidiLibrary, mode: GpuMode, selector: DeviceSelector):
        self.library = library
        self.mode = mode
        self.selector = selector
        self._open = True
        self._lock = threading.RLock()
        self._resources: List[Any] = []
        self._workspaces: Dict[str, RuntimeWorkspace] = {}
        self._training: Dict[str, TrainingWorkspace] = {}

    @classmethod
    def open(
        cls,
        library: VidiLibrary,
        mode: GpuMode = GpuMode.SINGLE_DEVICE_PER_TOOL,
        devices: DeviceSpec = "",
        debug: Optional[DebugSink] = None,
        debug_path: str = "",
        optimized_gpu_memory_mb: Optional[int] = None,
    ) -> "Session":
        """Initialize the library and return the session owning it.

        Args:
            library: Vendor backend
            mode: GPU mode
            devices: Device selector ("" lets the library choose, "1", "0,1")
            debug: Optional vendor debug sink configured before initialization
            debug_path: Log file of the file debug sink
            optimized_gpu_memory_mb: Optimized GPU memory size (0 = automatic)

        Raises:
            AlreadyInitializedError: If the library already has an active session
            ConfigError: If the device selector is malformed
            VidiError: If initialization fails
        """
        selector = _selector(devices)
        if debug is not None:
            check_status(library, library.debug_infos(int(debug), debug_path), "configure debug output")

        logger.info(f"Initializing ViDi (mode={mode.name}, devices='{selector.as_vendor_string()}')")
        check_status(
            library,
            library.initialize(int(mode), selector.as_vendor_string()),
            "initialize library",
            mode=mode.name,
            devices=selector.as_vendor_string(),
        )
        session = cls(library, mode, selector)

        if optimized_gpu_memory_mb is not None:
            try:
                session.set_optimized_gpu_memory(optimized_gpu_memory_mb)
            except Exception:
                session.close()
                raise
        return session

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self) -> None:
        if not self._open:
            raise NotInitializedError("Session is closed")

    def check(self, status: int, action: str, **context) -> None:
        """``check_status`` bound to this session's library."""
        check_status(self.library, status, action, **context)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _track(self, resource: Any) -> None:
        with self._lock:
            self._resources.append(resource)

    def _untrack(self, resource: Any) -> None:
        with self._lock:
            self._resources = [r for r in self._resources if r is not resource]

    def _forget_workspace(self, name: str) -> None:
        with self._lock:
            self._workspaces.pop(name, None)

    def _forget_training_workspace(self, name: str) -> None:
        with self._lock:
            self._training.pop(name, None)

    @property
    def outstanding(self) -> List[Any]:
        """Buffers and images not yet released."""
        with self._lock:
            return list(self._resources)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close open workspaces, deinitialize and release tracked resources.

        Raises:
            NotInitializedError: If the session is already closed
            VidiError: If deinitialization fails (the session is closed anyway)
        """
        self._ensure_open()
        with self._lock:
            workspaces = list(self._workspaces.values())
            training = list(self._training.values())

        for workspace in workspaces:
            try:
                workspace.close()
            except Exception as e:
                logger.warning(f"Closing workspace '{workspace.name}' during teardown failed: {e}")
                workspace._mark_closed()
        for training_workspace in training:
            try:
                training_workspace.close()
            except Exception as e:
                logger.warning(f"Closing training workspace '{training_workspace.name}' during teardown failed: {e}")
                training_workspace._mark_closed()

        status = self.library.deinitialize()
        with self._lock:
            resources, self._resources = self._resources, []
            self._workspaces.clear()
            self._training.clear()
            self._open = False
        for resource in resources:
            resource._mark_released()
        if resources:
            logger.debug(f"Released {len(resources)} outstanding buffers/images at teardown")

        logger.info("ViDi deinitialized")
        check_status(self.library, status, "deinitialize library")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._open:
            self.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def version(self) -> str:
        with self.buffer() as buffer:
            return buffer.fill(self.library.version, "query version").text

    def license_info(self) -> str:
        with self.buffer() as buffer:
            return buffer.fill(self.library.license_get_info, "query license").text

    def list_compute_devices(self) -> List[ComputeDevice]:
        with self.buffer() as buffer:
            buffer.fill(self.library.list_compute_devices, "list compute devices")
            return parse_compute_devices(buffer.data)

    def set_optimized_gpu_memory(self, size_mb: int) -> None:
        self._ensure_open()
        self.check(self.library.optimized_gpu_memory(int(size_mb)), f"set optimized GPU memory to {size_mb} MB")

    def configure_debug_output(self, sink: DebugSink, path: str = "") -> None:
        self._ensure_open()
        self.check(self.library.debug_infos(int(sink), path), f"configure debug output ({DebugSink(sink).name})")

    # ------------------------------------------------------------------
    # Buffers and images
    # ------------------------------------------------------------------

    def buffer(self) -> ManagedBuffer:
        """Create an initialized response buffer tracked by the session."""
        self._ensure_open()
        buffer = ManagedBuffer(self)
        self._track(buffer)
        return buffer

    def wrap_array(self, array: np.ndarray, channel_depth: Optional[ChannelDepth] = None) -> CallerOwnedImage:
        return CallerOwnedImage.from_array(self, array, channel_depth)

    def _new_library_image(self) -> Any:
        handle = self.library.new_image()
        self.check(self.library.init_image(handle), "initialize image")
        return handle

    def _adopt(self, handle: Any, action: str) -> LibraryOwnedImage:
        info = self.library.image_info(handle)
        if info is None:
            raise InvalidStateError(f"{action}: the library returned an empty image")
        image = LibraryOwnedImage(self, handle, info)
        self._track(image)
        return image

    def load_image(self, path: Union[str, Path]) -> LibraryOwnedImage:
        """Load an image file into library-owned memory.

        Raises:
            ResourceNotFoundError: If the file does not exist
        """
        self._ensure_open()
        if not Path(path).is_file():
            raise ResourceNotFoundError(f"Image file not found: {path}", context={"path": str(path)})
        handle = self._new_library_image()
        self.check(self.library.load_image(str(path), handle), f"load image {path}", path=str(path))
        return self._adopt(handle, f"load image {path}")

    def load_image_from_memory(self, data: bytes, image_format: ImageFormat) -> LibraryOwnedImage:
        """Decode an encoded PNG/BMP/TIFF blob into library-owned memory."""
        self._ensure_open()
        image_format = ImageFormat(image_format)
        handle = self._new_library_image()
        self.check(
            self.library.load_image_from_memory(bytes(data), int(image_format), handle),
            f"load {image_format.name} image from memory",
        )
        return self._adopt(handle, "load image from memory")

    def free_image(self, image: ManagedImage) -> None:
        """Release a library-owned image exactly once.

        Raises:
            InvalidStateError: For caller-owned images and for a second free
        """
        self._ensure_open()
        if isinstance(image, CallerOwnedImage):
            raise InvalidStateError("Caller-owned images are never freed by the library; call release() instead")
        if image.released:
            raise InvalidStateError("Image has already been freed")
        self.check(self.library.free_image(image.handle), "free image")
        image._mark_released()
        self._untrack(image)

    # ------------------------------------------------------------------
    # Runtime workspaces
    # ------------------------------------------------------------------

    def open_workspace(self, name: str, path: Union[str, Path]) -> RuntimeWorkspace:
        """Open a runtime workspace archive under ``name``.

        Raises:
            InvalidStateError: If ``name`` is already opened
            ResourceNotFoundError: If ``path`` does not exist
        """
        self._ensure_open()
        name = _identifier(name, "workspace name")
        with self._lock:
            if name in self._workspaces:
                raise InvalidStateError(f"Workspace '{name}' is already opened", context={"workspace": name})
        if not Path(path).is_file():
            raise ResourceNotFoundError(f"Workspace file not found: {path}", context={"workspace": name, "path": str(path)})

        self.check(
            self.library.runtime_open_workspace_from_file(name, str(path)),
            f"open workspace '{name}'",
            workspace=name,
            path=str(path),
        )
        workspace = RuntimeWorkspace(self, name, Path(path))
        with self._lock:
            self._workspaces[name] = workspace
        logger.info(f"Opened workspace '{name}' from {path}")
        return workspace

    def workspace(self, name: str) -> RuntimeWorkspace:
        self._ensure_open()
        with self._lock:
            try:
                return self._workspaces[name]
            except KeyError:
                raise ResourceNotFoundError(f"Workspace '{name}' is not opened", context={"workspace": name}) from None

    def workspaces(self) -> List[str]:
        """Names of the runtime workspaces opened through this session."""
        with self._lock:
            return sorted(self._workspaces)

    def list_workspaces(self) -> List[str]:
        """Runtime workspaces as reported by the library."""
        with self.buffer() as buffer:
            buffer.fill(self.library.runtime_list_workspaces, "list workspaces")
            return parse_workspace_list(buffer.data)

    # ------------------------------------------------------------------
    # Training workspaces
    # ------------------------------------------------------------------

    def create_training_workspace(self, name: str, path: Union[str, Path]) -> TrainingWorkspace:
        """Create a training workspace in an empty (or absent) directory.

        Raises:
            InvalidStateError: If ``name`` already exists in this session
        """
        self._ensure_open()
        name = _identifier(name, "workspace name")
        with self._lock:
            if name in self._training:
                raise InvalidStateError(f"Training workspace '{name}' already exists", context={"workspace": name})
        self.check(
            self.library.training_create_workspace(name, str(path)),
            f"create training workspace '{name}'",
            workspace=name,
            path=str(path),
        )
        workspace = TrainingWorkspace(self, name, Path(path))
        with self._lock:
            self._training[name] = workspace
        logger.info(f"Created training workspace '{name}' in {path}")
        return workspace

    def training_workspace(self, name: str) -> TrainingWorkspace:
        self._ensure_open()
        with self._lock:
            try:
                return self._training[name]
            except KeyError:
                raise ResourceNotFoundError(f"Training workspace '{name}' does not exist", context={"workspace": name}) from None

    def __repr__(self) -> str:
        state = "open" if self._open else "closed"
        return f"<Session {state} mode={self.mode.name} devices='{self.selector.as_vendor_string()}'>"
