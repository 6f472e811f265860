"""ctypes binding of the vendor shared library.

Low-level module: functions accept primitives (str, int, bytes, numpy arrays)
and return the raw vendor status. Nothing here raises for a non-success
status.

The vendor library is a process-wide singleton, so every ``CtypesLibrary``
pointing at the same file shares one loaded ``ctypes.CDLL``.

Structures:
    VIDI_BUFFER: ``data`` (char*) and ``size`` (size_t)
    VIDI_IMAGE: ``data`` (void*), ``width``, ``height``, ``channels``,
        ``channel_depth`` and ``step`` (VIDI_UINT)
"""

import ctypes
import ctypes.util
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

import numpy as np

from vidi_client.domain.exceptions import ResourceNotFoundError
from vidi_client.domain.models import ImageInfo
from vidi_client.domain.types import ChannelDepth

logger = logging.getLogger(__name__)

VIDI_UINT = ctypes.c_uint
VIDI_INT = ctypes.c_int

LIBRARY_NAMES = ("vidi_80", "vidi")


class VIDI_BUFFER(ctypes.Structure):
    _fields_ = [
        ("data", ctypes.POINTER(ctypes.c_char)),
        ("size", ctypes.c_size_t),
    ]


class VIDI_IMAGE(ctypes.Structure):
    _fields_ = [
        ("data", ctypes.c_void_p),
        ("width", VIDI_UINT),
        ("height", VIDI_UINT),
        ("channels", VIDI_UINT),
        ("channel_depth", VIDI_UINT),
        ("step", VIDI_UINT),
    ]


_BUF = ctypes.POINTER(VIDI_BUFFER)
_IMG = ctypes.POINTER(VIDI_IMAGE)
_STR = ctypes.c_char_p

# argtypes of every bound function; all of them return VIDI_UINT
_SIGNATURES: Dict[str, tuple] = {
    "vidi_initialize": (VIDI_UINT, _STR),
    "vidi_deinitialize": (),
    "vidi_debug_infos": (VIDI_UINT, _STR),
    "vidi_version": (_BUF,),
    "vidi_license_get_info": (_BUF,),
    "vidi_list_compute_devices": (_BUF,),
    "vidi_optimized_gpu_memory": (VIDI_UINT,),
    "vidi_get_error_message": (VIDI_UINT, _BUF),
    "vidi_init_buffer": (_BUF,),
    "vidi_free_buffer": (_BUF,),
    "vidi_init_image": (_IMG,),
    "vidi_free_image": (_IMG,),
    "vidi_load_image": (_STR, _IMG),
    "vidi_load_image_from_memory": (_BUF, VIDI_UINT, _IMG),
    "vidi_save_image": (_STR, _IMG),
    "vidi_runtime_open_workspace_from_file": (_STR, _STR),
    "vidi_runtime_close_workspace": (_STR,),
    "vidi_runtime_list_workspaces": (_BUF,),
    "vidi_runtime_list_tools": (_STR, _STR, _BUF),
    "vidi_runtime_create_sample": (_STR, _STR, _STR),
    "vidi_runtime_sample_add_image": (_STR, _STR, _STR, _IMG),
    "vidi_runtime_sample_process": (_STR, _STR, _STR, _STR, _STR),
    "vidi_runtime_get_sample": (_STR, _STR, _STR, _BUF),
    "vidi_runtime_free_sample": (_STR, _STR, _STR),
    "vidi_training_create_workspace": (_STR, _STR),
    "vidi_training_workspace_add_stream": (_STR, _STR),
    "vidi_training_stream_add_tool": (_STR, _STR, _STR, _STR, _STR),
    "vidi_training_stream_add_image_to_database": (_STR, _STR, _IMG, _STR),
    "vidi_training_tool_process_database": (_STR, _STR, _STR, _STR, _STR),
    "vidi_training_tool_wait": (_STR, _STR, _STR, VIDI_UINT),
    "vidi_training_red_label_views": (_STR, _STR, _STR, _STR, _STR),
    "vidi_training_tool_get_parameter": (_STR, _STR, _STR, _STR, _BUF),
    "vidi_training_tool_set_parameter": (_STR, _STR, _STR, _STR, _STR),
    "vidi_training_tool_train": (_STR, _STR, _STR, _STR),
    "vidi_training_tool_get_status": (_STR, _STR, _STR, _BUF),
    "vidi_training_blue_set_feature": (
        _STR, _STR, _STR, _STR, VIDI_INT, _STR, ctypes.c_double, ctypes.c_double, ctypes.c_double, ctypes.c_double,
    ),
    "vidi_training_blue_create_model": (_STR, _STR, _STR, _STR, VIDI_UINT),
    "vidi_training_model_add_node": (_STR, _STR, _STR, _STR),
    "vidi_training_export_workspace_to_file": (_STR, _STR, VIDI_UINT),
    "vidi_training_export_runtime_workspace_to_file": (_STR, _STR),
    "vidi_training_save_workspace": (_STR, VIDI_UINT),
    "vidi_training_close_workspace": (_STR, VIDI_UINT),
}

_loaded: Dict[str, ctypes.CDLL] = {}
_load_lock = threading.Lock()


def resolve_library_path(path: str = "") -> str:
    """Locate the vendor shared library.

    Args:
        path: Explicit path; when empty the system search path is used

    Returns:
        Path or soname accepted by ``ctypes.CDLL``

    Raises:
        ResourceNotFoundError: If the library cannot be found
    """
    if path:
        if not Path(path).exists():
            raise ResourceNotFoundError(f"Vendor library not found: {path}", context={"path": path})
        return str(Path(path).resolve())

    for name in LIBRARY_NAMES:
        found = ctypes.util.find_library(name)
        if found:
            return found

    raise ResourceNotFoundError(
        f"Vendor library not found on the search path (tried {', '.join(LIBRARY_NAMES)}); set library.path"
    )


def _encode(value: str) -> bytes:
    return value.encode("utf-8")


class CtypesLibrary:
    """``VidiLibrary`` backed by the vendor shared library."""

    def __init__(self, path: str = ""):
        self.path = resolve_library_path(path)
        with _load_lock:
            if self.path not in _loaded:
                logger.info(f"Loading vendor library: {self.path}")
                _loaded[self.path] = ctypes.CDLL(self.path)
        self._cdll = _loaded[self.path]
        self._functions: Dict[str, Callable[..., int]] = {}

    def _fn(self, name: str) -> Callable[..., int]:
        fn = self._functions.get(name)
        if fn is None:
            try:
                fn = getattr(self._cdll, name)
            except AttributeError:
                raise ResourceNotFoundError(f"{self.path} does not export {name}") from None
            fn.argtypes = list(_SIGNATURES[name])
            fn.restype = VIDI_UINT
            self._functions[name] = fn
        return fn

    def _call(self, name: str, *args) -> int:
        converted = [_encode(a) if isinstance(a, str) else a for a in args]
        return int(self._fn(name)(*converted))

    # Handles

    def new_buffer(self) -> VIDI_BUFFER:
        return VIDI_BUFFER()

    def new_image(self) -> VIDI_IMAGE:
        return VIDI_IMAGE()

    def wrap_pixels(self, pixels: np.ndarray, info: ImageInfo) -> VIDI_IMAGE:
        pixels = np.ascontiguousarray(pixels)
        image = VIDI_IMAGE(
            data=pixels.ctypes.data,
            width=info.width,
            height=info.height,
            channels=info.channels,
            channel_depth=int(info.channel_depth),
            step=info.step,
        )
        # the vendor only stores the pointer
        image._pixels = pixels
        return image

    def read_buffer(self, buffer: VIDI_BUFFER) -> Optional[bytes]:
        if not buffer.data:
            return None
        return ctypes.string_at(buffer.data, buffer.size).rstrip(b"\x00")

    def image_info(self, image: VIDI_IMAGE) -> Optional[ImageInfo]:
        if not image.data:
            return None
        return ImageInfo(
            width=image.width,
            height=image.height,
            channels=image.channels,
            channel_depth=ChannelDepth(image.channel_depth),
            step=image.step,
        )

    def image_pixels(self, image: VIDI_IMAGE) -> np.ndarray:
        info = self.image_info(image)
        if info is None:
            raise ValueError("image holds no pixel data")
        raw = ctypes.string_at(image.data, info.nbytes)
        rows = np.frombuffer(raw, dtype=np.uint8).reshape(info.height, info.step)[:, : info.min_step]
        pixels = np.ascontiguousarray(rows).view(info.channel_depth.dtype)
        if info.channels == 1:
            return pixels.reshape(info.height, info.width).copy()
        return pixels.reshape(info.height, info.width, info.channels).copy()

    # Core

    def initialize(self, gpu_mode: int, devices: str) -> int:
        return self._call("vidi_initialize", gpu_mode, devices)

    def deinitialize(self) -> int:
        return self._call("vidi_deinitialize")

    def debug_infos(self, sink: int, path: str) -> int:
        return self._call("vidi_debug_infos", sink, path)

    def version(self, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_version", ctypes.byref(buffer))

    def license_get_info(self, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_license_get_info", ctypes.byref(buffer))

    def list_compute_devices(self, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_list_compute_devices", ctypes.byref(buffer))

    def optimized_gpu_memory(self, size_mb: int) -> int:
        return self._call("vidi_optimized_gpu_memory", size_mb)

    def get_error_message(self, status: int, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_get_error_message", status, ctypes.byref(buffer))

    # Buffers and images

    def init_buffer(self, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_init_buffer", ctypes.byref(buffer))

    def free_buffer(self, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_free_buffer", ctypes.byref(buffer))

    def init_image(self, image: VIDI_IMAGE) -> int:
        return self._call("vidi_init_image", ctypes.byref(image))

    def free_image(self, image: VIDI_IMAGE) -> int:
        return self._call("vidi_free_image", ctypes.byref(image))

    def load_image(self, path: str, image: VIDI_IMAGE) -> int:
        return self._call("vidi_load_image", path, ctypes.byref(image))

    def load_image_from_memory(self, data: bytes, image_format: int, image: VIDI_IMAGE) -> int:
        raw = ctypes.create_string_buffer(data, len(data))
        encoded = VIDI_BUFFER(data=ctypes.cast(raw, ctypes.POINTER(ctypes.c_char)), size=len(data))
        return self._call("vidi_load_image_from_memory", ctypes.byref(encoded), image_format, ctypes.byref(image))

    def save_image(self, path: str, image: VIDI_IMAGE) -> int:
        return self._call("vidi_save_image", path, ctypes.byref(image))

    # Runtime

    def runtime_open_workspace_from_file(self, workspace: str, path: str) -> int:
        return self._call("vidi_runtime_open_workspace_from_file", workspace, path)

    def runtime_close_workspace(self, workspace: str) -> int:
        return self._call("vidi_runtime_close_workspace", workspace)

    def runtime_list_workspaces(self, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_runtime_list_workspaces", ctypes.byref(buffer))

    def runtime_list_tools(self, workspace: str, stream: str, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_runtime_list_tools", workspace, stream, ctypes.byref(buffer))

    def runtime_create_sample(self, workspace: str, stream: str, sample: str) -> int:
        return self._call("vidi_runtime_create_sample", workspace, stream, sample)

    def runtime_sample_add_image(self, workspace: str, stream: str, sample: str, image: VIDI_IMAGE) -> int:
        return self._call("vidi_runtime_sample_add_image", workspace, stream, sample, ctypes.byref(image))

    def runtime_sample_process(self, workspace: str, stream: str, tool: str, sample: str, parameters: str) -> int:
        return self._call("vidi_runtime_sample_process", workspace, stream, tool, sample, parameters)

    def runtime_get_sample(self, workspace: str, stream: str, sample: str, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_runtime_get_sample", workspace, stream, sample, ctypes.byref(buffer))

    def runtime_free_sample(self, workspace: str, stream: str, sample: str) -> int:
        return self._call("vidi_runtime_free_sample", workspace, stream, sample)

    # Training

    def training_create_workspace(self, workspace: str, path: str) -> int:
        return self._call("vidi_training_create_workspace", workspace, path)

    def training_workspace_add_stream(self, workspace: str, stream: str) -> int:
        return self._call("vidi_training_workspace_add_stream", workspace, stream)

    def training_stream_add_tool(self, workspace: str, stream: str, tool: str, parent: str, tool_type: str) -> int:
        return self._call("vidi_training_stream_add_tool", workspace, stream, tool, parent, tool_type)

    def training_stream_add_image_to_database(self, workspace: str, stream: str, image: VIDI_IMAGE, name: str) -> int:
        return self._call("vidi_training_stream_add_image_to_database", workspace, stream, ctypes.byref(image), name)

    def training_tool_process_database(self, workspace: str, stream: str, tool: str, view_filter: str, parameters: str) -> int:
        return self._call("vidi_training_tool_process_database", workspace, stream, tool, view_filter, parameters)

    def training_tool_wait(self, workspace: str, stream: str, tool: str, timeout_ms: int) -> int:
        return self._call("vidi_training_tool_wait", workspace, stream, tool, timeout_ms)

    def training_red_label_views(self, workspace: str, stream: str, tool: str, view_filter: str, label: str) -> int:
        return self._call("vidi_training_red_label_views", workspace, stream, tool, view_filter, label)

    def training_tool_get_parameter(self, workspace: str, stream: str, tool: str, parameter: str, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_training_tool_get_parameter", workspace, stream, tool, parameter, ctypes.byref(buffer))

    def training_tool_set_parameter(self, workspace: str, stream: str, tool: str, parameter: str, value: str) -> int:
        return self._call("vidi_training_tool_set_parameter", workspace, stream, tool, parameter, value)

    def training_tool_train(self, workspace: str, stream: str, tool: str, devices: str) -> int:
        return self._call("vidi_training_tool_train", workspace, stream, tool, devices)

    def training_tool_get_status(self, workspace: str, stream: str, tool: str, buffer: VIDI_BUFFER) -> int:
        return self._call("vidi_training_tool_get_status", workspace, stream, tool, ctypes.byref(buffer))

    def training_blue_set_feature(self, workspace, stream, tool, view, index, feature, x, y, angle, size) -> int:
        return self._call("vidi_training_blue_set_feature", workspace, stream, tool, view, index, feature, x, y, angle, size)

    def training_blue_create_model(self, workspace: str, stream: str, tool: str, model: str, flags: int) -> int:
        return self._call("vidi_training_blue_create_model", workspace, stream, tool, model, flags)

    def training_model_add_node(self, workspace: str, stream: str, tool: str, model: str) -> int:
        return self._call("vidi_training_model_add_node", workspace, stream, tool, model)

    def training_export_workspace_to_file(self, workspace: str, path: str, include_images: int) -> int:
        return self._call("vidi_training_export_workspace_to_file", workspace, path, include_images)

    def training_export_runtime_workspace_to_file(self, workspace: str, path: str) -> int:
        return self._call("vidi_training_export_runtime_workspace_to_file", workspace, path)

    def training_save_workspace(self, workspace: str, flags: int) -> int:
        return self._call("vidi_training_save_workspace", workspace, flags)

    def training_close_workspace(self, workspace: str, discard_autosave: int) -> int:
        return self._call("vidi_training_close_workspace", workspace, discard_autosave)
