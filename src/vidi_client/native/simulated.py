"""In-process reference backend of the vendor library.

``SimulatedLibrary`` implements the ``VidiLibrary`` protocol without the
proprietary binaries so that the resource layer, the example scripts and the
test-suite can run anywhere. It follows the observable vendor contract:

- one active initialization per instance; a second ``initialize`` returns
  ``Status.ALREADY_INITIALIZED`` and every other call made before
  ``initialize`` returns ``Status.NOT_INITIALIZED``
- ``deinitialize`` releases all outstanding buffers, images, workspaces and
  samples
- the message of the last failure of each status is returned by
  ``get_error_message`` as ``<error code="...">message</error>``
- processing a tool runs its not-yet-processed predecessors first and always
  re-runs the requested tool, overwriting its marking

Images are decoded and encoded with Pillow (PNG, BMP, TIFF) and held as numpy
arrays. Runtime workspaces are JSON documents (see
``write_runtime_workspace``); the training export writes the same format, so a
workspace trained with this backend can be reopened by its runtime API.

Scores are deterministic pixel statistics, not vision models:

- red: fraction of pixels deviating from the trained reference intensity
- green: nearest trained class mean intensity
- blue: trained feature positions scaled onto the image
"""

import base64
import functools
import io
import json
import logging
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from vidi_client.domain.models import ImageInfo
from vidi_client.domain.types import ChannelDepth, DebugSink, GpuMode, ImageFormat, Status, ToolType

logger = logging.getLogger(__name__)

# messages routed through the vendor debug sink
vendor_logger = logging.getLogger("vidi_client.native.simulated.vendor")

SIMULATED_VERSION = "ViDi simulated runtime 1.0.0"
RUNTIME_FORMAT = "vidi-sim-runtime"
ARCHIVE_FORMAT = "vidi-sim-archive"

DEFAULT_DEVICE_NAMES = ("Simulated GPU 0", "Simulated GPU 1")

# a pixel deviates when its normalized intensity is this far from the reference
RED_PIXEL_TOLERANCE = 0.25

_PIL_FORMATS = {ImageFormat.PNG: "PNG", ImageFormat.BMP: "BMP", ImageFormat.TIFF: "TIFF"}

_DEFAULT_PARAMETERS = {
    ToolType.RED: {
        "sampling/feature_size": "100x100",
        "training/count_epochs": "50",
        "training/train_selection": "1.0",
        "threshold": "0.02",
    },
    ToolType.GREEN: {
        "sampling/feature_size": "100x100",
        "training/count_epochs": "50",
        "training/train_selection": "1.0",
    },
    ToolType.BLUE: {
        "sampling/feature_size": "50x50",
        "training/count_epochs": "50",
        "training/train_selection": "1.0",
    },
}


class _Failure(Exception):
    """Internal signal turned into a vendor status by ``_vendor_call``."""

    def __init__(self, status: Status, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class SimBuffer:
    """Simulated VIDI_BUFFER."""

    data: Optional[bytes] = None
    initialized: bool = False


@dataclass
class SimImage:
    """Simulated VIDI_IMAGE."""

    pixels: Optional[np.ndarray] = None
    caller_owned: bool = False
    initialized: bool = False


@dataclass
class SimTool:
    name: str
    tool_type: ToolType
    parameters: Dict[str, str] = field(default_factory=dict)
    model: Dict[str, Any] = field(default_factory=dict)
    trained: bool = False
    processed: bool = False
    last_error: str = ""


@dataclass
class SimView:
    pixels: np.ndarray
    label: Optional[str] = None
    features: List[Dict[str, float]] = field(default_factory=list)


@dataclass
class SimStream:
    name: str
    tools: List[SimTool] = field(default_factory=list)
    database: Dict[str, SimView] = field(default_factory=dict)
    models: Dict[str, int] = field(default_factory=dict)

    def tool(self, name: str) -> SimTool:
        for tool in self.tools:
            if tool.name == name:
                return tool
        raise _Failure(Status.UNKNOWN_TOOL, f"unknown tool '{name}' in stream '{self.name}'")


@dataclass
class SimWorkspace:
    name: str
    streams: Dict[str, SimStream] = field(default_factory=dict)
    path: Optional[Path] = None
    dirty: bool = False

    def stream(self, name: str) -> SimStream:
        try:
            return self.streams[name]
        except KeyError:
            raise _Failure(Status.UNKNOWN_STREAM, f"unknown stream '{name}' in workspace '{self.name}'") from None


@dataclass
class SimSample:
    pixels: Optional[np.ndarray] = None
    markings: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def _vendor_call(requires_init: bool = True) -> Callable:
    """Run a simulated vendor function under the library lock.

    ``_Failure`` raised by the body becomes its status code and its message is
    recorded for ``get_error_message``.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(self: "SimulatedLibrary", *args) -> int:
            with self._lock:
                try:
                    if requires_init and not self._initialized:
                        raise _Failure(Status.NOT_INITIALIZED, "ViDi is not initialized")
                    fn(self, *args)
                except _Failure as failure:
                    self._errors[int(failure.status)] = failure.message
                    vendor_logger.debug(f"vidi_{fn.__name__} failed: {failure.message}")
                    return int(failure.status)
                vendor_logger.debug(f"vidi_{fn.__name__} succeeded")
                return int(Status.SUCCESS)

        return wrapper

    return decorator


# ============================================================================
# Pixel helpers
# ============================================================================


def _pixels_from_pil(image: Image.Image) -> np.ndarray:
    if image.mode in ("I;16", "I;16B", "I;16L"):
        return np.array(image, dtype=np.uint16)
    if image.mode == "I":
        return np.clip(np.array(image, dtype=np.int64), 0, 65535).astype(np.uint16)
    if image.mode == "F":
        return np.array(image, dtype=np.float32)
    if image.mode in ("L", "RGB", "RGBA"):
        return np.array(image, dtype=np.uint8)
    if image.mode in ("1", "LA"):
        return np.array(image.convert("L"), dtype=np.uint8)
    return np.array(image.convert("RGB"), dtype=np.uint8)


def _decode(source: Any, expected: Optional[ImageFormat] = None) -> np.ndarray:
    try:
        with Image.open(source) as image:
            if expected is not None and image.format != _PIL_FORMATS[expected]:
                raise _Failure(Status.IMAGE_DECODE, f"data is not a {expected.name} image (found {image.format})")
            image.load()
            return _pixels_from_pil(image)
    except (UnidentifiedImageError, OSError) as e:
        raise _Failure(Status.IMAGE_DECODE, f"cannot decode image: {e}") from e


def _encode(pixels: np.ndarray, target: Any, image_format: Optional[str] = None) -> None:
    try:
        Image.fromarray(pixels).save(target, format=image_format)
    except (ValueError, OSError, KeyError, TypeError) as e:
        raise _Failure(Status.INTERNAL, f"cannot encode image: {e}") from e


def _info(pixels: np.ndarray) -> ImageInfo:
    depth = ChannelDepth.from_dtype(pixels.dtype)
    height, width = pixels.shape[:2]
    channels = 1 if pixels.ndim == 2 else pixels.shape[2]
    return ImageInfo(
        width=width,
        height=height,
        channels=channels,
        channel_depth=depth,
        step=width * channels * depth.bytes_per_channel,
    )


def _gray(pixels: np.ndarray) -> np.ndarray:
    """Normalized single-channel intensity in [0, 1]."""
    values = pixels.astype(np.float64)
    if values.ndim == 3:
        values = values[..., :3].mean(axis=2)
    if pixels.dtype == np.uint8:
        values /= 255.0
    elif pixels.dtype == np.uint16:
        values /= 65535.0
    return np.clip(values, 0.0, 1.0)


def _png_b64(pixels: np.ndarray) -> str:
    stream = io.BytesIO()
    _encode(pixels, stream, "PNG")
    return base64.b64encode(stream.getvalue()).decode("ascii")


def _parse_parameters(text: str) -> Dict[str, str]:
    """Parse ``key=value;key=value`` processing parameters."""
    parameters: Dict[str, str] = {}
    for item in filter(None, (part.strip() for part in text.split(";"))):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise _Failure(Status.INVALID_ARGUMENT, f"malformed processing parameter '{item}'")
        parameters[key.strip()] = value.strip()
    return parameters


def _threshold(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise _Failure(Status.INVALID_ARGUMENT, f"invalid threshold '{value}'") from None


def _xml(element: ET.Element) -> bytes:
    return ET.tostring(element, encoding="utf-8")


# ============================================================================
# Runtime workspace documents
# ============================================================================


def runtime_document(name: str, streams: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Build a runtime workspace document.

    Args:
        name: Workspace name stored in the document
        streams: Stream name -> ordered list of tool dicts with keys
            ``name``, ``type`` and optionally ``parameters``, ``model`` and
            ``trained`` (defaults to True)

    Returns:
        JSON-serializable document accepted by
        ``runtime_open_workspace_from_file``
    """
    return {
        "format": RUNTIME_FORMAT,
        "version": 1,
        "name": name,
        "streams": [
            {
                "name": stream,
                "tools": [
                    {
                        "name": tool["name"],
                        "type": ToolType(tool["type"]).value,
                        "parameters": {**_DEFAULT_PARAMETERS[ToolType(tool["type"])], **tool.get("parameters", {})},
                        "model": tool.get("model", {}),
                        "trained": tool.get("trained", True),
                    }
                    for tool in tools
                ],
            }
            for stream, tools in streams.items()
        ],
    }


def write_runtime_workspace(path: Path, name: str, streams: Dict[str, List[Dict[str, Any]]]) -> Path:
    """Write a runtime workspace document to ``path`` and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(runtime_document(name, streams), indent=2), encoding="utf-8")
    return path


def _load_runtime_document(name: str, path: Path) -> SimWorkspace:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise _Failure(Status.INVALID_ARGUMENT, f"'{path}' is not a runtime workspace: {e}") from e

    if not isinstance(document, dict) or document.get("format") != RUNTIME_FORMAT:
        raise _Failure(Status.INVALID_ARGUMENT, f"'{path}' is not a runtime workspace")

    workspace = SimWorkspace(name=name, path=path)
    try:
        for stream_doc in document["streams"]:
            stream = SimStream(name=stream_doc["name"])
            for tool_doc in stream_doc["tools"]:
                stream.tools.append(
                    SimTool(
                        name=tool_doc["name"],
                        tool_type=ToolType(tool_doc["type"]),
                        parameters=dict(tool_doc.get("parameters", {})),
                        model=dict(tool_doc.get("model", {})),
                        trained=bool(tool_doc.get("trained", False)),
                    )
                )
            workspace.streams[stream.name] = stream
    except (KeyError, TypeError, ValueError) as e:
        raise _Failure(Status.INVALID_ARGUMENT, f"corrupt runtime workspace '{path}': {e}") from e
    return workspace


# ============================================================================
# Scoring
# ============================================================================


def _score_red(tool: SimTool, pixels: np.ndarray, overrides: Dict[str, str]) -> Dict[str, Any]:
    gray = _gray(pixels)
    reference = float(tool.model.get("reference", 0.5))
    score = float(np.mean(np.abs(gray - reference) > RED_PIXEL_TOLERANCE))
    threshold = _threshold(overrides.get("threshold", tool.parameters.get("threshold", "0.02")))
    label = "bad" if score > threshold else "good"
    return {"views": [{"index": 0, "score": score, "threshold": threshold, "label": label, "matches": []}]}


def _score_green(tool: SimTool, pixels: np.ndarray, overrides: Dict[str, str]) -> Dict[str, Any]:
    mean = float(_gray(pixels).mean())
    classes: Dict[str, float] = tool.model.get("classes", {})
    if not classes:
        return {"views": [{"index": 0, "score": 0.0, "threshold": None, "label": "", "matches": []}]}
    label, reference = min(classes.items(), key=lambda item: abs(item[1] - mean))
    score = max(0.0, 1.0 - abs(reference - mean))
    return {"views": [{"index": 0, "score": score, "threshold": None, "label": label, "matches": []}]}


def _score_blue(tool: SimTool, pixels: np.ndarray, overrides: Dict[str, str]) -> Dict[str, Any]:
    height, width = pixels.shape[:2]
    mean = float(_gray(pixels).mean())
    score = max(0.0, 1.0 - 2.0 * abs(float(tool.model.get("reference", mean)) - mean))
    matches = []
    positions: Dict[str, List[float]] = tool.model.get("features", {})
    for feature, (rx, ry) in sorted(positions.items()):
        matches.append({"name": feature, "x": rx * width, "y": ry * height, "score": score})
    for model_name in sorted(tool.model.get("models", {})):
        if positions:
            cx = float(np.mean([p[0] for p in positions.values()])) * width
            cy = float(np.mean([p[1] for p in positions.values()])) * height
        else:
            cx, cy = width / 2.0, height / 2.0
        matches.append({"name": model_name, "x": cx, "y": cy, "score": score})
    return {"views": [{"index": 0, "score": score, "threshold": None, "label": "", "matches": matches}]}


_SCORERS = {ToolType.RED: _score_red, ToolType.GREEN: _score_green, ToolType.BLUE: _score_blue}


# ============================================================================
# Library
# ============================================================================


class SimulatedLibrary:
    """In-process ``VidiLibrary``.

    Args:
        device_names: Names of the simulated compute devices; their position
            is the device index used in device selector strings
    """

    def __init__(self, device_names: Sequence[str] = DEFAULT_DEVICE_NAMES):
        self.device_names = tuple(device_names)
        self._lock = threading.RLock()
        self._initialized = False
        self._gpu_mode = GpuMode.NO_SUPPORT
        self._devices: Tuple[int, ...] = ()
        self._optimized_memory_mb: Optional[int] = None
        self._errors: Dict[int, str] = {}
        self._allocated_buffers: List[SimBuffer] = []
        self._allocated_images: List[SimImage] = []
        self._runtime: Dict[str, SimWorkspace] = {}
        self._training: Dict[str, SimWorkspace] = {}
        self._samples: Dict[Tuple[str, str, str], SimSample] = {}
        self._debug_handler: Optional[logging.Handler] = None
        self.calls: List[str] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def live_samples(self) -> List[Tuple[str, str, str]]:
        with self._lock:
            return sorted(self._samples)

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def new_buffer(self) -> SimBuffer:
        return SimBuffer()

    def new_image(self) -> SimImage:
        return SimImage()

    def wrap_pixels(self, pixels: np.ndarray, info: ImageInfo) -> SimImage:
        # no copy: caller memory stays caller memory
        return SimImage(pixels=pixels, caller_owned=True, initialized=True)

    def read_buffer(self, buffer: SimBuffer) -> Optional[bytes]:
        return buffer.data

    def image_info(self, image: SimImage) -> Optional[ImageInfo]:
        if image.pixels is None:
            return None
        return _info(image.pixels)

    def image_pixels(self, image: SimImage) -> np.ndarray:
        if image.pixels is None:
            raise ValueError("image holds no pixel data")
        return image.pixels.copy()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fill(self, buffer: SimBuffer, payload: bytes) -> None:
        if not isinstance(buffer, SimBuffer) or not buffer.initialized:
            raise _Failure(Status.INVALID_ARGUMENT, "buffer was not initialized with vidi_init_buffer")
        buffer.data = payload
        if not any(b is buffer for b in self._allocated_buffers):
            self._allocated_buffers.append(buffer)

    def _fill_text(self, buffer: SimBuffer, text: str) -> None:
        self._fill(buffer, text.encode("utf-8"))

    def _library_image(self, image: SimImage) -> SimImage:
        if not isinstance(image, SimImage) or not image.initialized:
            raise _Failure(Status.INVALID_ARGUMENT, "image was not initialized with vidi_init_image")
        if image.caller_owned:
            raise _Failure(Status.INVALID_ARGUMENT, "image memory is not managed by ViDi")
        return image

    def _store_image(self, image: SimImage, pixels: np.ndarray) -> None:
        image.pixels = pixels
        if not any(i is image for i in self._allocated_images):
            self._allocated_images.append(image)

    @staticmethod
    def _pixels_of(image: SimImage) -> np.ndarray:
        if not isinstance(image, SimImage) or image.pixels is None:
            raise _Failure(Status.INVALID_ARGUMENT, "image holds no data")
        return image.pixels

    def _runtime_workspace(self, name: str) -> SimWorkspace:
        try:
            return self._runtime[name]
        except KeyError:
            raise _Failure(Status.UNKNOWN_WORKSPACE, f"workspace '{name}' is not opened") from None

    def _training_workspace(self, name: str) -> SimWorkspace:
        try:
            return self._training[name]
        except KeyError:
            raise _Failure(Status.UNKNOWN_WORKSPACE, f"training workspace '{name}' does not exist") from None

    def _sample(self, workspace: str, stream: str, sample: str) -> SimSample:
        self._runtime_workspace(workspace).stream(stream)
        try:
            return self._samples[(workspace, stream, sample)]
        except KeyError:
            raise _Failure(Status.UNKNOWN_SAMPLE, f"sample '{sample}' does not exist in {workspace}/{stream}") from None

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    @_vendor_call(requires_init=False)
    def initialize(self, gpu_mode: int, devices: str) -> None:
        self.calls.append("initialize")
        if self._initialized:
            raise _Failure(Status.ALREADY_INITIALIZED, "ViDi is already initialized")
        try:
            mode = GpuMode(gpu_mode)
        except ValueError:
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown GPU mode {gpu_mode}") from None

        selected: Tuple[int, ...] = ()
        if devices.strip():
            try:
                selected = tuple(int(part) for part in devices.split(","))
            except ValueError:
                raise _Failure(Status.INVALID_ARGUMENT, f"malformed device list '{devices}'") from None
        if mode is not GpuMode.NO_SUPPORT:
            for index in selected:
                if not 0 <= index < len(self.device_names):
                    raise _Failure(Status.DEVICE_UNAVAILABLE, f"cannot initialize with provided gpu list: device {index} is not available")

        self._gpu_mode = mode
        self._devices = selected
        self._initialized = True
        vendor_logger.info(f"ViDi initialized (mode={mode.name}, devices='{devices}')")

    @_vendor_call()
    def deinitialize(self) -> None:
        self.calls.append("deinitialize")
        for buffer in self._allocated_buffers:
            buffer.data = None
        for image in self._allocated_images:
            image.pixels = None
        self._allocated_buffers.clear()
        self._allocated_images.clear()
        self._runtime.clear()
        self._training.clear()
        self._samples.clear()
        self._initialized = False
        self._optimized_memory_mb = None
        vendor_logger.info("ViDi deinitialized")

    @_vendor_call(requires_init=False)
    def debug_infos(self, sink: int, path: str) -> None:
        try:
            sink = DebugSink(sink)
        except ValueError:
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown debug sink {sink}") from None
        if sink is DebugSink.FILE and not path:
            raise _Failure(Status.INVALID_ARGUMENT, "a file path is required for the file debug sink")

        if self._debug_handler is not None:
            vendor_logger.removeHandler(self._debug_handler)
            self._debug_handler.close()
        if sink is DebugSink.FILE:
            try:
                self._debug_handler = logging.FileHandler(path, encoding="utf-8")
            except OSError as e:
                raise _Failure(Status.FILE_NOT_FOUND, f"cannot open debug file '{path}': {e}") from e
        else:
            self._debug_handler = logging.StreamHandler()
        self._debug_handler.setFormatter(logging.Formatter("%(asctime)s [vidi] %(message)s"))
        vendor_logger.addHandler(self._debug_handler)
        vendor_logger.setLevel(logging.DEBUG)

    @_vendor_call()
    def version(self, buffer: SimBuffer) -> None:
        self._fill_text(buffer, SIMULATED_VERSION)

    @_vendor_call()
    def license_get_info(self, buffer: SimBuffer) -> None:
        element = ET.Element("license", {"type": "simulated", "expires": "never"})
        ET.SubElement(element, "feature", {"name": "runtime"})
        ET.SubElement(element, "feature", {"name": "training"})
        self._fill(buffer, _xml(element))

    @_vendor_call()
    def list_compute_devices(self, buffer: SimBuffer) -> None:
        element = ET.Element("devices")
        if self._gpu_mode is not GpuMode.NO_SUPPORT:
            indices = self._devices or tuple(range(len(self.device_names)))
            for index in indices:
                ET.SubElement(element, "device", {"id": self.device_names[index], "index": str(index)})
        self._fill(buffer, _xml(element))

    @_vendor_call()
    def optimized_gpu_memory(self, size_mb: int) -> None:
        if size_mb < 0:
            raise _Failure(Status.INVALID_ARGUMENT, f"invalid optimized GPU memory size {size_mb}")
        self._optimized_memory_mb = size_mb

    @_vendor_call(requires_init=False)
    def get_error_message(self, status: int, buffer: SimBuffer) -> None:
        try:
            default = f"{Status(status).name.lower().replace('_', ' ')}"
        except ValueError:
            default = f"unknown status {status}"
        element = ET.Element("error", {"code": str(int(status))})
        element.text = self._errors.get(int(status), default)
        self._fill(buffer, _xml(element))

    # ------------------------------------------------------------------
    # Buffers and images
    # ------------------------------------------------------------------

    @_vendor_call(requires_init=False)
    def init_buffer(self, buffer: SimBuffer) -> None:
        if not isinstance(buffer, SimBuffer):
            raise _Failure(Status.INVALID_ARGUMENT, "not a VIDI_BUFFER")
        buffer.data = None
        buffer.initialized = True

    @_vendor_call(requires_init=False)
    def free_buffer(self, buffer: SimBuffer) -> None:
        if not isinstance(buffer, SimBuffer):
            raise _Failure(Status.INVALID_ARGUMENT, "not a VIDI_BUFFER")
        buffer.data = None
        self._allocated_buffers = [b for b in self._allocated_buffers if b is not buffer]

    @_vendor_call(requires_init=False)
    def init_image(self, image: SimImage) -> None:
        if not isinstance(image, SimImage):
            raise _Failure(Status.INVALID_ARGUMENT, "not a VIDI_IMAGE")
        image.pixels = None
        image.caller_owned = False
        image.initialized = True

    @_vendor_call(requires_init=False)
    def free_image(self, image: SimImage) -> None:
        image = self._library_image(image)
        image.pixels = None
        self._allocated_images = [i for i in self._allocated_images if i is not image]

    @_vendor_call()
    def load_image(self, path: str, image: SimImage) -> None:
        image = self._library_image(image)
        if not Path(path).is_file():
            raise _Failure(Status.FILE_NOT_FOUND, f"file not found: {path}")
        self._store_image(image, _decode(path))

    @_vendor_call()
    def load_image_from_memory(self, data: bytes, image_format: int, image: SimImage) -> None:
        image = self._library_image(image)
        try:
            expected = ImageFormat(image_format)
        except ValueError:
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown image format {image_format}") from None
        self._store_image(image, _decode(io.BytesIO(data), expected))

    @_vendor_call()
    def save_image(self, path: str, image: SimImage) -> None:
        pixels = self._pixels_of(image)
        target = Path(path)
        if not target.parent.exists():
            raise _Failure(Status.FILE_NOT_FOUND, f"directory not found: {target.parent}")
        _encode(pixels, target)

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    @_vendor_call()
    def runtime_open_workspace_from_file(self, workspace: str, path: str) -> None:
        if workspace in self._runtime:
            raise _Failure(Status.WORKSPACE_EXISTS, f"workspace '{workspace}' is already opened")
        if not Path(path).is_file():
            raise _Failure(Status.FILE_NOT_FOUND, f"file not found: {path}")
        self._runtime[workspace] = _load_runtime_document(workspace, Path(path))
        vendor_logger.info(f"opened workspace '{workspace}' from {path}")

    @_vendor_call()
    def runtime_close_workspace(self, workspace: str) -> None:
        self._runtime_workspace(workspace)
        del self._runtime[workspace]
        for key in [key for key in self._samples if key[0] == workspace]:
            del self._samples[key]

    @_vendor_call()
    def runtime_list_workspaces(self, buffer: SimBuffer) -> None:
        element = ET.Element("workspaces")
        for name in sorted(self._runtime):
            ET.SubElement(element, "workspace", {"name": name})
        self._fill(buffer, _xml(element))

    @_vendor_call()
    def runtime_list_tools(self, workspace: str, stream: str, buffer: SimBuffer) -> None:
        sim_stream = self._runtime_workspace(workspace).stream(stream)
        element = ET.Element("tools")
        for tool in sim_stream.tools:
            ET.SubElement(element, "tool", {"name": tool.name, "type": tool.tool_type.value})
        self._fill(buffer, _xml(element))

    @_vendor_call()
    def runtime_create_sample(self, workspace: str, stream: str, sample: str) -> None:
        self._runtime_workspace(workspace).stream(stream)
        key = (workspace, stream, sample)
        if key in self._samples:
            raise _Failure(Status.SAMPLE_EXISTS, f"sample '{sample}' already exists in {workspace}/{stream}")
        self._samples[key] = SimSample()

    @_vendor_call()
    def runtime_sample_add_image(self, workspace: str, stream: str, sample: str, image: SimImage) -> None:
        sim_sample = self._sample(workspace, stream, sample)
        pixels = self._pixels_of(image)
        if sim_sample.pixels is not None:
            raise _Failure(Status.INVALID_STATE, f"sample '{sample}' already has an image")
        sim_sample.pixels = pixels.copy()

    @_vendor_call()
    def runtime_sample_process(self, workspace: str, stream: str, tool: str, sample: str, parameters: str) -> None:
        sim_stream = self._runtime_workspace(workspace).stream(stream)
        sim_sample = self._sample(workspace, stream, sample)
        target = sim_stream.tool(tool)
        overrides = _parse_parameters(parameters)
        if "threshold" in overrides:
            _threshold(overrides["threshold"])
        if sim_sample.pixels is None:
            raise _Failure(Status.INVALID_STATE, f"sample '{sample}' has no image")

        chain = sim_stream.tools[: sim_stream.tools.index(target) + 1]
        for step in chain:
            if step is not target and step.name in sim_sample.markings:
                continue
            if not step.trained:
                raise _Failure(Status.INVALID_STATE, f"tool '{step.name}' needs training")
            step_overrides = overrides if step is target else {}
            marking = _SCORERS[step.tool_type](step, sim_sample.pixels, step_overrides)
            sim_sample.markings[step.name] = {"type": step.tool_type.value, **marking}

    @_vendor_call()
    def runtime_get_sample(self, workspace: str, stream: str, sample: str, buffer: SimBuffer) -> None:
        sim_sample = self._sample(workspace, stream, sample)
        element = ET.Element("sample", {"workspace": workspace, "stream": stream, "name": sample})
        if sim_sample.pixels is not None:
            info = _info(sim_sample.pixels)
            ET.SubElement(
                element,
                "image",
                {
                    "width": str(info.width),
                    "height": str(info.height),
                    "channels": str(info.channels),
                    "channel_depth": str(int(info.channel_depth)),
                },
            )
        order = [t.name for t in self._runtime[workspace].streams[stream].tools]
        for tool_name in sorted(sim_sample.markings, key=order.index):
            marking = sim_sample.markings[tool_name]
            marking_element = ET.SubElement(element, "marking", {"tool": tool_name, "type": marking["type"]})
            for view in marking["views"]:
                attributes = {"index": str(view["index"]), "score": f"{view['score']:.6f}", "label": view["label"]}
                if view["threshold"] is not None:
                    attributes["threshold"] = f"{view['threshold']:.6f}"
                view_element = ET.SubElement(marking_element, "view", attributes)
                for match in view["matches"]:
                    ET.SubElement(
                        view_element,
                        "match",
                        {
                            "name": match["name"],
                            "x": f"{match['x']:.3f}",
                            "y": f"{match['y']:.3f}",
                            "score": f"{match['score']:.6f}",
                        },
                    )
        self._fill(buffer, _xml(element))

    @_vendor_call()
    def runtime_free_sample(self, workspace: str, stream: str, sample: str) -> None:
        self._sample(workspace, stream, sample)
        del self._samples[(workspace, stream, sample)]

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    @_vendor_call()
    def training_create_workspace(self, workspace: str, path: str) -> None:
        if workspace in self._training:
            raise _Failure(Status.WORKSPACE_EXISTS, f"training workspace '{workspace}' already exists")
        target = Path(path)
        if target.exists() and (not target.is_dir() or any(target.iterdir())):
            raise _Failure(Status.INVALID_ARGUMENT, f"the path '{path}' has to be empty")
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _Failure(Status.FILE_NOT_FOUND, f"cannot create '{path}': {e}") from e
        self._training[workspace] = SimWorkspace(name=workspace, path=target, dirty=True)

    @_vendor_call()
    def training_workspace_add_stream(self, workspace: str, stream: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        if stream in sim_workspace.streams:
            raise _Failure(Status.INVALID_ARGUMENT, f"stream '{stream}' already exists")
        sim_workspace.streams[stream] = SimStream(name=stream)
        sim_workspace.dirty = True

    @_vendor_call()
    def training_stream_add_tool(self, workspace: str, stream: str, tool: str, parent: str, tool_type: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_stream = sim_workspace.stream(stream)
        try:
            kind = ToolType(tool_type)
        except ValueError:
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown tool type '{tool_type}'") from None
        if any(t.name == tool for t in sim_stream.tools):
            raise _Failure(Status.INVALID_ARGUMENT, f"tool '{tool}' already exists in stream '{stream}'")
        position = 0 if not parent else sim_stream.tools.index(sim_stream.tool(parent)) + 1
        sim_stream.tools.insert(position, SimTool(name=tool, tool_type=kind, parameters=dict(_DEFAULT_PARAMETERS[kind])))
        sim_workspace.dirty = True

    @_vendor_call()
    def training_stream_add_image_to_database(self, workspace: str, stream: str, image: SimImage, name: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_stream = sim_workspace.stream(stream)
        pixels = self._pixels_of(image)
        if not name:
            raise _Failure(Status.INVALID_ARGUMENT, "image name must not be empty")
        if name in sim_stream.database:
            raise _Failure(Status.INVALID_ARGUMENT, f"image '{name}' is already in the database")
        sim_stream.database[name] = SimView(pixels=pixels.copy())
        sim_workspace.dirty = True

    @_vendor_call()
    def training_tool_process_database(self, workspace: str, stream: str, tool: str, view_filter: str, parameters: str) -> None:
        sim_tool = self._training_workspace(workspace).stream(stream).tool(tool)
        _parse_parameters(parameters)
        sim_tool.processed = True

    @_vendor_call()
    def training_tool_wait(self, workspace: str, stream: str, tool: str, timeout_ms: int) -> None:
        # processing and training complete synchronously
        self._training_workspace(workspace).stream(stream).tool(tool)

    def _select_views(self, sim_stream: SimStream, view_filter: str) -> List[SimView]:
        text = view_filter.strip()
        if not text:
            return list(sim_stream.database.values())
        if text == "not labeled":
            return [view for view in sim_stream.database.values() if view.label is None]
        if len(text) >= 2 and text[0] == text[-1] == "'":
            needle = text[1:-1]
            return [view for name, view in sim_stream.database.items() if needle in name]
        raise _Failure(Status.INVALID_ARGUMENT, f"unsupported view filter '{view_filter}'")

    @_vendor_call()
    def training_red_label_views(self, workspace: str, stream: str, tool: str, view_filter: str, label: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_stream = sim_workspace.stream(stream)
        sim_tool = sim_stream.tool(tool)
        if sim_tool.tool_type is ToolType.BLUE:
            raise _Failure(Status.INVALID_ARGUMENT, f"tool '{tool}' does not label views")
        if not sim_tool.processed:
            raise _Failure(Status.INVALID_STATE, f"the database of tool '{tool}' has not been processed")
        for view in self._select_views(sim_stream, view_filter):
            view.label = label
        sim_workspace.dirty = True

    def _parameter_known(self, sim_stream: SimStream, sim_tool: SimTool, parameter: str) -> bool:
        if parameter in sim_tool.parameters or parameter in _DEFAULT_PARAMETERS[sim_tool.tool_type]:
            return True
        parts = parameter.split("/")
        if sim_tool.tool_type is ToolType.BLUE and len(parts) >= 3 and parts[0] == "models":
            nodes = sim_tool.model.setdefault("models", {}).get(parts[1])
            if nodes is None:
                return False
            if parts[2] == "threshold" and len(parts) == 3:
                return True
            if parts[2] == "nodes" and len(parts) == 5 and parts[3].isdigit():
                return int(parts[3]) < nodes and parts[4] in ("names", "position")
        return False

    @_vendor_call()
    def training_tool_get_parameter(self, workspace: str, stream: str, tool: str, parameter: str, buffer: SimBuffer) -> None:
        sim_stream = self._training_workspace(workspace).stream(stream)
        sim_tool = sim_stream.tool(tool)
        if not self._parameter_known(sim_stream, sim_tool, parameter):
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown parameter '{parameter}'")
        self._fill_text(buffer, sim_tool.parameters.get(parameter, ""))

    @_vendor_call()
    def training_tool_set_parameter(self, workspace: str, stream: str, tool: str, parameter: str, value: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_stream = sim_workspace.stream(stream)
        sim_tool = sim_stream.tool(tool)
        if not self._parameter_known(sim_stream, sim_tool, parameter):
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown parameter '{parameter}'")
        sim_tool.parameters[parameter] = value
        sim_tool.trained = False
        sim_workspace.dirty = True

    @_vendor_call()
    def training_tool_train(self, workspace: str, stream: str, tool: str, devices: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_stream = sim_workspace.stream(stream)
        sim_tool = sim_stream.tool(tool)
        if devices.strip():
            for part in devices.split(","):
                if not part.strip().isdigit() or int(part) >= len(self.device_names):
                    raise _Failure(Status.DEVICE_UNAVAILABLE, f"device '{part}' is not available for training")
        if not sim_stream.database:
            raise _Failure(Status.INVALID_STATE, "the database is empty")
        if not sim_tool.processed:
            raise _Failure(Status.INVALID_STATE, f"the database of tool '{tool}' has not been processed")

        views = list(sim_stream.database.values())
        sim_tool.last_error = ""
        if sim_tool.tool_type is ToolType.RED:
            good = [view for view in views if not view.label]
            if not good:
                sim_tool.last_error = "no good views to train on"
            else:
                sim_tool.model = {"reference": float(np.mean([_gray(v.pixels).mean() for v in good]))}
        elif sim_tool.tool_type is ToolType.GREEN:
            classes: Dict[str, List[float]] = {}
            for view in views:
                if view.label:
                    classes.setdefault(view.label, []).append(float(_gray(view.pixels).mean()))
            if not classes:
                sim_tool.last_error = "no labeled views to train on"
            else:
                sim_tool.model = {"classes": {label: float(np.mean(means)) for label, means in classes.items()}}
        else:
            positions: Dict[str, List[Tuple[float, float]]] = {}
            labeled = []
            for view in views:
                if view.features:
                    labeled.append(view)
                height, width = view.pixels.shape[:2]
                for feature in view.features:
                    positions.setdefault(feature["feature"], []).append((feature["x"] / width, feature["y"] / height))
            if not positions:
                sim_tool.last_error = "no features to train on"
            else:
                sim_tool.model = {
                    "reference": float(np.mean([_gray(v.pixels).mean() for v in labeled])),
                    "features": {name: [float(np.mean([p[0] for p in pts])), float(np.mean([p[1] for p in pts]))] for name, pts in positions.items()},
                    "models": dict(sim_tool.model.get("models", {})),
                }
        sim_tool.trained = not sim_tool.last_error
        sim_workspace.dirty = True

    @_vendor_call()
    def training_tool_get_status(self, workspace: str, stream: str, tool: str, buffer: SimBuffer) -> None:
        sim_tool = self._training_workspace(workspace).stream(stream).tool(tool)
        element = ET.Element(
            "status",
            {
                "busy": "false",
                "error": sim_tool.last_error,
                "ready": str(sim_tool.trained).lower(),
                "needs_training": str(not sim_tool.trained).lower(),
            },
        )
        progress = ET.SubElement(element, "progress")
        progress.text = "training done" if sim_tool.trained else "idle"
        self._fill(buffer, _xml(element))

    @_vendor_call()
    def training_blue_set_feature(self, workspace, stream, tool, view, index, feature, x, y, angle, size) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_stream = sim_workspace.stream(stream)
        sim_tool = sim_stream.tool(tool)
        if sim_tool.tool_type is not ToolType.BLUE:
            raise _Failure(Status.INVALID_ARGUMENT, f"tool '{tool}' is not a blue tool")
        name = view.rsplit(":", 1)[0] if ":" in view else view
        if name not in sim_stream.database:
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown view '{view}'")
        features = sim_stream.database[name].features
        entry = {"feature": feature, "x": float(x), "y": float(y), "angle": float(angle), "size": float(size)}
        if index < 0:
            features.append(entry)
        elif index < len(features):
            features[index] = entry
        else:
            raise _Failure(Status.INVALID_ARGUMENT, f"feature index {index} out of range")
        sim_workspace.dirty = True

    @_vendor_call()
    def training_blue_create_model(self, workspace: str, stream: str, tool: str, model: str, flags: int) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_tool = sim_workspace.stream(stream).tool(tool)
        if sim_tool.tool_type is not ToolType.BLUE:
            raise _Failure(Status.INVALID_ARGUMENT, f"tool '{tool}' is not a blue tool")
        models = sim_tool.model.setdefault("models", {})
        if model in models:
            raise _Failure(Status.INVALID_ARGUMENT, f"model '{model}' already exists")
        models[model] = 0
        sim_tool.parameters[f"models/{model}/threshold"] = "0.5"
        sim_workspace.dirty = True

    @_vendor_call()
    def training_model_add_node(self, workspace: str, stream: str, tool: str, model: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        sim_tool = sim_workspace.stream(stream).tool(tool)
        models = sim_tool.model.setdefault("models", {})
        if model not in models:
            raise _Failure(Status.INVALID_ARGUMENT, f"unknown model '{model}'")
        node = models[model]
        models[model] = node + 1
        sim_tool.parameters[f"models/{model}/nodes/{node}/names"] = ""
        sim_tool.parameters[f"models/{model}/nodes/{node}/position"] = "0,0"
        sim_workspace.dirty = True

    def _workspace_tools(self, sim_workspace: SimWorkspace) -> Dict[str, List[Dict[str, Any]]]:
        return {
            stream.name: [
                {
                    "name": tool.name,
                    "type": tool.tool_type.value,
                    "parameters": dict(tool.parameters),
                    "model": json.loads(json.dumps(tool.model)),
                    "trained": tool.trained,
                }
                for tool in stream.tools
            ]
            for stream in sim_workspace.streams.values()
        }

    def _archive_document(self, sim_workspace: SimWorkspace, include_images: bool) -> Dict[str, Any]:
        database = {}
        for stream in sim_workspace.streams.values():
            database[stream.name] = [
                {
                    "name": name,
                    "label": view.label,
                    "features": view.features,
                    **({"png": _png_b64(view.pixels)} if include_images else {}),
                }
                for name, view in stream.database.items()
            ]
        return {
            "format": ARCHIVE_FORMAT,
            "version": 1,
            "name": sim_workspace.name,
            "tools": self._workspace_tools(sim_workspace),
            "database": database,
        }

    @staticmethod
    def _write_json(path: Path, document: Dict[str, Any]) -> None:
        try:
            path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except OSError as e:
            raise _Failure(Status.FILE_NOT_FOUND, f"cannot write '{path}': {e}") from e

    @_vendor_call()
    def training_export_workspace_to_file(self, workspace: str, path: str, include_images: int) -> None:
        sim_workspace = self._training_workspace(workspace)
        self._write_json(Path(path), self._archive_document(sim_workspace, bool(include_images)))

    @_vendor_call()
    def training_export_runtime_workspace_to_file(self, workspace: str, path: str) -> None:
        sim_workspace = self._training_workspace(workspace)
        self._write_json(Path(path), runtime_document(workspace, self._workspace_tools(sim_workspace)))

    @_vendor_call()
    def training_save_workspace(self, workspace: str, flags: int) -> None:
        sim_workspace = self._training_workspace(workspace)
        self._write_json(sim_workspace.path / "workspace.json", self._archive_document(sim_workspace, include_images=False))
        sim_workspace.dirty = False

    @_vendor_call()
    def training_close_workspace(self, workspace: str, discard_autosave: int) -> None:
        sim_workspace = self._training_workspace(workspace)
        if sim_workspace.dirty and not discard_autosave:
            self._write_json(sim_workspace.path / "autosave.json", self._archive_document(sim_workspace, include_images=False))
        del self._training[workspace]
