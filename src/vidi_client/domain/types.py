"""Enumerations shared by every layer of vidi-client.

The integer values of the vendor-facing enums (``GpuMode``, ``DebugSink``,
``ChannelDepth``, ``ImageFormat`` and ``Status``) are passed verbatim to the
vendor C API, so they must stay in sync with ``vidi.h``.

Key Types:
----------
- GpuMode: library initialization mode
- DebugSink: where the vendor library writes its debug messages
- ChannelDepth: pixel channel depth of a VIDI_IMAGE
- ImageFormat: encoded image formats accepted by load-from-memory
- Ownership: who releases a buffer or an image
- SampleState: per-inference sample state machine
- ToolType: tool families that can be added to a training stream
- Status: vendor status codes

Example:
--------
>>> from vidi_client.domain.types import GpuMode
>>> GpuMode.from_name("single-device-per-tool")
<GpuMode.SINGLE_DEVICE_PER_TOOL: 1>
"""

from enum import Enum, IntEnum
from pathlib import Path
from typing import Union

import numpy as np


class GpuMode(IntEnum):
    """Library initialization mode."""

    NO_SUPPORT = 0
    SINGLE_DEVICE_PER_TOOL = 1
    MULTIPLE_DEVICES_PER_TOOL = 2

    @classmethod
    def from_name(cls, name: str) -> "GpuMode":
        """Parse the configuration spelling of a GPU mode.

        Accepts ``none``, ``single-device-per-tool`` and
        ``multi-device-per-tool`` (case-insensitive, ``_`` or ``-``).

        Raises:
            ValueError: If the name is not a known mode
        """
        key = name.strip().lower().replace("_", "-")
        try:
            return _GPU_MODE_NAMES[key]
        except KeyError:
            raise ValueError(f"Unknown GPU mode '{name}'. Must be one of {sorted(_GPU_MODE_NAMES)}") from None

    @property
    def config_name(self) -> str:
        return {mode: key for key, mode in _GPU_MODE_NAMES.items()}[self]


_GPU_MODE_NAMES = {
    "none": GpuMode.NO_SUPPORT,
    "single-device-per-tool": GpuMode.SINGLE_DEVICE_PER_TOOL,
    "multi-device-per-tool": GpuMode.MULTIPLE_DEVICES_PER_TOOL,
}


class DebugSink(IntEnum):
    """Destination of the vendor debug messages."""

    CONSOLE = 0
    FILE = 1


class ChannelDepth(IntEnum):
    """Channel depth of a VIDI_IMAGE."""

    DEPTH_8U = 0
    DEPTH_16U = 1
    DEPTH_32F = 2

    @property
    def bytes_per_channel(self) -> int:
        return {ChannelDepth.DEPTH_8U: 1, ChannelDepth.DEPTH_16U: 2, ChannelDepth.DEPTH_32F: 4}[self]

    @property
    def dtype(self) -> np.dtype:
        return np.dtype({ChannelDepth.DEPTH_8U: np.uint8, ChannelDepth.DEPTH_16U: np.uint16, ChannelDepth.DEPTH_32F: np.float32}[self])

    @classmethod
    def from_dtype(cls, dtype: Union[np.dtype, type]) -> "ChannelDepth":
        """Map a numpy dtype onto a channel depth.

        Raises:
            ValueError: If the dtype has no vendor equivalent
        """
        dtype = np.dtype(dtype)
        for depth in cls:
            if depth.dtype == dtype:
                return depth
        raise ValueError(f"Unsupported pixel dtype: {dtype}. Must be uint8, uint16 or float32")


class ImageFormat(IntEnum):
    """Encoded image formats understood by ``vidi_load_image_from_memory``."""

    PNG = 0
    BMP = 1
    TIFF = 2

    @classmethod
    def from_suffix(cls, path: Union[str, Path]) -> "ImageFormat":
        """Guess the format from a file name suffix.

        Raises:
            ValueError: If the suffix is not png, bmp, tif or tiff
        """
        suffix = Path(path).suffix.lower().lstrip(".")
        mapping = {"png": cls.PNG, "bmp": cls.BMP, "tif": cls.TIFF, "tiff": cls.TIFF}
        if suffix not in mapping:
            raise ValueError(f"Unsupported image format: '{suffix}'. Must be one of {sorted(mapping)}")
        return mapping[suffix]


class Ownership(Enum):
    """Who is responsible for releasing a buffer or an image."""

    CALLER = "caller"
    LIBRARY = "library"
    NEVER_ALLOCATED = "never-allocated"


class SampleState(Enum):
    """States of the per-inference sample state machine."""

    CREATED = "created"
    IMAGE_ATTACHED = "image-attached"
    PROCESSED = "processed"
    RESULTS_READ = "results-read"
    FREED = "freed"


class ToolType(str, Enum):
    """Tool families.

    red: anomaly analysis, green: classification, blue: localization/read.
    """

    RED = "red"
    GREEN = "green"
    BLUE = "blue"


class Status(IntEnum):
    """Vendor status codes.

    Only ``SUCCESS`` is guaranteed by the vendor header; the failure codes
    are the ones vidi-client classifies into its exception hierarchy.
    Unknown codes are treated as internal vendor errors.
    """

    SUCCESS = 0
    ALREADY_INITIALIZED = 1
    NOT_INITIALIZED = 2
    FILE_NOT_FOUND = 3
    UNKNOWN_WORKSPACE = 4
    UNKNOWN_STREAM = 5
    UNKNOWN_TOOL = 6
    UNKNOWN_SAMPLE = 7
    SAMPLE_EXISTS = 8
    WORKSPACE_EXISTS = 9
    INVALID_STATE = 10
    INVALID_ARGUMENT = 11
    DEVICE_UNAVAILABLE = 12
    IMAGE_DECODE = 13
    INTERNAL = 99
