"""vidi-client: resource-scoped Python client for the ViDi machine-vision library.

The vendor library is driven through a small set of scoped handles:

- Session: one ``vidi_initialize`` / ``vidi_deinitialize`` pair
- ManagedBuffer: vendor response buffer
- CallerOwnedImage / LibraryOwnedImage: images with disjoint release paths
- RuntimeWorkspace / Sample: per-inference processing
- TrainingWorkspace: building and training tools

Example:
--------
>>> from vidi_client import GpuMode, Session
>>> from vidi_client.native import load_library
>>> with Session.open(load_library(), GpuMode.SINGLE_DEVICE_PER_TOOL) as session:
...     workspace = session.open_workspace("textile", "textile.vrws")
...     with session.load_image("000000.png") as image:
...         result = workspace.inspect(image, "default", "analyze", "my_sample")
"""

from vidi_client.buffers import ManagedBuffer
from vidi_client.domain import (
    AlreadyInitializedError,
    ChannelDepth,
    ConfigError,
    DebugSink,
    GpuMode,
    ImageFormat,
    InvalidStateError,
    NotInitializedError,
    Ownership,
    PartialFailureError,
    ResourceNotFoundError,
    SampleResult,
    SampleState,
    Settings,
    ToolType,
    VendorInternalError,
    VidiError,
)
from vidi_client.errors import ErrorResolver, check_status
from vidi_client.fanout import FanoutReport, WorkerReport, run_device_fanout, split_iterations
from vidi_client.images import CallerOwnedImage, LibraryOwnedImage, ManagedImage
from vidi_client.sample import Sample
from vidi_client.session import Session
from vidi_client.training import TrainingWorkspace
from vidi_client.workspace import RuntimeWorkspace

__version__ = "0.1.0"

__all__ = [
    # Handles
    "Session",
    "ManagedBuffer",
    "ManagedImage",
    "CallerOwnedImage",
    "LibraryOwnedImage",
    "RuntimeWorkspace",
    "Sample",
    "TrainingWorkspace",
    # Errors
    "ErrorResolver",
    "check_status",
    "VidiError",
    "AlreadyInitializedError",
    "NotInitializedError",
    "ResourceNotFoundError",
    "InvalidStateError",
    "VendorInternalError",
    "PartialFailureError",
    "ConfigError",
    # Fan-out
    "run_device_fanout",
    "split_iterations",
    "FanoutReport",
    "WorkerReport",
    # Enums and models
    "ChannelDepth",
    "DebugSink",
    "GpuMode",
    "ImageFormat",
    "Ownership",
    "SampleState",
    "SampleResult",
    "Settings",
    "ToolType",
]
