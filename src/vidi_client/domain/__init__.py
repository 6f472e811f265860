"""Domain models for vidi-client.

This package provides the enums, Pydantic value models, configuration models
and exception hierarchy shared by every layer. It is a foundation package:
it must not import anything else from vidi_client.

Package Structure:
-----------------
- types: Vendor-facing enums (GpuMode, ChannelDepth, Status, ...)
- models: Value models (ImageInfo, DeviceSelector, SampleResult, ...)
- config: Settings models (Settings, SessionConfig, RuntimeConfig, ...)
- exceptions: Exception hierarchy (VidiError and subclasses)

Import Patterns:
---------------
# Direct module imports
from vidi_client.domain.types import GpuMode
from vidi_client.domain.exceptions import InvalidStateError

# Package root imports
from vidi_client.domain import GpuMode, InvalidStateError, Settings

Example:
--------
>>> from vidi_client.domain import ImageInfo, ChannelDepth
>>> info = ImageInfo(width=255, height=255, channels=1, channel_depth=ChannelDepth.DEPTH_8U, step=255)
>>> info.nbytes
65025
"""

from vidi_client.domain.config import (
    BenchmarkConfig,
    DebugConfig,
    FeatureLabel,
    LabelRule,
    LibraryConfig,
    LoggingConfig,
    ModelSpec,
    RuntimeConfig,
    SessionConfig,
    Settings,
    TrainingConfig,
)
from vidi_client.domain.exceptions import (
    AlreadyInitializedError,
    ConfigError,
    InvalidStateError,
    NotInitializedError,
    PartialFailureError,
    ResourceNotFoundError,
    VendorInternalError,
    VidiError,
    exception_for_status,
)
from vidi_client.domain.models import (
    ComputeDevice,
    DeviceSelector,
    ImageInfo,
    Match,
    SampleKey,
    SampleResult,
    ToolMarking,
    ToolStatus,
    ViewResult,
    validate_identifier,
)
from vidi_client.domain.types import (
    ChannelDepth,
    DebugSink,
    GpuMode,
    ImageFormat,
    Ownership,
    SampleState,
    Status,
    ToolType,
)

__all__ = [
    # Enums
    "ChannelDepth",
    "DebugSink",
    "GpuMode",
    "ImageFormat",
    "Ownership",
    "SampleState",
    "Status",
    "ToolType",
    # Value models
    "ComputeDevice",
    "DeviceSelector",
    "ImageInfo",
    "Match",
    "SampleKey",
    "SampleResult",
    "ToolMarking",
    "ToolStatus",
    "ViewResult",
    "validate_identifier",
    # Settings
    "BenchmarkConfig",
    "DebugConfig",
    "FeatureLabel",
    "LabelRule",
    "LibraryConfig",
    "LoggingConfig",
    "ModelSpec",
    "RuntimeConfig",
    "SessionConfig",
    "Settings",
    "TrainingConfig",
    # Exceptions
    "AlreadyInitializedError",
    "ConfigError",
    "InvalidStateError",
    "NotInitializedError",
    "PartialFailureError",
    "ResourceNotFoundError",
    "VendorInternalError",
    "VidiError",
    "exception_for_status",
]
