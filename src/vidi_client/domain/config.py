"""Configuration domain models for vidi-client.

This module defines Pydantic models for the settings loaded from a TOML file.
All models are immutable (frozen=True) and use strict validation
(extra="forbid") to catch typos and schema drift early.

Model Hierarchy:
---------------
- Settings (top-level)
  ├── LibraryConfig
  ├── SessionConfig
  ├── DebugConfig
  ├── LoggingConfig
  ├── RuntimeConfig
  ├── BenchmarkConfig
  └── TrainingConfig (contains LabelRule, FeatureLabel, ModelSpec)

Usage:
------
>>> from vidi_client.config import load_settings
>>> settings = load_settings("vidi.toml")
>>> settings.session.gpu_mode
'single-device-per-tool'

See Also:
---------
- vidi_client.config: Loading and environment overrides
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from vidi_client.domain.models import DeviceSelector, validate_identifier
from vidi_client.domain.types import GpuMode, ToolType

VALID_LOGGING_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LibraryConfig(BaseModel):
    """Which vendor backend to load.

    Attributes:
        backend: "native" (ctypes binding of the vendor library) or
            "simulated" (in-process reference backend)
        path: Explicit path to the vendor shared library (native only)
    """

    model_config = {"frozen": True, "extra": "forbid"}

    backend: Literal["native", "simulated"] = "native"
    path: str = ""


class SessionConfig(BaseModel):
    """Library initialization parameters.

    Attributes:
        gpu_mode: "none" | "single-device-per-tool" | "multi-device-per-tool"
        devices: Device selector ("" = library default, "1", "0,1")
        optimized_gpu_memory_mb: Optimized GPU memory size, 0 for automatic,
            None to leave the library default
    """

    model_config = {"frozen": True, "extra": "forbid"}

    gpu_mode: str = "single-device-per-tool"
    devices: str = ""
    optimized_gpu_memory_mb: Optional[int] = Field(default=None, ge=0)

    @field_validator("gpu_mode")
    @classmethod
    def validate_gpu_mode(cls, v: str) -> str:
        return GpuMode.from_name(v).config_name

    @field_validator("devices", mode="before")
    @classmethod
    def validate_devices(cls, v: object) -> str:
        if isinstance(v, int):
            v = str(v)
        DeviceSelector.parse(v)
        return v

    @property
    def mode(self) -> GpuMode:
        return GpuMode.from_name(self.gpu_mode)

    @property
    def selector(self) -> DeviceSelector:
        return DeviceSelector.parse(self.devices)


class DebugConfig(BaseModel):
    """Vendor debug output sink."""

    model_config = {"frozen": True, "extra": "forbid"}

    sink: Literal["none", "console", "file"] = "none"
    path: str = "vidi_messages.log"


class LoggingConfig(BaseModel):
    """Python logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: str = "INFO"
    structured: bool = False
    file: str = ""

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOGGING_LEVELS:
            raise ValueError(f"level must be one of {list(VALID_LOGGING_LEVELS)}, got '{v}'")
        return v_upper


class RuntimeConfig(BaseModel):
    """Single-sample runtime inspection.

    Attributes:
        workspace_name: Name the workspace is opened under
        workspace_path: Runtime workspace archive (.vrws)
        stream: Stream name inside the workspace
        tool: Tool to process (the last tool of the chain runs the whole chain)
        sample: Sample name
        image_path: Image to inspect
        result_path: Where the sample XML is written
        parameters: Extra processing parameters passed to the tool
    """

    model_config = {"frozen": True, "extra": "forbid"}

    workspace_name: str = "workspace"
    workspace_path: str = "resources/runtime/Textile.vrws"
    stream: str = "default"
    tool: str = "analyze"
    sample: str = "my_sample"
    image_path: str = "resources/images/bad000001.png"
    result_path: str = "result.xml"
    parameters: str = ""

    @field_validator("workspace_name", "stream", "tool", "sample")
    @classmethod
    def check_identifier(cls, v: str, info) -> str:
        return validate_identifier(v, info.field_name)


class BenchmarkConfig(BaseModel):
    """Multi-device throughput benchmark."""

    model_config = {"frozen": True, "extra": "forbid"}

    iterations: int = Field(default=50, ge=1)
    warm_up: bool = True


class LabelRule(BaseModel):
    """Red tool view labelling rule (filter expression -> label)."""

    model_config = {"frozen": True, "extra": "forbid"}

    filter: str
    label: str = ""


class FeatureLabel(BaseModel):
    """Blue tool feature placed on a view."""

    model_config = {"frozen": True, "extra": "forbid"}

    view: str
    feature: str
    x: float
    y: float
    index: int = -1
    angle: float = 0.0
    size: float = 0.0


class ModelSpec(BaseModel):
    """Blue tool node model."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str
    nodes: int = Field(default=1, ge=1)
    parameters: Dict[str, str] = Field(default_factory=dict)


class TrainingConfig(BaseModel):
    """Training workflow.

    Attributes:
        workspace_name: Workspace name (also the export file stem)
        working_dir: Directory the workspace is created in (must be empty)
        stream: Stream added to the new workspace
        tool: Tool added to the stream
        tool_type: red | green | blue
        images_dir: Directory holding the training images
        images: Image file names added to the database
        parameters: Tool parameters set before training (path -> value)
        labels: Red tool labelling rules applied in order
        features: Blue tool features
        models: Blue tool node models
        export_archive: Also export a workspace archive (.vwsa) with images
        export_runtime: Also export a runtime workspace (.vrws)
        poll_ms: Status polling period while training
        discard_autosave: Discard autosaves when closing the workspace
    """

    model_config = {"frozen": True, "extra": "forbid"}

    workspace_name: str = "textile"
    working_dir: str = "ws"
    stream: str = "default"
    tool: str = "analyze"
    tool_type: ToolType = ToolType.RED
    images_dir: str = "resources/images"
    images: List[str] = Field(default_factory=list)
    parameters: Dict[str, str] = Field(default_factory=dict)
    labels: List[LabelRule] = Field(default_factory=list)
    features: List[FeatureLabel] = Field(default_factory=list)
    models: List[ModelSpec] = Field(default_factory=list)
    export_archive: bool = True
    export_runtime: bool = True
    poll_ms: int = Field(default=1000, ge=0)
    discard_autosave: bool = True

    @field_validator("workspace_name", "stream", "tool")
    @classmethod
    def check_identifier(cls, v: str, info) -> str:
        return validate_identifier(v, info.field_name)


class Settings(BaseModel):
    """Complete vidi-client settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    library: LibraryConfig = Field(default_factory=LibraryConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    benchmark: BenchmarkConfig = Field(default_factory=BenchmarkConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
