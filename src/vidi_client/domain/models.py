"""Value models for vidi-client.

Pydantic models for the data that crosses the vendor boundary: image
descriptors, compute devices, device selectors, sample addressing keys, tool
status and sample results. All models are immutable (frozen=True) and strict
(extra="forbid").

Model Hierarchy:
---------------
- ImageInfo
- ComputeDevice
- DeviceSelector
- SampleKey
- ToolStatus
- SampleResult
  └── ToolMarking (dict keyed by tool name)
      └── ViewResult (list)
          └── Match (list)

Example:
--------
>>> from vidi_client.domain.models import DeviceSelector
>>> DeviceSelector.parse("0,1").as_vendor_string()
'0,1'
>>> DeviceSelector.parse("").is_default
True
"""

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from vidi_client.domain.types import ChannelDepth

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def validate_identifier(value: str, kind: str = "name") -> str:
    """Validate a workspace, stream, tool or sample name.

    Names are passed to the vendor as C strings and, for device lists, joined
    with commas, so they must be non-empty, free of surrounding whitespace,
    control characters and commas.

    Raises:
        ValueError: If the name is not a valid identifier
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"{kind} must be a non-empty string")
    if value != value.strip():
        raise ValueError(f"{kind} '{value}' has leading or trailing whitespace")
    if _CONTROL_CHARS.search(value):
        raise ValueError(f"{kind} {value!r} contains control characters")
    if "," in value:
        raise ValueError(f"{kind} '{value}' must not contain commas")
    return value


class ImageInfo(BaseModel):
    """Geometry of a VIDI_IMAGE.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        channels: Number of channels (1 = mono, 3 = RGB)
        channel_depth: Per-channel depth
        step: Row stride in bytes
    """

    model_config = {"frozen": True, "extra": "forbid"}

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    channels: int = Field(..., gt=0)
    channel_depth: ChannelDepth
    step: int = Field(..., gt=0)

    @model_validator(mode="after")
    def check_step(self) -> "ImageInfo":
        if self.step < self.min_step:
            raise ValueError(
                f"step {self.step} is smaller than width * channels * bytes_per_channel ({self.min_step})"
            )
        return self

    @property
    def min_step(self) -> int:
        return self.width * self.channels * self.channel_depth.bytes_per_channel

    @property
    def nbytes(self) -> int:
        return self.step * self.height


class ComputeDevice(BaseModel):
    """A compute device reported by ``vidi_list_compute_devices``.

    Attributes:
        name: Device name (the ``id`` attribute of the listing)
        index: Device index used in device selector strings
    """

    model_config = {"frozen": True, "extra": "forbid"}

    name: str
    index: str


class DeviceSelector(BaseModel):
    """Ordered list of device ids handed to ``vidi_initialize``.

    An empty selector lets the library choose; more than one id enables
    multi-device fan-out.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    ids: Tuple[str, ...] = ()

    @field_validator("ids")
    @classmethod
    def validate_ids(cls, ids: Tuple[str, ...]) -> Tuple[str, ...]:
        for device_id in ids:
            if not device_id.isdigit():
                raise ValueError(f"device id '{device_id}' must be a non-negative integer")
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate device ids in {list(ids)}")
        return ids

    @classmethod
    def parse(cls, text: str) -> "DeviceSelector":
        """Parse ``""``, ``"1"`` or ``"0,1"`` forms."""
        text = (text or "").strip()
        if not text:
            return cls()
        return cls(ids=tuple(part.strip() for part in text.split(",")))

    @property
    def is_default(self) -> bool:
        return not self.ids

    def as_vendor_string(self) -> str:
        return ",".join(self.ids)

    @property
    def count(self) -> int:
        return len(self.ids)


class SampleKey(BaseModel):
    """Address of a sample: (workspace, stream, sample)."""

    model_config = {"frozen": True, "extra": "forbid"}

    workspace: str
    stream: str
    sample: str

    @field_validator("workspace", "stream", "sample")
    @classmethod
    def check_identifier(cls, value: str, info) -> str:
        return validate_identifier(value, info.field_name)

    def __str__(self) -> str:
        return f"{self.workspace}/{self.stream}/{self.sample}"


class ToolStatus(BaseModel):
    """Training status of a tool (``vidi_training_tool_get_status``)."""

    model_config = {"frozen": True, "extra": "forbid"}

    busy: bool = False
    error: str = ""
    ready: bool = False
    needs_training: bool = True
    progress: str = ""


class Match(BaseModel):
    """A located feature or model match inside a view (blue tools)."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str
    x: float
    y: float
    score: float


class ViewResult(BaseModel):
    """Score of a tool on one view of the image."""

    model_config = {"frozen": True, "extra": "forbid"}

    index: int
    score: float
    threshold: Optional[float] = None
    label: str = ""
    matches: List[Match] = Field(default_factory=list)


class ToolMarking(BaseModel):
    """Result stored on a sample for one tool."""

    model_config = {"frozen": True, "extra": "forbid"}

    tool: str
    tool_type: str
    views: List[ViewResult] = Field(default_factory=list)


class SampleResult(BaseModel):
    """Per-tool results of a processed sample."""

    model_config = {"frozen": True, "extra": "forbid"}

    workspace: str
    stream: str
    sample: str
    markings: Dict[str, ToolMarking] = Field(default_factory=dict)

    def marking(self, tool: str) -> ToolMarking:
        """Return the marking of ``tool``.

        Raises:
            KeyError: If the tool has not been processed on this sample
        """
        return self.markings[tool]
