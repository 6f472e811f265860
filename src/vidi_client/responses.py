"""XML readers for vendor response payloads.

The vendor library answers query calls with XML text written into a
``VIDI_BUFFER``. All knowledge of those payload layouts lives here so that the
serialization format can change without touching call sites.

Payloads handled:
-----------------
- ``<error>message</error>``
- ``<devices><device id="..." index="..."/></devices>``
- ``<workspaces><workspace name="..."/></workspaces>``
- ``<tools><tool name="..." type="..."/></tools>``
- ``<status busy="..." error="..." ready="..." needs_training="..."><progress/></status>``
- ``<sample ...><marking tool="..." type="..."><view .../></marking></sample>``

Every parser raises ``VendorInternalError`` for malformed payloads.
"""

from typing import List, Optional, Union
import xml.etree.ElementTree as ET

from vidi_client.domain.exceptions import VendorInternalError
from vidi_client.domain.models import ComputeDevice, Match, SampleResult, ToolMarking, ToolStatus, ViewResult

Payload = Union[bytes, str]


def _root(payload: Payload, expected: str) -> ET.Element:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    try:
        root = ET.fromstring(payload.strip())
    except ET.ParseError as e:
        raise VendorInternalError(f"Malformed <{expected}> payload: {e}", context={"payload": payload[:200]}) from e

    if root.tag == expected:
        return root
    found = root.find(f".//{expected}")
    if found is None:
        raise VendorInternalError(f"Payload has no <{expected}> element (root is <{root.tag}>)")
    return found


def _attribute(element: ET.Element, name: str) -> str:
    value = element.get(name)
    if value is None:
        raise VendorInternalError(f"<{element.tag}> is missing the '{name}' attribute")
    return value


def _flag(element: ET.Element, name: str, default: bool) -> bool:
    value = element.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _float(element: ET.Element, name: str, default: Optional[float] = None) -> Optional[float]:
    value = element.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise VendorInternalError(f"<{element.tag}> attribute '{name}' is not a number: '{value}'") from None


def parse_error_message(payload: Payload) -> str:
    """Return the text content of an ``<error>`` payload."""
    return "".join(_root(payload, "error").itertext()).strip()


def parse_compute_devices(payload: Payload) -> List[ComputeDevice]:
    """Parse a ``vidi_list_compute_devices`` payload into devices, in listing order."""
    root = _root(payload, "devices")
    return [ComputeDevice(name=_attribute(d, "id"), index=_attribute(d, "index")) for d in root.findall("device")]


def parse_workspace_list(payload: Payload) -> List[str]:
    root = _root(payload, "workspaces")
    return [_attribute(w, "name") for w in root.findall("workspace")]


def parse_tool_list(payload: Payload) -> List[str]:
    """Parse a tool listing; names are returned in chain order."""
    root = _root(payload, "tools")
    return [_attribute(t, "name") for t in root.findall("tool")]


def parse_tool_status(payload: Payload) -> ToolStatus:
    """Parse a ``vidi_training_tool_get_status`` payload."""
    root = _root(payload, "status")
    progress = root.find("progress")
    return ToolStatus(
        busy=_flag(root, "busy", False),
        error=root.get("error", ""),
        ready=_flag(root, "ready", False),
        needs_training=_flag(root, "needs_training", True),
        progress="".join(progress.itertext()).strip() if progress is not None else "",
    )


def parse_sample_result(payload: Payload) -> SampleResult:
    """Parse a ``vidi_runtime_get_sample`` payload into per-tool markings."""
    root = _root(payload, "sample")
    markings = {}
    for marking in root.findall("marking"):
        tool = _attribute(marking, "tool")
        views = []
        for view in marking.findall("view"):
            matches = [
                Match(
                    name=match.get("name", ""),
                    x=_float(match, "x", 0.0),
                    y=_float(match, "y", 0.0),
                    score=_float(match, "score", 0.0),
                )
                for match in view.findall("match")
            ]
            views.append(
                ViewResult(
                    index=int(_float(view, "index", float(len(views)))),
                    score=_float(view, "score", 0.0),
                    threshold=_float(view, "threshold"),
                    label=view.get("label", ""),
                    matches=matches,
                )
            )
        markings[tool] = ToolMarking(tool=tool, tool_type=marking.get("type", ""), views=views)

    return SampleResult(
        workspace=root.get("workspace", ""),
        stream=root.get("stream", ""),
        sample=root.get("name", ""),
        markings=markings,
    )
