"""Synthetic runtime workspaces for the simulated backend.

Writes runtime workspace documents readable by
``SimulatedLibrary.runtime_open_workspace_from_file`` with tools already
trained on the intensity statistics of ``synthetic.images``.

Two layouts are provided:
- single red tool ``analyze`` (the textile inspection of the vendor samples)
- a chain ``analyze`` (red) -> ``classify`` (green) -> ``locate`` (blue), used
  to exercise predecessor processing
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from synthetic.images import TextileImageOptions
from vidi_client.native import write_runtime_workspace


class WorkspaceSynthOptions(BaseModel):
    """Options for a synthetic runtime workspace.

    name: Workspace name stored in the document.
    stream: Stream holding the tools.
    tool: Name of the red tool.
    threshold: Red tool threshold on the deviating pixel fraction.
    chain: Append the green and blue tools after the red tool.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    name: str = "textile"
    stream: str = "default"
    tool: str = "analyze"
    threshold: float = Field(0.02, gt=0.0, lt=1.0)
    chain: bool = False


def textile_tools(options: WorkspaceSynthOptions, images: Optional[TextileImageOptions] = None) -> List[Dict[str, Any]]:
    """Tool descriptions matching images generated with ``images``."""
    images = images or TextileImageOptions()
    reference = images.base_level
    # blotch pulls the mean down by roughly its area share
    bad_mean = reference - images.defect_fraction * (reference - images.defect_level)

    tools: List[Dict[str, Any]] = [
        {
            "name": options.tool,
            "type": "red",
            "parameters": {"threshold": str(options.threshold)},
            "model": {"reference": reference},
        }
    ]
    if options.chain:
        tools.append({"name": "classify", "type": "green", "model": {"classes": {"good": reference, "bad": bad_mean}}})
        tools.append(
            {
                "name": "locate",
                "type": "blue",
                "model": {"reference": reference, "features": {"center": [0.5, 0.5]}, "models": {"fabric": 1}},
            }
        )
    return tools


def write_textile_workspace(
    path: Union[str, Path],
    options: Optional[WorkspaceSynthOptions] = None,
    images: Optional[TextileImageOptions] = None,
) -> Path:
    """Write a runtime workspace to ``path`` and return the path."""
    options = options or WorkspaceSynthOptions()
    return write_runtime_workspace(Path(path), options.name, {options.stream: textile_tools(options, images)})
