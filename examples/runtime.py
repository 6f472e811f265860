#!/usr/bin/env python3
"""Example: Runtime Inspection.

Opens a runtime workspace, inspects one image with the last tool of the
stream and writes the sample result XML. Synthetic textile images and a
workspace for the simulated backend are generated when no resources are
given.

Outputs:
--------
- result.xml: serialized markings of the sample

Example Usage:
-------------
    $ python examples/runtime.py

    # With vendor resources
    $ BACKEND=native RESOURCES_ROOT=../resources IMAGE_NAME=bad000001.png python examples/runtime.py
"""

from pathlib import Path
import tempfile
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from synthetic import build_textile_resources
from vidi_client.domain import Settings
from vidi_client.pipeline import run_runtime


class ExampleSettings(BaseSettings):
    """Settings for the runtime example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    output_root: Path = Path(tempfile.gettempdir()) / "vidi_examples" / "runtime"
    resources_root: Optional[Path] = None
    image_name: str = "bad000004.png"
    tool: str = "analyze"
    chain: bool = False


def resolve_resources(settings: ExampleSettings) -> Path:
    """Return a resources folder, generating synthetic data if none is given."""
    if settings.resources_root is not None:
        return settings.resources_root
    print("\n📦 Generating synthetic textile resources...")
    resources = build_textile_resources(settings.output_root / "resources", chain=settings.chain)
    print(f"   ✓ Images:    {len(resources.images.all_paths)} in {resources.images_dir}")
    print(f"   ✓ Workspace: {resources.runtime_path}")
    return resources.root_dir


def run_pipeline(settings: ExampleSettings) -> dict:
    print("=" * 80)
    print("vidi-client Example: Runtime Inspection")
    print("=" * 80)

    resources_root = resolve_resources(settings)
    vidi_settings = Settings(
        library={"backend": settings.backend, "path": settings.library_path},
        runtime={
            "workspace_path": str(resources_root / "runtime" / "Textile.vrws"),
            "image_path": str(resources_root / "images" / settings.image_name),
            "tool": settings.tool,
            "result_path": str(settings.output_root / "result.xml"),
        },
    )

    result = run_runtime(vidi_settings)

    print(f"\n🔎 Tools in stream: {result['tools']}")
    for tool, marking in result["result"].markings.items():
        for view in marking.views:
            print(f"   ✓ {tool} view {view.index}: score={view.score:.4f} label={view.label or '-'}")
            for match in view.matches:
                print(f"       match {match.name} at ({match.x:.1f}, {match.y:.1f})")
    print(f"\n📁 Result written to {result['result_path']} ({result['elapsed_ms']:.2f} ms)")
    return dict(result)


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
