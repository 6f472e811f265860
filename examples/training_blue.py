#!/usr/bin/env python3
"""Example: Blue Tool Training.

Trains a localization tool: a feature is placed on a few views, a node model
is created and one of its nodes is bound to the feature. The exported runtime
workspace then reports the located feature and model on a new image.

Example Usage:
-------------
    $ python examples/training_blue.py

    $ FEATURE_X=40 FEATURE_Y=80 python examples/training_blue.py
"""

from pathlib import Path
import shutil
import tempfile

from pydantic_settings import BaseSettings, SettingsConfigDict

from synthetic import build_textile_resources
from vidi_client.domain import Settings
from vidi_client.pipeline import run_runtime, run_training


class ExampleSettings(BaseSettings):
    """Settings for the blue tool training example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    output_root: Path = Path(tempfile.gettempdir()) / "vidi_examples" / "training_blue"
    feature_x: float = 32.0
    feature_y: float = 96.0
    labeled_views: int = 3


def run_pipeline(settings: ExampleSettings) -> dict:
    print("=" * 80)
    print("vidi-client Example: Blue Tool Training")
    print("=" * 80)

    working_dir = settings.output_root / "ws"
    if working_dir.exists():
        shutil.rmtree(working_dir)

    print("\n📦 Generating synthetic textile images...")
    resources = build_textile_resources(settings.output_root / "resources")
    views = [p.name for p in resources.images.good_paths[: settings.labeled_views]]

    library = {"backend": settings.backend, "path": settings.library_path}
    training = run_training(
        Settings(
            library=library,
            training={
                "workspace_name": "locate",
                "working_dir": str(working_dir),
                "tool": "locate",
                "tool_type": "blue",
                "images_dir": str(resources.images_dir),
                "images": views,
                "features": [{"view": view, "feature": "knot", "x": settings.feature_x, "y": settings.feature_y} for view in views],
                "models": [{"name": "fabric", "nodes": 2, "parameters": {"threshold": "0.3", "nodes/0/names": "knot"}}],
                "export_archive": False,
                "poll_ms": 100,
            },
        )
    )
    print(f"\n🧠 Trained '{training['workspace']}' on {training['images']}")

    probe = resources.images.good_paths[-1]
    inspection = run_runtime(
        Settings(
            library=library,
            runtime={
                "workspace_path": str(training["runtime_path"]),
                "image_path": str(probe),
                "tool": "locate",
                "result_path": str(settings.output_root / "result.xml"),
            },
        )
    )
    for match in inspection["result"].marking("locate").views[0].matches:
        print(f"   ✓ {match.name} at ({match.x:.1f}, {match.y:.1f}) score={match.score:.3f}")
    return {"training": training, "inspection": inspection}


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
