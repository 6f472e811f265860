#!/usr/bin/env python3
"""Example: Red Tool Training.

Creates a training workspace, adds the textile images, labels the defective
ones, trains an anomaly analysis tool and exports both a workspace archive and
a runtime workspace. The exported runtime workspace is then used to inspect a
defective image.

Outputs:
--------
- ws/textile.vwsa: workspace archive with images
- ws/textile.vrws: runtime workspace
- result.xml: inspection of a defective image with the trained tool

Example Usage:
-------------
    $ python examples/training_red.py

    $ EPOCHS=20 python examples/training_red.py
"""

from pathlib import Path
import shutil
import tempfile
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from synthetic import build_textile_resources
from vidi_client.domain import Settings
from vidi_client.pipeline import run_runtime, run_training


class ExampleSettings(BaseSettings):
    """Settings for the red tool training example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    output_root: Path = Path(tempfile.gettempdir()) / "vidi_examples" / "training_red"
    images_dir: Optional[Path] = None
    epochs: int = 10


def run_pipeline(settings: ExampleSettings) -> dict:
    print("=" * 80)
    print("vidi-client Example: Red Tool Training")
    print("=" * 80)

    working_dir = settings.output_root / "ws"
    if working_dir.exists():
        print(f"🧹 Cleaning existing working directory: {working_dir}")
        shutil.rmtree(working_dir)

    images_dir = settings.images_dir
    if images_dir is None:
        print("\n📦 Generating synthetic textile images...")
        images_dir = build_textile_resources(settings.output_root / "resources").images_dir

    library = {"backend": settings.backend, "path": settings.library_path}
    training = run_training(
        Settings(
            library=library,
            training={
                "working_dir": str(working_dir),
                "images_dir": str(images_dir),
                "parameters": {"training/count_epochs": str(settings.epochs)},
                "poll_ms": 100,
            },
        )
    )
    print(f"\n🧠 Trained '{training['workspace']}' on {len(training['images'])} images")
    print(f"   ✓ Status:   ready={training['status'].ready} error={training['status'].error or '-'}")
    print(f"   ✓ Archive:  {training['archive_path']}")
    print(f"   ✓ Runtime:  {training['runtime_path']}")

    bad_image = next(p for p in sorted(images_dir.iterdir()) if p.name.startswith("bad"))
    inspection = run_runtime(
        Settings(
            library=library,
            runtime={
                "workspace_path": str(training["runtime_path"]),
                "image_path": str(bad_image),
                "result_path": str(settings.output_root / "result.xml"),
            },
        )
    )
    view = inspection["result"].marking("analyze").views[0]
    print(f"\n🔎 {bad_image.name}: score={view.score:.4f} label={view.label}")
    return {"training": training, "inspection": inspection}


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
