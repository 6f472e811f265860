#!/usr/bin/env python3
"""Example: Multi-GPU Runtime Benchmark.

Times the same inspection under three GPU configurations:

1. single-device: one device, sequential samples
2. multi-device-per-tool: all devices cooperate on each tool
3. single-device-per-tool: one worker thread per device

Example Usage:
-------------
    $ python examples/runtime_multi_gpu.py

    $ ITERATIONS=200 python examples/runtime_multi_gpu.py
"""

from pathlib import Path
import tempfile
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from synthetic import build_textile_resources
from vidi_client.domain import Settings
from vidi_client.pipeline import run_benchmark


class ExampleSettings(BaseSettings):
    """Settings for the multi-GPU benchmark example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    output_root: Path = Path(tempfile.gettempdir()) / "vidi_examples" / "runtime_multi_gpu"
    resources_root: Optional[Path] = None
    image_name: str = "000000.png"
    iterations: int = 50


def run_pipeline(settings: ExampleSettings) -> dict:
    print("=" * 80)
    print("vidi-client Example: Multi-GPU Runtime Benchmark")
    print("=" * 80)

    resources_root = settings.resources_root
    if resources_root is None:
        print("\n📦 Generating synthetic textile resources...")
        resources_root = build_textile_resources(settings.output_root / "resources").root_dir

    vidi_settings = Settings(
        library={"backend": settings.backend, "path": settings.library_path},
        runtime={
            "workspace_path": str(resources_root / "runtime" / "Textile.vrws"),
            "image_path": str(resources_root / "images" / settings.image_name),
        },
        benchmark={"iterations": settings.iterations},
    )

    result = run_benchmark(vidi_settings)

    print(f"\n{result['version']}: {len(result['devices'])} compute device(s)")
    for run in result["runs"]:
        print(f"   ✓ {run['name']:<24} devices={run['devices']:<6} {run['elapsed_ms']:9.1f} ms  (avg {run['average_ms']:.3f} ms)")
    return dict(result)


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
