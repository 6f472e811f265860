#!/usr/bin/env python3
"""Example: GPU Selection.

Lists the compute devices, then reopens the library restricted to a chosen
device selector and shows which devices the session sees.

Example Usage:
-------------
    $ python examples/gpu_selection.py

    # Restrict to the second device
    $ DEVICES=1 python examples/gpu_selection.py
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from vidi_client.domain import GpuMode, LibraryConfig
from vidi_client.native import load_library
from vidi_client.session import Session


class ExampleSettings(BaseSettings):
    """Settings for the GPU selection example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    gpu_mode: str = "single-device-per-tool"
    devices: str = "1"


def run_pipeline(settings: ExampleSettings) -> dict:
    library = load_library(LibraryConfig(backend=settings.backend, path=settings.library_path))
    mode = GpuMode.from_name(settings.gpu_mode)

    print("=" * 80)
    print("vidi-client Example: GPU Selection")
    print("=" * 80)

    with Session.open(library, mode) as session:
        available = session.list_compute_devices()
    print(f"\n📟 Devices with the library default selection: {len(available)}")
    for device in available:
        print(f"   - {device.index}: {device.name}")

    with Session.open(library, mode, settings.devices) as session:
        selected = session.list_compute_devices()
    print(f"\n🎯 Devices with selector '{settings.devices}' ({mode.config_name}):")
    for device in selected:
        print(f"   - {device.index}: {device.name}")

    return {"available": available, "selected": selected}


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
