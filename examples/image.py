#!/usr/bin/env python3
"""Example: Image Ownership.

Wraps a caller-owned numpy array, lets the library save it, reloads it from
file (library-owned) and decodes the same bytes from memory.

Outputs:
--------
- img42.png: the caller-owned image saved by the library
- img_copy.png: copy of the file-loaded image

Example Usage:
-------------
    $ python examples/image.py

    $ OUTPUT_ROOT=temp/images FILL_VALUE=7 python examples/image.py
"""

from pathlib import Path
import tempfile

from pydantic_settings import BaseSettings, SettingsConfigDict

from vidi_client.domain import Settings
from vidi_client.pipeline import run_image_roundtrip


class ExampleSettings(BaseSettings):
    """Settings for the image example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    output_root: Path = Path(tempfile.gettempdir()) / "vidi_examples" / "image"
    fill_value: int = 42


def run_pipeline(settings: ExampleSettings) -> dict:
    vidi_settings = Settings(library={"backend": settings.backend, "path": settings.library_path})

    print("=" * 80)
    print("vidi-client Example: Image Ownership")
    print("=" * 80)

    result = run_image_roundtrip(vidi_settings, settings.output_root, fill_value=settings.fill_value)

    file_info, memory_info = result["file_info"], result["memory_info"]
    print(f"\n🖼️  Saved caller image: {result['saved_path']}")
    print(f"   ✓ From file:   {file_info.width}x{file_info.height} channels={file_info.channels} step={file_info.step}")
    print(f"   ✓ From memory: {memory_info.width}x{memory_info.height} channels={memory_info.channels} step={memory_info.step}")
    print(f"   ✓ First pixel: {result['first_pixel']:g}")
    print(f"   ✓ Copy written: {result['copy_path']}")
    return dict(result)


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
