#!/usr/bin/env python3
"""Example: Response Buffers.

Shows the life cycle of a response buffer: created empty, filled by a vendor
query, read as text and released exactly once.

Example Usage:
-------------
    $ python examples/buffer.py

    # Against the vendor runtime
    $ BACKEND=native python examples/buffer.py
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from vidi_client.domain import InvalidStateError, LibraryConfig
from vidi_client.native import load_library
from vidi_client.session import Session


class ExampleSettings(BaseSettings):
    """Settings for the buffer example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""


def run_pipeline(settings: ExampleSettings) -> dict:
    library = load_library(LibraryConfig(backend=settings.backend, path=settings.library_path))

    print("=" * 80)
    print("vidi-client Example: Response Buffers")
    print("=" * 80)

    with Session.open(library) as session:
        buffer = session.buffer()
        print(f"\nNew buffer: {buffer!r}")

        try:
            buffer.text
        except InvalidStateError as e:
            print(f"   ✓ Reading before a query is refused: {e}")

        version = buffer.fill(library.version, "get version").text
        print(f"   ✓ Version: {version} ({buffer.size} bytes)")

        # the same buffer can be refilled by another query
        license_xml = buffer.fill(library.license_get_info, "get license info").text
        print(f"   ✓ License: {license_xml}")

        buffer.release()
        try:
            buffer.release()
        except InvalidStateError as e:
            print(f"   ✓ Second release is refused: {e}")

        print(f"\nOutstanding resources before close: {len(session.outstanding)}")

    return {"version": version, "license": license_xml}


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
