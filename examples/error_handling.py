#!/usr/bin/env python3
"""Example: Error Handling.

Vendor status codes surface as typed exceptions carrying the status and the
message resolved from the library. This example triggers a few of them on
purpose and shows which class each one maps to.

Example Usage:
-------------
    $ python examples/error_handling.py
"""

from pathlib import Path
import tempfile

from pydantic_settings import BaseSettings, SettingsConfigDict

from synthetic import build_textile_resources
from vidi_client.domain import AlreadyInitializedError, InvalidStateError, LibraryConfig, ResourceNotFoundError, VidiError
from vidi_client.native import load_library
from vidi_client.session import Session


class ExampleSettings(BaseSettings):
    """Settings for the error handling example."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    backend: str = "simulated"
    library_path: str = ""
    output_root: Path = Path(tempfile.gettempdir()) / "vidi_examples" / "error_handling"


def _report(label: str, error: VidiError) -> dict:
    print(f"   ✓ {label}: {type(error).__name__} status={error.status} message={error.message!r}")
    return {"case": label, "error": type(error).__name__, "status": error.status}


def run_pipeline(settings: ExampleSettings) -> list:
    library = load_library(LibraryConfig(backend=settings.backend, path=settings.library_path))
    resources = build_textile_resources(settings.output_root)
    observed = []

    print("=" * 80)
    print("vidi-client Example: Error Handling")
    print("=" * 80)

    with Session.open(library) as session:
        try:
            Session.open(library)
        except AlreadyInitializedError as e:
            observed.append(_report("second initialization", e))

        workspace = session.open_workspace("workspace", resources.runtime_path)

        try:
            workspace.list_tools("no_such_stream")
        except ResourceNotFoundError as e:
            observed.append(_report("unknown stream", e))

        with session.load_image(resources.images.good_paths[0]) as image:
            with workspace.create_sample("default", "my_sample") as sample:
                try:
                    workspace.create_sample("default", "my_sample")
                except InvalidStateError as e:
                    observed.append(_report("duplicate sample", e))

                sample.attach_image(image)
                try:
                    sample.process("no_such_tool")
                except ResourceNotFoundError as e:
                    observed.append(_report("unknown tool", e))

    print(f"\nCollected {len(observed)} expected errors; the session was still closed cleanly.")
    return observed


if __name__ == "__main__":
    settings = ExampleSettings()
    run_pipeline(settings)
