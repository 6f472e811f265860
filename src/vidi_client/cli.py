"""Command-line interface for vidi-client.

Usage:
    vidi-client [--config vidi.toml] [--log-level DEBUG] [--backend simulated] COMMAND

Commands:
    info       Library version, license and compute devices
    devices    Compute devices only
    image      Save / load / decode round trip of a generated image
    run        Inspect one image with a runtime workspace and write result.xml
    benchmark  Time the three GPU configurations
    train      Build, label, train and export a workspace

Exit code is 0 on success and -1 when any ``VidiError`` is raised; the
error message is printed on stderr.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, TypeVar

import typer

from vidi_client.config import load_settings
from vidi_client.domain import LibraryConfig, Settings, VidiError
from vidi_client.pipeline import describe_library, run_benchmark, run_image_roundtrip, run_runtime, run_training
from vidi_client.utils import configure_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAILURE_EXIT_CODE = -1

app = typer.Typer(name="vidi-client", help="Client for the ViDi machine-vision library.", no_args_is_help=True)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _guard(action: Callable[[], T]) -> T:
    try:
        return action()
    except VidiError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=FAILURE_EXIT_CODE) from e


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML settings file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override logging.level"),
    backend: Optional[str] = typer.Option(None, "--backend", help="Override library.backend (native | simulated)"),
) -> None:
    """Load settings and configure logging for every command."""
    settings = _guard(lambda: load_settings(config))
    level = (log_level or settings.logging.level).upper()
    try:
        if backend is not None:
            settings = settings.model_copy(update={"library": LibraryConfig(backend=backend, path=settings.library.path)})
        configure_logging(level, settings.logging.structured, settings.logging.file or None)
    except ValueError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=FAILURE_EXIT_CODE) from e
    ctx.obj = {"settings": settings}


@app.command()
def info(ctx: typer.Context) -> None:
    """Print library version, license and compute devices."""
    result = _guard(lambda: describe_library(_settings(ctx)))
    typer.echo(result["version"])
    typer.echo(result["license"])
    for device in result["devices"]:
        typer.echo(f"{device.index}: {device.name}")


@app.command()
def devices(ctx: typer.Context) -> None:
    """List compute devices."""
    result = _guard(lambda: describe_library(_settings(ctx)))
    if not result["devices"]:
        typer.echo("no compute device available")
    for device in result["devices"]:
        typer.echo(f"{device.index}: {device.name}")


@app.command()
def image(
    ctx: typer.Context,
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Where img42.png and img_copy.png are written"),
    fill_value: int = typer.Option(42, "--fill", min=0, max=255, help="Pixel value of the generated image"),
) -> None:
    """Save a generated image, reload it from file and from memory."""
    result = _guard(lambda: run_image_roundtrip(_settings(ctx), output_dir, fill_value))
    for label, info in (("file", result["file_info"]), ("memory", result["memory_info"])):
        typer.echo(
            f"{label}: {info.width}x{info.height} channels={info.channels} "
            f"depth={info.channel_depth.name} step={info.step}"
        )
    typer.echo(f"first pixel value: {result['first_pixel']:g}")


@app.command()
def run(
    ctx: typer.Context,
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Override runtime.workspace_path"),
    image_path: Optional[Path] = typer.Option(None, "--image", "-i", help="Override runtime.image_path"),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Override runtime.tool"),
    result_path: Optional[Path] = typer.Option(None, "--result", "-r", help="Override runtime.result_path"),
) -> None:
    """Process one image and write the sample result XML."""
    settings = _settings(ctx)
    overrides = {
        key: str(value)
        for key, value in (
            ("workspace_path", workspace),
            ("image_path", image_path),
            ("tool", tool),
            ("result_path", result_path),
        )
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update={"runtime": settings.runtime.model_copy(update=overrides)})

    result = _guard(lambda: run_runtime(settings))
    typer.echo(f"tools: {', '.join(result['tools'])}")
    for marking in result["result"].markings.values():
        for view in marking.views:
            typer.echo(f"{marking.tool} view {view.index}: score={view.score:.4f} label={view.label or '-'}")
    typer.echo(f"result written to {result['result_path']}")


@app.command()
def benchmark(
    ctx: typer.Context,
    iterations: Optional[int] = typer.Option(None, "--iterations", "-n", min=1, help="Override benchmark.iterations"),
) -> None:
    """Time single-device, multi-device-per-tool and single-device-per-tool runs."""
    settings = _settings(ctx)
    if iterations is not None:
        settings = settings.model_copy(update={"benchmark": settings.benchmark.model_copy(update={"iterations": iterations})})

    result = _guard(lambda: run_benchmark(settings))
    typer.echo(result["version"])
    for entry in result["runs"]:
        typer.echo(
            f"{entry['name']} (devices '{entry['devices']}'): "
            f"{entry['elapsed_ms']:.0f} ms (average: {entry['average_ms']:.2f} ms)"
        )


@app.command()
def train(ctx: typer.Context) -> None:
    """Train the workspace described by the [training] settings."""
    result = _guard(lambda: run_training(_settings(ctx)))
    typer.echo(f"added {len(result['images'])} images to '{result['workspace']}'")
    typer.echo(f"training: {result['status'].progress or 'done'}")
    for key in ("archive_path", "runtime_path"):
        if result.get(key) is not None:
            typer.echo(f"exported {result[key]}")


if __name__ == "__main__":
    app()
