"""Pipeline orchestration for vidi-client (orchestration layer).

This module owns ``Settings`` and translates them into resource-layer calls.
It is the only place where configuration flows into sessions, workspaces and
samples; everything below receives names, paths and primitives.

Key Functions:
--------------
- open_session: Load the configured backend and open a session
- describe_library: Version, license and compute devices
- run_image_roundtrip: Caller-owned save, file load and memory load of an image
- run_runtime: Inspect one image with a runtime workspace, write result.xml
- run_benchmark: Time the three GPU configurations
- run_training: Build, label, train and export a workspace

Every run function opens its own session and closes it on exit, including
on failure, so ``vidi_deinitialize`` always follows ``vidi_initialize``.

Example:
--------
>>> from vidi_client.config import load_settings
>>> from vidi_client.pipeline import run_runtime
>>> settings = load_settings("vidi.toml")
>>> result = run_runtime(settings)
>>> result["result"].marking("analyze").views[0].score
0.083
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, TypedDict, Union

import numpy as np

from vidi_client.benchmark import run_benchmark as _run_benchmark
from vidi_client.domain import ComputeDevice, ConfigError, DebugSink, ImageFormat, ImageInfo, LabelRule, ResourceNotFoundError, SampleResult, Settings, ToolStatus, ToolType
from vidi_client.native import VidiLibrary, load_library
from vidi_client.session import Session
from vidi_client.training import TrainingWorkspace
from vidi_client.utils import ensure_empty_directory, time_block, write_text

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".bmp", ".tif", ".tiff")

DEFAULT_RED_LABELS = [LabelRule(filter="'bad'", label="Bad"), LabelRule(filter="not labeled", label="")]


# =============================================================================
# Result Models
# =============================================================================


class LibraryInfo(TypedDict):
    """Result of describe_library."""

    version: str
    license: str
    devices: List[ComputeDevice]


class ImageRoundtripResult(TypedDict):
    """Result of run_image_roundtrip.

    Attributes:
        saved_path: Caller-owned image written by the library
        copy_path: Copy of the file-loaded image
        file_info: Geometry of the image loaded from file
        memory_info: Geometry of the image decoded from memory
        first_pixel: First pixel value of the loaded image
    """

    saved_path: Path
    copy_path: Path
    file_info: ImageInfo
    memory_info: ImageInfo
    first_pixel: float


class RuntimeResult(TypedDict):
    """Result of run_runtime."""

    workspace: str
    tools: List[str]
    result_path: Path
    result: SampleResult
    elapsed_ms: float


class BenchmarkResult(TypedDict):
    """Result of run_benchmark (one entry per GPU configuration)."""

    version: str
    devices: List[ComputeDevice]
    runs: List[Dict[str, Any]]


class TrainingResult(TypedDict, total=False):
    """Result of run_training.

    Attributes:
        workspace: Training workspace name
        images: Image names added to the database
        status: Final tool status
        archive_path: Exported workspace archive (if enabled)
        runtime_path: Exported runtime workspace (if enabled)
    """

    workspace: str
    images: List[str]
    status: ToolStatus
    archive_path: Optional[Path]
    runtime_path: Optional[Path]


# =============================================================================
# Sessions
# =============================================================================


def open_session(settings: Settings, library: Optional[VidiLibrary] = None) -> Session:
    """Open a session configured by ``settings.session`` and ``settings.debug``.

    Args:
        settings: Loaded settings
        library: Backend to use; loaded from ``settings.library`` when omitted
    """
    library = library if library is not None else load_library(settings.library)
    debug = None
    if settings.debug.sink != "none":
        debug = DebugSink.FILE if settings.debug.sink == "file" else DebugSink.CONSOLE
    return Session.open(
        library,
        mode=settings.session.mode,
        devices=settings.session.selector,
        debug=debug,
        debug_path=settings.debug.path,
        optimized_gpu_memory_mb=settings.session.optimized_gpu_memory_mb,
    )


def describe_library(settings: Settings, library: Optional[VidiLibrary] = None) -> LibraryInfo:
    with open_session(settings, library) as session:
        info = LibraryInfo(
            version=session.version(),
            license=session.license_info(),
            devices=session.list_compute_devices(),
        )
    logger.info(f"{info['version']} with {len(info['devices'])} compute device(s)")
    return info


# =============================================================================
# Images
# =============================================================================


def run_image_roundtrip(
    settings: Settings,
    output_dir: Union[str, Path] = ".",
    fill_value: int = 42,
    size: int = 255,
    library: Optional[VidiLibrary] = None,
) -> ImageRoundtripResult:
    """Save a caller-owned image, reload it from file and from memory.

    Writes ``img{fill_value}.png`` and ``img_copy.png`` to ``output_dir``.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved_path = output_dir / f"img{fill_value}.png"
    copy_path = output_dir / "img_copy.png"

    with open_session(settings, library) as session:
        pixels = np.full((size, size), fill_value, dtype=np.uint8)
        with session.wrap_array(pixels) as caller_image:
            caller_image.save(saved_path)

        with session.load_image(saved_path) as loaded:
            file_info = loaded.info
            first_pixel = float(loaded.to_array().flat[0])
            loaded.save(copy_path)
        logger.info(f"Loaded {saved_path}: {file_info.width}x{file_info.height}, step {file_info.step}, first pixel {first_pixel:g}")

        data = saved_path.read_bytes()
        with session.load_image_from_memory(data, ImageFormat.from_suffix(saved_path)) as decoded:
            memory_info = decoded.info
        logger.info(f"Decoded {len(data)} bytes from memory: {memory_info.width}x{memory_info.height}")

    return ImageRoundtripResult(
        saved_path=saved_path,
        copy_path=copy_path,
        file_info=file_info,
        memory_info=memory_info,
        first_pixel=first_pixel,
    )


# =============================================================================
# Runtime
# =============================================================================


def run_runtime(settings: Settings, library: Optional[VidiLibrary] = None) -> RuntimeResult:
    """Inspect ``settings.runtime.image_path`` and write the sample XML."""
    runtime = settings.runtime
    with open_session(settings, library) as session:
        with session.open_workspace(runtime.workspace_name, runtime.workspace_path) as workspace:
            tools = workspace.list_tools(runtime.stream)
            logger.info(f"Workspace '{workspace.name}' stream '{runtime.stream}' tools: {tools}")

            with session.load_image(runtime.image_path) as image:
                with workspace.create_sample(runtime.stream, runtime.sample) as sample:
                    sample.attach_image(image)
                    with time_block(f"process '{runtime.tool}'", logger) as timing:
                        sample.process(runtime.tool, runtime.parameters)
                    with sample.read_result() as buffer:
                        result_path = write_text(runtime.result_path, buffer.text)
                    result = sample.result()

    logger.info(f"Wrote sample result to {result_path}")
    return RuntimeResult(
        workspace=runtime.workspace_name,
        tools=tools,
        result_path=result_path,
        result=result,
        elapsed_ms=timing.elapsed_ms,
    )


def run_benchmark(settings: Settings, library: Optional[VidiLibrary] = None) -> BenchmarkResult:
    """Time single-device, multi-device-per-tool and single-device-per-tool runs."""
    library = library if library is not None else load_library(settings.library)
    runtime = settings.runtime
    report = _run_benchmark(
        library,
        runtime.workspace_path,
        runtime.image_path,
        iterations=settings.benchmark.iterations,
        warm_up=settings.benchmark.warm_up,
        stream=runtime.stream,
        tool=runtime.tool,
        debug=settings.debug,
    )
    return BenchmarkResult(
        version=report.version,
        devices=report.devices,
        runs=[
            {
                "name": run.name,
                "gpu_mode": run.gpu_mode.config_name,
                "devices": run.devices,
                "iterations": run.iterations,
                "elapsed_ms": run.elapsed_s * 1000.0,
                "average_ms": run.average_ms,
            }
            for run in report.runs
        ],
    )


# =============================================================================
# Training
# =============================================================================


def _training_images(images_dir: Path, names: List[str]) -> List[Path]:
    if names:
        return [images_dir / name for name in names]
    if not images_dir.is_dir():
        raise ResourceNotFoundError(f"Training image directory not found: {images_dir}")
    return sorted(p for p in images_dir.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)


def _label(workspace: TrainingWorkspace, settings: Settings) -> None:
    training = settings.training
    if training.tool_type is ToolType.BLUE:
        for feature in training.features:
            workspace.set_feature(
                training.stream,
                training.tool,
                feature.view,
                feature.feature,
                feature.x,
                feature.y,
                index=feature.index,
                angle=feature.angle,
                size=feature.size,
            )
        for model in training.models:
            workspace.create_model(training.stream, training.tool, model.name)
            for _ in range(model.nodes):
                workspace.add_model_node(training.stream, training.tool, model.name)
            for key, value in model.parameters.items():
                workspace.set_parameter(training.stream, training.tool, f"models/{model.name}/{key}", value)
        return

    rules = training.labels or (DEFAULT_RED_LABELS if training.tool_type is ToolType.RED else [])
    for rule in rules:
        workspace.label_views(training.stream, training.tool, rule.filter, rule.label)


def run_training(settings: Settings, library: Optional[VidiLibrary] = None) -> TrainingResult:
    """Create, label, train, export and save the workspace of ``settings.training``."""
    training = settings.training
    working_dir = Path(training.working_dir)
    try:
        workspace_path = ensure_empty_directory(working_dir / training.workspace_name)
    except ValueError as e:
        raise ConfigError(f"Cannot create training workspace: {e}") from e
    image_paths = _training_images(Path(training.images_dir), list(training.images))

    with open_session(settings, library) as session:
        workspace = session.create_training_workspace(training.workspace_name, workspace_path)
        workspace.add_stream(training.stream)
        workspace.add_tool(training.stream, training.tool, training.tool_type)

        names = workspace.add_images(training.stream, image_paths)
        workspace.process_database(training.stream, training.tool)
        workspace.wait(training.stream, training.tool)

        for parameter, value in training.parameters.items():
            previous = workspace.get_parameter(training.stream, training.tool, parameter)
            logger.info(f"Setting {parameter} from {previous} to {value}")
            workspace.set_parameter(training.stream, training.tool, parameter, value)

        _label(workspace, settings)

        workspace.train(training.stream, training.tool)
        status = workspace.wait_for_training(
            training.stream,
            training.tool,
            poll_ms=training.poll_ms,
            on_progress=lambda s: logger.debug(f"Training progress: {s.progress}"),
        )

        archive_path = runtime_path = None
        if training.export_archive:
            archive_path = workspace.export_archive(working_dir / f"{training.workspace_name}.vwsa", include_images=True)
        if training.export_runtime:
            runtime_path = workspace.export_runtime(working_dir / f"{training.workspace_name}.vrws")
        workspace.save()
        workspace.close(discard_autosave=training.discard_autosave)

    return TrainingResult(
        workspace=training.workspace_name,
        images=names,
        status=status,
        archive_path=archive_path,
        runtime_path=runtime_path,
    )
