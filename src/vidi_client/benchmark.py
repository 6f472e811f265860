"""Multi-device throughput benchmark.

Runs one runtime workspace under three GPU configurations, each in its own
session, and times ``iterations`` inspections of the same image:

1. ``single-device``: one device, the baseline
2. ``multi-device-per-tool``: all devices cooperate on each tool (red tools
   only), minimizing latency; a warm-up sample precedes the timing
3. ``single-device-per-tool``: one worker per device, maximizing throughput
   (see ``vidi_client.fanout``)

Example:
    >>> report = run_benchmark(library, "textile.vrws", "000000.png", iterations=50)
    >>> for run in report.runs:
    ...     print(run.name, run.average_ms)
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from vidi_client.domain.config import DebugConfig
from vidi_client.domain.exceptions import ConfigError
from vidi_client.domain.models import ComputeDevice, DeviceSelector
from vidi_client.domain.types import DebugSink, GpuMode
from vidi_client.fanout import run_device_fanout
from vidi_client.native.protocols import VidiLibrary
from vidi_client.session import Session
from vidi_client.utils import time_block

logger = logging.getLogger(__name__)

BENCHMARK_WORKSPACE = "workspace"
BENCHMARK_SAMPLE = "my_sample"


@dataclass(frozen=True)
class ConfigurationTiming:
    """Timing of one GPU configuration."""

    name: str
    gpu_mode: GpuMode
    devices: str
    iterations: int
    elapsed_s: float

    @property
    def average_ms(self) -> float:
        return self.elapsed_s * 1000.0 / self.iterations if self.iterations else 0.0


@dataclass(frozen=True)
class BenchmarkReport:
    version: str
    devices: List[ComputeDevice]
    runs: List[ConfigurationTiming] = field(default_factory=list)


def discover_devices(library: VidiLibrary) -> Tuple[str, List[ComputeDevice]]:
    """Return the library version and its compute devices from a short-lived session."""
    with Session.open(library, GpuMode.SINGLE_DEVICE_PER_TOOL) as session:
        return session.version(), session.list_compute_devices()


def _open(library: VidiLibrary, mode: GpuMode, devices: str, debug: Optional[DebugConfig]) -> Session:
    if debug is not None and debug.sink != "none":
        sink = DebugSink.FILE if debug.sink == "file" else DebugSink.CONSOLE
        return Session.open(library, mode, devices, debug=sink, debug_path=debug.path)
    return Session.open(library, mode, devices)


def _time_sequential(
    session: Session,
    workspace_path: Path,
    image_path: Path,
    iterations: int,
    stream: str,
    tool: str,
    warm_up: bool,
) -> float:
    workspace = session.open_workspace(BENCHMARK_WORKSPACE, workspace_path)
    with session.load_image(image_path) as image:
        if warm_up:
            workspace.inspect(image, stream, tool, BENCHMARK_SAMPLE)
        with time_block(f"{iterations} sequential samples", logger) as timing:
            for _ in range(iterations):
                workspace.inspect(image, stream, tool, BENCHMARK_SAMPLE)
    workspace.close()
    return timing.elapsed


def time_single_device(
    library: VidiLibrary,
    workspace_path: Union[str, Path],
    image_path: Union[str, Path],
    device: ComputeDevice,
    iterations: int,
    stream: str = "default",
    tool: str = "analyze",
    debug: Optional[DebugConfig] = None,
) -> ConfigurationTiming:
    with _open(library, GpuMode.SINGLE_DEVICE_PER_TOOL, device.index, debug) as session:
        elapsed = _time_sequential(session, Path(workspace_path), Path(image_path), iterations, stream, tool, warm_up=False)
    timing = ConfigurationTiming("single-device", GpuMode.SINGLE_DEVICE_PER_TOOL, device.index, iterations, elapsed)
    logger.info(f"Elapsed time using a single GPU: {elapsed * 1000:.0f} ms (average: {timing.average_ms:.2f} ms)")
    return timing


def time_multi_device_per_tool(
    library: VidiLibrary,
    workspace_path: Union[str, Path],
    image_path: Union[str, Path],
    devices: List[ComputeDevice],
    iterations: int,
    stream: str = "default",
    tool: str = "analyze",
    warm_up: bool = True,
    debug: Optional[DebugConfig] = None,
) -> ConfigurationTiming:
    selector = DeviceSelector(ids=tuple(d.index for d in devices)).as_vendor_string()
    with _open(library, GpuMode.MULTIPLE_DEVICES_PER_TOOL, selector, debug) as session:
        elapsed = _time_sequential(session, Path(workspace_path), Path(image_path), iterations, stream, tool, warm_up)
    timing = ConfigurationTiming("multi-device-per-tool", GpuMode.MULTIPLE_DEVICES_PER_TOOL, selector, iterations, elapsed)
    logger.info(f"Elapsed time using multiple GPUs for a single tool: {elapsed * 1000:.0f} ms (average: {timing.average_ms:.2f} ms)")
    return timing


def time_single_device_per_tool(
    library: VidiLibrary,
    workspace_path: Union[str, Path],
    image_path: Union[str, Path],
    devices: List[ComputeDevice],
    iterations: int,
    stream: str = "default",
    tool: str = "analyze",
    debug: Optional[DebugConfig] = None,
) -> ConfigurationTiming:
    ids = [d.index for d in devices]
    selector = DeviceSelector(ids=tuple(ids)).as_vendor_string()
    with _open(library, GpuMode.SINGLE_DEVICE_PER_TOOL, selector, debug) as session:
        workspace = session.open_workspace(BENCHMARK_WORKSPACE, workspace_path)
        report = run_device_fanout(workspace, image_path, ids, iterations, stream, tool)
        workspace.close()
    timing = ConfigurationTiming("single-device-per-tool", GpuMode.SINGLE_DEVICE_PER_TOOL, selector, iterations, report.elapsed_s)
    logger.info(
        f"Elapsed time using a single GPU per tool (hw concurrency: {len(ids)}): "
        f"{report.elapsed_s * 1000:.0f} ms (average: {timing.average_ms:.2f} ms)"
    )
    return timing


def run_benchmark(
    library: VidiLibrary,
    workspace_path: Union[str, Path],
    image_path: Union[str, Path],
    iterations: int = 50,
    warm_up: bool = True,
    stream: str = "default",
    tool: str = "analyze",
    debug: Optional[DebugConfig] = None,
) -> BenchmarkReport:
    """Time the three GPU configurations.

    Raises:
        ConfigError: If the library reports no compute device
    """
    version, devices = discover_devices(library)
    logger.info(f"{version}: {len(devices)} compute device(s)")
    if not devices:
        raise ConfigError("No GPU available")

    runs = [
        time_single_device(library, workspace_path, image_path, devices[0], iterations, stream, tool, debug),
        time_multi_device_per_tool(library, workspace_path, image_path, devices, iterations, stream, tool, warm_up, debug),
        time_single_device_per_tool(library, workspace_path, image_path, devices, iterations, stream, tool, debug),
    ]
    return BenchmarkReport(version=version, devices=devices, runs=runs)
