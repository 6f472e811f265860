"""Multi-device fan-out of sample processing.

With ``GpuMode.SINGLE_DEVICE_PER_TOOL`` and N selected devices, throughput is
maximized by running N workers concurrently against one shared runtime
workspace. Each worker:

- loads its own copy of the image (images are never shared between workers)
- uses its own sample name ``sample<device>``
- processes a disjoint share of the iterations

All workers are joined before the aggregate timing is computed. Worker
failures are collected at the join and raised together as
``PartialFailureError``, which also carries the reports of the workers that
completed.

Example:
    >>> report = run_device_fanout(workspace, "image.png", ["0", "1"], 100)
    >>> report.average_ms
    3.2
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from pathlib import Path
import time
from typing import Dict, List, Sequence, Union

from vidi_client.domain.exceptions import ConfigError, PartialFailureError
from vidi_client.workspace import RuntimeWorkspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerReport:
    """Work done by one device worker."""

    device: str
    iterations: int
    elapsed_s: float

    @property
    def average_ms(self) -> float:
        return self.elapsed_s * 1000.0 / self.iterations if self.iterations else 0.0


@dataclass(frozen=True)
class FanoutReport:
    """Aggregate of a fan-out run (wall-clock time across all workers)."""

    total_iterations: int
    elapsed_s: float
    workers: List[WorkerReport] = field(default_factory=list)

    @property
    def average_ms(self) -> float:
        return self.elapsed_s * 1000.0 / self.total_iterations if self.total_iterations else 0.0


def split_iterations(total: int, workers: int) -> List[int]:
    """Split ``total`` iterations into ``workers`` near-equal shares.

    The first ``total % workers`` shares get one extra iteration, so every
    share is the ceiling or the floor of ``total / workers`` and the shares
    sum to ``total``.

    Raises:
        ValueError: If ``workers`` < 1 or ``total`` < 0
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")
    base, extra = divmod(total, workers)
    return [base + 1 if k < extra else base for k in range(workers)]


def _run_worker(
    workspace: RuntimeWorkspace,
    image_path: Path,
    device: str,
    iterations: int,
    stream: str,
    tool: str,
    parameters: str,
) -> WorkerReport:
    sample_name = f"sample{device}"
    start = time.perf_counter()
    with workspace.session.load_image(image_path) as image:
        for _ in range(iterations):
            workspace.inspect(image, stream, tool, sample_name, parameters)
    elapsed = time.perf_counter() - start
    logger.debug(f"Device {device}: {iterations} samples in {elapsed:.3f}s")
    return WorkerReport(device=device, iterations=iterations, elapsed_s=elapsed)


def run_device_fanout(
    workspace: RuntimeWorkspace,
    image_path: Union[str, Path],
    devices: Sequence[str],
    total_iterations: int,
    stream: str = "default",
    tool: str = "analyze",
    parameters: str = "",
) -> FanoutReport:
    """Process ``image_path`` ``total_iterations`` times spread over ``devices``.

    Args:
        workspace: Open runtime workspace shared by all workers
        image_path: Image each worker loads for itself
        devices: Device ids, one worker per id
        total_iterations: Samples processed across all workers
        stream: Stream name
        tool: Tool processed on every sample
        parameters: Processing parameters

    Returns:
        Aggregate report

    Raises:
        ConfigError: If no device is given
        PartialFailureError: If one or more workers failed
    """
    devices = list(devices)
    if not devices:
        raise ConfigError("Fan-out needs at least one device")

    shares = split_iterations(total_iterations, len(devices))
    logger.info(f"Fan-out of {total_iterations} samples over devices {devices} (shares {shares})")

    start = time.perf_counter()
    with ThreadPoolExecutor(max_workers=len(devices), thread_name_prefix="vidi_device") as executor:
        futures = {
            device: executor.submit(_run_worker, workspace, Path(image_path), device, share, stream, tool, parameters)
            for device, share in zip(devices, shares)
        }
        reports: List[WorkerReport] = []
        failures: Dict[str, BaseException] = {}
        for device, future in futures.items():
            try:
                reports.append(future.result())
            except Exception as e:
                logger.error(f"Worker for device {device} failed: {e}")
                failures[device] = e
    elapsed = time.perf_counter() - start

    if failures:
        raise PartialFailureError(
            f"{len(failures)} of {len(devices)} device workers failed: "
            + "; ".join(f"device {d}: {e}" for d, e in failures.items()),
            failures=failures,
            completed=reports,
        )

    report = FanoutReport(total_iterations=total_iterations, elapsed_s=elapsed, workers=reports)
    logger.info(f"Processed {total_iterations} samples in {elapsed * 1000:.0f} ms (average: {report.average_ms:.2f} ms)")
    return report
