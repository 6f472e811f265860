"""Utility functions for vidi-client (foundation tier).

This module provides the small helpers shared across layers:
- Logging configuration (console and optional file handler)
- Timing of code blocks for benchmarks and pipeline steps
- Text and directory helpers for result files

Key Functions:
--------------
- configure_logging: Root logger setup (human-readable or JSON-like)
- time_block: Context manager measuring elapsed wall-clock time
- write_text: UTF-8 text output creating parent directories
- ensure_empty_directory: Validate a directory a training workspace is created in

Example:
--------
>>> import logging
>>> from vidi_client.utils import configure_logging, time_block
>>> configure_logging("DEBUG")
>>> with time_block("processing", logging.getLogger("demo")) as timing:
...     pass
>>> timing.elapsed >= 0
True
"""

from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import time
from typing import Iterator, Optional, Union

STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
STRUCTURED_FORMAT = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'


@dataclass
class Timing:
    """Elapsed time of a ``time_block``; ``elapsed`` is set on exit."""

    label: str
    elapsed: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0


@contextmanager
def time_block(label: str, logger: Optional[logging.Logger] = None) -> Iterator[Timing]:
    """Context manager timing a code block.

    Args:
        label: Descriptive label for the timed block
        logger: Optional logger; the duration is logged at DEBUG level

    Yields:
        Timing object whose ``elapsed`` (seconds) is filled on exit

    Example:
        with time_block("inspection") as timing:
            sample.process("analyze")
        print(timing.elapsed_ms)
    """
    timing = Timing(label=label)
    start = time.perf_counter()
    try:
        yield timing
    finally:
        timing.elapsed = time.perf_counter() - start
        if logger is not None:
            logger.debug(f"{label} completed in {timing.elapsed:.3f}s")


def configure_logging(level: str = "INFO", structured: bool = False, file: Union[str, Path, None] = None) -> None:
    """Configure root logger with standardized format.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Enable JSON-like structured logging (default: False)
        file: Optional log file receiving the same records as the console

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if structured:
        formatter = logging.Formatter(STRUCTURED_FORMAT)
    else:
        formatter = logging.Formatter(STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers = [logging.StreamHandler()]
    if file:
        Path(file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(file, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def write_text(path: Union[str, Path], text: str) -> Path:
    """Write UTF-8 text, creating parent directories.

    Returns:
        The written path
    """
    path_obj = Path(path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)
    path_obj.write_text(text, encoding="utf-8")
    return path_obj


def ensure_empty_directory(path: Union[str, Path]) -> Path:
    """Check that ``path`` is absent or an empty directory.

    Raises:
        ValueError: If the path is a file or a non-empty directory
    """
    path_obj = Path(path)
    if path_obj.exists():
        if not path_obj.is_dir():
            raise ValueError(f"Not a directory: {path_obj}")
        if any(path_obj.iterdir()):
            raise ValueError(f"Directory is not empty: {path_obj}")
    return path_obj
