"""Vendor library backends.

This package is the low-level tier of vidi-client:

- **Low-level**: Methods accept primitives only (str, int, bytes, numpy arrays,
  opaque handles) and return raw vendor status codes
- **No exceptions for vendor failures**: status translation belongs to
  ``vidi_client.errors``
- **Backends**: ``CtypesLibrary`` binds the proprietary shared library,
  ``SimulatedLibrary`` is an in-process reference implementation

**Architecture**:
- ``native/protocols.py``: ``VidiLibrary`` structural interface
- ``native/ctypes_library.py``: ctypes binding of the ``vidi_*`` functions
- ``native/simulated.py``: in-process backend used by tests and examples
- ``native/__init__.py``: Public API surface and backend factory

Example:
    >>> from vidi_client.domain import LibraryConfig
    >>> from vidi_client.native import load_library
    >>> library = load_library(LibraryConfig(backend="simulated"))
    >>> library.initialize(1, "")
    0
"""

import logging
from typing import Optional

from vidi_client.domain.config import LibraryConfig
from vidi_client.native.ctypes_library import CtypesLibrary, resolve_library_path
from vidi_client.native.protocols import BufferHandle, ImageHandle, VidiLibrary
from vidi_client.native.simulated import SimulatedLibrary, runtime_document, write_runtime_workspace

logger = logging.getLogger(__name__)


def load_library(config: Optional[LibraryConfig] = None) -> VidiLibrary:
    """Create the backend selected by ``config``.

    Args:
        config: Library configuration (defaults to the native backend)

    Returns:
        A ``VidiLibrary`` implementation

    Raises:
        ResourceNotFoundError: If the native library cannot be located
    """
    config = config or LibraryConfig()
    if config.backend == "simulated":
        logger.info("Using simulated ViDi backend")
        return SimulatedLibrary()

    library = CtypesLibrary(config.path)
    logger.info(f"Using native ViDi library: {library.path}")
    return library


__all__ = [
    # Protocol
    "VidiLibrary",
    "BufferHandle",
    "ImageHandle",
    # Backends
    "CtypesLibrary",
    "SimulatedLibrary",
    # Functions
    "load_library",
    "resolve_library_path",
    "runtime_document",
    "write_runtime_workspace",
]
