"""Exception hierarchy for vidi-client.

Every failure surfaced by the client derives from ``VidiError``. Vendor status
codes are translated into the narrowest matching subclass by
``exception_for_status``; anything the client cannot classify becomes a
``VendorInternalError`` carrying the raw status and the resolved message.

Hierarchy:
----------
- VidiError
  ├── AlreadyInitializedError
  ├── NotInitializedError
  ├── ResourceNotFoundError
  ├── InvalidStateError
  ├── VendorInternalError
  ├── PartialFailureError
  └── ConfigError
"""

from typing import Any, Dict, List, Optional, Type

from vidi_client.domain.types import Status


class VidiError(Exception):
    """Base class for all vidi-client errors.

    Attributes:
        message: Human-readable description
        status: Vendor status code, if the error came from a vendor call
        context: Extra key/value details (workspace, sample, path, ...)
    """

    def __init__(self, message: str, status: Optional[int] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.context = dict(context or {})

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status={self.status})"


class AlreadyInitializedError(VidiError):
    """The vendor library already has an active session."""


class NotInitializedError(VidiError):
    """An operation was issued outside of an open session."""


class ResourceNotFoundError(VidiError):
    """A file, workspace, stream, tool or sample does not exist."""


class InvalidStateError(VidiError):
    """An operation was attempted out of sequence.

    Raised for double frees, processing before an image is attached,
    releasing a caller-owned image through the library, and similar
    ownership violations.
    """


class VendorInternalError(VidiError):
    """Opaque vendor failure surfaced only as a status code and message."""


class PartialFailureError(VidiError):
    """Some workers of a fan-out failed while their siblings completed.

    Attributes:
        failures: Worker label -> exception raised by that worker
        completed: Reports of the workers that finished
    """

    def __init__(self, message: str, failures: Dict[str, BaseException], completed: Optional[List[Any]] = None):
        super().__init__(message, context={"failed_workers": sorted(failures)})
        self.failures = dict(failures)
        self.completed = list(completed or [])


class ConfigError(VidiError):
    """Invalid configuration value (settings file, device selector, ...)."""


_STATUS_CLASSES: Dict[int, Type[VidiError]] = {
    Status.ALREADY_INITIALIZED: AlreadyInitializedError,
    Status.NOT_INITIALIZED: NotInitializedError,
    Status.FILE_NOT_FOUND: ResourceNotFoundError,
    Status.UNKNOWN_WORKSPACE: ResourceNotFoundError,
    Status.UNKNOWN_STREAM: ResourceNotFoundError,
    Status.UNKNOWN_TOOL: ResourceNotFoundError,
    Status.UNKNOWN_SAMPLE: ResourceNotFoundError,
    Status.SAMPLE_EXISTS: InvalidStateError,
    Status.WORKSPACE_EXISTS: InvalidStateError,
    Status.INVALID_STATE: InvalidStateError,
}


def exception_for_status(status: int) -> Type[VidiError]:
    """Return the exception class matching a vendor status code.

    Args:
        status: Non-success vendor status

    Returns:
        Exception class; ``VendorInternalError`` for unclassified codes
    """
    return _STATUS_CLASSES.get(int(status), VendorInternalError)
