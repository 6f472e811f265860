"""Vendor status translation.

``ErrorResolver`` turns an opaque status code into the vendor's
human-readable message by issuing ``get_error_message`` into a scratch buffer.
``check_status`` is the check-then-abort primitive used after every vendor
call: success is a no-op, anything else raises the narrowest ``VidiError``
subclass with the resolved message.

Example:
    >>> status = library.runtime_open_workspace_from_file("ws", "missing.vrws")
    >>> check_status(library, status, "open workspace 'ws'", workspace="ws")
    Traceback (most recent call last):
    ...
    ResourceNotFoundError: open workspace 'ws': file not found: missing.vrws (status=3)
"""

import logging

from vidi_client.domain.exceptions import VendorInternalError, exception_for_status
from vidi_client.domain.types import Status
from vidi_client.native.protocols import VidiLibrary
from vidi_client.responses import parse_error_message

logger = logging.getLogger(__name__)

ERROR_MESSAGE_UNAVAILABLE = "failed to retrieve last error message"


class ErrorResolver:
    """Resolve vendor status codes into messages.

    ``resolve`` never raises: when the secondary query fails the fixed
    ``ERROR_MESSAGE_UNAVAILABLE`` sentinel is returned instead.
    """

    def __init__(self, library: VidiLibrary):
        self.library = library

    def resolve(self, status: int) -> str:
        try:
            buffer = self.library.new_buffer()
            self.library.init_buffer(buffer)
        except Exception as e:
            logger.warning(f"Cannot allocate error buffer: {e}")
            return ERROR_MESSAGE_UNAVAILABLE

        try:
            query_status = self.library.get_error_message(int(status), buffer)
            if query_status != Status.SUCCESS:
                logger.debug(f"get_error_message({status}) failed with status {query_status}")
                return ERROR_MESSAGE_UNAVAILABLE

            payload = self.library.read_buffer(buffer)
            if payload is None:
                return ERROR_MESSAGE_UNAVAILABLE

            try:
                return parse_error_message(payload)
            except VendorInternalError:
                # not XML: surface the raw text
                return payload.decode("utf-8", errors="replace").strip()
        except Exception as e:
            logger.warning(f"Error resolution for status {status} failed: {e}")
            return ERROR_MESSAGE_UNAVAILABLE
        finally:
            try:
                self.library.free_buffer(buffer)
            except Exception as e:
                logger.warning(f"Cannot release error buffer: {e}")


def check_status(library: VidiLibrary, status: int, action: str, **context) -> None:
    """Raise the matching ``VidiError`` when ``status`` is not success.

    Args:
        library: Backend used to resolve the message
        status: Status returned by the vendor call
        action: Short description of the attempted operation, used as prefix
        **context: Details attached to the exception (workspace, sample, ...)

    Raises:
        VidiError: Subclass chosen by ``exception_for_status``
    """
    if status == Status.SUCCESS:
        return

    message = ErrorResolver(library).resolve(status)
    error_class = exception_for_status(status)
    logger.error(f"{action} failed: {message} (status={status})")
    raise error_class(f"{action}: {message}", status=int(status), context=context)
