"""Scoped vendor response buffers.

A ``ManagedBuffer`` wraps one ``VIDI_BUFFER``. It is initialized on creation,
filled by any query call (``fill``) and released exactly once, either
explicitly, on context exit, or by session teardown.

Ownership:
----------
- ``Ownership.NEVER_ALLOCATED``: initialized but never filled; release does
  not call the vendor
- ``Ownership.LIBRARY``: filled by the vendor; release calls ``free_buffer``

Reading a buffer before it was filled or after it was released raises
``InvalidStateError``.

Example:
--------
>>> with session.buffer() as buffer:
...     buffer.fill(session.library.version, "query version")
...     print(buffer.text)
"""

import logging
from typing import TYPE_CHECKING, Any, Callable

from vidi_client.domain.exceptions import InvalidStateError
from vidi_client.domain.types import Ownership
from vidi_client.errors import check_status

if TYPE_CHECKING:
    from vidi_client.session import Session

logger = logging.getLogger(__name__)


class ManagedBuffer:
    """A vendor response buffer tracked by its session."""

    def __init__(self, session: "Session"):
        self._session = session
        self._library = session.library
        self._handle = self._library.new_buffer()
        check_status(self._library, self._library.init_buffer(self._handle), "initialize buffer")
        self._ownership = Ownership.NEVER_ALLOCATED
        self._released = False

    @property
    def ownership(self) -> Ownership:
        return self._ownership

    @property
    def released(self) -> bool:
        return self._released

    @property
    def handle(self) -> Any:
        self._ensure_live()
        return self._handle

    def _ensure_live(self) -> None:
        if self._released:
            raise InvalidStateError("Buffer has already been released")

    def fill(self, call: Callable[[Any], int], action: str, **context) -> "ManagedBuffer":
        """Fill the buffer through a vendor query.

        Args:
            call: Vendor function taking the buffer handle as its only argument
            action: Description used in error messages
            **context: Details attached to a raised error

        Returns:
            self, so queries can be chained into ``.text``

        Raises:
            VidiError: If the query fails; the buffer stays usable
        """
        self._ensure_live()
        check_status(self._library, call(self._handle), action, **context)
        self._ownership = Ownership.LIBRARY
        return self

    @property
    def data(self) -> bytes:
        self._ensure_live()
        if self._ownership is Ownership.NEVER_ALLOCATED:
            raise InvalidStateError("Buffer has not been filled by a query")
        payload = self._library.read_buffer(self._handle)
        if payload is None:
            raise InvalidStateError("Buffer holds no data")
        return payload

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    @property
    def size(self) -> int:
        return len(self.data)

    def release(self) -> None:
        """Free the vendor memory held by the buffer.

        Raises:
            InvalidStateError: If the buffer was already released
        """
        self._ensure_live()
        if self._ownership is Ownership.LIBRARY:
            check_status(self._library, self._library.free_buffer(self._handle), "free buffer")
        self._released = True
        self._session._untrack(self)

    def _mark_released(self) -> None:
        # vendor memory already reclaimed by deinitialize
        self._released = True

    def __enter__(self) -> "ManagedBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._released:
            self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else self._ownership.name.lower()
        return f"<ManagedBuffer {state}>"
