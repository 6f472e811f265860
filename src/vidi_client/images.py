"""Scoped image descriptors with a typed ownership tag.

Two kinds of ``VIDI_IMAGE`` exist and they must never share a release path:

- ``CallerOwnedImage``: pixels belong to a numpy array owned by the caller.
  The vendor never frees them; ``release`` only drops the reference and
  ``Session.free_image`` refuses them.
- ``LibraryOwnedImage``: pixels were allocated by ``load_image`` or
  ``load_image_from_memory`` and are released through ``Session.free_image``
  exactly once.

Example:
--------
>>> import numpy as np
>>> pixels = np.zeros((255, 255), dtype=np.uint8)
>>> with CallerOwnedImage.from_array(session, pixels) as image:
...     image.save("blank.png")
>>> with session.load_image("blank.png") as loaded:
...     loaded.info.width
255
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

import numpy as np

from vidi_client.domain.exceptions import InvalidStateError
from vidi_client.domain.models import ImageInfo
from vidi_client.domain.types import ChannelDepth, Ownership
from vidi_client.errors import check_status

if TYPE_CHECKING:
    from vidi_client.session import Session

logger = logging.getLogger(__name__)


class ManagedImage(ABC):
    """Common view over a vendor image handle."""

    ownership: Ownership

    def __init__(self, session: "Session", handle: Any, info: ImageInfo):
        self._session = session
        self._handle = handle
        self._info = info
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def handle(self) -> Any:
        self._ensure_live()
        return self._handle

    @property
    def info(self) -> ImageInfo:
        return self._info

    @property
    def width(self) -> int:
        return self._info.width

    @property
    def height(self) -> int:
        return self._info.height

    @property
    def channels(self) -> int:
        return self._info.channels

    @property
    def channel_depth(self) -> ChannelDepth:
        return self._info.channel_depth

    @property
    def step(self) -> int:
        return self._info.step

    def _ensure_live(self) -> None:
        if self._released:
            raise InvalidStateError(f"{type(self).__name__} has already been released")

    def to_array(self) -> np.ndarray:
        """Return a copy of the pixels as a numpy array (H x W or H x W x C)."""
        self._ensure_live()
        return self._session.library.image_pixels(self._handle)

    def save(self, path: Union[str, Path]) -> Path:
        """Encode the image to ``path``; the format follows the file suffix."""
        self._ensure_live()
        library = self._session.library
        check_status(library, library.save_image(str(path), self._handle), f"save image to {path}", path=str(path))
        logger.debug(f"Saved {self.width}x{self.height} image to {path}")
        return Path(path)

    @abstractmethod
    def release(self) -> None:
        """Give the handle back along the path its ownership allows."""

    def _mark_released(self) -> None:
        self._released = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._released and self._session.is_open:
            self.release()

    def __repr__(self) -> str:
        state = " released" if self._released else ""
        return (
            f"<{type(self).__name__} {self.width}x{self.height}x{self.channels} "
            f"{self.channel_depth.name}{state}>"
        )


class CallerOwnedImage(ManagedImage):
    """Image whose pixels are owned by a caller numpy array."""

    ownership = Ownership.CALLER

    def __init__(self, session: "Session", handle: Any, info: ImageInfo, pixels: np.ndarray):
        super().__init__(session, handle, info)
        self._pixels = pixels

    @classmethod
    def from_array(
        cls,
        session: "Session",
        array: np.ndarray,
        channel_depth: Optional[ChannelDepth] = None,
    ) -> "CallerOwnedImage":
        """Wrap a caller numpy array without copying it into vendor memory.

        Args:
            session: Open session
            array: 2-D (mono) or 3-D (H x W x C) array of uint8, uint16 or float32
            channel_depth: Expected depth; must agree with the array dtype

        Returns:
            Caller-owned image tracked by the session

        Raises:
            ValueError: If the array shape or dtype has no vendor equivalent
        """
        session._ensure_open()
        array = np.asarray(array)
        if array.ndim not in (2, 3):
            raise ValueError(f"Image array must be 2-D or 3-D, got shape {array.shape}")
        depth = ChannelDepth.from_dtype(array.dtype)
        if channel_depth is not None and ChannelDepth(channel_depth) is not depth:
            raise ValueError(f"Array dtype {array.dtype} does not match channel depth {ChannelDepth(channel_depth).name}")

        array = np.ascontiguousarray(array)
        info = ImageInfo(
            width=array.shape[1],
            height=array.shape[0],
            channels=1 if array.ndim == 2 else array.shape[2],
            channel_depth=depth,
            step=array.strides[0],
        )
        handle = session.library.wrap_pixels(array, info)
        image = cls(session, handle, info, array)
        session._track(image)
        return image

    def release(self) -> None:
        """Drop the reference to the caller pixels; no vendor call is made."""
        self._ensure_live()
        self._pixels = None
        self._released = True
        self._session._untrack(self)


class LibraryOwnedImage(ManagedImage):
    """Image allocated by the vendor; freed through ``Session.free_image``."""

    ownership = Ownership.LIBRARY

    def release(self) -> None:
        self._session.free_image(self)
