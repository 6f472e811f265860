"""Unit tests for scoped buffers and images.

Covers the ownership rules: buffers are released exactly once, caller-owned
images are never freed through the library, library-owned images are.
"""

from pathlib import Path

import numpy as np
import pytest

from vidi_client.domain import ChannelDepth, ImageFormat, InvalidStateError, Ownership, ResourceNotFoundError, VendorInternalError
from vidi_client.images import CallerOwnedImage, LibraryOwnedImage, ManagedImage

pytestmark = pytest.mark.unit


class TestManagedBuffer:
    """Test buffer lifecycle and ownership tags."""

    def test_Should_BeNeverAllocated_When_Created(self, session):
        with session.buffer() as buffer:
            assert buffer.ownership is Ownership.NEVER_ALLOCATED
            assert buffer in session.outstanding

    def test_Should_RaiseInvalidState_When_ReadBeforeFill(self, session):
        with session.buffer() as buffer:
            with pytest.raises(InvalidStateError, match="not been filled"):
                buffer.text

    def test_Should_HoldText_When_Filled(self, session):
        with session.buffer() as buffer:
            buffer.fill(session.library.version, "query version")

            assert buffer.ownership is Ownership.LIBRARY
            assert buffer.text == "ViDi simulated runtime 1.0.0"
            assert buffer.size == len(buffer.data)

    def test_Should_Untrack_When_Released(self, session):
        buffer = session.buffer()
        buffer.fill(session.library.version, "query version")

        buffer.release()

        assert buffer.released
        assert buffer not in session.outstanding

    def test_Should_RaiseInvalidState_When_ReleasedTwice(self, session):
        buffer = session.buffer()
        buffer.release()

        with pytest.raises(InvalidStateError, match="already been released"):
            buffer.release()

    def test_Should_RaiseInvalidState_When_ReadAfterRelease(self, session):
        buffer = session.buffer().fill(session.library.version, "query version")
        buffer.release()

        with pytest.raises(InvalidStateError):
            buffer.data

    def test_Should_BeReleased_When_SessionCloses(self, session):
        # Arrange
        buffer = session.buffer().fill(session.library.version, "query version")

        # Act
        session.close()

        # Assert - Teardown reclaims the memory and marks the buffer
        assert buffer.released
        assert session.outstanding == []


class TestManagedImage:
    """Test the shared image base."""

    def test_Should_RefuseInstantiation_When_ReleaseMissing(self, session):
        class NoReleaseImage(ManagedImage):
            pass

        assert ManagedImage.__abstractmethods__ == frozenset({"release"})
        with pytest.raises(TypeError):
            NoReleaseImage(session, None, None)


class TestCallerOwnedImage:
    """Test wrapping caller numpy arrays."""

    def test_Should_DescribeGeometry_When_MonoArrayWrapped(self, session):
        pixels = np.full((20, 30), 42, dtype=np.uint8)

        with session.wrap_array(pixels) as image:
            assert image.ownership is Ownership.CALLER
            assert (image.width, image.height, image.channels) == (30, 20, 1)
            assert image.channel_depth is ChannelDepth.DEPTH_8U
            assert image.step == 30

    def test_Should_DescribeGeometry_When_ColorFloatArrayWrapped(self, session):
        pixels = np.zeros((4, 5, 3), dtype=np.float32)

        with session.wrap_array(pixels, ChannelDepth.DEPTH_32F) as image:
            assert image.channels == 3
            assert image.step == 5 * 3 * 4

    @pytest.mark.parametrize(
        "array",
        [np.zeros(10, dtype=np.uint8), np.zeros((2, 2, 2, 2), dtype=np.uint8), np.zeros((4, 4), dtype=np.int64)],
    )
    def test_Should_RaiseValueError_When_ArrayUnsupported(self, session, array):
        with pytest.raises(ValueError):
            CallerOwnedImage.from_array(session, array)

    def test_Should_RaiseValueError_When_DepthDisagreesWithDtype(self, session):
        with pytest.raises(ValueError, match="does not match"):
            session.wrap_array(np.zeros((4, 4), dtype=np.uint8), ChannelDepth.DEPTH_16U)

    def test_Should_RefuseLibraryFree_When_ImageCallerOwned(self, session):
        # Arrange
        image = session.wrap_array(np.zeros((4, 4), dtype=np.uint8))

        # Act & Assert
        with pytest.raises(InvalidStateError, match="never freed by the library"):
            session.free_image(image)
        assert not image.released

    def test_Should_RaiseInvalidState_When_ReleasedTwice(self, session):
        image = session.wrap_array(np.zeros((4, 4), dtype=np.uint8))
        image.release()

        with pytest.raises(InvalidStateError):
            image.release()

    def test_Should_WriteFile_When_Saved(self, session, tmp_path: Path):
        pixels = np.full((255, 255), 42, dtype=np.uint8)

        with session.wrap_array(pixels) as image:
            path = image.save(tmp_path / "img42.png")

        assert path.is_file()


class TestLibraryOwnedImage:
    """Test images allocated by the library."""

    def test_Should_RoundTripPixels_When_SavedAndLoaded(self, session, tmp_path: Path):
        # Arrange
        pixels = np.arange(64, dtype=np.uint8).reshape(8, 8)
        with session.wrap_array(pixels) as image:
            image.save(tmp_path / "ramp.png")

        # Act
        with session.load_image(tmp_path / "ramp.png") as loaded:
            # Assert
            assert isinstance(loaded, LibraryOwnedImage)
            assert loaded.ownership is Ownership.LIBRARY
            np.testing.assert_array_equal(loaded.to_array(), pixels)

    def test_Should_DecodeBlob_When_LoadedFromMemory(self, session, good_image_path: Path):
        data = good_image_path.read_bytes()

        with session.load_image_from_memory(data, ImageFormat.PNG) as image:
            assert (image.width, image.height) == (128, 128)
            assert image.channel_depth is ChannelDepth.DEPTH_8U

    def test_Should_RaiseVendorError_When_BlobFormatWrong(self, session, good_image_path: Path):
        with pytest.raises(VendorInternalError, match="not a BMP image"):
            session.load_image_from_memory(good_image_path.read_bytes(), ImageFormat.BMP)

    def test_Should_RaiseNotFound_When_FileMissing(self, session, tmp_path: Path):
        with pytest.raises(ResourceNotFoundError):
            session.load_image(tmp_path / "missing.png")

    def test_Should_RaiseInvalidState_When_FreedTwice(self, session, good_image_path: Path):
        # Arrange
        image = session.load_image(good_image_path)
        session.free_image(image)

        # Act & Assert
        with pytest.raises(InvalidStateError, match="already been freed"):
            session.free_image(image)
        assert image not in session.outstanding

    def test_Should_RaiseInvalidState_When_UsedAfterFree(self, session, good_image_path: Path):
        image = session.load_image(good_image_path)
        image.release()

        with pytest.raises(InvalidStateError):
            image.to_array()

    def test_Should_BeReleased_When_SessionCloses(self, session, good_image_path: Path):
        image = session.load_image(good_image_path)

        session.close()

        assert image.released
