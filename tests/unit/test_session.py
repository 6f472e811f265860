"""Unit tests for the session lifecycle.

Tests initialize/deinitialize pairing, the single-active-session rule,
library queries and the workspaces tracked by a session.
"""

import logging
from pathlib import Path

import pytest

from vidi_client.domain import (
    AlreadyInitializedError,
    ConfigError,
    DebugSink,
    GpuMode,
    InvalidStateError,
    NotInitializedError,
    ResourceNotFoundError,
    VendorInternalError,
)
from vidi_client.native import SimulatedLibrary
from vidi_client.native.simulated import vendor_logger
from vidi_client.session import Session

pytestmark = pytest.mark.unit


class TestSessionLifecycle:
    """Test open/close pairing."""

    def test_Should_InitializeAndDeinitialize_When_UsedAsContext(self, library: SimulatedLibrary):
        # Arrange & Act
        with Session.open(library, GpuMode.SINGLE_DEVICE_PER_TOOL) as session:
            assert session.is_open
            assert library.initialized

        # Assert
        assert not session.is_open
        assert not library.initialized
        assert library.calls == ["initialize", "deinitialize"]

    def test_Should_Deinitialize_When_BodyRaises(self, library: SimulatedLibrary):
        with pytest.raises(RuntimeError):
            with Session.open(library):
                raise RuntimeError("boom")

        assert not library.initialized

    def test_Should_RejectSecondSession_When_OneIsActive(self, session: Session):
        # Act
        with pytest.raises(AlreadyInitializedError):
            Session.open(session.library)

        # Assert - The first session is untouched
        assert session.version() == "ViDi simulated runtime 1.0.0"

    def test_Should_AllowReopen_When_PreviousSessionClosed(self, library: SimulatedLibrary):
        Session.open(library).close()

        with Session.open(library) as session:
            assert session.is_open

    def test_Should_RaiseNotInitialized_When_ClosedTwice(self, session: Session):
        session.close()

        with pytest.raises(NotInitializedError):
            session.close()

    def test_Should_RaiseNotInitialized_When_UsedAfterClose(self, session: Session):
        session.close()

        with pytest.raises(NotInitializedError):
            session.version()
        with pytest.raises(NotInitializedError):
            session.buffer()

    def test_Should_RaiseConfigError_When_SelectorMalformed(self, library: SimulatedLibrary):
        with pytest.raises(ConfigError, match="Invalid device selector"):
            Session.open(library, devices="gpu0")

        assert not library.initialized

    def test_Should_RaiseVendorError_When_DeviceUnavailable(self, library: SimulatedLibrary):
        with pytest.raises(VendorInternalError, match="cannot initialize with provided gpu list"):
            Session.open(library, devices="0,5")

        assert not library.initialized

    def test_Should_CloseSession_When_MemorySizeRejected(self, library: SimulatedLibrary):
        with pytest.raises(VendorInternalError):
            Session.open(library, optimized_gpu_memory_mb=-1)

        assert not library.initialized

    def test_Should_ShowState_When_Represented(self, session: Session):
        assert repr(session) == "<Session open mode=SINGLE_DEVICE_PER_TOOL devices=''>"


class TestSessionQueries:
    """Test version, license and compute device queries."""

    def test_Should_ReturnLicenseXML_When_Queried(self, session: Session):
        assert session.license_info().startswith("<license")

    def test_Should_ListAllDevices_When_NoSelector(self, session: Session):
        devices = session.list_compute_devices()

        assert [d.index for d in devices] == ["0", "1"]
        assert devices[0].name == "Simulated GPU 0"

    def test_Should_ListSelectedDevices_When_SelectorGiven(self, library: SimulatedLibrary):
        with Session.open(library, devices="1") as session:
            devices = session.list_compute_devices()

        assert [d.index for d in devices] == ["1"]

    def test_Should_ListNoDevice_When_GpuDisabled(self, library: SimulatedLibrary):
        with Session.open(library, GpuMode.NO_SUPPORT) as session:
            assert session.list_compute_devices() == []

    def test_Should_ReleaseQueryBuffers_When_QueriesReturn(self, session: Session):
        session.version()
        session.list_compute_devices()

        assert session.outstanding == []

    def test_Should_AcceptMemorySize_When_Automatic(self, library: SimulatedLibrary):
        with Session.open(library, optimized_gpu_memory_mb=0) as session:
            session.set_optimized_gpu_memory(512)

    def test_Should_WriteVendorMessages_When_FileSinkConfigured(self, library: SimulatedLibrary, tmp_path: Path):
        log_path = tmp_path / "vidi_messages.log"
        try:
            with Session.open(library, debug=DebugSink.FILE, debug_path=str(log_path)):
                pass
            library._debug_handler.flush()

            assert "ViDi initialized" in log_path.read_text(encoding="utf-8")
        finally:
            vendor_logger.removeHandler(library._debug_handler)
            library._debug_handler.close()
            vendor_logger.setLevel(logging.NOTSET)

    def test_Should_RaiseVendorError_When_FileSinkHasNoPath(self, session: Session):
        with pytest.raises(VendorInternalError, match="file path is required"):
            session.configure_debug_output(DebugSink.FILE, "")


class TestSessionWorkspaces:
    """Test runtime and training workspaces tracked by a session."""

    def test_Should_TrackWorkspace_When_Opened(self, session: Session, textile_resources):
        workspace = session.open_workspace("textile", textile_resources.runtime_path)

        assert session.workspaces() == ["textile"]
        assert session.list_workspaces() == ["textile"]
        assert session.workspace("textile") is workspace

    def test_Should_RaiseInvalidState_When_NameAlreadyOpened(self, session: Session, textile_resources):
        session.open_workspace("textile", textile_resources.runtime_path)

        with pytest.raises(InvalidStateError, match="already opened"):
            session.open_workspace("textile", textile_resources.runtime_path)

    def test_Should_OpenTwice_When_NamesDiffer(self, session: Session, textile_resources):
        session.open_workspace("a", textile_resources.runtime_path)
        session.open_workspace("b", textile_resources.runtime_path)

        assert session.list_workspaces() == ["a", "b"]

    def test_Should_RaiseNotFound_When_FileMissing(self, session: Session, tmp_path: Path):
        with pytest.raises(ResourceNotFoundError):
            session.open_workspace("textile", tmp_path / "missing.vrws")

        assert session.workspaces() == []

    def test_Should_RaiseVendorError_When_FileIsNotAWorkspace(self, session: Session, good_image_path: Path):
        with pytest.raises(VendorInternalError, match="not a runtime workspace"):
            session.open_workspace("textile", good_image_path)

    def test_Should_RaiseConfigError_When_NameInvalid(self, session: Session, textile_resources):
        with pytest.raises(ConfigError):
            session.open_workspace("a,b", textile_resources.runtime_path)

    def test_Should_RaiseNotFound_When_WorkspaceUnknown(self, session: Session):
        with pytest.raises(ResourceNotFoundError):
            session.workspace("nope")
        with pytest.raises(ResourceNotFoundError):
            session.training_workspace("nope")

    def test_Should_CloseWorkspaces_When_SessionCloses(self, session: Session, textile_resources, good_image_path: Path):
        # Arrange
        workspace = session.open_workspace("textile", textile_resources.runtime_path)
        sample = workspace.create_sample("default", "s1")
        image = session.load_image(good_image_path)

        # Act
        session.close()

        # Assert
        assert workspace.closed
        assert sample.state.value == "freed"
        assert image.released
        assert session.library.live_samples == []

    def test_Should_RaiseInvalidState_When_TrainingNameReused(self, session: Session, tmp_path: Path):
        session.create_training_workspace("textile", tmp_path / "ws1")

        with pytest.raises(InvalidStateError, match="already exists"):
            session.create_training_workspace("textile", tmp_path / "ws2")
