"""Unit tests for status translation and vendor payload parsing."""

import pytest

from vidi_client.domain import (
    AlreadyInitializedError,
    ResourceNotFoundError,
    Status,
    VendorInternalError,
)
from vidi_client.errors import ERROR_MESSAGE_UNAVAILABLE, ErrorResolver, check_status
from vidi_client.native import SimulatedLibrary
from vidi_client.responses import (
    parse_compute_devices,
    parse_error_message,
    parse_sample_result,
    parse_tool_list,
    parse_tool_status,
    parse_workspace_list,
)

pytestmark = pytest.mark.unit


class FailingErrorQueryLibrary(SimulatedLibrary):
    """Backend whose get_error_message always fails."""

    def __init__(self):
        super().__init__()
        self.freed = 0

    def get_error_message(self, status, buffer):
        return int(Status.INTERNAL)

    def free_buffer(self, buffer):
        self.freed += 1
        return super().free_buffer(buffer)


class PlainTextErrorLibrary(SimulatedLibrary):
    """Backend answering error queries with plain text instead of XML."""

    def get_error_message(self, status, buffer):
        buffer.data = b"  cannot open device  \n"
        return int(Status.SUCCESS)


class RaisingErrorQueryLibrary(FailingErrorQueryLibrary):
    """Backend whose error query raises instead of returning a status."""

    def get_error_message(self, status, buffer):
        raise RuntimeError("boom")


class TestErrorResolver:
    """Test resolution of status codes into vendor messages."""

    def test_Should_ReturnLastMessage_When_CallFailed(self):
        # Arrange
        library = SimulatedLibrary()
        library.initialize(1, "")

        # Act
        status = library.initialize(1, "")
        message = ErrorResolver(library).resolve(status)

        # Assert
        assert status == Status.ALREADY_INITIALIZED
        assert message == "ViDi is already initialized"

    def test_Should_ReturnDefaultMessage_When_StatusNeverRaised(self):
        message = ErrorResolver(SimulatedLibrary()).resolve(Status.UNKNOWN_TOOL)

        assert message == "unknown tool"

    def test_Should_ReturnSentinel_When_ErrorQueryFails(self):
        # Arrange
        library = FailingErrorQueryLibrary()

        # Act
        message = ErrorResolver(library).resolve(Status.FILE_NOT_FOUND)

        # Assert - Never raises, and the scratch buffer is still released
        assert message == ERROR_MESSAGE_UNAVAILABLE
        assert library.freed == 1

    def test_Should_ReturnSentinel_When_ErrorQueryRaises(self):
        library = RaisingErrorQueryLibrary()

        message = ErrorResolver(library).resolve(Status.INTERNAL)

        assert message == ERROR_MESSAGE_UNAVAILABLE
        assert library.freed == 1

    def test_Should_ReturnRawText_When_PayloadIsNotXML(self):
        message = ErrorResolver(PlainTextErrorLibrary()).resolve(Status.DEVICE_UNAVAILABLE)

        assert message == "cannot open device"


class TestCheckStatus:
    """Test the check-then-raise primitive."""

    def test_Should_DoNothing_When_StatusIsSuccess(self):
        check_status(SimulatedLibrary(), Status.SUCCESS, "anything")

    def test_Should_RaiseNarrowestError_When_FileMissing(self, tmp_path):
        # Arrange
        library = SimulatedLibrary()
        library.initialize(1, "")
        status = library.runtime_open_workspace_from_file("ws", str(tmp_path / "missing.vrws"))

        # Act & Assert
        with pytest.raises(ResourceNotFoundError) as exc_info:
            check_status(library, status, "open workspace 'ws'", workspace="ws")

        error = exc_info.value
        assert error.status == Status.FILE_NOT_FOUND
        assert error.context == {"workspace": "ws"}
        assert str(error).startswith("open workspace 'ws': file not found")

    def test_Should_RaiseAlreadyInitialized_When_InitializedTwice(self):
        library = SimulatedLibrary()
        library.initialize(1, "")

        with pytest.raises(AlreadyInitializedError, match="already initialized"):
            check_status(library, library.initialize(1, ""), "initialize library")

    def test_Should_RaiseVendorInternalError_When_StatusUnknown(self):
        with pytest.raises(VendorInternalError, match="unknown status 4242"):
            check_status(SimulatedLibrary(), 4242, "mystery call")


class TestResponseParsers:
    """Test XML payload readers."""

    def test_Should_ParseErrorText_When_ErrorPayload(self):
        assert parse_error_message(b'<error code="3">file not found: a.png</error>') == "file not found: a.png"

    def test_Should_ParseDevices_When_ListingGiven(self):
        payload = '<devices><device id="GeForce 0" index="0"/><device id="GeForce 1" index="1"/></devices>'

        devices = parse_compute_devices(payload)

        assert [d.name for d in devices] == ["GeForce 0", "GeForce 1"]
        assert [d.index for d in devices] == ["0", "1"]

    def test_Should_FindNestedElement_When_PayloadIsWrapped(self):
        payload = '<response><devices><device id="GPU" index="0"/></devices></response>'

        assert parse_compute_devices(payload)[0].name == "GPU"

    def test_Should_ParseEmptyListing_When_NoDevice(self):
        assert parse_compute_devices("<devices/>") == []

    def test_Should_KeepChainOrder_When_ToolsListed(self):
        payload = '<tools><tool name="analyze" type="red"/><tool name="locate" type="blue"/></tools>'

        assert parse_tool_list(payload) == ["analyze", "locate"]

    def test_Should_ParseWorkspaces_When_ListingGiven(self):
        assert parse_workspace_list('<workspaces><workspace name="a"/><workspace name="b"/></workspaces>') == ["a", "b"]

    def test_Should_ParseFlags_When_StatusPayload(self):
        payload = '<status busy="false" error="" ready="true" needs_training="false"><progress>training done</progress></status>'

        status = parse_tool_status(payload)

        assert not status.busy
        assert status.ready
        assert not status.needs_training
        assert status.progress == "training done"

    def test_Should_ParseMarkings_When_SamplePayload(self):
        payload = (
            '<sample workspace="ws" stream="default" name="s1">'
            '<image width="8" height="8" channels="1" channel_depth="0"/>'
            '<marking tool="analyze" type="red"><view index="0" score="0.083" label="bad" threshold="0.02"/></marking>'
            '<marking tool="locate" type="blue"><view index="0" score="0.9" label="">'
            '<match name="center" x="4.0" y="5.5" score="0.9"/></view></marking>'
            "</sample>"
        )

        result = parse_sample_result(payload)

        assert result.sample == "s1"
        assert list(result.markings) == ["analyze", "locate"]
        red = result.marking("analyze").views[0]
        assert red.score == pytest.approx(0.083)
        assert red.threshold == pytest.approx(0.02)
        assert red.label == "bad"
        blue = result.marking("locate").views[0]
        assert blue.threshold is None
        assert blue.matches[0].name == "center"
        assert blue.matches[0].y == pytest.approx(5.5)

    @pytest.mark.parametrize(
        "parser,payload",
        [
            (parse_compute_devices, "<devices><device index='0'></devices>"),
            (parse_compute_devices, "<devices><device index='0'/></devices>"),
            (parse_tool_list, "<workspaces/>"),
            (parse_sample_result, "<sample><marking tool='a'><view score='high'/></marking></sample>"),
            (parse_error_message, "not xml at all"),
        ],
    )
    def test_Should_RaiseVendorInternalError_When_PayloadMalformed(self, parser, payload):
        with pytest.raises(VendorInternalError):
            parser(payload)
