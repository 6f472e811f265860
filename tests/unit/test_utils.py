"""Unit tests for utility functions.

Tests logging setup, block timing and the file helpers.
"""

import logging
from pathlib import Path

import pytest

pytestmark = pytest.mark.unit


@pytest.fixture
def restore_root_logger():
    """Put back the root handlers replaced by configure_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestTimeBlock:
    def test_Should_MeasureElapsed_When_BlockExits(self):
        from vidi_client.utils import time_block

        with time_block("noop") as timing:
            sum(range(1000))

        assert timing.label == "noop"
        assert timing.elapsed > 0
        assert timing.elapsed_ms == pytest.approx(timing.elapsed * 1000.0)

    def test_Should_FillTiming_When_BlockRaises(self):
        from vidi_client.utils import time_block

        with pytest.raises(RuntimeError):
            with time_block("failing") as timing:
                raise RuntimeError("boom")

        assert timing.elapsed > 0

    def test_Should_LogDuration_When_LoggerGiven(self, caplog):
        from vidi_client.utils import time_block

        logger = logging.getLogger("vidi_client.tests.timing")
        with caplog.at_level(logging.DEBUG, logger="vidi_client.tests.timing"):
            with time_block("process 'analyze'", logger):
                pass

        assert "process 'analyze' completed in" in caplog.text


class TestConfigureLogging:
    def test_Should_SetLevel_When_Configured(self, restore_root_logger):
        from vidi_client.utils import configure_logging

        configure_logging("warning")

        assert restore_root_logger.level == logging.WARNING
        assert len(restore_root_logger.handlers) == 1

    def test_Should_AddFileHandler_When_FileGiven(self, restore_root_logger, tmp_path: Path):
        from vidi_client.utils import configure_logging

        log_file = tmp_path / "logs" / "vidi.log"
        configure_logging("INFO", structured=True, file=log_file)
        logging.getLogger("vidi_client.tests").info("hello")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert '"message": "hello"' in log_file.read_text(encoding="utf-8")

    def test_Should_RaiseValueError_When_LevelUnknown(self):
        from vidi_client.utils import configure_logging

        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging("LOUD")


class TestFileHelpers:
    def test_Should_CreateParents_When_TextWritten(self, tmp_path: Path):
        from vidi_client.utils import write_text

        path = write_text(tmp_path / "a" / "b" / "result.xml", "<sample/>")

        assert path.read_text(encoding="utf-8") == "<sample/>"

    def test_Should_AcceptPath_When_DirectoryAbsentOrEmpty(self, tmp_path: Path):
        from vidi_client.utils import ensure_empty_directory

        (tmp_path / "empty").mkdir()

        assert ensure_empty_directory(tmp_path / "absent") == tmp_path / "absent"
        assert ensure_empty_directory(tmp_path / "empty") == tmp_path / "empty"

    def test_Should_RaiseValueError_When_DirectoryNotEmpty(self, tmp_path: Path):
        from vidi_client.utils import ensure_empty_directory

        (tmp_path / "file.txt").write_text("x")

        with pytest.raises(ValueError, match="not empty"):
            ensure_empty_directory(tmp_path)
        with pytest.raises(ValueError, match="Not a directory"):
            ensure_empty_directory(tmp_path / "file.txt")
