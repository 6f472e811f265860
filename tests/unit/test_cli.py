"""Unit tests for the cli module.

Tests the Typer application: registered commands, settings handling and the
mapping of client errors to exit code -1.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

pytestmark = pytest.mark.unit

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI reconfigures root logging on every invocation."""
    import logging

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestCLISubcommands:
    """Test CLI subcommand availability."""

    @pytest.mark.parametrize("command", ["info", "devices", "image", "run", "benchmark", "train"])
    def test_Should_ProvideCommand_When_Imported(self, command):
        # Arrange & Act
        from vidi_client.cli import app

        # Assert
        commands = [cmd.name or cmd.callback.__name__ for cmd in app.registered_commands]
        assert command in commands


class TestCLIInvocation:
    """Test commands against the simulated backend."""

    def test_Should_PrintVersionAndDevices_When_InfoRuns(self):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--backend", "simulated", "info"])

        assert result.exit_code == 0, result.output
        assert "ViDi simulated runtime 1.0.0" in result.output
        assert "0: Simulated GPU 0" in result.output
        assert "1: Simulated GPU 1" in result.output

    def test_Should_ReportNoDevice_When_GpuDisabled(self, monkeypatch):
        from vidi_client.cli import app

        monkeypatch.setenv("VIDI_SESSION__GPU_MODE", "none")

        result = runner.invoke(app, ["--backend", "simulated", "devices"])

        assert result.exit_code == 0, result.output
        assert "no compute device available" in result.output

    def test_Should_WriteImages_When_ImageRuns(self, tmp_path: Path):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--backend", "simulated", "image", "--output-dir", str(tmp_path), "--fill", "7"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "img7.png").is_file()
        assert (tmp_path / "img_copy.png").is_file()
        assert "file: 255x255 channels=1 depth=DEPTH_8U step=255" in result.output
        assert "first pixel value: 7" in result.output

    def test_Should_WriteResult_When_RunSucceeds(self, settings_toml: Path, tmp_path: Path):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--config", str(settings_toml), "run"])

        assert result.exit_code == 0, result.output
        assert "analyze view 0:" in result.output
        assert "label=bad" in result.output
        assert (tmp_path / "out" / "result.xml").is_file()

    def test_Should_UseOverrides_When_RunOptionsGiven(self, settings_toml: Path, good_image_path: Path, tmp_path: Path):
        from vidi_client.cli import app

        result_path = tmp_path / "custom.xml"
        result = runner.invoke(
            app,
            ["--config", str(settings_toml), "run", "--image", str(good_image_path), "--result", str(result_path)],
        )

        assert result.exit_code == 0, result.output
        assert "label=good" in result.output
        assert result_path.is_file()

    def test_Should_ExitMinusOne_When_WorkspaceMissing(self, settings_toml: Path, tmp_path: Path):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--config", str(settings_toml), "run", "--workspace", str(tmp_path / "missing.vrws")])

        assert result.exit_code == -1
        assert "error:" in result.output
        assert "Workspace file not found" in result.output

    def test_Should_ExitMinusOne_When_ThresholdParameterInvalid(self, settings_toml: Path, monkeypatch):
        from vidi_client.cli import app

        monkeypatch.setenv("VIDI_RUNTIME__PARAMETERS", "threshold=abc")

        result = runner.invoke(app, ["--config", str(settings_toml), "run"])

        assert result.exit_code == -1
        assert "invalid threshold 'abc'" in result.output

    def test_Should_ExitMinusOne_When_ConfigMissing(self, tmp_path: Path):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--config", str(tmp_path / "nope.toml"), "info"])

        assert result.exit_code == -1
        assert "Configuration file not found" in result.output

    def test_Should_ExitMinusOne_When_BackendInvalid(self):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--backend", "quantum", "info"])

        assert result.exit_code == -1

    def test_Should_TimeThreeConfigurations_When_BenchmarkRuns(self, settings_toml: Path):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--config", str(settings_toml), "benchmark", "--iterations", "3"])

        assert result.exit_code == 0, result.output
        for name in ("single-device", "multi-device-per-tool", "single-device-per-tool"):
            assert f"{name} (devices" in result.output

    def test_Should_ExportWorkspace_When_TrainRuns(self, settings_toml: Path, tmp_path: Path):
        from vidi_client.cli import app

        result = runner.invoke(app, ["--config", str(settings_toml), "train"])

        assert result.exit_code == 0, result.output
        assert "added 6 images to 'textile'" in result.output
        assert (tmp_path / "ws" / "textile.vrws").is_file()
        assert (tmp_path / "ws" / "textile.vwsa").is_file()
