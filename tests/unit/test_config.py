"""Unit tests for settings loading and validation.

Tests TOML loading with strict schema validation, environment overrides and
the error raised for every kind of invalid configuration.
"""

from pathlib import Path

from pydantic import ValidationError
import pytest

pytestmark = pytest.mark.unit


class TestSettingsLoading:
    """Test settings file loading and parsing."""

    def test_Should_LoadValidSettings_When_ValidTOMLProvided(self, settings_toml: Path):
        """Should load every section of a valid vidi.toml."""
        from vidi_client.config import load_settings

        settings = load_settings(settings_toml)

        assert settings.library.backend == "simulated"
        assert settings.runtime.tool == "analyze"
        assert settings.runtime.workspace_path.endswith("Textile.vrws")
        assert settings.benchmark.iterations == 4
        assert settings.training.poll_ms == 0

    def test_Should_UseDefaults_When_NoFileGiven(self):
        from vidi_client.config import load_settings

        settings = load_settings()

        assert settings.library.backend == "native"
        assert settings.session.gpu_mode == "single-device-per-tool"
        assert settings.runtime.sample == "my_sample"
        assert settings.benchmark.iterations == 50

    def test_Should_RaiseConfigError_When_FileMissing(self, tmp_path: Path):
        from vidi_client.config import load_settings
        from vidi_client.domain import ConfigError

        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "missing.toml")

    def test_Should_RaiseConfigError_When_TOMLInvalid(self, tmp_path: Path):
        from vidi_client.config import load_settings
        from vidi_client.domain import ConfigError

        config_path = tmp_path / "broken.toml"
        config_path.write_text("[runtime\ntool = ", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_settings(config_path)

    def test_Should_RaiseConfigError_When_ExtraKeyPresent(self, tmp_path: Path):
        """Should reject a key that is not in the schema."""
        from vidi_client.config import load_settings
        from vidi_client.domain import ConfigError

        config_path = tmp_path / "extra.toml"
        config_path.write_text('[runtime]\ntool = "analyze"\ncolour = "red"\n', encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_settings(config_path)


class TestEnvironmentOverrides:
    """Test VIDI_* environment overrides with __ nesting."""

    def test_Should_OverrideNestedValue_When_EnvSet(self, settings_toml: Path, monkeypatch):
        from vidi_client.config import load_settings

        monkeypatch.setenv("VIDI_BENCHMARK__ITERATIONS", "7")
        monkeypatch.setenv("VIDI_SESSION__DEVICES", "0,1")

        settings = load_settings(settings_toml)

        assert settings.benchmark.iterations == 7
        assert settings.session.devices == "0,1"

    def test_Should_KeepZeroAsString_When_DeviceIdOverridden(self, monkeypatch):
        """A single device id '0' must stay a device id, not become False."""
        from vidi_client.config import load_settings

        monkeypatch.setenv("VIDI_SESSION__DEVICES", "0")

        settings = load_settings()

        assert settings.session.devices == "0"
        assert settings.session.selector.ids == ("0",)

    def test_Should_DecodeJSON_When_ListOverridden(self, monkeypatch):
        from vidi_client.config import load_settings

        monkeypatch.setenv("VIDI_TRAINING__IMAGES", '["000000.png", "bad000001.png"]')

        settings = load_settings()

        assert settings.training.images == ["000000.png", "bad000001.png"]

    def test_Should_RaiseConfigError_When_JSONOverrideInvalid(self, monkeypatch):
        from vidi_client.config import load_settings
        from vidi_client.domain import ConfigError

        monkeypatch.setenv("VIDI_TRAINING__IMAGES", "[not json")

        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_settings()

    def test_Should_UseCustomPrefix_When_Given(self, monkeypatch):
        from vidi_client.config import load_settings

        monkeypatch.setenv("MYAPP_LIBRARY__BACKEND", "simulated")

        settings = load_settings(env_prefix="MYAPP_")

        assert settings.library.backend == "simulated"


class TestSessionConfig:
    """Test GPU mode and device selector validation."""

    def test_Should_NormalizeGpuMode_When_AlternateSpellingGiven(self):
        from vidi_client.domain import GpuMode, SessionConfig

        config = SessionConfig(gpu_mode="MULTI_DEVICE_PER_TOOL", devices="0,1")

        assert config.gpu_mode == "multi-device-per-tool"
        assert config.mode is GpuMode.MULTIPLE_DEVICES_PER_TOOL
        assert config.selector.count == 2

    def test_Should_AcceptIntegerDevice_When_TOMLHasNumber(self):
        from vidi_client.domain import SessionConfig

        assert SessionConfig(devices=1).devices == "1"

    def test_Should_RejectGpuMode_When_Unknown(self):
        from vidi_client.domain import SessionConfig

        with pytest.raises(ValidationError):
            SessionConfig(gpu_mode="turbo")

    def test_Should_RejectDevices_When_Duplicated(self):
        from vidi_client.domain import SessionConfig

        with pytest.raises(ValidationError):
            SessionConfig(devices="1,1")

    def test_Should_RejectMemorySize_When_Negative(self):
        from vidi_client.domain import SessionConfig

        with pytest.raises(ValidationError):
            SessionConfig(optimized_gpu_memory_mb=-1)


class TestOtherSections:
    def test_Should_UppercaseLevel_When_LoggingLevelLowercase(self):
        from vidi_client.domain import LoggingConfig

        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_Should_RejectLevel_When_Unknown(self):
        from vidi_client.domain import LoggingConfig

        with pytest.raises(ValidationError, match="level must be one of"):
            LoggingConfig(level="LOUD")

    def test_Should_RejectBackend_When_Unknown(self):
        from vidi_client.domain import LibraryConfig

        with pytest.raises(ValidationError):
            LibraryConfig(backend="opencl")

    def test_Should_RejectRuntimeTool_When_NameHasComma(self):
        from vidi_client.domain import RuntimeConfig

        with pytest.raises(ValidationError):
            RuntimeConfig(tool="a,b")

    def test_Should_ParseToolType_When_TrainingConfigured(self):
        from vidi_client.domain import ToolType, TrainingConfig

        config = TrainingConfig(tool_type="blue", features=[{"view": "000000.png", "feature": "0", "x": 10, "y": 20}])

        assert config.tool_type is ToolType.BLUE
        assert config.features[0].index == -1

    def test_Should_RejectIterations_When_Zero(self):
        from vidi_client.domain import BenchmarkConfig

        with pytest.raises(ValidationError):
            BenchmarkConfig(iterations=0)
