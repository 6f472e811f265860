"""Pytest configuration and shared fixtures for vidi-client tests.

Provides:
- Simulated vendor library and open sessions
- Synthetic textile images and runtime workspaces
- Settings dictionaries and TOML files pointing at the synthetic data
"""

import os
from pathlib import Path
from typing import Any, Dict

import pytest

from synthetic import TextileResources, build_textile_resources
from vidi_client.domain import GpuMode, Settings
from vidi_client.native import SimulatedLibrary
from vidi_client.session import Session

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def clean_vidi_env(monkeypatch):
    """Drop VIDI_* overrides inherited from the developer shell."""
    for key in list(os.environ):
        if key.startswith("VIDI_"):
            monkeypatch.delenv(key, raising=False)


# ============================================================================
# Library and Sessions
# ============================================================================


@pytest.fixture
def library() -> SimulatedLibrary:
    """Fresh simulated backend with two compute devices."""
    return SimulatedLibrary()


@pytest.fixture
def session(library: SimulatedLibrary):
    """Open single-device-per-tool session, closed on teardown."""
    opened = Session.open(library, GpuMode.SINGLE_DEVICE_PER_TOOL)
    yield opened
    if opened.is_open:
        opened.close()


# ============================================================================
# Synthetic Data
# ============================================================================


@pytest.fixture
def textile_resources(tmp_path: Path) -> TextileResources:
    """Resources folder with 4 good and 2 bad images and a red-tool workspace.

    Structure:
        tmp_path/resources/
        ├── images/   (000000.png ... 000003.png, bad000004.png, bad000005.png)
        └── runtime/Textile.vrws
    """
    return build_textile_resources(tmp_path / "resources")


@pytest.fixture
def chain_resources(tmp_path: Path) -> TextileResources:
    """Resources whose workspace chains analyze -> classify -> locate."""
    return build_textile_resources(tmp_path / "chain_resources", chain=True)


@pytest.fixture
def good_image_path(textile_resources: TextileResources) -> Path:
    return textile_resources.images.good_paths[0]


@pytest.fixture
def bad_image_path(textile_resources: TextileResources) -> Path:
    return textile_resources.images.bad_paths[0]


@pytest.fixture
def runtime_workspace(session: Session, textile_resources: TextileResources):
    """Runtime workspace 'textile' opened in ``session``."""
    return session.open_workspace("textile", textile_resources.runtime_path)


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings_dict(tmp_path: Path, textile_resources: TextileResources) -> Dict[str, Any]:
    """Settings dictionary targeting the simulated backend and synthetic data."""
    return {
        "library": {"backend": "simulated"},
        "session": {"gpu_mode": "single-device-per-tool", "devices": ""},
        "logging": {"level": "DEBUG"},
        "runtime": {
            "workspace_name": "workspace",
            "workspace_path": str(textile_resources.runtime_path),
            "stream": "default",
            "tool": "analyze",
            "sample": "my_sample",
            "image_path": str(textile_resources.images.bad_paths[0]),
            "result_path": str(tmp_path / "out" / "result.xml"),
        },
        "benchmark": {"iterations": 4, "warm_up": True},
        "training": {
            "workspace_name": "textile",
            "working_dir": str(tmp_path / "ws"),
            "images_dir": str(textile_resources.images_dir),
            "poll_ms": 0,
        },
    }


@pytest.fixture
def settings(settings_dict: Dict[str, Any]) -> Settings:
    return Settings(**settings_dict)


@pytest.fixture
def settings_toml(tmp_path: Path, textile_resources: TextileResources) -> Path:
    """vidi.toml equivalent of ``settings_dict``."""
    config_path = tmp_path / "vidi.toml"
    config_content = f"""
[library]
backend = "simulated"

[session]
gpu_mode = "single-device-per-tool"
devices = ""

[logging]
level = "INFO"

[runtime]
workspace_name = "workspace"
workspace_path = "{textile_resources.runtime_path.as_posix()}"
tool = "analyze"
image_path = "{textile_resources.images.bad_paths[0].as_posix()}"
result_path = "{(tmp_path / "out" / "result.xml").as_posix()}"

[benchmark]
iterations = 4

[training]
workspace_name = "textile"
working_dir = "{(tmp_path / "ws").as_posix()}"
images_dir = "{textile_resources.images_dir.as_posix()}"
poll_ms = 0
"""
    config_path.write_text(config_content, encoding="utf-8")
    return config_path
