"""Configuration loading for vidi-client.

Load a TOML settings file, apply environment overrides and validate the
result with the Pydantic models of ``vidi_client.domain.config``.

Environment overrides use the ``VIDI_`` prefix and ``__`` for nesting::

    VIDI_LIBRARY__BACKEND=simulated
    VIDI_SESSION__DEVICES=0,1
    VIDI_BENCHMARK__ITERATIONS=10
    VIDI_TRAINING__IMAGES='["000000.png", "bad000001.png"]'

Scalar values are passed through as strings and coerced by the models; values
starting with ``[`` or ``{`` are decoded as JSON.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

try:
    import tomli as tomllib  # Python < 3.11
except ImportError:
    import tomllib  # Python >= 3.11

from pydantic import ValidationError

from vidi_client.domain.config import Settings
from vidi_client.domain.exceptions import ConfigError

__all__ = [
    "Settings",
    "load_settings",
    "ENV_PREFIX",
]

ENV_PREFIX = "VIDI_"


def load_settings(
    toml_path: Union[Path, str, None] = None,
    env_prefix: str = ENV_PREFIX,
) -> Settings:
    """Load and validate settings from TOML and environment.

    Args:
        toml_path: Path to TOML configuration file (optional)
        env_prefix: Environment variable prefix (default: VIDI_)

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If the file is missing, is not valid TOML or fails validation
    """
    config_dict: Dict[str, Any] = {}

    if toml_path is not None:
        toml_path = Path(toml_path)
        if not toml_path.exists():
            raise ConfigError(f"Configuration file not found: {toml_path}", context={"path": str(toml_path)})
        try:
            with open(toml_path, "rb") as f:
                config_dict = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {toml_path}: {e}", context={"path": str(toml_path)}) from e

    config_dict = _apply_env_overrides(config_dict, env_prefix)

    try:
        return Settings(**config_dict)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _apply_env_overrides(config: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict.

    Supports nested keys with double underscore notation:
    VIDI_SESSION__GPU_MODE=none
    VIDI_RUNTIME__IMAGE_PATH=images/000001.png
    """
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = config
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return config


def _parse_env_value(value: str) -> Any:
    """Decode JSON lists/tables; leave scalars as strings for model coercion."""
    stripped = value.strip()
    if stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in environment override: {value}") from e
    return value
