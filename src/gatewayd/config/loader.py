"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from gatewayd.config.models import ConfigError, GatewaydConfig
from gatewayd.config.paths import get_config_path
from gatewayd.service.naming import PROFILE_ENV_VAR


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("gatewayd.toml"),  # Current directory
        get_config_path(),  # ~/.gatewayd/config.toml (or GATEWAYD_HOME)
        Path("/etc/gatewayd/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variables that take precedence over the file."""
    if profile := os.environ.get(PROFILE_ENV_VAR):
        config["profile"] = profile
    if level := os.environ.get("GATEWAYD_LOG_LEVEL"):
        config["log_level"] = level.upper()
    return config


def load_config(path: Path | None = None) -> GatewaydConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to defaults when none exists.

    Returns:
        Validated GatewaydConfig instance.

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    try:
        return GatewaydConfig.model_validate(raw_config)
    except ValidationError as e:
        source = config_path or "environment"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e
