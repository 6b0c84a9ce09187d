"""Centralized path management for gatewayd.

All state (config, logs, launcher scripts) is stored under a single base
directory. The base directory can be overridden with the GATEWAYD_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.gatewayd
- Windows: %USERPROFILE%\\.gatewayd
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "GATEWAYD_HOME"


@lru_cache(maxsize=1)
def get_gatewayd_home() -> Path:
    """Get the base directory for all gatewayd data.

    Resolution order:
    1. GATEWAYD_HOME environment variable (if set)
    2. Platform default (~/.gatewayd)

    Returns:
        Path to the gatewayd home directory.
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".gatewayd"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_gatewayd_home() / "config.toml"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_gatewayd_home() / "logs"


def get_gateway_log_path() -> Path:
    """Get the log file the managed gateway writes to (launchd only)."""
    return get_logs_path() / "gateway.log"


def get_launcher_script_path(task_name: str) -> Path:
    """Get the Windows launcher script path for a scheduled task."""
    return get_gatewayd_home() / f"{task_name}.cmd"


def get_systemd_user_dir() -> Path:
    """Get the systemd user unit directory."""
    return Path.home() / ".config" / "systemd" / "user"


def get_launch_agents_dir() -> Path:
    """Get the per-user LaunchAgents directory."""
    return Path.home() / "Library" / "LaunchAgents"
