"""Configuration module."""

from gatewayd.config.loader import load_config
from gatewayd.config.models import (
    ConfigError,
    GatewayConfig,
    GatewaydConfig,
    ProxyConfig,
)
from gatewayd.config.paths import (
    get_config_path,
    get_gatewayd_home,
    get_logs_path,
)

__all__ = [
    "ConfigError",
    "GatewayConfig",
    "GatewaydConfig",
    "ProxyConfig",
    "get_config_path",
    "get_gatewayd_home",
    "get_logs_path",
    "load_config",
]
