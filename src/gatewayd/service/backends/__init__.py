"""Service backend lookup by name."""

import importlib
from collections.abc import Mapping

from gatewayd.service.base import ServiceBackend

BACKENDS = {
    "launchd": "gatewayd.service.backends.launchd.LaunchdBackend",
    "systemd": "gatewayd.service.backends.systemd.SystemdBackend",
    "pm2": "gatewayd.service.backends.pm2.Pm2Backend",
    "schtasks": "gatewayd.service.backends.schtasks.ScheduledTaskBackend",
}


def get_backend(name: str, env: Mapping[str, str] | None = None) -> ServiceBackend:
    """Get a specific backend by name.

    Args:
        name: Backend name ('launchd', 'systemd', 'pm2', 'schtasks').
        env: Environment used to derive the service name.

    Returns:
        The requested ServiceBackend.

    Raises:
        ValueError: If the named backend doesn't exist.
    """
    if name not in BACKENDS:
        raise ValueError(f"Unknown backend: {name}. Available: {list(BACKENDS)}")

    # Import dynamically to avoid loading unnecessary backends
    module_path, class_name = BACKENDS[name].rsplit(".", 1)
    module = importlib.import_module(module_path)
    backend_class = getattr(module, class_name)
    return backend_class(env=env)


__all__ = ["BACKENDS", "get_backend"]
