"""Gateway service management through the OS-native service manager.

Provides one operation set over:
- launchd user agents on macOS
- systemd user services on Linux, with PM2 as fallback
- Scheduled Tasks on Windows

Example:
    from gatewayd.service import InstallSpec, resolve_gateway_service

    service = resolve_gateway_service()
    await service.install(InstallSpec(program_arguments=["node", "gw.js"]))
    status = await service.read_runtime()
"""

from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeState,
    RuntimeStatus,
    ServiceBackend,
    ServiceDescriptor,
)
from gatewayd.service.naming import resolve_service_name
from gatewayd.service.resolver import (
    ChainedService,
    GatewayService,
    SingleBackendService,
    resolve_gateway_service,
)

__all__ = [
    "ChainedService",
    "CommandSnapshot",
    "GatewayService",
    "InstallSpec",
    "RuntimeState",
    "RuntimeStatus",
    "ServiceBackend",
    "ServiceDescriptor",
    "SingleBackendService",
    "resolve_gateway_service",
    "resolve_service_name",
]
