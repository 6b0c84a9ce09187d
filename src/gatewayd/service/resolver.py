"""Platform resolution and backend chaining.

``resolve_gateway_service`` picks the backend set for the host once; the
returned ``GatewayService`` then exposes one operation set regardless of
platform. On Linux, systemd-user and PM2 are chained and every operation
re-checks them, since either can appear or disappear between calls.
"""

import logging
import sys
from abc import ABC, abstractmethod
from collections.abc import Mapping

from gatewayd.errors import UnsupportedPlatformError
from gatewayd.service.backends import get_backend
from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeStatus,
    ServiceBackend,
    ServiceDescriptor,
)

logger = logging.getLogger(__name__)

DESCRIPTORS = {
    "darwin": ServiceDescriptor(
        label="LaunchAgent", loaded_text="loaded", not_loaded_text="not loaded"
    ),
    "linux": ServiceDescriptor(
        label="Systemd/PM2", loaded_text="active", not_loaded_text="inactive"
    ),
    "win32": ServiceDescriptor(
        label="Scheduled Task", loaded_text="registered", not_loaded_text="missing"
    ),
}

UNAVAILABLE_DETAIL = "Systemd/PM2 unavailable"


async def _read_runtime(backend: ServiceBackend) -> RuntimeStatus:
    try:
        return await backend.read_runtime()
    except Exception as e:
        logger.debug("%s runtime query failed", backend.name, exc_info=True)
        return RuntimeStatus.unknown(str(e))


async def _read_command(backend: ServiceBackend) -> CommandSnapshot | None:
    try:
        return await backend.read_command()
    except Exception:
        logger.debug("%s command read failed", backend.name, exc_info=True)
        return None


class GatewayService(ABC):
    """The gateway's service operations on one platform."""

    def __init__(self, descriptor: ServiceDescriptor):
        self.descriptor = descriptor

    @property
    def label(self) -> str:
        return self.descriptor.label

    @property
    def loaded_text(self) -> str:
        return self.descriptor.loaded_text

    @property
    def not_loaded_text(self) -> str:
        return self.descriptor.not_loaded_text

    @abstractmethod
    async def install(self, spec: InstallSpec) -> None:
        """Install the gateway under whichever backend this platform uses."""
        ...

    @abstractmethod
    async def uninstall(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def restart(self) -> None:
        ...

    @abstractmethod
    async def is_loaded(self) -> bool:
        ...

    @abstractmethod
    async def read_command(self) -> CommandSnapshot | None:
        ...

    @abstractmethod
    async def read_runtime(self) -> RuntimeStatus:
        """Get current runtime status. Never raises."""
        ...


class SingleBackendService(GatewayService):
    """Forwards every operation to one backend (macOS, Windows)."""

    def __init__(self, descriptor: ServiceDescriptor, backend: ServiceBackend):
        super().__init__(descriptor)
        self.backend = backend

    async def install(self, spec: InstallSpec) -> None:
        await self.backend.install(spec)

    async def uninstall(self) -> None:
        await self.backend.uninstall()

    async def stop(self) -> None:
        await self.backend.stop()

    async def restart(self) -> None:
        await self.backend.restart()

    async def is_loaded(self) -> bool:
        return await self.backend.is_loaded()

    async def read_command(self) -> CommandSnapshot | None:
        return await _read_command(self.backend)

    async def read_runtime(self) -> RuntimeStatus:
        return await _read_runtime(self.backend)


class ChainedService(GatewayService):
    """Chains a primary backend with a fallback (Linux: systemd, then PM2).

    Backend selection is made per operation: the service may be registered
    under the fallback even when the primary is available now.
    """

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        primary: ServiceBackend,
        fallback: ServiceBackend,
    ):
        super().__init__(descriptor)
        self.primary = primary
        self.fallback = fallback

    @property
    def backends(self) -> tuple[ServiceBackend, ServiceBackend]:
        return (self.primary, self.fallback)

    async def install(self, spec: InstallSpec) -> None:
        """Install via the primary if reachable, else the fallback.

        With neither available, the primary is attempted anyway so the
        caller gets its error rather than a silent no-op.
        """
        if await self.primary.is_available():
            backend = self.primary
        elif await self.fallback.is_available():
            backend = self.fallback
        else:
            backend = self.primary
        logger.debug("Installing via %s", backend.name)
        await backend.install(spec)

    async def uninstall(self) -> None:
        """Remove the unit from every backend, ignoring failures.

        Stale registrations under the inactive backend are removed too.
        """
        for backend in self.backends:
            try:
                await backend.uninstall()
            except Exception:
                logger.debug("%s uninstall failed", backend.name, exc_info=True)

    async def _control_backend(self) -> ServiceBackend:
        # Same precedence for stop and restart: enabled primary, enabled
        # fallback, then the primary forced.
        for backend in self.backends:
            if await backend.is_available() and await backend.is_loaded():
                return backend
        return self.primary

    async def stop(self) -> None:
        backend = await self._control_backend()
        await backend.stop()

    async def restart(self) -> None:
        backend = await self._control_backend()
        await backend.restart()

    async def is_loaded(self) -> bool:
        for backend in self.backends:
            if await backend.is_available() and await backend.is_loaded():
                return True
        return False

    async def read_command(self) -> CommandSnapshot | None:
        for backend in self.backends:
            if not await backend.is_available():
                continue
            snapshot = await _read_command(backend)
            if snapshot is not None:
                return snapshot
        return None

    async def read_runtime(self) -> RuntimeStatus:
        """Primary status unless it has no such unit, then the fallback's."""
        primary_status: RuntimeStatus | None = None
        if await self.primary.is_available():
            primary_status = await _read_runtime(self.primary)
            if not primary_status.missing_unit:
                return primary_status

        if await self.fallback.is_available():
            return await _read_runtime(self.fallback)

        if primary_status is not None:
            return primary_status
        return RuntimeStatus.unknown(UNAVAILABLE_DETAIL)


def resolve_gateway_service(
    platform: str | None = None,
    env: Mapping[str, str] | None = None,
) -> GatewayService:
    """Resolve the gateway service for a platform.

    Args:
        platform: A ``sys.platform`` value. Defaults to the running host.
        env: Environment used to derive the service name.

    Raises:
        UnsupportedPlatformError: If no backend exists for the platform.
    """
    platform = platform or sys.platform

    if platform == "darwin":
        return SingleBackendService(DESCRIPTORS[platform], get_backend("launchd", env))

    if platform == "linux":
        return ChainedService(
            DESCRIPTORS[platform],
            primary=get_backend("systemd", env),
            fallback=get_backend("pm2", env),
        )

    if platform == "win32":
        return SingleBackendService(DESCRIPTORS[platform], get_backend("schtasks", env))

    raise UnsupportedPlatformError(platform)
