"""Tests for platform resolution and Linux backend chaining."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from gatewayd.errors import CommandError, GatewayServiceError, UnsupportedPlatformError
from gatewayd.service.backends.launchd import LaunchdBackend
from gatewayd.service.backends.pm2 import Pm2Backend
from gatewayd.service.backends.schtasks import ScheduledTaskBackend
from gatewayd.service.backends.systemd import SystemdBackend
from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeState,
    RuntimeStatus,
    ServiceBackend,
)
from gatewayd.service.resolver import (
    DESCRIPTORS,
    ChainedService,
    GatewayService,
    SingleBackendService,
    resolve_gateway_service,
)

SPEC = InstallSpec(program_arguments=["node", "/app/gw.js"])


def _backend(
    name: str,
    *,
    available: bool = True,
    loaded: bool = False,
    runtime: RuntimeStatus | None = None,
    command: CommandSnapshot | None = None,
) -> MagicMock:
    backend = MagicMock(spec=ServiceBackend)
    backend.name = name
    backend.is_available = AsyncMock(return_value=available)
    backend.is_loaded = AsyncMock(return_value=loaded)
    backend.read_runtime = AsyncMock(
        return_value=runtime or RuntimeStatus(status=RuntimeState.STOPPED)
    )
    backend.read_command = AsyncMock(return_value=command)
    backend.install = AsyncMock()
    backend.uninstall = AsyncMock()
    backend.stop = AsyncMock()
    backend.restart = AsyncMock()
    return backend


def _chain(systemd: MagicMock, pm2: MagicMock) -> ChainedService:
    return ChainedService(DESCRIPTORS["linux"], primary=systemd, fallback=pm2)


# =============================================================================
# Platform Resolution
# =============================================================================


class TestResolveGatewayService:
    """Tests for resolve_gateway_service()."""

    @pytest.mark.parametrize(
        ("platform", "label", "loaded", "not_loaded"),
        [
            ("darwin", "LaunchAgent", "loaded", "not loaded"),
            ("linux", "Systemd/PM2", "active", "inactive"),
            ("win32", "Scheduled Task", "registered", "missing"),
        ],
    )
    def test_labels(self, platform, label, loaded, not_loaded):
        service = resolve_gateway_service(platform=platform, env={})

        assert service.label == label
        assert service.loaded_text == loaded
        assert service.not_loaded_text == not_loaded

    def test_darwin_uses_launchd(self):
        service = resolve_gateway_service(platform="darwin", env={})

        assert isinstance(service, SingleBackendService)
        assert isinstance(service.backend, LaunchdBackend)

    def test_win32_uses_scheduled_tasks(self):
        service = resolve_gateway_service(platform="win32", env={})

        assert isinstance(service, SingleBackendService)
        assert isinstance(service.backend, ScheduledTaskBackend)

    def test_linux_chains_systemd_then_pm2(self):
        service = resolve_gateway_service(platform="linux", env={})

        assert isinstance(service, ChainedService)
        assert isinstance(service.primary, SystemdBackend)
        assert isinstance(service.fallback, Pm2Backend)

    def test_backends_share_service_name(self):
        service = resolve_gateway_service(platform="linux", env={"GATEWAYD_PROFILE": "work"})

        assert service.primary.unit_name == "gatewayd-gateway-work.service"
        assert service.fallback.service_name == "gatewayd-gateway-work"

    @pytest.mark.parametrize("platform", ["freebsd13", "aix", "cygwin"])
    def test_unsupported_platform_raises(self, platform):
        with pytest.raises(UnsupportedPlatformError, match=platform):
            resolve_gateway_service(platform=platform)

    def test_unsupported_platform_is_service_error(self):
        with pytest.raises(GatewayServiceError):
            resolve_gateway_service(platform="sunos5")

    def test_gateway_service_is_abstract(self):
        with pytest.raises(TypeError):
            GatewayService(DESCRIPTORS["linux"])


# =============================================================================
# Linux Chaining
# =============================================================================


class TestChainedInstall:
    """Tests for ChainedService.install()."""

    @pytest.mark.asyncio
    async def test_prefers_systemd(self):
        systemd, pm2 = _backend("systemd"), _backend("pm2")

        await _chain(systemd, pm2).install(SPEC)

        systemd.install.assert_awaited_once_with(SPEC)
        pm2.install.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_pm2(self):
        systemd, pm2 = _backend("systemd", available=False), _backend("pm2")

        await _chain(systemd, pm2).install(SPEC)

        pm2.install.assert_awaited_once_with(SPEC)
        systemd.install.assert_not_called()

    @pytest.mark.asyncio
    async def test_forces_systemd_when_nothing_available(self):
        systemd = _backend("systemd", available=False)
        pm2 = _backend("pm2", available=False)

        await _chain(systemd, pm2).install(SPEC)

        systemd.install.assert_awaited_once_with(SPEC)
        pm2.install.assert_not_called()


class TestChainedControl:
    """Tests for ChainedService stop/restart precedence."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["stop", "restart"])
    async def test_enabled_systemd_wins(self, operation):
        systemd = _backend("systemd", loaded=True)
        pm2 = _backend("pm2", loaded=True)

        await getattr(_chain(systemd, pm2), operation)()

        getattr(systemd, operation).assert_awaited_once()
        getattr(pm2, operation).assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["stop", "restart"])
    async def test_enabled_pm2_when_systemd_not_enabled(self, operation):
        systemd = _backend("systemd", loaded=False)
        pm2 = _backend("pm2", loaded=True)

        await getattr(_chain(systemd, pm2), operation)()

        getattr(pm2, operation).assert_awaited_once()
        getattr(systemd, operation).assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["stop", "restart"])
    async def test_forces_systemd_when_nothing_enabled(self, operation):
        systemd = _backend("systemd", available=False)
        pm2 = _backend("pm2", loaded=False)

        await getattr(_chain(systemd, pm2), operation)()

        getattr(systemd, operation).assert_awaited_once()
        getattr(pm2, operation).assert_not_called()

    @pytest.mark.asyncio
    async def test_unavailable_backend_is_not_asked_if_enabled(self):
        systemd = _backend("systemd", available=False, loaded=True)
        pm2 = _backend("pm2", loaded=True)

        await _chain(systemd, pm2).stop()

        systemd.is_loaded.assert_not_called()
        pm2.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_command_error_propagates(self):
        systemd = _backend("systemd", loaded=True)
        systemd.stop.side_effect = CommandError("systemctl stop failed: denied")

        with pytest.raises(CommandError, match="denied"):
            await _chain(systemd, _backend("pm2")).stop()


class TestChainedUninstall:
    """Tests for ChainedService.uninstall()."""

    @pytest.mark.asyncio
    async def test_removes_from_both(self):
        systemd, pm2 = _backend("systemd"), _backend("pm2")

        await _chain(systemd, pm2).uninstall()

        systemd.uninstall.assert_awaited_once()
        pm2.uninstall.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_errors_are_swallowed(self):
        systemd, pm2 = _backend("systemd"), _backend("pm2")
        systemd.uninstall.side_effect = RuntimeError("boom")
        pm2.uninstall.side_effect = GatewayServiceError("pm2 not available")

        await _chain(systemd, pm2).uninstall()

        pm2.uninstall.assert_awaited_once()


class TestChainedQueries:
    """Tests for is_loaded/read_command/read_runtime."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("systemd_loaded", "pm2_loaded", "expected"),
        [
            (True, False, True),
            (False, True, True),
            (True, True, True),
            (False, False, False),
        ],
    )
    async def test_is_loaded_is_logical_or(self, systemd_loaded, pm2_loaded, expected):
        systemd = _backend("systemd", loaded=systemd_loaded)
        pm2 = _backend("pm2", loaded=pm2_loaded)

        assert await _chain(systemd, pm2).is_loaded() is expected

    @pytest.mark.asyncio
    async def test_is_loaded_short_circuits(self):
        systemd = _backend("systemd", loaded=True)
        pm2 = _backend("pm2", loaded=True)

        await _chain(systemd, pm2).is_loaded()

        pm2.is_available.assert_not_called()

    @pytest.mark.asyncio
    async def test_is_loaded_false_when_unavailable(self):
        systemd = _backend("systemd", available=False, loaded=True)
        pm2 = _backend("pm2", available=False, loaded=True)

        assert await _chain(systemd, pm2).is_loaded() is False

    @pytest.mark.asyncio
    async def test_read_command_first_non_null(self):
        snapshot = CommandSnapshot(program_arguments=["node", "gw.js"])
        systemd = _backend("systemd", command=None)
        pm2 = _backend("pm2", command=snapshot)

        assert await _chain(systemd, pm2).read_command() is snapshot

    @pytest.mark.asyncio
    async def test_read_command_prefers_systemd(self):
        first = CommandSnapshot(program_arguments=["/usr/bin/gw"])
        systemd = _backend("systemd", command=first)
        pm2 = _backend("pm2", command=CommandSnapshot(program_arguments=["node"]))

        assert await _chain(systemd, pm2).read_command() is first
        pm2.read_command.assert_not_called()

    @pytest.mark.asyncio
    async def test_read_runtime_systemd_result(self):
        running = RuntimeStatus(status=RuntimeState.RUNNING, pid=10)
        systemd = _backend("systemd", runtime=running)
        pm2 = _backend("pm2")

        assert await _chain(systemd, pm2).read_runtime() is running
        pm2.read_runtime.assert_not_called()

    @pytest.mark.asyncio
    async def test_read_runtime_falls_through_on_missing_unit(self):
        online = RuntimeStatus(status=RuntimeState.RUNNING, state="online", pid=123)
        systemd = _backend("systemd", runtime=RuntimeStatus.missing())
        pm2 = _backend("pm2", runtime=online)

        assert await _chain(systemd, pm2).read_runtime() is online

    @pytest.mark.asyncio
    async def test_read_runtime_neither_available(self):
        systemd = _backend("systemd", available=False)
        pm2 = _backend("pm2", available=False)

        status = await _chain(systemd, pm2).read_runtime()

        assert status.status == RuntimeState.UNKNOWN
        assert status.detail == "Systemd/PM2 unavailable"

    @pytest.mark.asyncio
    async def test_read_runtime_missing_unit_without_pm2(self):
        systemd = _backend("systemd", runtime=RuntimeStatus.missing())
        pm2 = _backend("pm2", available=False)

        status = await _chain(systemd, pm2).read_runtime()

        assert status.status == RuntimeState.STOPPED
        assert status.missing_unit is True

    @pytest.mark.asyncio
    async def test_read_runtime_never_raises(self):
        systemd = _backend("systemd")
        systemd.read_runtime.side_effect = OSError("broken pipe")

        status = await _chain(systemd, _backend("pm2")).read_runtime()

        assert status.status == RuntimeState.UNKNOWN
        assert "broken pipe" in status.detail


# =============================================================================
# Linux Chaining Against Real Backends
# =============================================================================


class TestLinuxEndToEnd:
    """ChainedService over real backends with scripted CLIs."""

    @pytest.fixture
    def service(self, unit_dirs) -> ChainedService:
        return resolve_gateway_service(platform="linux", env={})

    @pytest.mark.asyncio
    async def test_pm2_only_reads_pm2_without_touching_systemd(self, service, fake_commands):
        fake_commands.missing("systemctl")
        fake_commands.on(
            "pm2",
            "jlist",
            stdout=json.dumps(
                [{"name": "gatewayd-gateway", "pid": 77, "pm2_env": {"status": "online"}}]
            ),
        )

        status = await service.read_runtime()

        assert status.status == RuntimeState.RUNNING
        assert status.pid == 77
        assert status.detail is None
        assert not fake_commands.called("systemctl", "--user", "show")

    @pytest.mark.asyncio
    async def test_systemd_missing_unit_falls_back_to_pm2(self, service, fake_commands):
        fake_commands.on("systemctl", "--user", "show", stdout="LoadState=not-found\n")
        fake_commands.on(
            "pm2",
            "jlist",
            stdout=json.dumps(
                [
                    {
                        "name": "gatewayd-gateway",
                        "pid": 123,
                        "pm2_env": {"status": "online", "exit_code": 0},
                    }
                ]
            ),
        )

        status = await service.read_runtime()

        assert status.status == RuntimeState.RUNNING
        assert status.state == "online"

    @pytest.mark.asyncio
    async def test_install_via_pm2_when_systemd_unavailable(self, service, fake_commands):
        fake_commands.on(
            "systemctl", "--user", "status", stderr="Failed to connect to bus", code=1
        )

        await service.install(InstallSpec(program_arguments=["node", "/app/gw.js", "--port", "3000"]))

        assert fake_commands.called(
            "pm2",
            "start",
            "/app/gw.js",
            "--name",
            "gatewayd-gateway",
            "--interpreter",
            "node",
            "--",
            "--port",
            "3000",
        )
        assert not fake_commands.called("systemctl", "--user", "enable")

    @pytest.mark.asyncio
    async def test_uninstall_with_nothing_installed(self, service, fake_commands):
        fake_commands.missing("pm2")
        fake_commands.on("systemctl", "--user", "disable", stderr="does not exist", code=1)

        await service.uninstall()
