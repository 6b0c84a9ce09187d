"""Gateway service commands."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, TypeVar

import typer

from gatewayd.cli.console import console, create_table, dim, error, success, warning

T = TypeVar("T")


def _config(ctx: typer.Context):
    from gatewayd.config import GatewaydConfig

    config = ctx.obj
    if not isinstance(config, GatewaydConfig):
        config = GatewaydConfig()
    return config


def _run_service(ctx: typer.Context, action: Callable[..., Awaitable[T]]) -> T:
    """Resolve the gateway service and run one async action against it.

    Service errors are printed verbatim and exit with status 1.
    """
    from gatewayd.errors import GatewayServiceError
    from gatewayd.service import resolve_gateway_service

    config = _config(ctx)
    try:
        service = resolve_gateway_service(env=config.service_env())
        return asyncio.run(action(service))
    except GatewayServiceError as e:
        error(str(e))
        raise typer.Exit(1) from None


def _build_install_spec(ctx: typer.Context, command: list[str] | None):
    from gatewayd.config import ConfigError
    from gatewayd.proxy import PROXY_ENV_VARS, resolve_proxy_url
    from gatewayd.service import InstallSpec

    config = _config(ctx)
    if command:
        gateway = config.gateway
        spec = InstallSpec(
            program_arguments=list(command),
            working_directory=gateway.working_directory,
            environment=dict(gateway.environment) or None,
            description=gateway.description,
        )
    else:
        try:
            spec = config.gateway.to_install_spec()
        except ConfigError as e:
            error(str(e))
            dim("Pass the command after --, e.g. gatewayd gateway install -- node gw.js")
            raise typer.Exit(1) from None

    # The managed process inherits the proxy it would otherwise lose
    environment = dict(spec.environment or {})
    proxy_url = resolve_proxy_url(config.proxy.url)
    if proxy_url and not any(name in environment for name in PROXY_ENV_VARS):
        environment["HTTPS_PROXY"] = proxy_url
        environment["HTTP_PROXY"] = proxy_url
    spec.environment = environment or None
    return spec


def register(app: typer.Typer) -> None:
    """Register gateway subcommands."""
    gateway_app = typer.Typer(
        help="Manage the gateway background service", no_args_is_help=True
    )
    app.add_typer(gateway_app, name="gateway")

    @gateway_app.callback()
    def gateway_callback(
        ctx: typer.Context,
        profile: Annotated[
            str | None,
            typer.Option(
                "--profile",
                "-p",
                help="Profile whose service to manage",
            ),
        ] = None,
    ) -> None:
        """Manage the gateway background service."""
        from gatewayd.service.naming import normalize_profile

        if profile is not None:
            ctx.obj = _config(ctx).model_copy(
                update={"profile": normalize_profile(profile)}
            )

    @gateway_app.command("install")
    def gateway_install(
        ctx: typer.Context,
        command: Annotated[
            list[str] | None,
            typer.Argument(help="Gateway command line (after --)"),
        ] = None,
    ) -> None:
        """Install the gateway as an auto-starting service."""
        spec = _build_install_spec(ctx, command)

        async def install(service):
            await service.install(spec)
            return service.label

        label = _run_service(ctx, install)
        success(f"Installed gateway service ({label})")

    @gateway_app.command("uninstall")
    def gateway_uninstall(ctx: typer.Context) -> None:
        """Remove the gateway service."""

        async def uninstall(service):
            await service.uninstall()

        _run_service(ctx, uninstall)
        success("Gateway service uninstalled")

    @gateway_app.command("stop")
    def gateway_stop(ctx: typer.Context) -> None:
        """Stop the gateway service."""

        async def stop(service):
            await service.stop()

        _run_service(ctx, stop)
        success("Gateway service stopped")

    @gateway_app.command("restart")
    def gateway_restart(ctx: typer.Context) -> None:
        """Restart the gateway service."""

        async def restart(service):
            await service.restart()

        _run_service(ctx, restart)
        success("Gateway service restarted")

    @gateway_app.command("status")
    def gateway_status(ctx: typer.Context) -> None:
        """Show gateway service status."""
        from gatewayd.config import ConfigError
        from gatewayd.service import RuntimeState

        async def collect(service):
            loaded = await service.is_loaded()
            runtime = await service.read_runtime()
            command = await service.read_command()
            return service, loaded, runtime, command

        service, loaded, runtime, command = _run_service(ctx, collect)

        table = create_table(
            "Gateway Service Status",
            [
                ("Property", "cyan"),
                ("Value", ""),
            ],
        )

        state_colors = {
            RuntimeState.RUNNING: "green",
            RuntimeState.STOPPED: "yellow",
            RuntimeState.UNKNOWN: "dim",
        }
        state_color = state_colors.get(runtime.status, "white")
        table.add_row("Service", service.label)
        table.add_row(
            "Registration", service.loaded_text if loaded else service.not_loaded_text
        )
        table.add_row("State", f"[{state_color}]{runtime.status.value}[/{state_color}]")

        if runtime.state:
            table.add_row("Native state", runtime.state)
        if runtime.pid:
            table.add_row("PID", str(runtime.pid))
        if runtime.last_exit_status is not None:
            table.add_row("Last exit", str(runtime.last_exit_status))
        if runtime.missing_unit:
            table.add_row("Unit", "not installed")
        if runtime.detail:
            table.add_row("Detail", runtime.detail)

        if command:
            table.add_row("Command", " ".join(command.program_arguments))
            if command.working_directory:
                table.add_row("Working dir", command.working_directory)
            if command.source_path:
                table.add_row("Source", command.source_path)

        console.print(table)

        if command:
            try:
                expected = _config(ctx).gateway.to_install_spec()
            except ConfigError:
                return
            if expected.program_arguments != command.program_arguments:
                warning("Installed command differs from configuration")
                dim(f"Configured: {' '.join(expected.program_arguments)}")
                dim("Run 'gatewayd gateway install' to update the service")
