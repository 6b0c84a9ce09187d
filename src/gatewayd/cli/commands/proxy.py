"""Outbound proxy commands."""

import asyncio
from typing import Annotated

import typer

from gatewayd.cli.console import dim, error, success


def register(app: typer.Typer) -> None:
    """Register proxy subcommands."""
    proxy_app = typer.Typer(help="Inspect the outbound HTTP proxy", no_args_is_help=True)
    app.add_typer(proxy_app, name="proxy")

    @proxy_app.command("show")
    def proxy_show(ctx: typer.Context) -> None:
        """Show which proxy the gateway service would inherit."""
        from gatewayd.config import GatewaydConfig
        from gatewayd.proxy import resolve_proxy_url

        config = ctx.obj if isinstance(ctx.obj, GatewaydConfig) else GatewaydConfig()
        url = resolve_proxy_url(config.proxy.url)
        if url:
            success(url)
        else:
            dim("No proxy configured")

    @proxy_app.command("check")
    def proxy_check(
        ctx: typer.Context,
        url: Annotated[str, typer.Argument(help="URL to fetch through the proxy")],
    ) -> None:
        """Fetch a URL through the configured proxy."""
        import httpx

        from gatewayd.config import GatewaydConfig
        from gatewayd.proxy import (
            aclose,
            get_http_client,
            install_proxy,
            resolve_proxy_url,
        )

        config = ctx.obj if isinstance(ctx.obj, GatewaydConfig) else GatewaydConfig()
        proxy_url = resolve_proxy_url(config.proxy.url)

        async def fetch() -> int:
            if proxy_url:
                await install_proxy(proxy_url)
            try:
                response = await get_http_client().get(url)
                return response.status_code
            finally:
                await aclose()

        try:
            status_code = asyncio.run(fetch())
        except httpx.HTTPError as e:
            error(f"Request failed: {e}")
            raise typer.Exit(1) from None

        via = f"via {proxy_url}" if proxy_url else "direct"
        success(f"{url} -> {status_code} ({via})")
