"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from gatewayd.cli.commands import gateway, proxy

app = typer.Typer(
    name="gatewayd",
    help="gatewayd - run the gateway under the OS service manager",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration and set up logging before any command runs."""
    from gatewayd.cli.console import error
    from gatewayd.config import ConfigError, load_config
    from gatewayd.logging import configure_logging

    try:
        loaded = load_config(config)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    level = "DEBUG" if verbose else loaded.log_level
    configure_logging(level, use_rich=True)
    ctx.obj = loaded


gateway.register(app)
proxy.register(app)


if __name__ == "__main__":
    app()
