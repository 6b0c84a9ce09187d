"""CLI command modules."""

from gatewayd.cli.commands import gateway, proxy

__all__ = [
    "gateway",
    "proxy",
]
