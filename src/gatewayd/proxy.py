"""Process-wide proxy-aware HTTP client.

Outbound HTTP goes through ``get_http_client()``. Installing a proxy swaps
the client behind it, so call sites never pass proxy settings themselves.
"""

import logging
import os
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

PROXY_ENV_VARS = ("HTTPS_PROXY", "HTTP_PROXY", "https_proxy", "http_proxy")


def resolve_proxy_url(config_proxy: str | None = None) -> str | None:
    """Resolve the proxy URL from config, then environment variables."""
    if config_proxy and config_proxy.strip():
        return config_proxy.strip()
    for name in PROXY_ENV_VARS:
        if value := os.environ.get(name):
            return value
    return None


@dataclass
class _Installed:
    url: str
    client: httpx.AsyncClient


class ProxyRegistry:
    """Holds the installed proxy client and a lazily created direct client."""

    def __init__(self) -> None:
        self._installed: _Installed | None = None
        self._direct: httpx.AsyncClient | None = None

    @property
    def current_url(self) -> str | None:
        return self._installed.url if self._installed else None

    def is_installed(self) -> bool:
        return self._installed is not None

    async def install(self, url: str) -> None:
        """Route outbound HTTP through ``url``.

        Installing the same URL again is a no-op; a different URL replaces
        the current proxy client.
        """
        if self._installed is not None:
            if self._installed.url == url:
                return
            await self.uninstall()

        # trust_env=False so ambient *_PROXY variables can't override the choice
        client = httpx.AsyncClient(proxy=url, trust_env=False)
        self._installed = _Installed(url=url, client=client)
        logger.info("Installed HTTP proxy %s", url)

    async def uninstall(self) -> None:
        """Close the proxy client and return to direct connections."""
        if self._installed is None:
            return
        installed, self._installed = self._installed, None
        await installed.client.aclose()
        logger.info("Removed HTTP proxy %s", installed.url)

    def client(self) -> httpx.AsyncClient:
        if self._installed is not None:
            return self._installed.client
        if self._direct is None or self._direct.is_closed:
            self._direct = httpx.AsyncClient(trust_env=False)
        return self._direct

    async def aclose(self) -> None:
        await self.uninstall()
        if self._direct is not None:
            await self._direct.aclose()
            self._direct = None


# Module-level registry instance
_registry = ProxyRegistry()


async def install_proxy(url: str) -> None:
    await _registry.install(url)


async def uninstall_proxy() -> None:
    await _registry.uninstall()


def current_proxy_url() -> str | None:
    return _registry.current_url


def is_proxy_installed() -> bool:
    return _registry.is_installed()


def get_http_client() -> httpx.AsyncClient:
    """Get the client all outbound HTTP should use."""
    return _registry.client()


async def aclose() -> None:
    """Close the proxy client and the shared direct client."""
    await _registry.aclose()
