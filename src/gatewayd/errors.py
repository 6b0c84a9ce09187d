"""Exception types raised by gateway service management."""


class GatewayServiceError(Exception):
    """Base class for gateway service failures."""


class ToolUnavailableError(GatewayServiceError):
    """The backend's command-line tool is not installed or not reachable."""


class InstallError(GatewayServiceError):
    """A start or persist step of an install returned a nonzero exit status."""


class CommandError(GatewayServiceError):
    """A stop or restart command returned a nonzero exit status."""


class UnsupportedPlatformError(GatewayServiceError):
    """No service backend exists for the detected platform."""

    def __init__(self, platform: str):
        super().__init__(f"Gateway service install not supported on {platform}")
        self.platform = platform
