"""Abstract base for service management backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum


class RuntimeState(Enum):
    """Normalized service running state."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass
class RuntimeStatus:
    """Service runtime status, normalized across backends.

    ``missing_unit`` means the backend was queried successfully and reported
    no such unit. ``UNKNOWN`` means the backend could not be queried at all;
    ``detail`` then carries the diagnostic text.
    """

    status: RuntimeState
    state: str | None = None
    pid: int | None = None
    last_exit_status: int | None = None
    missing_unit: bool = False
    detail: str | None = None

    def __post_init__(self) -> None:
        if self.missing_unit and self.status != RuntimeState.STOPPED:
            raise ValueError("missing_unit requires a stopped status")

    @classmethod
    def unknown(cls, detail: str | None = None) -> "RuntimeStatus":
        return cls(status=RuntimeState.UNKNOWN, detail=detail or None)

    @classmethod
    def missing(cls, detail: str | None = None) -> "RuntimeStatus":
        return cls(status=RuntimeState.STOPPED, missing_unit=True, detail=detail or None)


@dataclass(frozen=True)
class ServiceDescriptor:
    """Human-facing labels for the platform's service manager."""

    label: str
    loaded_text: str
    not_loaded_text: str


@dataclass
class InstallSpec:
    """What to install: argv plus optional working directory and environment.

    The first element of ``program_arguments`` is the interpreter or
    executable.
    """

    program_arguments: list[str]
    working_directory: str | None = None
    environment: dict[str, str] | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.program_arguments:
            raise ValueError("program_arguments must not be empty")


@dataclass
class CommandSnapshot:
    """The invocation of a currently installed unit."""

    program_arguments: list[str]
    working_directory: str | None = None
    environment: dict[str, str] | None = None
    source_path: str | None = None


class ServiceBackend(ABC):
    """Abstract interface for service management backends.

    Backends wrap a single native CLI:
    - launchctl on macOS
    - systemctl --user on Linux
    - pm2 on Linux (fallback)
    - schtasks on Windows

    Every method spawns fresh subprocesses; nothing is cached between calls.
    """

    def __init__(self, env: Mapping[str, str] | None = None):
        """Initialize the backend.

        Args:
            env: Environment used to derive the service name. Defaults to
                ``os.environ``.
        """
        if env is None:
            import os

            env = os.environ
        self._env = env

    @property
    def env(self) -> Mapping[str, str]:
        return self._env

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (e.g., 'systemd', 'launchd', 'pm2', 'schtasks')."""
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if this backend's tool is usable on the current system."""
        ...

    @abstractmethod
    async def install(self, spec: InstallSpec) -> None:
        """Replace any existing unit with one for ``spec``, start and persist it.

        Raises:
            ToolUnavailableError: If the backend tool is missing.
            InstallError: If the start or persist step fails.
        """
        ...

    @abstractmethod
    async def uninstall(self) -> None:
        """Remove the unit. A unit that does not exist is not an error."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the service.

        Raises:
            CommandError: If the stop command fails.
        """
        ...

    @abstractmethod
    async def restart(self) -> None:
        """Restart the service.

        Raises:
            CommandError: If the restart command fails.
        """
        ...

    @abstractmethod
    async def is_loaded(self) -> bool:
        """Check whether the unit is registered with the manager."""
        ...

    @abstractmethod
    async def read_command(self) -> CommandSnapshot | None:
        """Read back the installed invocation, or None if there is none."""
        ...

    @abstractmethod
    async def read_runtime(self) -> RuntimeStatus:
        """Get current runtime status. Never raises."""
        ...
