"""Systemd user service backend for Linux."""

import logging
import shlex
from pathlib import Path

from gatewayd.config.paths import get_systemd_user_dir
from gatewayd.errors import CommandError, InstallError
from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeState,
    RuntimeStatus,
    ServiceBackend,
)
from gatewayd.service.exec import ExecResult, run_command, step_failed
from gatewayd.service.naming import resolve_systemd_unit

logger = logging.getLogger(__name__)

_MISSING_UNIT_MARKERS = ("not found", "could not be found", "not-found")

_SHOW_PROPERTIES = "LoadState,ActiveState,SubState,MainPID,ExecMainStatus"


async def _run_systemctl(*args: str) -> ExecResult:
    """Run systemctl --user command."""
    return await run_command("systemctl", "--user", *args)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _escape_specifiers(value: str) -> str:
    # % starts a unit specifier and must be doubled even inside quotes
    return value.replace("%", "%%")


def _unescape_specifiers(value: str) -> str:
    return value.replace("%%", "%")


def _quote_exec_arg(arg: str) -> str:
    # ExecStart also expands $VAR, so a literal $ is written as $$
    arg = _escape_specifiers(arg).replace("$", "$$")
    if arg and not any(c in arg for c in ' \t"\\'):
        return arg
    return _quote(arg)


def render_unit(spec: InstallSpec) -> str:
    """Render a systemd unit file for an install spec."""
    lines = [
        "[Unit]",
        f"Description={spec.description or 'gatewayd gateway'}",
        "After=network-online.target",
        "Wants=network-online.target",
        "",
        "[Service]",
        "ExecStart=" + " ".join(_quote_exec_arg(a) for a in spec.program_arguments),
        "Restart=always",
        "RestartSec=5",
    ]
    if spec.working_directory:
        lines.append(
            f"WorkingDirectory={_escape_specifiers(spec.working_directory)}"
        )
    for key, value in (spec.environment or {}).items():
        assignment = _escape_specifiers(f"{key}={value}")
        lines.append(f"Environment={_quote(assignment)}")
    lines += ["", "[Install]", "WantedBy=default.target", ""]
    return "\n".join(lines)


def _unquote_value(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def parse_unit(content: str) -> CommandSnapshot | None:
    """Parse ExecStart, WorkingDirectory and Environment from a unit file."""
    exec_start: list[str] | None = None
    working_directory: str | None = None
    environment: dict[str, str] = {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", ";")) or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key == "ExecStart":
            try:
                exec_start = [
                    _unescape_specifiers(a).replace("$$", "$")
                    for a in shlex.split(value)
                ]
            except ValueError:
                return None
        elif key == "WorkingDirectory":
            working_directory = _unescape_specifiers(value.strip())
        elif key == "Environment":
            assignment = _unescape_specifiers(_unquote_value(value))
            if "=" in assignment:
                env_key, env_value = assignment.split("=", 1)
                environment[env_key] = env_value

    if not exec_start:
        return None
    return CommandSnapshot(
        program_arguments=exec_start,
        working_directory=working_directory,
        environment=environment or None,
    )


def parse_show_output(stdout: str) -> RuntimeStatus:
    """Normalize ``systemctl show`` key=value output."""
    props: dict[str, str] = {}
    for line in stdout.strip().splitlines():
        if "=" in line:
            key, value = line.split("=", 1)
            props[key.strip()] = value.strip()

    if props.get("LoadState") == "not-found":
        return RuntimeStatus.missing()

    active_state = props.get("ActiveState", "")
    if active_state == "active":
        status = RuntimeState.RUNNING
    elif active_state:
        status = RuntimeState.STOPPED
    else:
        status = RuntimeState.UNKNOWN

    pid_str = props.get("MainPID", "")
    exit_str = props.get("ExecMainStatus", "")

    return RuntimeStatus(
        status=status,
        state=props.get("SubState") or active_state or None,
        pid=int(pid_str) if pid_str.isdigit() and pid_str != "0" else None,
        last_exit_status=int(exit_str) if exit_str.isdigit() else None,
        detail=None if active_state else "systemctl show returned no ActiveState",
    )


class SystemdBackend(ServiceBackend):
    """Systemd user service backend for Linux.

    Uses systemctl --user for service management.
    Unit file stored in ~/.config/systemd/user/<service>.service
    """

    @property
    def name(self) -> str:
        return "systemd"

    @property
    def unit_name(self) -> str:
        return resolve_systemd_unit(self.env)

    @property
    def unit_path(self) -> Path:
        """Path to user service unit file."""
        return get_systemd_user_dir() / self.unit_name

    async def is_available(self) -> bool:
        """Check if the systemd user manager is reachable."""
        result = await _run_systemctl("status")
        if result.ok:
            return True
        logger.debug("systemd user services unavailable: %s", result.detail)
        return False

    async def install(self, spec: InstallSpec) -> None:
        """Write the unit file, then enable and start it."""
        unit = self.unit_name
        await _run_systemctl("disable", "--now", unit)

        try:
            self.unit_path.parent.mkdir(parents=True, exist_ok=True)
            self.unit_path.write_text(render_unit(spec))
        except OSError as e:
            raise InstallError(f"Failed to write {self.unit_path}: {e}") from e

        reload = await _run_systemctl("daemon-reload")
        if not reload.ok:
            raise InstallError(step_failed("systemctl daemon-reload", reload))

        enable = await _run_systemctl("enable", "--now", unit)
        if not enable.ok:
            raise InstallError(step_failed("systemctl enable", enable))

        logger.info("Installed systemd service %s", self.unit_path)

    async def uninstall(self) -> None:
        """Stop, disable, and remove the systemd service."""
        await _run_systemctl("disable", "--now", self.unit_name)
        if self.unit_path.exists():
            self.unit_path.unlink()
            logger.info("Removed systemd service %s", self.unit_path)
        await _run_systemctl("daemon-reload")

    async def stop(self) -> None:
        result = await _run_systemctl("stop", self.unit_name)
        if not result.ok:
            raise CommandError(step_failed("systemctl stop", result))
        logger.info("Stopped systemd service %s", self.unit_name)

    async def restart(self) -> None:
        result = await _run_systemctl("restart", self.unit_name)
        if not result.ok:
            raise CommandError(step_failed("systemctl restart", result))
        logger.info("Restarted systemd service %s", self.unit_name)

    async def is_loaded(self) -> bool:
        result = await _run_systemctl("is-enabled", self.unit_name)
        return result.ok

    async def read_runtime(self) -> RuntimeStatus:
        """Get service status from systemctl show."""
        result = await _run_systemctl(
            "show", self.unit_name, "--no-pager", "--property", _SHOW_PROPERTIES
        )
        if not result.ok:
            detail = result.detail
            if any(marker in detail.lower() for marker in _MISSING_UNIT_MARKERS):
                return RuntimeStatus.missing(detail)
            return RuntimeStatus.unknown(detail or "systemctl show failed")
        return parse_show_output(result.stdout)

    async def read_command(self) -> CommandSnapshot | None:
        try:
            content = self.unit_path.read_text()
        except OSError:
            return None
        snapshot = parse_unit(content)
        if snapshot is not None:
            snapshot.source_path = str(self.unit_path)
        return snapshot
