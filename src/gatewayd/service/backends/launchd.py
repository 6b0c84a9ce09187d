"""Launchd user agent backend for macOS."""

import logging
import os
import plistlib
import re
import shutil
from pathlib import Path

from gatewayd.config.paths import get_gateway_log_path, get_launch_agents_dir
from gatewayd.errors import CommandError, InstallError
from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeState,
    RuntimeStatus,
    ServiceBackend,
)
from gatewayd.service.exec import ExecResult, run_command, step_failed
from gatewayd.service.naming import resolve_launchd_label

logger = logging.getLogger(__name__)

_MISSING_MARKERS = ("could not find service", "not found", "no such process")

_PRINT_FIELD = re.compile(r"^\s*(state|pid|last exit code)\s*=\s*(.+?)\s*$")


async def _run_launchctl(*args: str) -> ExecResult:
    """Run launchctl command."""
    return await run_command("launchctl", *args)


def render_plist(label: str, spec: InstallSpec) -> bytes:
    """Render a launch agent plist for an install spec."""
    log_path = str(get_gateway_log_path())
    plist: dict = {
        "Label": label,
        "ProgramArguments": list(spec.program_arguments),
        "RunAtLoad": True,
        "KeepAlive": True,
        "StandardOutPath": log_path,
        "StandardErrorPath": log_path,
    }
    if spec.description:
        plist["Comment"] = spec.description
    if spec.working_directory:
        plist["WorkingDirectory"] = spec.working_directory
    if spec.environment:
        plist["EnvironmentVariables"] = dict(spec.environment)
    return plistlib.dumps(plist)


def parse_print_output(stdout: str) -> RuntimeStatus:
    """Normalize ``launchctl print`` output.

    Only top-level fields matter; nested blocks repeat keys like ``state``
    for endpoints, so the first occurrence wins.
    """
    fields: dict[str, str] = {}
    for line in stdout.splitlines():
        match = _PRINT_FIELD.match(line)
        if match and match.group(1) not in fields:
            fields[match.group(1)] = match.group(2)

    state = fields.get("state")
    pid_str = fields.get("pid", "")
    exit_str = fields.get("last exit code", "")

    pid = int(pid_str) if pid_str.isdigit() and pid_str != "0" else None
    # "78: EX_CONFIG" -> 78
    exit_match = re.match(r"-?\d+", exit_str)
    last_exit = int(exit_match.group(0)) if exit_match else None

    if state is None and pid is None:
        return RuntimeStatus.unknown("launchctl print returned no state")

    running = state == "running" or (state is None and pid is not None)
    return RuntimeStatus(
        status=RuntimeState.RUNNING if running else RuntimeState.STOPPED,
        state=state,
        pid=pid,
        last_exit_status=last_exit,
    )


class LaunchdBackend(ServiceBackend):
    """Launchd user agent backend for macOS.

    Uses launchctl in the ``gui/<uid>`` domain.
    Plist file stored in ~/Library/LaunchAgents/<label>.plist
    """

    @property
    def name(self) -> str:
        return "launchd"

    @property
    def label(self) -> str:
        return resolve_launchd_label(self.env)

    @property
    def plist_path(self) -> Path:
        """Path to launchd plist file."""
        return get_launch_agents_dir() / f"{self.label}.plist"

    @property
    def domain(self) -> str:
        return f"gui/{os.getuid()}"

    @property
    def service_target(self) -> str:
        return f"{self.domain}/{self.label}"

    async def is_available(self) -> bool:
        return shutil.which("launchctl") is not None

    async def install(self, spec: InstallSpec) -> None:
        """Write the plist and bootstrap it into the user domain."""
        await _run_launchctl("bootout", self.service_target)

        try:
            get_gateway_log_path().parent.mkdir(parents=True, exist_ok=True)
            self.plist_path.parent.mkdir(parents=True, exist_ok=True)
            self.plist_path.write_bytes(render_plist(self.label, spec))
        except OSError as e:
            raise InstallError(f"Failed to write {self.plist_path}: {e}") from e

        # A previously disabled label refuses to bootstrap
        await _run_launchctl("enable", self.service_target)

        bootstrap = await _run_launchctl("bootstrap", self.domain, str(self.plist_path))
        if not bootstrap.ok:
            raise InstallError(step_failed("launchctl bootstrap", bootstrap))

        kickstart = await _run_launchctl("kickstart", "-k", self.service_target)
        if not kickstart.ok:
            raise InstallError(step_failed("launchctl kickstart", kickstart))

        logger.info("Installed LaunchAgent %s", self.plist_path)

    async def uninstall(self) -> None:
        """Boot out the agent and remove its plist."""
        await _run_launchctl("bootout", self.service_target)
        if self.plist_path.exists():
            self.plist_path.unlink()
            logger.info("Removed LaunchAgent %s", self.plist_path)

    async def stop(self) -> None:
        result = await _run_launchctl("bootout", self.service_target)
        if not result.ok:
            raise CommandError(step_failed("launchctl bootout", result))
        logger.info("Stopped LaunchAgent %s", self.label)

    async def restart(self) -> None:
        result = await _run_launchctl("kickstart", "-k", self.service_target)
        if not result.ok:
            raise CommandError(step_failed("launchctl kickstart", result))
        logger.info("Restarted LaunchAgent %s", self.label)

    async def is_loaded(self) -> bool:
        result = await _run_launchctl("print", self.service_target)
        return result.ok

    async def read_runtime(self) -> RuntimeStatus:
        result = await _run_launchctl("print", self.service_target)
        if not result.ok:
            detail = result.detail
            if any(marker in detail.lower() for marker in _MISSING_MARKERS):
                return RuntimeStatus.missing(detail)
            return RuntimeStatus.unknown(detail or "launchctl print failed")
        return parse_print_output(result.stdout)

    async def read_command(self) -> CommandSnapshot | None:
        try:
            with self.plist_path.open("rb") as f:
                plist = plistlib.load(f)
        except (OSError, plistlib.InvalidFileException, ValueError):
            return None

        args = plist.get("ProgramArguments") if isinstance(plist, dict) else None
        if not isinstance(args, list) or not args:
            return None

        env = plist.get("EnvironmentVariables")
        working_directory = plist.get("WorkingDirectory")
        return CommandSnapshot(
            program_arguments=[str(a) for a in args],
            working_directory=working_directory if isinstance(working_directory, str) else None,
            environment={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else None,
            source_path=str(self.plist_path),
        )
