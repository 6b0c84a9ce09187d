"""Windows Scheduled Task backend.

The task runs a ``.cmd`` launcher script at logon; the script carries the
working directory, environment and command line, so it doubles as the
source for ``read_command``.
"""

import logging
from pathlib import Path

from gatewayd.config.paths import get_launcher_script_path
from gatewayd.errors import CommandError, InstallError, ToolUnavailableError
from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeState,
    RuntimeStatus,
    ServiceBackend,
)
from gatewayd.service.exec import ExecResult, run_command, step_failed
from gatewayd.service.naming import resolve_task_name

logger = logging.getLogger(__name__)

_MISSING_MARKERS = ("cannot find", "does not exist")


async def _run_schtasks(*args: str) -> ExecResult:
    return await run_command("schtasks", *args)


def _escape_percent(value: str) -> str:
    # Batch files expand %VAR%, so a literal % is written as %%
    return value.replace("%", "%%")


def _unescape_percent(value: str) -> str:
    return value.replace("%%", "%")


def _quote_cmd_arg(arg: str) -> str:
    arg = _escape_percent(arg)
    if arg and not any(c in arg for c in ' \t"&|<>^'):
        return arg
    return '"' + arg.replace('"', '""') + '"'


def split_command_line(line: str) -> list[str]:
    """Split a cmd.exe command line, honoring double quotes."""
    args: list[str] = []
    current: list[str] = []
    in_quotes = False
    has_token = False
    i = 0
    while i < len(line):
        c = line[i]
        if c == '"':
            if in_quotes and line[i + 1 : i + 2] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
            has_token = True
        elif c in " \t" and not in_quotes:
            if has_token:
                args.append("".join(current))
                current, has_token = [], False
        else:
            current.append(c)
            has_token = True
        i += 1
    if has_token:
        args.append("".join(current))
    return args


def render_launcher_script(spec: InstallSpec) -> str:
    """Render the ``.cmd`` launcher for an install spec."""
    lines = ["@echo off"]
    if spec.description:
        lines.append(f"rem {spec.description}")
    if spec.working_directory:
        lines.append(f'cd /d "{_escape_percent(spec.working_directory)}"')
    for key, value in (spec.environment or {}).items():
        # Quoting the whole assignment keeps & | < > ^ in the value literal
        lines.append(f'set "{key}={_escape_percent(value)}"')
    lines.append(" ".join(_quote_cmd_arg(a) for a in spec.program_arguments))
    return "\r\n".join(lines) + "\r\n"


def parse_launcher_script(content: str) -> CommandSnapshot | None:
    """Parse a launcher script written by ``render_launcher_script``."""
    working_directory: str | None = None
    environment: dict[str, str] = {}
    command: list[str] | None = None

    for raw_line in content.splitlines():
        line = raw_line.strip()
        lower = line.lower()
        if not line or lower.startswith(("@echo", "rem ", "::")) or lower == "rem":
            continue
        if lower.startswith("cd /d "):
            working_directory = _unescape_percent(line[6:].strip().strip('"'))
        elif lower.startswith("set ") and "=" in line:
            assignment = line[4:].strip()
            if assignment.startswith('"') and assignment.endswith('"'):
                assignment = assignment[1:-1]
            key, value = assignment.split("=", 1)
            environment[key.strip()] = _unescape_percent(value)
        else:
            command = [_unescape_percent(a) for a in split_command_line(line)]

    if not command:
        return None
    return CommandSnapshot(
        program_arguments=command,
        working_directory=working_directory,
        environment=environment or None,
    )


def _parse_int(value: str) -> int | None:
    try:
        return int(value, 0)
    except ValueError:
        return None


def parse_query_output(stdout: str) -> RuntimeStatus:
    """Normalize ``schtasks /Query /V /FO LIST`` output."""
    fields: dict[str, str] = {}
    for line in stdout.splitlines():
        if ":" in line:
            key, value = line.split(":", 1)
            fields.setdefault(key.strip().lower(), value.strip())

    native = fields.get("status")
    if not native:
        return RuntimeStatus.unknown("schtasks query returned no status")

    last_result = fields.get("last result")
    return RuntimeStatus(
        status=RuntimeState.RUNNING if native.lower() == "running" else RuntimeState.STOPPED,
        state=native,
        last_exit_status=_parse_int(last_result) if last_result else None,
    )


class ScheduledTaskBackend(ServiceBackend):
    """Windows Scheduled Task backend using schtasks."""

    @property
    def name(self) -> str:
        return "schtasks"

    @property
    def task_name(self) -> str:
        return resolve_task_name(self.env)

    @property
    def script_path(self) -> Path:
        return get_launcher_script_path(self.task_name)

    async def is_available(self) -> bool:
        result = await _run_schtasks("/Query")
        return result.ok

    async def _require_available(self) -> None:
        if not await self.is_available():
            raise ToolUnavailableError("schtasks not available")

    async def install(self, spec: InstallSpec) -> None:
        """Write the launcher script and register a logon task for it."""
        await self._require_available()
        task = self.task_name
        await _run_schtasks("/Delete", "/F", "/TN", task)

        try:
            self.script_path.parent.mkdir(parents=True, exist_ok=True)
            self.script_path.write_text(render_launcher_script(spec), newline="")
        except OSError as e:
            raise InstallError(f"Failed to write {self.script_path}: {e}") from e

        create = await _run_schtasks(
            "/Create",
            "/F",
            "/SC",
            "ONLOGON",
            "/RL",
            "LIMITED",
            "/TN",
            task,
            "/TR",
            f'"{self.script_path}"',
        )
        if not create.ok:
            raise InstallError(step_failed("schtasks create", create))

        run = await _run_schtasks("/Run", "/TN", task)
        if not run.ok:
            raise InstallError(step_failed("schtasks run", run))

        logger.info("Installed Scheduled Task %s", task)

    async def uninstall(self) -> None:
        await self._require_available()
        task = self.task_name
        await _run_schtasks("/End", "/TN", task)
        await _run_schtasks("/Delete", "/F", "/TN", task)
        if self.script_path.exists():
            self.script_path.unlink()
        logger.info("Removed Scheduled Task %s", task)

    async def stop(self) -> None:
        await self._require_available()
        result = await _run_schtasks("/End", "/TN", self.task_name)
        if not result.ok:
            raise CommandError(step_failed("schtasks end", result))
        logger.info("Stopped Scheduled Task %s", self.task_name)

    async def restart(self) -> None:
        await self._require_available()
        await _run_schtasks("/End", "/TN", self.task_name)
        result = await _run_schtasks("/Run", "/TN", self.task_name)
        if not result.ok:
            raise CommandError(step_failed("schtasks run", result))
        logger.info("Restarted Scheduled Task %s", self.task_name)

    async def is_loaded(self) -> bool:
        result = await _run_schtasks("/Query", "/TN", self.task_name)
        return result.ok

    async def read_runtime(self) -> RuntimeStatus:
        if not await self.is_available():
            return RuntimeStatus.unknown("schtasks not available")

        result = await _run_schtasks("/Query", "/TN", self.task_name, "/V", "/FO", "LIST")
        if not result.ok:
            detail = result.detail
            if any(marker in detail.lower() for marker in _MISSING_MARKERS):
                return RuntimeStatus.missing(detail)
            return RuntimeStatus.unknown(detail or "schtasks query failed")
        return parse_query_output(result.stdout)

    async def read_command(self) -> CommandSnapshot | None:
        try:
            content = self.script_path.read_text()
        except OSError:
            return None
        snapshot = parse_launcher_script(content)
        if snapshot is not None:
            snapshot.source_path = str(self.script_path)
        return snapshot
