"""PM2 process manager backend for Linux.

Used when systemd user services are unavailable (containers, WSL,
minimal installs). Status comes from ``pm2 jlist``, matched by process
name since PIDs and list indices change across restarts.
"""

import json
import logging
from typing import Any

from gatewayd.errors import CommandError, InstallError, ToolUnavailableError
from gatewayd.service.base import (
    CommandSnapshot,
    InstallSpec,
    RuntimeState,
    RuntimeStatus,
    ServiceBackend,
)
from gatewayd.service.exec import ExecResult, run_command, step_failed
from gatewayd.service.naming import resolve_service_name

logger = logging.getLogger(__name__)

PM2_UNAVAILABLE_MESSAGE = (
    "pm2 not available; please install it globally with `npm install -g pm2`"
)


async def _run_pm2(*args: str, env: dict[str, str] | None = None) -> ExecResult:
    return await run_command("pm2", *args, env=env)


def build_start_args(service_name: str, spec: InstallSpec) -> list[str]:
    """Build the ``pm2 start`` arguments for an install spec.

    PM2 distinguishes interpreter and script, so the first two program
    arguments are required.
    """
    if len(spec.program_arguments) < 2:
        raise InstallError(
            "pm2 install requires an interpreter and a script in program_arguments"
        )
    interpreter, script, *rest = spec.program_arguments
    args = ["start", script, "--name", service_name, "--interpreter", interpreter]
    if spec.working_directory:
        args += ["--cwd", spec.working_directory]
    return [*args, "--", *rest]


def _find_process(raw: str, service_name: str) -> dict[str, Any] | None:
    processes = json.loads(raw)
    if not isinstance(processes, list):
        raise ValueError("pm2 jlist did not return a list")
    for process in processes:
        if isinstance(process, dict) and process.get("name") == service_name:
            return process
    return None


def parse_pm2_runtime(raw: str, service_name: str) -> RuntimeStatus:
    """Normalize ``pm2 jlist`` output for one named process."""
    try:
        process = _find_process(raw, service_name)
    except (json.JSONDecodeError, ValueError) as e:
        return RuntimeStatus.unknown(f"Failed to parse pm2 jlist: {e}")

    if process is None:
        return RuntimeStatus.missing()

    pm2_env = process.get("pm2_env") or {}
    if not isinstance(pm2_env, dict):
        return RuntimeStatus.unknown("pm2 jlist entry has no pm2_env object")
    native = pm2_env.get("status")
    pid = process.get("pid")
    exit_code = pm2_env.get("exit_code")

    return RuntimeStatus(
        status=RuntimeState.RUNNING if native == "online" else RuntimeState.STOPPED,
        state=native if isinstance(native, str) else None,
        pid=pid if isinstance(pid, int) and pid > 0 else None,
        last_exit_status=exit_code if isinstance(exit_code, int) else None,
    )


class Pm2Backend(ServiceBackend):
    """PM2 backend.

    Installs the gateway as a named PM2 process and persists the process
    list with ``pm2 save`` so it is resurrected on boot.
    """

    @property
    def name(self) -> str:
        return "pm2"

    @property
    def service_name(self) -> str:
        return resolve_service_name(self.env)

    async def is_available(self) -> bool:
        """Check that the pm2 binary runs."""
        result = await _run_pm2("--version")
        return result.ok

    async def _require_available(self) -> None:
        if not await self.is_available():
            raise ToolUnavailableError(PM2_UNAVAILABLE_MESSAGE)

    async def install(self, spec: InstallSpec) -> None:
        """Start the gateway under PM2 and save the process list."""
        await self._require_available()
        service_name = self.service_name
        start_args = build_start_args(service_name, spec)

        await _run_pm2("delete", service_name)

        start = await _run_pm2(*start_args, env=spec.environment)
        if not start.ok:
            raise InstallError(step_failed("pm2 start", start))

        save = await _run_pm2("save")
        if not save.ok:
            raise InstallError(step_failed("pm2 save", save))

        logger.info("Installed PM2 service %s", service_name)

    async def uninstall(self) -> None:
        """Delete the PM2 process and save the process list."""
        await self._require_available()
        service_name = self.service_name
        await _run_pm2("delete", service_name)
        await _run_pm2("save")
        logger.info("Removed PM2 service %s", service_name)

    async def stop(self) -> None:
        await self._require_available()
        result = await _run_pm2("stop", self.service_name)
        if not result.ok:
            raise CommandError(step_failed("pm2 stop", result))
        logger.info("Stopped PM2 service %s", self.service_name)

    async def restart(self) -> None:
        await self._require_available()
        result = await _run_pm2("restart", self.service_name)
        if not result.ok:
            raise CommandError(step_failed("pm2 restart", result))
        logger.info("Restarted PM2 service %s", self.service_name)

    async def is_loaded(self) -> bool:
        """Check ``pm2 describe``; it exits nonzero for unknown names."""
        if not await self.is_available():
            return False
        result = await _run_pm2("describe", self.service_name)
        return result.ok

    async def read_runtime(self) -> RuntimeStatus:
        if not await self.is_available():
            return RuntimeStatus.unknown(PM2_UNAVAILABLE_MESSAGE)

        result = await _run_pm2("jlist")
        if not result.ok:
            return RuntimeStatus.unknown(result.detail)
        return parse_pm2_runtime(result.stdout, self.service_name)

    async def read_command(self) -> CommandSnapshot | None:
        result = await _run_pm2("jlist")
        if not result.ok:
            return None

        try:
            process = _find_process(result.stdout, self.service_name)
        except (json.JSONDecodeError, ValueError):
            return None
        if process is None:
            return None

        pm2_env = process.get("pm2_env") or {}
        if not isinstance(pm2_env, dict):
            return None
        interpreter = pm2_env.get("exec_interpreter")
        exec_path = pm2_env.get("pm_exec_path")
        if not isinstance(exec_path, str):
            return None
        raw_args = pm2_env.get("args")
        args = [str(a) for a in raw_args] if isinstance(raw_args, list) else []
        program = [interpreter, exec_path] if isinstance(interpreter, str) else [exec_path]

        env = pm2_env.get("env")
        environment = (
            {k: v for k, v in env.items() if isinstance(v, str)}
            if isinstance(env, dict)
            else None
        )
        cwd = pm2_env.get("pm_cwd") or pm2_env.get("cwd")

        return CommandSnapshot(
            program_arguments=[*program, *args],
            working_directory=cwd if isinstance(cwd, str) else None,
            environment=environment,
        )
