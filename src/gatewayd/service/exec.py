"""Subprocess execution for backend CLIs."""

import asyncio
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Exit code used when the executable itself could not be launched
NOT_FOUND_CODE = 127


@dataclass
class ExecResult:
    """Captured output of a finished command."""

    stdout: str
    stderr: str
    code: int

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def detail(self) -> str:
        """Diagnostic text: stderr, falling back to stdout."""
        return (self.stderr.strip() or self.stdout.strip()).strip()


async def run_command(
    *args: str,
    env: Mapping[str, str] | None = None,
) -> ExecResult:
    """Run a command and capture its output.

    A nonzero exit is returned, not raised, so each call site decides
    whether it is a failure. A missing executable is reported as exit code
    127 with the OS error as stderr.

    Args:
        args: Program and arguments.
        env: Extra environment variables merged over ``os.environ``.

    Returns:
        ExecResult with decoded stdout/stderr and the exit code.
    """
    child_env = None
    if env:
        child_env = {**os.environ, **env}

    logger.debug("exec: %s", " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=child_env,
        )
    except (FileNotFoundError, PermissionError) as e:
        return ExecResult(stdout="", stderr=str(e), code=NOT_FOUND_CODE)

    stdout, stderr = await proc.communicate()
    return ExecResult(
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        code=proc.returncode or 0,
    )


def step_failed(step: str, result: ExecResult) -> str:
    """Compose a failure message for a command step."""
    return f"{step} failed: {result.detail}".strip()
