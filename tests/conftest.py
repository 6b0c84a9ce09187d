"""Shared test fixtures and factories."""

from pathlib import Path

import pytest

from gatewayd.config.paths import ENV_VAR, get_gatewayd_home
from gatewayd.service.exec import ExecResult

# =============================================================================
# Subprocess Fakes
# =============================================================================

BACKEND_MODULES = [
    "gatewayd.service.backends.launchd",
    "gatewayd.service.backends.systemd",
    "gatewayd.service.backends.pm2",
    "gatewayd.service.backends.schtasks",
]


class FakeCommands:
    """Scripted stand-in for ``run_command``.

    Responses are matched by argv prefix; the most recently registered
    match wins. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.envs: list[dict[str, str] | None] = []
        self._responses: list[tuple[tuple[str, ...], ExecResult]] = []

    def on(
        self, *prefix: str, stdout: str = "", stderr: str = "", code: int = 0
    ) -> None:
        self._responses.insert(0, (prefix, ExecResult(stdout, stderr, code)))

    def missing(self, program: str) -> None:
        """Make ``program`` behave as if it is not installed."""
        self.on(program, stderr=f"No such file or directory: '{program}'", code=127)

    async def __call__(self, *args: str, env=None) -> ExecResult:
        self.calls.append(args)
        self.envs.append(dict(env) if env else None)
        for prefix, result in self._responses:
            if args[: len(prefix)] == prefix:
                return result
        return ExecResult("", "", 0)

    def called(self, *prefix: str) -> bool:
        return any(call[: len(prefix)] == prefix for call in self.calls)

    def calls_to(self, program: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == program]


@pytest.fixture
def fake_commands(monkeypatch) -> FakeCommands:
    """Patch every backend's ``run_command`` with a FakeCommands instance."""
    fake = FakeCommands()
    for module in BACKEND_MODULES:
        monkeypatch.setattr(f"{module}.run_command", fake)
    return fake


# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def gatewayd_home(tmp_path: Path, monkeypatch) -> Path:
    """Point GATEWAYD_HOME at a temporary directory for every test."""
    monkeypatch.setenv(ENV_VAR, str(tmp_path / "gatewayd-home"))
    get_gatewayd_home.cache_clear()
    yield get_gatewayd_home()
    get_gatewayd_home.cache_clear()


@pytest.fixture
def unit_dirs(tmp_path: Path, monkeypatch) -> dict[str, Path]:
    """Redirect systemd and launchd unit directories into tmp_path."""
    systemd_dir = tmp_path / "systemd-user"
    agents_dir = tmp_path / "LaunchAgents"
    monkeypatch.setattr(
        "gatewayd.service.backends.systemd.get_systemd_user_dir",
        lambda: systemd_dir,
    )
    monkeypatch.setattr(
        "gatewayd.service.backends.launchd.get_launch_agents_dir",
        lambda: agents_dir,
    )
    return {"systemd": systemd_dir, "launchd": agents_dir}


@pytest.fixture
def env() -> dict[str, str]:
    """A service environment with no profile."""
    return {}


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
