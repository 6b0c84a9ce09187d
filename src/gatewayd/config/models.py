"""Configuration models using Pydantic."""

import logging
import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from gatewayd.service.base import InstallSpec
from gatewayd.service.naming import PROFILE_ENV_VAR, normalize_profile

logger = logging.getLogger(__name__)


class GatewayConfig(BaseModel):
    """How the gateway process is launched.

    ``program_arguments`` starts with the interpreter or executable; PM2
    additionally needs the script as the second element.
    """

    program_arguments: list[str] = Field(default_factory=list)
    working_directory: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    description: str | None = "gatewayd gateway"
    port: int | None = None

    def to_install_spec(self) -> InstallSpec:
        """Build the install spec for this gateway.

        Raises:
            ConfigError: If no program arguments are configured.
        """
        if not self.program_arguments:
            raise ConfigError(
                "No gateway command configured. Set [gateway].program_arguments"
            )
        args = list(self.program_arguments)
        if self.port is not None and "--port" not in args:
            args += ["--port", str(self.port)]
        return InstallSpec(
            program_arguments=args,
            working_directory=self.working_directory,
            environment=dict(self.environment) or None,
            description=self.description,
        )


class ProxyConfig(BaseModel):
    """Outbound HTTP proxy configuration."""

    url: str | None = None

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class ConfigError(Exception):
    """Configuration error."""

    pass


class GatewaydConfig(BaseModel):
    """Root configuration model."""

    profile: str | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)

    @field_validator("profile")
    @classmethod
    def _normalize_profile(cls, value: str | None) -> str | None:
        return normalize_profile(value)

    def service_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Environment for service naming: ``base`` with this config's profile."""
        env = dict(os.environ if base is None else base)
        if self.profile:
            env[PROFILE_ENV_VAR] = self.profile
        else:
            env.pop(PROFILE_ENV_VAR, None)
        return env
