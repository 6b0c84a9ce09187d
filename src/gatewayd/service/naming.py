"""Service naming shared by all backends.

Every backend derives its unit identifier from ``resolve_service_name`` so
that an install made through one backend and a query made through another
target the same logical service.
"""

import re
from collections.abc import Mapping

PROFILE_ENV_VAR = "GATEWAYD_PROFILE"

SERVICE_BASE_NAME = "gatewayd-gateway"
LAUNCHD_LABEL_PREFIX = "ai.gatewayd"

_INVALID_CHARS = re.compile(r"[^a-z0-9_-]+")


def normalize_profile(profile: str | None) -> str | None:
    """Normalize a profile name, returning None for the default profile."""
    if profile is None:
        return None
    cleaned = _INVALID_CHARS.sub("-", profile.strip().lower()).strip("-")
    if not cleaned or cleaned == "default":
        return None
    return cleaned


def resolve_service_name(env: Mapping[str, str]) -> str:
    """Get the logical service name for the profile in ``env``."""
    profile = normalize_profile(env.get(PROFILE_ENV_VAR))
    if profile is None:
        return SERVICE_BASE_NAME
    return f"{SERVICE_BASE_NAME}-{profile}"


def resolve_systemd_unit(env: Mapping[str, str]) -> str:
    return f"{resolve_service_name(env)}.service"


def resolve_launchd_label(env: Mapping[str, str]) -> str:
    # gatewayd-gateway-work -> ai.gatewayd.gateway-work
    suffix = resolve_service_name(env).removeprefix("gatewayd-")
    return f"{LAUNCHD_LABEL_PREFIX}.{suffix}"


def resolve_task_name(env: Mapping[str, str]) -> str:
    return resolve_service_name(env)
