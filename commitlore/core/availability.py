"""Runtime availability probes, one per provider family.

Probes are side-effect free and never raise: anything unexpected is reported
as "not available". Hosted APIs only check that a credential is configured,
executables only that they resolve on ``PATH``, and local services get one
short HTTP request.
"""

from __future__ import annotations

import os
import shutil
from typing import Callable, Mapping, Optional

import httpx

from commitlore.core.config import ProviderDescriptor, ProviderFamily
from commitlore.utils.log import get_logger

logger = get_logger()

LOCAL_SERVICE_PROBE_TIMEOUT = 0.5

# Id-specific executable names for descriptors that predate the "executable" key.
_DEFAULT_EXECUTABLES = {"claude-cli": "claude"}

_INSTALL_HINTS = {
    "claude-cli": "Install the claude CLI: https://claude.ai/download",
    "ollama": "Install and start Ollama: https://ollama.ai",
}


def api_key_env_name(descriptor: ProviderDescriptor) -> str:
    # First-release records keep the variable name under "api_key".
    configured = descriptor.config.get("api_key_env") or descriptor.config.get("api_key") or ""
    return configured.strip()


def executable_name(descriptor: ProviderDescriptor) -> str:
    configured = (descriptor.config.get("executable") or "").strip()
    return configured or _DEFAULT_EXECUTABLES.get(descriptor.id, "")


def resolve_executable(
    descriptor: ProviderDescriptor,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> Optional[str]:
    """Resolve the descriptor's executable on the search path."""
    name = executable_name(descriptor)
    if not name:
        return None
    return which(name)


def probe_hosted_api(
    descriptor: ProviderDescriptor, environ: Optional[Mapping[str, str]] = None
) -> bool:
    env_var = api_key_env_name(descriptor)
    if not env_var:
        return False
    env = os.environ if environ is None else environ
    return bool(env.get(env_var, ""))


def probe_local_executable(
    descriptor: ProviderDescriptor,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> bool:
    return resolve_executable(descriptor, which) is not None


def probe_local_service(
    descriptor: ProviderDescriptor, timeout: float = LOCAL_SERVICE_PROBE_TIMEOUT
) -> bool:
    endpoint = (descriptor.config.get("endpoint") or "").strip()
    if not endpoint:
        return False
    try:
        response = httpx.get(endpoint, timeout=timeout)
    except httpx.HTTPError as exc:
        logger.debug(
            "[availability] Local service unreachable",
            extra={"provider_id": descriptor.id, "endpoint": endpoint, "error": str(exc)},
        )
        return False
    return response.status_code < 500


def check_availability(descriptor: ProviderDescriptor) -> bool:
    """Answer "could this provider run right now?" without raising."""
    try:
        if descriptor.family == ProviderFamily.HOSTED_API:
            available = probe_hosted_api(descriptor)
        elif descriptor.family == ProviderFamily.LOCAL_EXECUTABLE:
            available = probe_local_executable(descriptor)
        elif descriptor.family == ProviderFamily.LOCAL_SERVICE:
            available = probe_local_service(descriptor)
        else:
            logger.warning(
                "[availability] Unknown provider family",
                extra={"provider_id": descriptor.id, "family": str(descriptor.family)},
            )
            available = False
    except Exception as exc:  # noqa: BLE001 - a failing probe means "not available"
        logger.warning(
            "[availability] Probe failed: %s: %s",
            type(exc).__name__,
            exc,
            extra={"provider_id": descriptor.id},
        )
        available = False

    logger.debug(
        "[availability] Probed provider",
        extra={
            "provider_id": descriptor.id,
            "family": descriptor.family.value,
            "available": available,
        },
    )
    return available


def availability_hint(descriptor: ProviderDescriptor) -> str:
    """Actionable message telling the user how to make a provider available."""
    if descriptor.family == ProviderFamily.HOSTED_API:
        env_var = api_key_env_name(descriptor)
        if env_var:
            return f"Set environment variable {env_var}"
        return "API key environment variable not configured"
    if descriptor.family == ProviderFamily.LOCAL_EXECUTABLE:
        if descriptor.id in _INSTALL_HINTS:
            return _INSTALL_HINTS[descriptor.id]
        name = executable_name(descriptor)
        return f"'{name}' not found in PATH" if name else "CLI tool not found in PATH"
    if descriptor.family == ProviderFamily.LOCAL_SERVICE:
        if descriptor.id in _INSTALL_HINTS:
            return _INSTALL_HINTS[descriptor.id]
        return "Local service not running"
    return "Unknown availability issue"
