"""Shared abstractions for provider clients."""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping, Optional

from commitlore.core.providers.errors import ProviderRequestTimeoutError
from commitlore.utils.log import get_logger

logger = get_logger()

DEFAULT_MAX_TOKENS = 4000
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 2


class TextGenerator(ABC):
    """Capability every backend implements: turn a prompt into text.

    Implementations return the complete generated text as one string and
    raise a ``BackendFailure`` subclass when the call fails. They must be safe
    to call concurrently from several dispatched requests.
    """

    provider_id: str = ""

    async def generate(self, prompt: str) -> str:
        """Generate text for ``prompt`` with no system instruction."""
        return await self.generate_with_system("", prompt)

    @abstractmethod
    async def generate_with_system(self, system_prompt: str, prompt: str) -> str:
        """Generate text for ``prompt`` under an optional system instruction."""


def config_int(config: Mapping[str, str], key: str, default: int) -> int:
    raw = (config.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "[provider_clients] Ignoring non-integer config value",
            extra={"key": key, "value": raw},
        )
        return default


def config_float(config: Mapping[str, str], key: str, default: float) -> float:
    raw = (config.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "[provider_clients] Ignoring non-numeric config value",
            extra={"key": key, "value": raw},
        )
        return default


def _retry_delay_seconds(attempt: int, base_delay: float = 0.5, max_delay: float = 32.0) -> float:
    """Calculate exponential backoff with jitter."""
    capped_base: float = float(min(base_delay * (2 ** max(0, attempt - 1)), max_delay))
    jitter: float = float(random.random() * 0.25 * capped_base)
    return float(capped_base + jitter)


async def call_with_timeout_and_retries(
    coro_factory: Callable[[], Awaitable[Any]],
    request_timeout: Optional[float],
    max_retries: int,
) -> Any:
    """Run a coroutine with timeout and limited retries (exponential backoff).

    Only timeouts are retried; every other error surfaces immediately.
    """
    attempts = max(0, int(max_retries)) + 1
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            if request_timeout and request_timeout > 0:
                return await asyncio.wait_for(coro_factory(), timeout=request_timeout)
            return await coro_factory()
        except asyncio.TimeoutError as exc:
            last_error = exc
            if attempt == attempts:
                break
            delay_seconds = _retry_delay_seconds(attempt)
            logger.warning(
                "[provider_clients] Request timed out; retrying",
                extra={
                    "attempt": attempt,
                    "max_retries": attempts - 1,
                    "delay_seconds": round(delay_seconds, 3),
                },
            )
            await asyncio.sleep(delay_seconds)
    raise ProviderRequestTimeoutError(
        f"Request timed out after {attempts} attempts"
    ) from last_error
