"""Shared helpers for provider exception mapping."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from commitlore.core.providers.errors import (
    BackendFailure,
    ProviderApiError,
    ProviderAuthenticationError,
    ProviderBadRequestError,
    ProviderConnectionError,
    ProviderContentPolicyViolationError,
    ProviderContextLengthExceededError,
    ProviderInsufficientBalanceError,
    ProviderModelNotFoundError,
    ProviderPermissionDeniedError,
    ProviderRateLimitError,
    ProviderRequestTimeoutError,
    ProviderServiceUnavailableError,
)

_TIMEOUT_HINTS = ("timed out", "timeout")
_RETRYABLE_CONNECTION_HINTS = (
    "incomplete chunked read",
    "peer closed connection",
    "connection reset",
    "connection aborted",
    "broken pipe",
    "server disconnected",
)
_CONTEXT_HINTS = (
    "context length",
    "context window",
    "context_length_exceeded",
    "maximum context",
    "too many tokens",
    "prompt is too long",
    "input is too long",
    "exceeds the model's maximum context length",
)


def is_timeout_message(message: str) -> bool:
    """Return True when an error message describes timeout-like behavior."""
    lowered = message.lower()
    return any(hint in lowered for hint in _TIMEOUT_HINTS)


def map_connection_error(message: str, *, retryable: Optional[bool] = None) -> BackendFailure:
    """Map a provider connection error message to a normalized error."""
    if is_timeout_message(message):
        return ProviderRequestTimeoutError(f"Request timed out: {message}")
    if retryable is None:
        lowered = message.lower()
        retryable = any(hint in lowered for hint in _RETRYABLE_CONNECTION_HINTS)
    return ProviderConnectionError(f"Connection error: {message}", retryable=retryable)


def map_permission_denied_error(message: str) -> BackendFailure:
    """Map permission-denied messages with balance-aware specialization."""
    lowered = message.lower()
    if "balance" in lowered or "insufficient" in lowered:
        return ProviderInsufficientBalanceError(f"Insufficient balance: {message}")
    return ProviderPermissionDeniedError(f"Permission denied: {message}")


def map_bad_request_error(message: str) -> BackendFailure:
    """Map invalid request messages including context/content policy variants."""
    lowered = message.lower()
    if any(hint in lowered for hint in _CONTEXT_HINTS):
        return ProviderContextLengthExceededError(f"Context length exceeded: {message}")
    if "content" in lowered and "policy" in lowered:
        return ProviderContentPolicyViolationError(f"Content policy violation: {message}")
    return ProviderBadRequestError(f"Invalid request: {message}")


def map_api_status_error(message: str, status: Any) -> BackendFailure:
    """Map API status errors with context-length detection from payload text."""
    lowered = message.lower()
    if any(hint in lowered for hint in _CONTEXT_HINTS):
        return ProviderContextLengthExceededError(f"Context length exceeded: {message}")
    return ProviderApiError(f"API error ({status}): {message}")


def map_http_status(status: int, message: str) -> BackendFailure:
    """Map a raw HTTP status code (for clients without a vendor SDK)."""
    if status == 400:
        return map_bad_request_error(message)
    if status == 401:
        return ProviderAuthenticationError(f"Authentication failed: {message}")
    if status == 403:
        return map_permission_denied_error(message)
    if status == 404:
        return ProviderModelNotFoundError(f"Model not found: {message}")
    if status == 429:
        return ProviderRateLimitError(f"Rate limit exceeded: {message}")
    if status in (502, 503, 504):
        return ProviderServiceUnavailableError(f"Service unavailable ({status}): {message}")
    return map_api_status_error(message, status)


def classify_exception(exc: BaseException) -> tuple[str, str]:
    """Return a normalized (code, message) pair for any backend exception."""
    if isinstance(exc, BackendFailure):
        return exc.error_code, str(exc)
    if isinstance(exc, asyncio.TimeoutError):
        return "request_timeout", f"Request timed out: {exc}"
    return "unknown_error", f"Unexpected error ({type(exc).__name__}): {exc}"


async def run_with_exception_mapper(
    request_fn: Callable[[], Awaitable[Any]],
    mapper: Callable[[Exception], Exception],
) -> Any:
    """Execute request and transform provider exceptions via mapper."""
    try:
        return await request_fn()
    except Exception as exc:
        mapped_exc = mapper(exc)
        if mapped_exc is exc:
            raise
        raise mapped_exc from exc
