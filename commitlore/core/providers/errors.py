"""Backend failure types normalized across provider transports."""

from __future__ import annotations


class BackendFailure(Exception):
    """A concrete backend call failed; carries a stable error code."""

    def __init__(self, error_code: str, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.retryable = retryable


class ProviderRequestTimeoutError(BackendFailure):
    """Transport-level timeout raised by the backend itself."""

    def __init__(self, message: str) -> None:
        super().__init__("request_timeout", message, retryable=True)


class ProviderConnectionError(BackendFailure):
    """Connection-level transport error."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__("connection_error", message, retryable=retryable)


class ProviderRateLimitError(BackendFailure):
    """Rate limit exceeded."""

    def __init__(self, message: str) -> None:
        super().__init__("rate_limit", message)


class ProviderAuthenticationError(BackendFailure):
    """Authentication failure."""

    def __init__(self, message: str) -> None:
        super().__init__("authentication_error", message)


class ProviderPermissionDeniedError(BackendFailure):
    """Permission denied."""

    def __init__(self, message: str) -> None:
        super().__init__("permission_denied", message)


class ProviderInsufficientBalanceError(BackendFailure):
    """Insufficient account balance/credits."""

    def __init__(self, message: str) -> None:
        super().__init__("insufficient_balance", message)


class ProviderModelNotFoundError(BackendFailure):
    """Requested model not found."""

    def __init__(self, message: str) -> None:
        super().__init__("model_not_found", message)


class ProviderBadRequestError(BackendFailure):
    """Malformed/invalid request."""

    def __init__(self, message: str) -> None:
        super().__init__("bad_request", message)


class ProviderContextLengthExceededError(BackendFailure):
    """Context length/token limit exceeded."""

    def __init__(self, message: str) -> None:
        super().__init__("context_length_exceeded", message)


class ProviderContentPolicyViolationError(BackendFailure):
    """Content policy violation."""

    def __init__(self, message: str) -> None:
        super().__init__("content_policy_violation", message)


class ProviderServiceUnavailableError(BackendFailure):
    """Service unavailable/transient provider outage."""

    def __init__(self, message: str) -> None:
        super().__init__("service_unavailable", message)


class ProviderApiError(BackendFailure):
    """Generic upstream API error (non-2xx status, malformed payload)."""

    def __init__(self, message: str) -> None:
        super().__init__("api_error", message)


class ProviderProcessError(BackendFailure):
    """Local executable exited with a non-zero status."""

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__("process_error", message)
        self.returncode = returncode
        self.stderr = stderr


class ProviderEmptyResponseError(BackendFailure):
    """Backend answered but produced no text."""

    def __init__(self, message: str) -> None:
        super().__init__("empty_response", message)
