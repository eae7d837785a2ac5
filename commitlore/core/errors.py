"""Error taxonomy for provider registry, factory and persistence failures."""

from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """Base class for provider selection failures with a stable error code."""

    error_code = "provider_error"

    def __init__(self, message: str, *, provider_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider_id = provider_id


class ProviderNotFoundError(ProviderError):
    """Referenced provider id is absent from the registry."""

    error_code = "not_found"

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider '{provider_id}' not found", provider_id=provider_id)


class ProviderDisabledError(ProviderError):
    """Provider exists but has been switched off."""

    error_code = "disabled"

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider '{provider_id}' is disabled", provider_id=provider_id)


class ProviderUnavailableError(ProviderError):
    """Provider is enabled but its credential, executable or service is missing."""

    error_code = "unavailable"

    def __init__(self, provider_id: str, hint: str = "") -> None:
        message = f"Provider '{provider_id}' is not available"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message, provider_id=provider_id)
        self.hint = hint


class ProviderNotImplementedError(ProviderError):
    """Recognized provider family/id combination without a backend wired up."""

    error_code = "not_implemented"

    def __init__(self, provider_id: str, family: str) -> None:
        super().__init__(
            f"Provider '{provider_id}' ({family}) is not implemented yet",
            provider_id=provider_id,
        )
        self.family = family


class PersistenceError(Exception):
    """Provider registry could not be read or written."""

    error_code = "persistence_failure"

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path
