"""Turn registry entries into ready-to-use text generators.

The factory validates a provider in a fixed order (exists, enabled, available)
and raises a distinct error for each failure so callers can tell the user
exactly what to fix. Availability is always probed again at this point; the
flag stored in the registry only reflects the last refresh.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from commitlore.core import config as config_module
from commitlore.core.availability import availability_hint, check_availability
from commitlore.core.config import (
    ProviderConfigManager,
    ProviderDescriptor,
    ProviderRegistry,
    list_available,
)
from commitlore.core.errors import (
    ProviderDisabledError,
    ProviderNotFoundError,
    ProviderNotImplementedError,
    ProviderUnavailableError,
)
from commitlore.core.providers import BackendImportError, get_backend_class
from commitlore.core.providers.base import TextGenerator
from commitlore.utils.log import CommitloreLogger, get_logger


class ProviderFactory:
    """Validates and constructs providers from a registry."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        config_manager: Optional[ProviderConfigManager] = None,
        probe: Callable[[ProviderDescriptor], bool] = check_availability,
        logger: Optional[CommitloreLogger] = None,
    ) -> None:
        self.registry = registry
        self._config_manager = config_manager
        self._probe = probe
        self._logger = logger or get_logger()

    @property
    def config_manager(self) -> ProviderConfigManager:
        return self._config_manager or config_module.config_manager

    def create_active(self) -> Tuple[TextGenerator, str]:
        """Build the generator for the registry's active provider."""
        active_id = self.registry.active_provider_id
        if not active_id:
            self._logger.error("[provider_factory] No active provider configured")
            raise ProviderNotFoundError(active_id)
        return self.create_by_id(active_id)

    def create_by_id(self, provider_id: str) -> Tuple[TextGenerator, str]:
        """Build the generator for ``provider_id`` and return it with its display name."""
        descriptor = self._validate(provider_id)
        generator = self._build(descriptor)
        self._logger.info(
            "[provider_factory] Created provider",
            extra={"provider_id": descriptor.id, "provider_name": descriptor.name},
        )
        return generator, descriptor.name

    def set_active(self, provider_id: str) -> ProviderDescriptor:
        """Make ``provider_id`` the active provider and persist the registry.

        The registry is left untouched when validation fails.
        """
        descriptor = self._validate(provider_id)
        self.registry.active_provider_id = descriptor.id
        self.config_manager.save(self.registry)
        self._logger.info(
            "[provider_factory] Active provider set",
            extra={"provider_id": descriptor.id, "provider_name": descriptor.name},
        )
        return descriptor

    def display_name(self, provider_id: str) -> str:
        descriptor = self.registry.find(provider_id)
        return descriptor.name if descriptor is not None else provider_id

    def available_provider_names(self) -> List[str]:
        return [p.name for p in list_available(self.registry)]

    def _validate(self, provider_id: str) -> ProviderDescriptor:
        descriptor = self.registry.find(provider_id)
        if descriptor is None:
            self._logger.error(
                "[provider_factory] Provider not found", extra={"provider_id": provider_id}
            )
            raise ProviderNotFoundError(provider_id)

        if not descriptor.enabled:
            self._logger.error(
                "[provider_factory] Provider is disabled", extra={"provider_id": provider_id}
            )
            raise ProviderDisabledError(provider_id)

        descriptor.available = self._probe(descriptor)
        if not descriptor.available:
            hint = availability_hint(descriptor)
            self._logger.error(
                "[provider_factory] Provider is not available",
                extra={"provider_id": provider_id, "hint": hint},
            )
            raise ProviderUnavailableError(provider_id, hint)
        return descriptor

    def _build(self, descriptor: ProviderDescriptor) -> TextGenerator:
        self._logger.debug(
            "[provider_factory] Creating provider instance",
            extra={"provider_id": descriptor.id, "family": descriptor.family.value},
        )
        try:
            backend_cls = get_backend_class(descriptor.family, descriptor.id)
        except BackendImportError as exc:
            self._logger.error(
                "[provider_factory] Backend could not be imported",
                extra={"provider_id": descriptor.id, "error": str(exc)},
            )
            raise ProviderUnavailableError(descriptor.id, str(exc)) from exc

        if backend_cls is None:
            raise ProviderNotImplementedError(descriptor.id, descriptor.family.value)
        # Each backend reads its own settings from the descriptor.
        return backend_cls.from_descriptor(descriptor)  # type: ignore[attr-defined]
