"""Provider configuration management for commitlore.

This module holds the provider descriptors, the ordered registry with the
active provider id, and the JSON record under ``~/.commitlore`` that keeps
them across restarts.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from commitlore.core.errors import PersistenceError, ProviderNotFoundError
from commitlore.utils.log import app_home, get_logger


logger = get_logger()

CONFIG_FILENAME = "providers.json"


class ProviderFamily(str, Enum):
    """Transport category of a provider."""

    HOSTED_API = "api"
    LOCAL_EXECUTABLE = "cli"
    LOCAL_SERVICE = "local"


class ProviderDescriptor(BaseModel):
    """Configuration record describing one provider (not a live instance)."""

    id: str
    name: str
    # Older records written by the first commitlore release call this "type".
    family: ProviderFamily = Field(validation_alias=AliasChoices("family", "type"))
    description: str = ""
    enabled: bool = True
    # Advisory only: recomputed by probing before every use that matters.
    available: bool = False
    config: Dict[str, str] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("provider id must not be empty")
        return value

    @field_validator("config", mode="before")
    @classmethod
    def _stringify_config(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class ProviderRegistry(BaseModel):
    """Ordered provider descriptors plus the active provider id."""

    providers: List[ProviderDescriptor] = Field(default_factory=list)
    active_provider_id: str = ""

    @model_validator(mode="after")
    def _unique_ids(self) -> "ProviderRegistry":
        seen: set[str] = set()
        for provider in self.providers:
            if provider.id in seen:
                raise ValueError(f"duplicate provider id '{provider.id}'")
            seen.add(provider.id)
        return self

    def find(self, provider_id: str) -> Optional[ProviderDescriptor]:
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None

    def active(self) -> Optional[ProviderDescriptor]:
        if not self.active_provider_id:
            return None
        return self.find(self.active_provider_id)


def default_registry() -> ProviderRegistry:
    """Built-in provider set written on first start."""
    return ProviderRegistry(
        providers=[
            ProviderDescriptor(
                id="claude-api",
                name="Claude API",
                family=ProviderFamily.HOSTED_API,
                description="Anthropic Claude via API (requires ANTHROPIC_API_KEY)",
                enabled=True,
                config={
                    "model": "claude-sonnet-4-20250514",
                    "api_key_env": "ANTHROPIC_API_KEY",
                },
            ),
            ProviderDescriptor(
                id="claude-cli",
                name="Claude CLI",
                family=ProviderFamily.LOCAL_EXECUTABLE,
                description="Anthropic Claude via CLI tool",
                enabled=True,
                config={"executable": "claude"},
            ),
            ProviderDescriptor(
                id="openai-api",
                name="OpenAI API",
                family=ProviderFamily.HOSTED_API,
                description="OpenAI GPT models via API (requires OPENAI_API_KEY)",
                enabled=False,
                config={
                    "model": "gpt-4o",
                    "api_key_env": "OPENAI_API_KEY",
                },
            ),
            ProviderDescriptor(
                id="gemini-api",
                name="Gemini API",
                family=ProviderFamily.HOSTED_API,
                description="Google Gemini via API (requires GEMINI_API_KEY)",
                enabled=False,
                config={
                    "model": "gemini-1.5-pro",
                    "api_key_env": "GEMINI_API_KEY",
                },
            ),
            ProviderDescriptor(
                id="ollama",
                name="Ollama",
                family=ProviderFamily.LOCAL_SERVICE,
                description="Local models via Ollama",
                enabled=False,
                config={
                    "endpoint": "http://localhost:11434",
                    "model": "llama3",
                },
            ),
        ],
        active_provider_id="claude-cli",
    )


class ProviderConfigManager:
    """Loads and saves the provider registry record."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path

    @property
    def config_path(self) -> Path:
        if self._config_path is not None:
            return self._config_path
        return app_home() / CONFIG_FILENAME

    @config_path.setter
    def config_path(self, value: Optional[Path]) -> None:
        self._config_path = value

    def load(self) -> ProviderRegistry:
        """Read the persisted registry, writing defaults when none exists."""
        path = self.config_path
        if not path.exists():
            registry = default_registry()
            logger.info(
                "[config] Provider config not found; writing defaults",
                extra={"path": str(path), "provider_count": len(registry.providers)},
            )
            self.save(registry)
            return registry

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            registry = ProviderRegistry.model_validate(data)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error(
                "[config] Failed to read provider config",
                extra={"path": str(path), "error": str(exc)},
            )
            raise PersistenceError(
                f"Failed to read provider config {path}: {exc}", path=str(path)
            ) from exc
        except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as exc:
            logger.error(
                "[config] Provider config is corrupt",
                extra={"path": str(path), "error": str(exc)},
            )
            raise PersistenceError(
                f"Provider config {path} is invalid: {exc}", path=str(path)
            ) from exc

        logger.debug(
            "[config] Loaded provider config",
            extra={
                "path": str(path),
                "provider_count": len(registry.providers),
                "active_provider_id": registry.active_provider_id,
            },
        )
        return registry

    def save(self, registry: ProviderRegistry) -> None:
        """Overwrite the persisted record with the full registry."""
        path = self.config_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(registry.model_dump_json(indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            logger.error(
                "[config] Failed to write provider config",
                extra={"path": str(path), "error": str(exc)},
            )
            raise PersistenceError(
                f"Failed to write provider config {path}: {exc}", path=str(path)
            ) from exc
        logger.debug(
            "[config] Saved provider config",
            extra={
                "path": str(path),
                "provider_count": len(registry.providers),
                "active_provider_id": registry.active_provider_id,
            },
        )

    def set_enabled(self, registry: ProviderRegistry, provider_id: str, enabled: bool) -> ProviderDescriptor:
        """Toggle a provider on or off and persist the registry."""
        provider = registry.find(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        provider.enabled = enabled
        self.save(registry)
        logger.info(
            "[config] Provider toggled",
            extra={"provider_id": provider_id, "enabled": enabled},
        )
        return provider


def refresh_availability(registry: ProviderRegistry) -> ProviderRegistry:
    """Probe every descriptor and store the result in ``available``."""
    from commitlore.core.availability import check_availability

    for provider in registry.providers:
        provider.available = check_availability(provider)
    logger.debug(
        "[config] Refreshed provider availability",
        extra={
            "available": [p.id for p in registry.providers if p.available],
        },
    )
    return registry


def find_provider(registry: ProviderRegistry, provider_id: str) -> Optional[ProviderDescriptor]:
    """Return the descriptor with ``provider_id`` or None."""
    return registry.find(provider_id)


def list_available(registry: ProviderRegistry) -> List[ProviderDescriptor]:
    """Enabled and available descriptors, in registry order."""
    return [p for p in registry.providers if p.enabled and p.available]


# Global instance
config_manager = ProviderConfigManager()


def load_registry() -> ProviderRegistry:
    """Load the provider registry."""
    return config_manager.load()


def save_registry(registry: ProviderRegistry) -> None:
    """Save the provider registry."""
    config_manager.save(registry)


def set_provider_enabled(registry: ProviderRegistry, provider_id: str, enabled: bool) -> ProviderDescriptor:
    """Enable or disable a provider and persist the change."""
    return config_manager.set_enabled(registry, provider_id, enabled)
