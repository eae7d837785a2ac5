"""Backend registration keyed by provider family and id, with lazy imports."""

from __future__ import annotations

import importlib
from typing import Dict, Optional, TYPE_CHECKING, Tuple, Type, cast

from commitlore.core.config import ProviderFamily
from commitlore.core.providers.base import TextGenerator
from commitlore.utils.log import get_logger

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from commitlore.core.providers.anthropic import AnthropicClient  # noqa: F401
    from commitlore.core.providers.claude_cli import ClaudeCLIClient  # noqa: F401
    from commitlore.core.providers.ollama import OllamaClient  # noqa: F401
    from commitlore.core.providers.openai import OpenAIClient  # noqa: F401

logger = get_logger()

# (family, id) -> (module, class, pip package that provides the SDK)
BACKENDS: Dict[Tuple[ProviderFamily, str], Tuple[str, str, str]] = {
    (ProviderFamily.HOSTED_API, "claude-api"): ("anthropic", "AnthropicClient", "anthropic"),
    (ProviderFamily.HOSTED_API, "openai-api"): ("openai", "OpenAIClient", "openai"),
    (ProviderFamily.LOCAL_EXECUTABLE, "claude-cli"): ("claude_cli", "ClaudeCLIClient", "commitlore"),
    (ProviderFamily.LOCAL_SERVICE, "ollama"): ("ollama", "OllamaClient", "httpx"),
}


class BackendImportError(RuntimeError):
    """A registered backend's module or SDK could not be imported."""

    def __init__(self, message: str, *, package: str) -> None:
        super().__init__(message)
        self.package = package


def _load_client(module: str, cls: str, package: str) -> Type[TextGenerator]:
    """Dynamically import a backend class, pointing users to the missing package."""
    try:
        mod = importlib.import_module(f"commitlore.core.providers.{module}")
        client_cls = cast(Optional[Type[TextGenerator]], getattr(mod, cls, None))
        if client_cls is None:
            raise ImportError(f"{cls} not found in {module}")
        return client_cls
    except ImportError as exc:
        raise BackendImportError(
            f"{cls} could not be loaded ({exc}). Install with `pip install {package}`.",
            package=package,
        ) from exc


def get_backend_class(family: ProviderFamily, provider_id: str) -> Optional[Type[TextGenerator]]:
    """Return the backend class wired for ``(family, provider_id)``, if any."""
    entry = BACKENDS.get((family, provider_id))
    if entry is None:
        logger.debug(
            "[providers] No backend registered",
            extra={"family": family.value, "provider_id": provider_id},
        )
        return None
    return _load_client(*entry)


__all__ = ["BACKENDS", "BackendImportError", "TextGenerator", "get_backend_class"]
