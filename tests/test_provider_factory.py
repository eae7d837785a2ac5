"""Tests for provider validation and construction."""

from __future__ import annotations

import pytest

from commitlore.core import providers as providers_module
from commitlore.core.config import (
    ProviderDescriptor,
    ProviderFamily,
    ProviderRegistry,
    default_registry,
)
from commitlore.core.errors import (
    ProviderDisabledError,
    ProviderNotFoundError,
    ProviderNotImplementedError,
    ProviderUnavailableError,
)
from commitlore.core.provider_factory import ProviderFactory
from commitlore.core.providers import BackendImportError
from commitlore.core.providers.anthropic import AnthropicClient
from commitlore.core.providers.claude_cli import ClaudeCLIClient
from commitlore.core.providers.ollama import OllamaClient
from commitlore.core.providers.openai import OpenAIClient


def _always(value: bool):
    return lambda descriptor: value


def test_not_found_disabled_unavailable_are_distinct(manager) -> None:
    registry = ProviderRegistry(
        providers=[
            ProviderDescriptor(id="off", name="Off", family=ProviderFamily.HOSTED_API, enabled=False),
            ProviderDescriptor(
                id="gone",
                name="Gone",
                family=ProviderFamily.HOSTED_API,
                config={"api_key_env": "GONE_KEY"},
            ),
        ]
    )
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(False))

    with pytest.raises(ProviderNotFoundError) as not_found:
        factory.create_by_id("missing")
    with pytest.raises(ProviderDisabledError) as disabled:
        factory.create_by_id("off")
    with pytest.raises(ProviderUnavailableError) as unavailable:
        factory.create_by_id("gone")

    codes = {not_found.value.error_code, disabled.value.error_code, unavailable.value.error_code}
    assert codes == {"not_found", "disabled", "unavailable"}
    assert unavailable.value.provider_id == "gone"
    assert unavailable.value.hint == "Set environment variable GONE_KEY"


def test_active_but_unavailable_names_the_provider(manager) -> None:
    registry = ProviderRegistry(
        providers=[
            ProviderDescriptor(
                id="a",
                name="A",
                family=ProviderFamily.HOSTED_API,
                enabled=True,
                # A stale persisted flag must not be trusted.
                available=True,
                config={"api_key_env": "A_KEY"},
            )
        ],
        active_provider_id="a",
    )
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(False))

    with pytest.raises(ProviderUnavailableError) as exc_info:
        factory.create_active()

    assert exc_info.value.provider_id == "a"
    assert "'a'" in str(exc_info.value)
    assert registry.find("a").available is False


def test_create_active_without_active_id(manager) -> None:
    factory = ProviderFactory(ProviderRegistry(), config_manager=manager, probe=_always(True))
    with pytest.raises(ProviderNotFoundError):
        factory.create_active()


def test_set_active_persists_across_reload(manager) -> None:
    registry = manager.load()
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(True))

    descriptor = factory.set_active("claude-api")

    assert descriptor.id == "claude-api"
    assert manager.load().active_provider_id == "claude-api"


def test_set_active_rejects_disabled_and_leaves_registry(manager) -> None:
    registry = manager.load()
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(True))

    with pytest.raises(ProviderDisabledError):
        factory.set_active("openai-api")

    assert registry.active_provider_id == "claude-cli"
    assert manager.load().active_provider_id == "claude-cli"


def test_set_active_rejects_unavailable(manager) -> None:
    factory = ProviderFactory(manager.load(), config_manager=manager, probe=_always(False))
    with pytest.raises(ProviderUnavailableError):
        factory.set_active("claude-api")
    assert manager.load().active_provider_id == "claude-cli"


def test_gemini_is_not_implemented(manager) -> None:
    registry = default_registry()
    registry.find("gemini-api").enabled = True
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(True))

    with pytest.raises(ProviderNotImplementedError) as exc_info:
        factory.create_by_id("gemini-api")

    assert exc_info.value.error_code == "not_implemented"
    assert exc_info.value.family == "api"


def test_builds_each_registered_backend(
    isolated_env, make_executable, posix_only, monkeypatch
) -> None:
    make_executable(isolated_env, "claude", "echo ok\n")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-oai")
    registry = default_registry()
    for provider in registry.providers:
        provider.enabled = True
    factory = ProviderFactory(registry, probe=_always(True))

    claude_api, claude_name = factory.create_by_id("claude-api")
    openai_api, _ = factory.create_by_id("openai-api")
    claude_cli, _ = factory.create_by_id("claude-cli")
    ollama, _ = factory.create_by_id("ollama")

    assert isinstance(claude_api, AnthropicClient)
    assert claude_name == "Claude API"
    assert claude_api.model == "claude-sonnet-4-20250514"
    assert isinstance(openai_api, OpenAIClient)
    assert openai_api.model == "gpt-4o"
    assert isinstance(claude_cli, ClaudeCLIClient)
    assert claude_cli.exec_path == str(isolated_env / "claude")
    assert isinstance(ollama, OllamaClient)
    assert ollama.endpoint == "http://localhost:11434"
    assert ollama.model == "llama3"


def test_backend_import_failure_reports_unavailable(manager, monkeypatch) -> None:
    def _broken(family, provider_id):
        raise BackendImportError("anthropic SDK missing", package="anthropic")

    monkeypatch.setattr("commitlore.core.provider_factory.get_backend_class", _broken)
    registry = default_registry()
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(True))

    with pytest.raises(ProviderUnavailableError) as exc_info:
        factory.create_by_id("claude-api")
    assert "anthropic SDK missing" in exc_info.value.hint


def test_registration_table_covers_wired_backends() -> None:
    assert set(providers_module.BACKENDS) == {
        (ProviderFamily.HOSTED_API, "claude-api"),
        (ProviderFamily.HOSTED_API, "openai-api"),
        (ProviderFamily.LOCAL_EXECUTABLE, "claude-cli"),
        (ProviderFamily.LOCAL_SERVICE, "ollama"),
    }
    assert providers_module.get_backend_class(ProviderFamily.HOSTED_API, "gemini-api") is None
    # The id alone is not enough; family must match too.
    assert providers_module.get_backend_class(ProviderFamily.LOCAL_SERVICE, "claude-api") is None


def test_display_helpers(manager) -> None:
    registry = default_registry()
    for provider in registry.providers:
        provider.available = provider.id in {"claude-api", "openai-api", "ollama"}
    factory = ProviderFactory(registry, config_manager=manager, probe=_always(True))

    assert factory.display_name("claude-cli") == "Claude CLI"
    assert factory.display_name("unknown") == "unknown"
    # openai-api and ollama are disabled by default.
    assert factory.available_provider_names() == ["Claude API"]
