"""Tests for the provider management TUI."""

from __future__ import annotations

import pytest
from textual.widgets import DataTable

from commitlore.cli.ui.providers_tui import textual_app
from commitlore.cli.ui.providers_tui.textual_app import ProvidersApp
from commitlore.core.config import default_registry, load_registry
from commitlore.core.dispatch import AsyncDispatcher
from commitlore.core.providers.base import TextGenerator


class _ReadyGenerator(TextGenerator):
    async def generate_with_system(self, system_prompt: str, prompt: str) -> str:
        return "ready"


class _FakeFactory:
    def __init__(self, registry) -> None:
        self.registry = registry

    def create_by_id(self, provider_id: str):
        return _ReadyGenerator(), "Fake"


async def _wait_for_status(app: ProvidersApp, pilot, needle: str) -> None:
    for _ in range(100):
        if needle in app.status_message:
            return
        await pilot.pause(0.02)
    raise AssertionError(f"status never contained {needle!r}: {app.status_message!r}")


@pytest.mark.asyncio
async def test_opens_on_active_provider_and_sets_new_one(isolated_env, monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk")
    app = ProvidersApp()

    async with app.run_test() as pilot:
        await pilot.pause()
        assert app._selected_id == "claude-cli"

        await pilot.press("up")
        await pilot.pause()
        assert app._selected_id == "claude-api"

        await pilot.press("s")
        await pilot.pause()
        assert app.status_message == "Active provider: Claude API"

    assert load_registry().active_provider_id == "claude-api"


@pytest.mark.asyncio
async def test_set_active_unavailable_shows_hint(isolated_env) -> None:
    app = ProvidersApp()

    async with app.run_test() as pilot:
        await pilot.press("up")
        await pilot.press("s")
        await pilot.pause()
        assert "Set environment variable ANTHROPIC_API_KEY" in app.status_message

    assert load_registry().active_provider_id == "claude-cli"


@pytest.mark.asyncio
async def test_toggle_enabled_persists(isolated_env) -> None:
    app = ProvidersApp()

    async with app.run_test() as pilot:
        await pilot.press("down")
        await pilot.pause()
        assert app._selected_id == "openai-api"
        await pilot.press("e")
        await pilot.pause()
        assert app.status_message == "OpenAI API enabled."

    assert load_registry().find("openai-api").enabled is True


@pytest.mark.asyncio
async def test_test_action_delivers_outcome_as_message(isolated_env, monkeypatch) -> None:
    monkeypatch.setattr(textual_app, "ProviderFactory", _FakeFactory)
    dispatcher = AsyncDispatcher(default_timeout=5.0)
    app = ProvidersApp(dispatcher=dispatcher)

    try:
        async with app.run_test() as pilot:
            await pilot.press("t")
            await _wait_for_status(app, pilot, "OK")
            assert "ready" in app.status_message
    finally:
        dispatcher.shutdown()


@pytest.mark.asyncio
async def test_injected_registry_drives_table_and_app_closes(isolated_env) -> None:
    registry = default_registry()
    registry.active_provider_id = "ollama"
    app = ProvidersApp(registry=registry)

    async with app.run_test() as pilot:
        await pilot.pause()
        assert app.registry is registry
        assert app._selected_id == "ollama"
        table = app.query_one("#providers_table", DataTable)
        assert table.row_count == len(registry.providers)
        assert table.get_row_at(4)[2] == "ACTIVE (DISABLED)"
        await pilot.press("q")

    # The record on disk was never touched by an injected registry.
    assert load_registry().active_provider_id == "claude-cli"
