"""Textual app for choosing and testing text-generation providers."""

from __future__ import annotations

from typing import Any, Callable, Optional

from rich import box
from rich.panel import Panel
from rich.table import Table

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.message import Message
from textual.widgets import DataTable, Footer, Header, Static

from commitlore.cli.providers_cli import provider_status
from commitlore.core.availability import api_key_env_name, availability_hint, executable_name
from commitlore.core.config import (
    ProviderDescriptor,
    ProviderFamily,
    ProviderRegistry,
    load_registry,
    refresh_availability,
    set_provider_enabled,
)
from commitlore.core.dispatch import AsyncDispatcher, GenerationOutcome, GenerationRequest
from commitlore.core.errors import PersistenceError, ProviderError
from commitlore.core.provider_factory import ProviderFactory
from commitlore.utils.log import get_logger

logger = get_logger()

TEST_PROMPT = "Reply with the single word: ready"
TEST_TIMEOUT = 20.0


class GenerationFinished(Message):
    """Posted from the dispatcher thread when a test generation resolves."""

    def __init__(self, provider_id: str, outcome: GenerationOutcome) -> None:
        super().__init__()
        self.provider_id = provider_id
        self.outcome = outcome


class ProvidersApp(App[None]):
    CSS = """
    #status_bar {
        height: 1;
        color: $text-muted;
        padding: 0 1;
    }

    #body {
        layout: horizontal;
        height: 1fr;
    }

    #providers_table {
        width: 55%;
        min-width: 50;
    }

    #details_panel {
        width: 45%;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("escape", "quit", "Quit"),
        ("s", "set_active", "Set active"),
        ("e", "toggle_enabled", "Enable/disable"),
        ("t", "test", "Test"),
        ("r", "refresh", "Refresh"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        dispatcher: Optional[AsyncDispatcher] = None,
    ) -> None:
        super().__init__()
        self._provider_registry = registry
        self._dispatcher = dispatcher or AsyncDispatcher(default_timeout=TEST_TIMEOUT)
        self._owns_dispatcher = dispatcher is None
        self._selected_id: Optional[str] = None
        self._row_ids: list[str] = []
        self._testing: set[str] = set()
        self.status_message = ""

    @property
    def registry(self) -> ProviderRegistry:
        if self._provider_registry is None:
            self._provider_registry = load_registry()
        return self._provider_registry

    def compose(self) -> ComposeResult:
        yield Header(show_clock=False)
        yield Static("", id="status_bar")
        with Container(id="body"):
            yield DataTable(id="providers_table")
            yield Static(id="details_panel")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#providers_table", DataTable)
        table.add_columns("Name", "Family", "Status", "Description")
        table.cursor_type = "row"
        table.zebra_stripes = True
        try:
            refresh_availability(self.registry)
        except PersistenceError as exc:
            self._provider_registry = ProviderRegistry()
            self._set_status(str(exc))
        self._selected_id = self.registry.active_provider_id or None
        self._refresh_providers(select_first=True)

    def on_unmount(self) -> None:
        if self._owns_dispatcher:
            self._dispatcher.shutdown()

    def action_refresh(self) -> None:
        try:
            self._provider_registry = refresh_availability(load_registry())
        except PersistenceError as exc:
            self._set_status(str(exc))
            return
        self._refresh_providers(select_first=False)
        self._set_status("Availability refreshed.")

    def action_set_active(self) -> None:
        if not self._selected_id:
            self._set_status("No provider selected.")
            return
        try:
            descriptor = ProviderFactory(self.registry).set_active(self._selected_id)
        except (ProviderError, PersistenceError) as exc:
            self._set_status(str(exc))
            self._refresh_providers(select_first=False)
            return
        self._set_status(f"Active provider: {descriptor.name}")
        self._refresh_providers(select_first=False)

    def action_toggle_enabled(self) -> None:
        descriptor = self._selected_descriptor()
        if descriptor is None:
            self._set_status("No provider selected.")
            return
        try:
            set_provider_enabled(self.registry, descriptor.id, not descriptor.enabled)
        except (ProviderError, PersistenceError) as exc:
            self._set_status(str(exc))
            return
        state = "enabled" if descriptor.enabled else "disabled"
        self._set_status(f"{descriptor.name} {state}.")
        self._refresh_providers(select_first=False)

    def action_test(self) -> None:
        descriptor = self._selected_descriptor()
        if descriptor is None:
            self._set_status("No provider selected.")
            return
        if descriptor.id in self._testing:
            self._set_status(f"{descriptor.name} is already being tested.")
            return
        try:
            generator, name = ProviderFactory(self.registry).create_by_id(descriptor.id)
        except ProviderError as exc:
            self._set_status(str(exc))
            self._refresh_providers(select_first=False)
            return

        provider_id = descriptor.id

        def _deliver(outcome: GenerationOutcome) -> None:
            self.post_message(GenerationFinished(provider_id, outcome))

        self._testing.add(provider_id)
        self._dispatcher.dispatch(
            generator,
            GenerationRequest(prompt=TEST_PROMPT),
            on_outcome=_deliver,
            provider_id=provider_id,
        )
        self._set_status(f"Testing {name}...")

    def on_generation_finished(self, message: GenerationFinished) -> None:
        self._testing.discard(message.provider_id)
        outcome = message.outcome
        name = self._display_name(message.provider_id)
        if outcome.ok:
            preview = " ".join(outcome.content.split())[:60]
            self._set_status(f"{name} OK in {outcome.duration_ms:.0f} ms: {preview}")
        else:
            self._set_status(f"{name} failed [{outcome.error_code}]: {outcome.error_message}")

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self._select_by_index(int(event.cursor_row))

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self._select_by_index(int(event.cursor_row))
        self.action_set_active()

    def _refresh_providers(self, select_first: bool) -> None:
        registry = self.registry
        table = self.query_one("#providers_table", DataTable)
        table.clear(columns=False)
        self._row_ids = []

        for provider in registry.providers:
            self._row_ids.append(provider.id)
            table.add_row(
                provider.name,
                provider.family.value,
                provider_status(registry, provider),
                provider.description,
            )

        if not registry.providers:
            self._selected_id = None
            self._update_details()
            return

        if self._selected_id and self._selected_id in self._row_ids:
            self._move_cursor(table, self._row_ids.index(self._selected_id))
            self._update_details()
            return

        if select_first:
            self._selected_id = self._row_ids[0]
            self._move_cursor(table, 0)
            self._update_details()

    def _select_by_index(self, row_index: int) -> None:
        if row_index < 0 or row_index >= len(self._row_ids):
            return
        self._selected_id = self._row_ids[row_index]
        self._update_details()

    def _move_cursor(self, table: DataTable, row_index: int) -> None:
        table.move_cursor(row=row_index)

    def _selected_descriptor(self) -> Optional[ProviderDescriptor]:
        if not self._selected_id:
            return None
        return self.registry.find(self._selected_id)

    def _display_name(self, provider_id: str) -> str:
        descriptor = self.registry.find(provider_id)
        return descriptor.name if descriptor else provider_id

    def _update_details(self) -> None:
        details = self.query_one("#details_panel", Static)
        descriptor = self._selected_descriptor()
        if descriptor is None:
            details.update("No provider selected.")
            return

        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", no_wrap=True)
        table.add_column()
        table.add_row("ID", descriptor.id)
        table.add_row("Status", provider_status(self.registry, descriptor))
        table.add_row("Family", descriptor.family.value)
        table.add_row("Model", descriptor.config.get("model") or "-")
        if descriptor.family == ProviderFamily.HOSTED_API:
            table.add_row("Key variable", api_key_env_name(descriptor) or "-")
        elif descriptor.family == ProviderFamily.LOCAL_EXECUTABLE:
            table.add_row("Executable", executable_name(descriptor) or "-")
        elif descriptor.family == ProviderFamily.LOCAL_SERVICE:
            table.add_row("Endpoint", descriptor.config.get("endpoint") or "-")
        if descriptor.enabled and not descriptor.available:
            table.add_row("Hint", availability_hint(descriptor))

        details.update(Panel(table, title=f"Provider: {descriptor.name}", box=box.ROUNDED))

    def _set_status(self, message: str) -> None:
        self.status_message = message
        status = self.query_one("#status_bar", Static)
        status.update(message)


def run_providers_tui(on_exit: Optional[Callable[[ProviderRegistry], Any]] = None) -> bool:
    """Run the Textual providers TUI; the registry is re-read once it closes."""
    app = ProvidersApp()
    app.run()
    try:
        registry = load_registry()
    except PersistenceError as exc:
        logger.warning(
            "[providers_tui] Failed to reload provider config on exit: %s",
            exc,
        )
        return True
    logger.debug(
        "[providers_tui] Provider config reloaded",
        extra={"active_provider_id": registry.active_provider_id},
    )
    if on_exit:
        on_exit(registry)
    return True
