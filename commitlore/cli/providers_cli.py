"""Top-level `commitlore providers` command group."""

from __future__ import annotations

import contextlib
import json
from typing import Any, Iterator

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from commitlore.core.availability import availability_hint
from commitlore.core.config import (
    ProviderDescriptor,
    ProviderRegistry,
    load_registry,
    refresh_availability,
    set_provider_enabled,
)
from commitlore.core.errors import PersistenceError, ProviderError
from commitlore.core.provider_factory import ProviderFactory
from commitlore.utils.log import get_logger

console = Console()
logger = get_logger()

_STATUS_STYLES = {
    "ACTIVE": "bold green",
    "AVAILABLE": "green",
    "UNAVAILABLE": "yellow",
    "DISABLED": "dim",
    "ACTIVE (UNAVAILABLE)": "bold yellow",
    "ACTIVE (DISABLED)": "bold red",
}


@contextlib.contextmanager
def translate_errors() -> Iterator[None]:
    """Show registry, factory and persistence errors as click errors."""
    try:
        yield
    except (ProviderError, PersistenceError) as exc:
        logger.warning(
            "[providers_cli] Command failed: %s: %s",
            type(exc).__name__,
            exc,
            extra={"error_code": exc.error_code},
        )
        raise click.ClickException(str(exc)) from exc


def provider_status(registry: ProviderRegistry, provider: ProviderDescriptor) -> str:
    """Status label; an active provider that cannot run shows why."""
    if not provider.enabled:
        health = "DISABLED"
    elif not provider.available:
        health = "UNAVAILABLE"
    else:
        health = "AVAILABLE"
    if provider.id == registry.active_provider_id:
        return "ACTIVE" if health == "AVAILABLE" else f"ACTIVE ({health})"
    return health


def _provider_record(registry: ProviderRegistry, provider: ProviderDescriptor) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": provider.id,
        "name": provider.name,
        "family": provider.family.value,
        "description": provider.description,
        "enabled": provider.enabled,
        "available": provider.available,
        "active": provider.id == registry.active_provider_id,
        "status": provider_status(registry, provider),
        "config": dict(provider.config),
    }
    if not provider.available:
        record["hint"] = availability_hint(provider)
    return record


def _load_refreshed() -> ProviderRegistry:
    return refresh_availability(load_registry())


@click.group(name="providers", invoke_without_command=True, help="List and select text-generation providers.")
@click.pass_context
def providers_group(ctx: click.Context) -> None:
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@providers_group.command(name="list")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
def list_providers(json_output: bool) -> None:
    """Show every configured provider with its current status."""
    with translate_errors():
        registry = _load_refreshed()

    records = [_provider_record(registry, p) for p in registry.providers]
    if json_output:
        payload = {"active_provider_id": registry.active_provider_id, "providers": records}
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    if not records:
        click.echo("No providers configured.")
        return

    table = Table(title="Providers", show_lines=False)
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Family", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Description")
    for row in records:
        style = _STATUS_STYLES.get(row["status"], "")
        table.add_row(
            escape(row["id"]),
            escape(row["name"]),
            row["family"],
            f"[{style}]{row['status']}[/{style}]" if style else row["status"],
            escape(row["description"]),
        )
    console.print(table)

    for row in records:
        if row["enabled"] and not row["available"]:
            console.print(f"[yellow]{escape(row['id'])}[/yellow]: {escape(row['hint'])}")


@providers_group.command(name="use")
@click.argument("provider_id")
def use_provider(provider_id: str) -> None:
    """Make PROVIDER_ID the active provider."""
    with translate_errors():
        factory = ProviderFactory(load_registry())
        descriptor = factory.set_active(provider_id)
    click.echo(f"Active provider set to {descriptor.name} ({descriptor.id}).")


@providers_group.command(name="enable")
@click.argument("provider_id")
def enable_provider(provider_id: str) -> None:
    """Enable PROVIDER_ID."""
    with translate_errors():
        descriptor = set_provider_enabled(load_registry(), provider_id, True)
    click.echo(f"Enabled provider {descriptor.name} ({descriptor.id}).")


@providers_group.command(name="disable")
@click.argument("provider_id")
def disable_provider(provider_id: str) -> None:
    """Disable PROVIDER_ID. The active provider stays selected until changed."""
    with translate_errors():
        registry = load_registry()
        descriptor = set_provider_enabled(registry, provider_id, False)
    click.echo(f"Disabled provider {descriptor.name} ({descriptor.id}).")
    if registry.active_provider_id == descriptor.id:
        click.echo(
            "Note: this is the active provider; generation will fail until another is selected.",
            err=True,
        )


__all__ = ["providers_group", "provider_status", "translate_errors"]
