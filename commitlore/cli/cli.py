"""Main CLI entry point for commitlore.

Running ``commitlore`` with no subcommand opens the provider management
screen; the subcommands cover the same operations non-interactively.
"""

import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from commitlore import __version__
from commitlore.cli.providers_cli import providers_group, translate_errors
from commitlore.core.config import load_registry
from commitlore.core.dispatch import DEFAULT_TIMEOUT, AsyncDispatcher, GenerationRequest, generate_sync
from commitlore.core.errors import PersistenceError, ProviderError
from commitlore.core.provider_factory import ProviderFactory
from commitlore.utils.log import enable_file_logging, get_logger

console = Console()
logger = get_logger()


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """commitlore - turn git history into stories"""
    log_file = enable_file_logging()
    logger.info(
        "[cli] Starting CLI invocation",
        extra={"log_file": str(log_file), "subcommand": ctx.invoked_subcommand},
    )

    if ctx.invoked_subcommand is None:
        from commitlore.cli.ui.providers_tui.textual_app import run_providers_tui

        if not run_providers_tui():
            console.print("[yellow]Interactive UI not available in this environment.[/yellow]")
            console.print(ctx.get_help())


cli.add_command(providers_group)


@cli.command(name="generate")
@click.option("--provider", "provider_id", default=None, help="Provider id (defaults to the active one)")
@click.option("--system", "system_prompt", default="", help="Optional system instruction")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_TIMEOUT,
    show_default=True,
    envvar="COMMITLORE_TIMEOUT",
    help="Seconds to wait before giving up",
)
@click.argument("prompt")
def generate_cmd(
    provider_id: Optional[str], system_prompt: str, timeout: float, prompt: str
) -> None:
    """Send PROMPT to a provider and print the generated text."""
    with translate_errors():
        factory = ProviderFactory(load_registry())
        if provider_id:
            generator, name = factory.create_by_id(provider_id)
        else:
            generator, name = factory.create_active()

    logger.info(
        "[cli] Generating content",
        extra={"provider_name": name, "timeout": timeout, "prompt_length": len(prompt)},
    )
    dispatcher = AsyncDispatcher(default_timeout=timeout)
    try:
        outcome = generate_sync(
            generator,
            GenerationRequest(prompt=prompt, system_prompt=system_prompt),
            timeout,
            dispatcher=dispatcher,
        )
    finally:
        dispatcher.shutdown()

    if not outcome.ok:
        raise click.ClickException(
            f"{name} failed [{outcome.error_code}]: {outcome.error_message}"
        )
    click.echo(outcome.content)


@cli.command(name="version")
def version_cmd() -> None:
    """Show version information"""
    console.print(f"commitlore version {__version__}")


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except (
        ProviderError,
        PersistenceError,
        RuntimeError,
        ValueError,
        OSError,
    ) as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
