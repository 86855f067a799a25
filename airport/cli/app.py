"""Main Typer application: imports and registers all CLI commands.

Entry point: ``airport`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer
from rich.console import Console

from airport.cli.commands.migrate import migrate_cmd
from airport.cli.commands.status import status_cmd
from airport.config import availability_from_config
from airport.config import config as default_config
from airport.logging_setup import configure_logging

app = typer.Typer(
    name="airport",
    help="Airport: move an account and its identity between providers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Configure logging before any command runs."""
    cfg = default_config.model_copy(update={"debug": True}) if verbose else default_config
    configure_logging(cfg)


# Register subcommands
app.command(name="migrate", help="Migrate an account to a new provider.")(migrate_cmd)
app.command(name="status", help="Verify one migration step.")(status_cmd)


@app.command(name="availability", help="Show whether migrations are accepted.")
def availability_cmd() -> None:
    """Print the configured migration-availability gate."""
    console = Console()
    gate = availability_from_config(default_config)
    colour = "green" if gate.allow_migration else "red"
    console.print(
        f"[bold {colour}]{gate.state.value}[/bold {colour}]"
        + (f"  {gate.message}" if gate.message else "")
    )
    if not gate.allow_migration:
        raise typer.Exit(code=1)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
