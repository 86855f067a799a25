"""``airport status STEP`` - run the verification oracle for one step.

Logs into both providers and shows the verdict with its diagnostics, which
helps decide whether "continue anyway" is safe (counts merely lagging versus
genuinely mismatched).
"""

from __future__ import annotations

import typer
from rich.console import Console

from airport.cli.commands.migrate import build_client
from airport.client.errors import RemoteError
from airport.config import config as default_config
from airport.core.verification import VerificationOracle
from airport.models.steps import StepIndex
from airport.monitor.renderer import MigrationRenderer

console = Console()


def status_cmd(
    step: int = typer.Argument(..., min=1, max=4, help="Step number (1-4)."),
    source_service: str = typer.Option(
        "https://bsky.social", "--from", help="Current provider URL."
    ),
    identifier: str = typer.Option(
        ..., "--identifier", "-i", help="Current handle or DID."
    ),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Current account password."
    ),
    target_service: str = typer.Option(..., "--to", help="New provider URL."),
    new_password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Password of the new account."
    ),
) -> None:
    """Show the verification verdict for a migration step."""
    client = build_client(default_config)
    try:
        client.login(source_service, identifier, password)
        client.login_target(target_service, new_password)
    except RemoteError as exc:
        console.print(f"[bold red]Login failed:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    result = VerificationOracle(client).verify(
        StepIndex(step - 1), manual_submission=True
    )
    MigrationRenderer(console=console).print_verification(result)
    if not result.ready:
        raise typer.Exit(code=2)
