"""``airport migrate``: move an account from its current provider to another.

Logs into the source provider, drives the orchestrator, and prompts for the
e-mailed identity token when the run suspends.  Verification failures offer
a retry, and after repeated failures the override.
"""

from __future__ import annotations

import typer
from rich.console import Console

from airport.client.errors import RemoteError
from airport.client.xrpc import XrpcCapabilityClient
from airport.config import AirportConfig
from airport.config import config as default_config
from airport.core.event_bus import MigrationEventBus, bind_callbacks
from airport.core.orchestrator import MigrationOrchestrator
from airport.models.params import MigrationParameters
from airport.models.steps import IDENTITY_TOKEN_PROMPT, StepIndex, StepStatus
from airport.monitor.renderer import MigrationRenderer

console = Console()


def build_client(cfg: AirportConfig) -> XrpcCapabilityClient:
    """Construct the provider client from configuration."""
    return XrpcCapabilityClient(
        timeout=cfg.request_timeout_seconds,
        blob_size_limit=cfg.blob_size_limit_bytes,
    )


def migrate_cmd(
    source_service: str = typer.Option(
        "https://bsky.social", "--from", help="Current provider URL."
    ),
    identifier: str = typer.Option(
        ..., "--identifier", "-i", help="Current handle or DID."
    ),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Current account password."
    ),
    target_service: str = typer.Option(
        ..., "--to", help="New provider URL."
    ),
    handle: str = typer.Option(..., "--handle", help="Handle on the new provider."),
    email: str = typer.Option(..., "--email", help="Contact e-mail on the new provider."),
    new_password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True,
        help="Password for the new account.",
    ),
    invite: str = typer.Option(None, "--invite", help="Invite code, if required."),
) -> None:
    """Migrate an account, prompting for the identity token when needed."""
    cfg = default_config
    client = build_client(cfg)
    try:
        client.login(source_service, identifier, password)
    except RemoteError as exc:
        console.print(f"[bold red]Login failed:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    bus = MigrationEventBus()
    bind_callbacks(
        bus,
        on_step_update=lambda i, step: console.print(
            f"[dim]step {i + 1}[/dim] {step.name}: [bold]{step.status.value}[/bold]"
        ),
        on_identity_token_required=lambda: console.print(
            "[cyan]Check your e-mail for the identity confirmation token.[/cyan]"
        ),
        on_migration_complete=lambda: console.print(
            "[bold green]Migration complete![/bold green]"
        ),
    )
    orchestrator = MigrationOrchestrator(client, event_bus=bus, config=cfg)
    renderer = MigrationRenderer(console=console)

    params = MigrationParameters(
        service=target_service,
        handle=handle,
        email=email,
        password=new_password,
        invite=invite,
    )
    orchestrator.start(params)
    drive_to_completion(orchestrator, renderer)


def drive_to_completion(
    orchestrator: MigrationOrchestrator, renderer: MigrationRenderer
) -> None:
    """Prompt the user through suspensions and failures until done or aborted."""
    while not orchestrator.is_complete:
        state = orchestrator.snapshot()
        renderer.print_run(state)
        identity = state.steps[StepIndex.MIGRATE_IDENTITY]

        if (
            identity.name == IDENTITY_TOKEN_PROMPT
            and identity.status == StepStatus.IN_PROGRESS
        ):
            orchestrator.submit_identity_token(typer.prompt("Identity token"))
            continue

        if not state.failed_steps:
            console.print("[yellow]Migration halted without an error.[/yellow]")
            raise typer.Exit(code=1)

        step = state.failed_steps[0]
        if step.error:
            console.print(step.error, style="red", markup=False)

        if step.is_verification_error:
            if orchestrator.override_available(step.index) and typer.confirm(
                f"Verification of step {step.index.number} keeps failing. "
                "Continue anyway?"
            ):
                orchestrator.continue_anyway(step.index)
            elif typer.confirm("Retry verification?", default=True):
                orchestrator.retry_verification(step.index)
            else:
                raise typer.Exit(code=1)
        elif step.index == StepIndex.MIGRATE_IDENTITY and step.name == IDENTITY_TOKEN_PROMPT:
            orchestrator.submit_identity_token(typer.prompt("Identity token"))
        elif typer.confirm(f"Retry step {step.index.number}?", default=True):
            orchestrator.retry_step(step.index)
        else:
            raise typer.Exit(code=1)

    renderer.print_run(orchestrator.snapshot())
