"""Rich terminal renderer for migration progress.

Color scheme
------------
- green     : completed
- yellow    : in-progress / verifying
- red       : error
- dim       : pending
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from airport.models.state import MigrationRunState
from airport.models.status import VerificationStatus
from airport.models.steps import StepStatus

_STATUS_STYLES: dict[StepStatus, str] = {
    StepStatus.COMPLETED: "bold green",
    StepStatus.ERROR: "bold red",
    StepStatus.IN_PROGRESS: "bold yellow",
    StepStatus.VERIFYING: "yellow",
    StepStatus.PENDING: "dim",
}

_STATUS_LABELS: dict[StepStatus, str] = {
    StepStatus.COMPLETED: "[green]COMPLETED[/green]",
    StepStatus.ERROR: "[bold red]ERROR[/bold red]",
    StepStatus.IN_PROGRESS: "[yellow]IN PROGRESS[/yellow]",
    StepStatus.VERIFYING: "[yellow]VERIFYING[/yellow]",
    StepStatus.PENDING: "[dim]PENDING[/dim]",
}


class MigrationRenderer:
    """Renders run snapshots and verification verdicts as Rich output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_run(self, state: MigrationRunState) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Step", min_width=24)
        table.add_column("Status", min_width=12, justify="center")
        table.add_column("Retries", justify="right", width=8)
        table.add_column("Details", min_width=20)

        for step in state.steps:
            style = _STATUS_STYLES.get(step.status, "")
            retry = state.retries.get(step.index)
            attempts = str(retry.attempts) if retry and retry.attempts else "[dim]0[/dim]"
            details = "[dim]-[/dim]"
            if step.error:
                kind = "verification" if step.is_verification_error else "error"
                details = f"[red]{kind}:[/red] {escape(step.error.splitlines()[0])}"
                if retry and retry.override_available:
                    details += "  [magenta](override available)[/magenta]"
            table.add_row(
                str(step.index.number),
                f"[{style}]{escape(step.name)}[/{style}]",
                _STATUS_LABELS.get(step.status, step.status.value),
                attempts,
                details,
            )

        done = sum(1 for s in state.steps if s.status == StepStatus.COMPLETED)
        summary = Text.from_markup(
            f"[bold]Progress:[/bold] {done}/{len(state.steps)}"
            + ("  |  [bold green]Migration complete[/bold green]" if state.is_complete else "")
        )
        return Panel(
            Group(table, Text(""), summary),
            title="[bold]Airport Migration[/bold]",
            border_style="blue",
            padding=(1, 2),
        )

    def render_verification(self, result: VerificationStatus) -> Panel:
        table = Table(show_header=False, box=None)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for key, value in result.diagnostics().items():
            table.add_row(key, str(value))

        verdict = (
            "[bold green]ready[/bold green]"
            if result.ready
            else f"[bold red]not ready[/bold red]: {escape(result.reason or 'no reason given')}"
        )
        return Panel(
            Group(Text.from_markup(verdict), Text(""), table),
            title=f"[bold]Step {result.step_number} verification[/bold]",
            border_style="green" if result.ready else "red",
            padding=(1, 2),
        )

    def print_run(self, state: MigrationRunState) -> None:
        self.console.print(self.render_run(state))

    def print_verification(self, result: VerificationStatus) -> None:
        self.console.print(self.render_verification(result))
