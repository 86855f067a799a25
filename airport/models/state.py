"""Run state snapshot: what observers may see of the orchestrator's table."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from airport.models.steps import MigrationStep, StepIndex, StepStatus


class RetryState(BaseModel):
    """Verification attempts and override eligibility for one step."""

    model_config = ConfigDict(frozen=True)

    attempts: int = 0
    override_available: bool = False


class MigrationRunState(BaseModel):
    """Frozen copy of the orchestrator's run state."""

    model_config = ConfigDict(frozen=True)

    active_step: StepIndex | None = None
    steps: tuple[MigrationStep, ...]
    retries: dict[StepIndex, RetryState] = {}

    @property
    def is_complete(self) -> bool:
        return all(s.status == StepStatus.COMPLETED for s in self.steps)

    @property
    def failed_steps(self) -> list[MigrationStep]:
        return [s for s in self.steps if s.status == StepStatus.ERROR]
