"""Migration step models: the four ordered steps and their legal transitions."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict


class StepIndex(IntEnum):
    """Position of a step in the migration sequence (0-based)."""

    CREATE_ACCOUNT = 0
    MIGRATE_DATA = 1
    MIGRATE_IDENTITY = 2
    FINALIZE = 3

    @property
    def number(self) -> int:
        """Human-facing step number (1-based)."""
        return int(self) + 1

    @property
    def is_last(self) -> bool:
        return self == StepIndex.FINALIZE


class StepStatus(str, Enum):
    """Status of a single migration step."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    ERROR = "error"


# Legal moves, enforced by core.step_table.update_step.
# ERROR -> COMPLETED is the override path.
VALID_TRANSITIONS: dict[StepStatus, set[StepStatus]] = {
    StepStatus.PENDING: {StepStatus.IN_PROGRESS, StepStatus.ERROR},
    StepStatus.IN_PROGRESS: {StepStatus.VERIFYING, StepStatus.ERROR},
    StepStatus.VERIFYING: {StepStatus.COMPLETED, StepStatus.ERROR},
    StepStatus.ERROR: {
        StepStatus.IN_PROGRESS,
        StepStatus.VERIFYING,
        StepStatus.COMPLETED,
        StepStatus.ERROR,
    },
    StepStatus.COMPLETED: {StepStatus.VERIFYING, StepStatus.IN_PROGRESS},
}


class MigrationStep(BaseModel):
    """One entry of the step table.

    ``is_verification_error`` separates a failed verification gate (retry or
    override) from a business-logic failure (fix and redrive).
    """

    model_config = ConfigDict(frozen=True)

    index: StepIndex
    name: str
    status: StepStatus = StepStatus.PENDING
    error: str | None = None
    is_verification_error: bool = False


DEFAULT_STEP_NAMES: dict[StepIndex, str] = {
    StepIndex.CREATE_ACCOUNT: "Create Account",
    StepIndex.MIGRATE_DATA: "Migrate Data",
    StepIndex.MIGRATE_IDENTITY: "Migrate Identity",
    StepIndex.FINALIZE: "Finalize Migration",
}

# Display name of step 3 once the signature e-mail has been requested.
IDENTITY_TOKEN_PROMPT = (
    "Enter the token sent to your email to complete identity migration"
)


def default_step(index: StepIndex) -> MigrationStep:
    """Return the pending default for a step."""
    return MigrationStep(index=index, name=DEFAULT_STEP_NAMES[index])
