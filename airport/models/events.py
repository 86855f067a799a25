"""Events emitted by the orchestrator to its observers."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from airport.models.status import MigrationAvailability
from airport.models.steps import MigrationStep, StepIndex


class MigrationEventKind(str, Enum):
    STEP_UPDATED = "step_updated"
    STATE_UPDATED = "state_updated"
    RETRY_COUNT_UPDATED = "retry_count_updated"
    OVERRIDE_AVAILABILITY_CHANGED = "override_availability_changed"
    IDENTITY_TOKEN_REQUIRED = "identity_token_required"
    MIGRATION_COMPLETE = "migration_complete"


class MigrationEvent(BaseModel):
    """A single tagged event.

    Only the fields relevant to ``kind`` are populated: ``step`` for
    step updates, ``count`` for retry counts, ``flag`` for override
    availability, ``availability`` for state updates.
    """

    model_config = ConfigDict(frozen=True)

    kind: MigrationEventKind
    step_index: StepIndex | None = None
    step: MigrationStep | None = None
    count: int | None = None
    flag: bool | None = None
    availability: MigrationAvailability | None = None
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
