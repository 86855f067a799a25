"""Airport data models: all Pydantic v2, all frozen (immutable)."""

from airport.models.events import MigrationEvent, MigrationEventKind
from airport.models.params import MigrationParameters, ParameterValidationError
from airport.models.state import MigrationRunState, RetryState
from airport.models.status import (
    AccountStatus,
    AvailabilityState,
    CreatedAccount,
    MigrationAvailability,
    VerificationStatus,
)
from airport.models.steps import (
    DEFAULT_STEP_NAMES,
    IDENTITY_TOKEN_PROMPT,
    VALID_TRANSITIONS,
    MigrationStep,
    StepIndex,
    StepStatus,
    default_step,
)

__all__ = [
    # steps
    "StepIndex",
    "StepStatus",
    "MigrationStep",
    "VALID_TRANSITIONS",
    "DEFAULT_STEP_NAMES",
    "IDENTITY_TOKEN_PROMPT",
    "default_step",
    # params
    "MigrationParameters",
    "ParameterValidationError",
    # status
    "AccountStatus",
    "AvailabilityState",
    "CreatedAccount",
    "MigrationAvailability",
    "VerificationStatus",
    # state
    "MigrationRunState",
    "RetryState",
    # events
    "MigrationEvent",
    "MigrationEventKind",
]
