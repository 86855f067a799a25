"""Pure transition functions over the four-step table.

The orchestrator never mutates steps in place.  Every change goes through
:func:`update_step`, which:

- validates the move against ``VALID_TRANSITIONS``
- writes the new status, error and verification flag at the target index
- resets every later step back to its pending default
"""

from __future__ import annotations

from airport.models.steps import (
    VALID_TRANSITIONS,
    MigrationStep,
    StepIndex,
    StepStatus,
    default_step,
)

StepTable = tuple[MigrationStep, ...]


class InvalidTransitionError(RuntimeError):
    """Raised when a requested step transition is not valid."""


def initial_steps() -> StepTable:
    """All four steps, pending, with their default names."""
    return tuple(default_step(index) for index in StepIndex)


def can_transition(current: StepStatus, target: StepStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def update_step(
    steps: StepTable,
    index: StepIndex,
    status: StepStatus,
    error: str | None = None,
    *,
    is_verification_error: bool = False,
) -> StepTable:
    """Return a new table with ``index`` moved to ``status``.

    Steps after ``index`` are reset to pending with cleared errors and their
    default names; steps before it are left untouched.
    """
    index = StepIndex(index)
    current = steps[index]
    if not can_transition(current.status, status):
        allowed = sorted(s.value for s in VALID_TRANSITIONS.get(current.status, set()))
        raise InvalidTransitionError(
            f"Cannot move step {index.number} ({current.name}) from "
            f"{current.status.value} to {status.value}. Allowed: {allowed}"
        )

    updated = current.model_copy(
        update={
            "status": status,
            "error": error,
            "is_verification_error": is_verification_error,
        }
    )
    return tuple(
        updated if i == index else default_step(StepIndex(i)) if i > index else step
        for i, step in enumerate(steps)
    )


def rename_step(steps: StepTable, index: StepIndex, name: str) -> StepTable:
    """Return a new table with only the display name of ``index`` changed."""
    return tuple(
        step.model_copy(update={"name": name}) if i == index else step
        for i, step in enumerate(steps)
    )
