"""Migration input parameters."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParameterValidationError(ValueError):
    """Raised when migration parameters are incomplete."""


class MigrationParameters(BaseModel):
    """Immutable input for one migration run.

    Only ``invite`` may be empty.  Presence of the other fields is checked by
    :meth:`validate_required` rather than at construction time so that the
    orchestrator can report the problem as a step error.
    """

    model_config = ConfigDict(frozen=True)

    service: str = ""  # target provider URL
    handle: str = ""
    email: str = ""
    password: str = Field(default="", repr=False)
    invite: str | None = None

    def validate_required(self) -> None:
        """Raise ``ParameterValidationError`` naming the first blank field."""
        checks = (
            (self.service, "Missing service URL"),
            (self.handle, "Missing handle"),
            (self.email, "Missing email"),
            (self.password, "Missing password"),
        )
        for value, message in checks:
            if not (value or "").strip():
                raise ParameterValidationError(message)

    def log_safe(self) -> dict[str, object]:
        """Fields suitable for logging (no secret)."""
        return {
            "service": self.service,
            "handle": self.handle,
            "email": self.email,
            "has_password": bool(self.password),
            "invite": self.invite,
        }
