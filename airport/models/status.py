"""Provider status models: raw account status, verification verdicts, availability."""

from __future__ import annotations

import json
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AccountStatus(BaseModel):
    """Raw output of ``com.atproto.server.checkAccountStatus``.

    Field aliases match the provider's camelCase wire names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    activated: bool = False
    valid_did: bool = Field(default=False, alias="validDid")
    repo_commit: str | None = Field(default=None, alias="repoCommit")
    repo_rev: str | None = Field(default=None, alias="repoRev")
    repo_blocks: int = Field(default=0, alias="repoBlocks")
    indexed_records: int = Field(default=0, alias="indexedRecords")
    private_state_values: int = Field(default=0, alias="privateStateValues")
    expected_blobs: int = Field(default=0, alias="expectedBlobs")
    imported_blobs: int = Field(default=0, alias="importedBlobs")

    @property
    def repo_initialized(self) -> bool:
        return bool(self.repo_commit) and bool(self.repo_rev) and self.repo_blocks > 0


class CreatedAccount(BaseModel):
    """Result of creating the target account."""

    model_config = ConfigDict(frozen=True)

    account_id: str  # the DID, carried over from the source
    handle: str


class VerificationStatus(BaseModel):
    """Point-in-time verdict of the verification oracle for one step.

    Never persisted; recomputed on every verification call.
    """

    model_config = ConfigDict(frozen=True)

    step_number: int
    ready: bool
    reason: str | None = None
    activated: bool | None = None
    valid_did: bool | None = None
    repo_commit: bool | None = None
    repo_rev: bool | None = None
    repo_blocks: bool | None = None
    expected_records: int | None = None
    indexed_records: int | None = None
    private_state_values: int | None = None
    expected_blobs: int | None = None
    imported_blobs: int | None = None

    def diagnostics(self) -> dict[str, object]:
        """The step-specific diagnostic fields, without the verdict."""
        return self.model_dump(
            exclude={"step_number", "ready", "reason"}, exclude_none=True
        )

    def describe(self) -> str:
        """Reason plus diagnostic snapshot, as shown in a step error."""
        reason = self.reason or "Verification failed"
        details = json.dumps(self.diagnostics(), indent=2, sort_keys=True)
        return f"{reason}\nStatus details: {details}"


class AvailabilityState(str, Enum):
    """Operator-controlled migration availability."""

    UP = "up"
    ISSUE = "issue"
    MAINTENANCE = "maintenance"


class MigrationAvailability(BaseModel):
    """Result of the migration-availability gate."""

    model_config = ConfigDict(frozen=True)

    state: AvailabilityState = AvailabilityState.UP
    message: str = ""
    allow_migration: bool = True
