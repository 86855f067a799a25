"""RemoteCapabilityClient: the calls the orchestrator makes against providers.

Implementations raise :class:`~airport.client.errors.RemoteError` (or a
subclass) for every non-success response; they never return error values.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from airport.models.status import AccountStatus, CreatedAccount


@runtime_checkable
class RemoteCapabilityClient(Protocol):
    """Request/response mapping over the source and target providers."""

    @property
    def source_account_id(self) -> str:
        """DID of the authenticated source account."""
        ...

    @property
    def target_account_id(self) -> str | None:
        """DID of the target account once created (same DID as the source)."""
        ...

    # Account lifecycle

    def create_account(
        self,
        target_service: str,
        handle: str,
        email: str,
        password: str,
        invite: str | None = None,
    ) -> CreatedAccount: ...

    def activate_account(self, account_id: str) -> None: ...

    def deactivate_account(self, account_id: str) -> None: ...

    def check_account_status(self, account_id: str) -> AccountStatus: ...

    def expected_counts(self) -> tuple[int, int]:
        """(record count, blob count) held by the source account."""
        ...

    # Data transfer

    def export_repository(self, source_account_id: str) -> bytes: ...

    def import_repository(self, target_account_id: str, car_bytes: bytes) -> None: ...

    def list_blobs(self, source_account_id: str) -> list[str]: ...

    def get_blob(self, source_account_id: str, cid: str) -> tuple[bytes, str]:
        """Return (data, mime type)."""
        ...

    def upload_blob(self, target_account_id: str, data: bytes, mime_type: str) -> None: ...

    def get_preferences(self, source_account_id: str) -> list[dict[str, Any]]: ...

    def put_preferences(
        self, target_account_id: str, preferences: list[dict[str, Any]]
    ) -> None: ...

    # Identity re-keying

    def request_identity_operation_signature(self, source_account_id: str) -> None: ...

    def sign_identity_operation(
        self, source_account_id: str, token: str
    ) -> dict[str, Any]: ...

    def submit_identity_operation(self, signed_operation: dict[str, Any]) -> None: ...
