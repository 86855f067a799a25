"""Shared test fixtures for Airport."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from airport.client.errors import NotAuthenticatedError, RemoteError
from airport.config import AirportConfig
from airport.core.event_bus import MigrationEventBus
from airport.core.orchestrator import MigrationOrchestrator
from airport.models.params import MigrationParameters
from airport.models.status import AccountStatus, CreatedAccount

SOURCE_DID = "did:plc:alice0000000000000000"
VALID_TOKEN = "ABCDE-12345"


class FakeProviderNetwork:
    """In-memory source and target providers behind the client protocol.

    The target's status reflects what has been written to it: the repository
    is initialised once the account exists, records are indexed once the
    repository is imported, the identity resolves once the operation is
    submitted.  ``status_overrides`` patches individual status fields to
    simulate indexing lag; ``fail_next`` queues an exception for a method.
    """

    def __init__(
        self,
        *,
        records: int = 3,
        blobs: dict[str, tuple[bytes, str]] | None = None,
        preferences: list[dict[str, Any]] | None = None,
    ) -> None:
        self.source_did = SOURCE_DID
        self.source_car = b"CAR:" + b"r" * records
        self.source_records = records
        self.source_blobs = dict(
            blobs
            if blobs is not None
            else {
                "bafkblob1": (b"\x89PNG-one", "image/png"),
                "bafkblob2": (b"\xff\xd8JPEG-two", "image/jpeg"),
            }
        )
        self.source_preferences = list(
            preferences
            if preferences is not None
            else [
                {"$type": "app.bsky.actor.defs#adultContentPref", "enabled": False},
                {"$type": "app.bsky.actor.defs#savedFeedsPrefV2", "items": []},
            ]
        )
        self.source_active = True
        self.logged_in = False

        self.target_created = False
        self.target_service: str | None = None
        self.target_car: bytes | None = None
        self.target_blobs: list[tuple[bytes, str]] = []
        self.target_preferences: list[dict[str, Any]] | None = None
        self.target_active = False
        self.identity_on_target = False

        self.status_overrides: dict[str, Any] = {}
        self.calls: list[str] = []
        self._failures: dict[str, list[BaseException]] = {}

    # -- test controls -------------------------------------------------

    def fail_next(self, method: str, exc: BaseException) -> None:
        self._failures.setdefault(method, []).append(exc)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    # -- sessions ------------------------------------------------------

    def login(self, service: str, identifier: str, password: str) -> None:
        if password != "old-secret":
            raise RemoteError("Invalid identifier or password", status=401)
        self.logged_in = True

    def login_target(self, service: str, password: str) -> None:
        if not self.target_created:
            raise RemoteError("Account not found", status=401)
        self.target_service = service

    @property
    def source_account_id(self) -> str:
        if not self.logged_in:
            raise NotAuthenticatedError("Not logged in to the source provider")
        return self.source_did

    @property
    def target_account_id(self) -> str | None:
        return self.source_did if self.target_created else None

    # -- protocol ------------------------------------------------------

    def create_account(self, target_service, handle, email, password, invite=None):
        self._enter("create_account")
        self.target_created = True
        self.target_service = target_service
        return CreatedAccount(account_id=self.source_did, handle=handle)

    def activate_account(self, account_id):
        self._enter("activate_account")
        self.target_active = True

    def deactivate_account(self, account_id):
        self._enter("deactivate_account")
        self.source_active = False

    def check_account_status(self, account_id):
        self._enter("check_account_status")
        imported = self.target_car is not None
        fields: dict[str, Any] = {
            "activated": self.target_active,
            "valid_did": self.identity_on_target,
            "repo_commit": "bafyreicommit" if self.target_created else None,
            "repo_rev": "3kabc" if self.target_created else None,
            "repo_blocks": (len(self.target_car) if imported else 1)
            if self.target_created
            else 0,
            "indexed_records": self.source_records if imported else 0,
            "private_state_values": 0,
            "expected_blobs": len(self.source_blobs),
            "imported_blobs": len(self.target_blobs),
        }
        fields.update(self.status_overrides)
        return AccountStatus(**fields)

    def expected_counts(self):
        self._enter("expected_counts")
        return self.source_records, len(self.source_blobs)

    def export_repository(self, source_account_id):
        self._enter("export_repository")
        return self.source_car

    def import_repository(self, target_account_id, car_bytes):
        self._enter("import_repository")
        self.target_car = car_bytes

    def list_blobs(self, source_account_id):
        self._enter("list_blobs")
        return list(self.source_blobs)

    def get_blob(self, source_account_id, cid):
        self._enter("get_blob")
        return self.source_blobs[cid]

    def upload_blob(self, target_account_id, data, mime_type):
        self._enter("upload_blob")
        self.target_blobs.append((data, mime_type))

    def get_preferences(self, source_account_id):
        self._enter("get_preferences")
        return [dict(p) for p in self.source_preferences]

    def put_preferences(self, target_account_id, preferences):
        self._enter("put_preferences")
        self.target_preferences = preferences

    def request_identity_operation_signature(self, source_account_id):
        self._enter("request_identity_operation_signature")

    def sign_identity_operation(self, source_account_id, token):
        self._enter("sign_identity_operation")
        if token != VALID_TOKEN:
            raise RemoteError("Token is invalid", status=400, code="InvalidToken")
        return {"type": "plc_operation", "services": {"atproto_pds": self.target_service}}

    def submit_identity_operation(self, signed_operation):
        self._enter("submit_identity_operation")
        self.identity_on_target = True


@pytest.fixture
def provider() -> FakeProviderNetwork:
    """Provide a logged-in fake provider network."""
    network = FakeProviderNetwork()
    network.logged_in = True
    return network


@pytest.fixture
def fast_config() -> AirportConfig:
    """Provide a config with no propagation delay."""
    return AirportConfig(propagation_delay_seconds=0, migration_state="up")


@pytest.fixture
def event_bus() -> MigrationEventBus:
    return MigrationEventBus()


@pytest.fixture
def params() -> MigrationParameters:
    """Provide complete migration parameters."""
    return MigrationParameters(
        service="https://pds.example",
        handle="alice.example",
        email="a@example.com",
        password="secret1",
    )


@pytest.fixture
def make_orchestrator(
    provider: FakeProviderNetwork,
    event_bus: MigrationEventBus,
    fast_config: AirportConfig,
) -> Callable[..., MigrationOrchestrator]:
    """Factory fixture: build an orchestrator over the fake network."""

    def _factory(**overrides: Any) -> MigrationOrchestrator:
        kwargs: dict[str, Any] = {
            "event_bus": event_bus,
            "config": fast_config,
            "sleep": lambda seconds: None,
        }
        kwargs.update(overrides)
        return MigrationOrchestrator(provider, **kwargs)

    return _factory


@pytest.fixture
def orchestrator(
    make_orchestrator: Callable[..., MigrationOrchestrator],
) -> MigrationOrchestrator:
    """Convenience: an orchestrator with test defaults."""
    return make_orchestrator()
