"""Unit tests for MigrationOrchestrator: phases, gates, retries, override."""

from __future__ import annotations

from conftest import VALID_TOKEN

from airport.client.errors import RemoteError
from airport.models.events import MigrationEventKind
from airport.models.params import MigrationParameters
from airport.models.status import AvailabilityState, MigrationAvailability
from airport.models.steps import IDENTITY_TOKEN_PROMPT, StepIndex, StepStatus


def _statuses(orchestrator):
    return [s.status for s in orchestrator.steps]


# ---------------------------------------------------------------------------
# Test: start and parameter handling
# ---------------------------------------------------------------------------


class TestStart:
    def test_initial_state(self, orchestrator):
        assert _statuses(orchestrator) == [StepStatus.PENDING] * 4
        assert orchestrator.active_step is None
        assert not orchestrator.is_complete

    def test_runs_until_identity_suspension(self, orchestrator, params):
        assert orchestrator.start(params) is True
        assert _statuses(orchestrator) == [
            StepStatus.COMPLETED,
            StepStatus.COMPLETED,
            StepStatus.IN_PROGRESS,
            StepStatus.PENDING,
        ]
        assert orchestrator.steps[StepIndex.MIGRATE_IDENTITY].name == IDENTITY_TOKEN_PROMPT
        assert orchestrator.active_step == StepIndex.MIGRATE_IDENTITY

    def test_missing_field_fails_step_one(self, orchestrator, provider):
        params = MigrationParameters(
            service="https://pds.example", handle="alice.example", password="pw"
        )
        assert orchestrator.start(params) is False
        step = orchestrator.steps[StepIndex.CREATE_ACCOUNT]
        assert step.status == StepStatus.ERROR
        assert step.error == "Missing email"
        assert provider.calls == []

    def test_validation_order(self, orchestrator):
        orchestrator.start(MigrationParameters())
        assert orchestrator.steps[0].error == "Missing service URL"

    def test_invite_is_optional(self, orchestrator, params):
        assert params.invite is None
        assert orchestrator.start(params) is True

    def test_password_hidden_from_repr(self, params):
        assert "secret1" not in repr(params)
        assert params.log_safe()["has_password"] is True


class TestAvailabilityGate:
    def test_maintenance_blocks_without_client_calls(
        self, make_orchestrator, provider, params, event_bus
    ):
        gate = MigrationAvailability(
            state=AvailabilityState.MAINTENANCE,
            message="Back in an hour.",
            allow_migration=False,
        )
        orchestrator = make_orchestrator(availability=lambda: gate)

        assert orchestrator.start(params) is False
        assert provider.calls == []
        step = orchestrator.steps[StepIndex.CREATE_ACCOUNT]
        assert step.status == StepStatus.ERROR
        assert step.error == "Back in an hour."
        state_events = event_bus.events_of(MigrationEventKind.STATE_UPDATED)
        assert state_events[0].availability == gate

    def test_gate_failure_is_logged_and_run_proceeds(self, make_orchestrator, params):
        def broken_gate():
            raise ConnectionError("status endpoint down")

        orchestrator = make_orchestrator(availability=broken_gate)
        assert orchestrator.start(params) is True

    def test_issue_state_still_allows(self, make_orchestrator, params):
        gate = MigrationAvailability(state=AvailabilityState.ISSUE, message="Slow blobs")
        orchestrator = make_orchestrator(availability=lambda: gate)
        assert orchestrator.start(params) is True


# ---------------------------------------------------------------------------
# Test: business-logic errors
# ---------------------------------------------------------------------------


class TestBusinessErrors:
    def test_create_account_failure(self, orchestrator, provider, params):
        provider.fail_next("create_account", RemoteError("Handle already taken", status=400))
        assert orchestrator.start(params) is False
        step = orchestrator.steps[StepIndex.CREATE_ACCOUNT]
        assert step.status == StepStatus.ERROR
        assert step.error == "Handle already taken"
        assert step.is_verification_error is False
        assert orchestrator.retry_attempts(StepIndex.CREATE_ACCOUNT) == 0

    def test_unexpected_exception_is_recorded(self, orchestrator, provider, params):
        provider.fail_next("get_blob", KeyError("bafkblob1"))
        assert orchestrator.start(params) is False
        step = orchestrator.steps[StepIndex.MIGRATE_DATA]
        assert step.status == StepStatus.ERROR
        assert "bafkblob1" in step.error

    def test_retry_step_redrives_write_path(self, orchestrator, provider, params):
        provider.fail_next("put_preferences", RemoteError("Failed to migrate preferences"))
        orchestrator.start(params)
        assert orchestrator.steps[StepIndex.MIGRATE_DATA].status == StepStatus.ERROR

        assert orchestrator.retry_step(StepIndex.MIGRATE_DATA) is True
        assert orchestrator.steps[StepIndex.MIGRATE_DATA].status == StepStatus.COMPLETED
        assert orchestrator.steps[StepIndex.MIGRATE_IDENTITY].status == StepStatus.IN_PROGRESS

    def test_business_error_is_not_reverified(self, orchestrator, provider, params):
        provider.fail_next("import_repository", RemoteError("Failed to migrate repo"))
        orchestrator.start(params)
        assert orchestrator.retry_verification(StepIndex.MIGRATE_DATA) is False
        step = orchestrator.steps[StepIndex.MIGRATE_DATA]
        assert step.error == "Failed to migrate repo"
        assert step.is_verification_error is False
        assert orchestrator.retry_attempts(StepIndex.MIGRATE_DATA) == 0

    def test_retry_step_requires_previous_completed(self, orchestrator):
        assert orchestrator.retry_step(StepIndex.FINALIZE) is False

    def test_retry_step_one_before_start(self, orchestrator):
        assert orchestrator.retry_step(StepIndex.CREATE_ACCOUNT) is False

    def test_retry_step_one_reruns_start(self, orchestrator, provider, params):
        provider.fail_next("create_account", RemoteError("Invite code required"))
        orchestrator.start(params)
        assert orchestrator.retry_step(StepIndex.CREATE_ACCOUNT) is True
        assert provider.calls.count("create_account") == 2

    def test_phase_one_before_start_is_refused(self, orchestrator, provider):
        assert orchestrator._run_phase(StepIndex.CREATE_ACCOUNT) is False
        assert orchestrator.steps[StepIndex.CREATE_ACCOUNT].status == StepStatus.PENDING
        assert provider.calls == []

    def test_lost_source_session_is_a_step_two_error(self, orchestrator, provider, params):
        provider.logged_in = False
        assert orchestrator.start(params) is False
        step = orchestrator.steps[StepIndex.MIGRATE_DATA]
        assert step.status == StepStatus.ERROR
        assert step.error == "Not logged in to the source provider"
        assert step.is_verification_error is False
        assert "export_repository" not in provider.calls

    def test_unknown_step_rejected(self, orchestrator):
        assert orchestrator.retry_step(9) is False
        assert orchestrator.retry_verification(-1) is False
        assert orchestrator.continue_anyway(4) is False


# ---------------------------------------------------------------------------
# Test: verification gate, retries and override
# ---------------------------------------------------------------------------


class TestVerificationGate:
    def test_failed_gate_marks_verification_error(self, orchestrator, provider, params):
        provider.status_overrides = {"indexed_records": 1}
        assert orchestrator.start(params) is False

        step = orchestrator.steps[StepIndex.MIGRATE_DATA]
        assert step.status == StepStatus.ERROR
        assert step.is_verification_error is True
        assert step.error.startswith("Indexed 1 of 3 records")
        assert "Status details:" in step.error
        assert orchestrator.retry_attempts(StepIndex.MIGRATE_DATA) == 1
        assert not orchestrator.override_available(StepIndex.MIGRATE_DATA)

    def test_override_after_two_failures(self, orchestrator, provider, params, event_bus):
        provider.status_overrides = {"indexed_records": 1}
        orchestrator.start(params)
        assert orchestrator.retry_verification(StepIndex.MIGRATE_DATA) is False

        assert orchestrator.retry_attempts(StepIndex.MIGRATE_DATA) == 2
        assert orchestrator.override_available(StepIndex.MIGRATE_DATA)
        flags = [
            e.flag
            for e in event_bus.events_of(MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED)
        ]
        assert flags == [True]

    def test_retry_verification_success_resets_counter(
        self, orchestrator, provider, params, event_bus
    ):
        provider.status_overrides = {"indexed_records": 1}
        orchestrator.start(params)
        orchestrator.retry_verification(StepIndex.MIGRATE_DATA)

        provider.status_overrides = {}
        assert orchestrator.retry_verification(StepIndex.MIGRATE_DATA) is True
        assert orchestrator.retry_attempts(StepIndex.MIGRATE_DATA) == 0
        assert not orchestrator.override_available(StepIndex.MIGRATE_DATA)
        assert orchestrator.steps[StepIndex.MIGRATE_IDENTITY].status == StepStatus.IN_PROGRESS
        counts = [
            e.count
            for e in event_bus.events_of(MigrationEventKind.RETRY_COUNT_UPDATED)
            if e.step_index == StepIndex.MIGRATE_DATA
        ]
        assert counts[-3:] == [1, 2, 0]

    def test_retry_verification_does_not_rerun_writes(self, orchestrator, provider, params):
        provider.status_overrides = {"indexed_records": 1}
        orchestrator.start(params)
        orchestrator.retry_verification(StepIndex.MIGRATE_DATA)
        assert provider.calls.count("import_repository") == 1

    def test_retry_verification_of_pending_step(self, orchestrator):
        assert orchestrator.retry_verification(StepIndex.FINALIZE) is False

    def test_continue_anyway_refused_before_override(self, orchestrator, provider, params):
        provider.status_overrides = {"indexed_records": 1}
        orchestrator.start(params)
        assert orchestrator.continue_anyway(StepIndex.MIGRATE_DATA) is False
        assert orchestrator.steps[StepIndex.MIGRATE_DATA].status == StepStatus.ERROR

    def test_continue_anyway_advances(self, orchestrator, provider, params):
        provider.status_overrides = {"indexed_records": 1}
        orchestrator.start(params)
        orchestrator.retry_verification(StepIndex.MIGRATE_DATA)

        assert orchestrator.continue_anyway(StepIndex.MIGRATE_DATA) is True
        assert orchestrator.steps[StepIndex.MIGRATE_DATA].status == StepStatus.COMPLETED
        assert not orchestrator.override_available(StepIndex.MIGRATE_DATA)
        assert orchestrator.steps[StepIndex.MIGRATE_IDENTITY].status == StepStatus.IN_PROGRESS

    def test_redriven_write_path_clears_override(
        self, orchestrator, provider, params, event_bus
    ):
        provider.status_overrides = {"indexed_records": 0}
        orchestrator.start(params)
        orchestrator.retry_verification(StepIndex.MIGRATE_DATA)
        assert orchestrator.override_available(StepIndex.MIGRATE_DATA)

        provider.status_overrides = {}
        provider.fail_next("import_repository", RemoteError("Failed to migrate repo"))
        assert orchestrator.retry_step(StepIndex.MIGRATE_DATA) is False

        step = orchestrator.steps[StepIndex.MIGRATE_DATA]
        assert step.status == StepStatus.ERROR
        assert step.is_verification_error is False
        assert orchestrator.retry_attempts(StepIndex.MIGRATE_DATA) == 0
        assert not orchestrator.override_available(StepIndex.MIGRATE_DATA)
        flags = [
            e.flag
            for e in event_bus.events_of(MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED)
        ]
        assert flags == [True, False]

        assert orchestrator.continue_anyway(StepIndex.MIGRATE_DATA) is False
        assert orchestrator.steps[StepIndex.MIGRATE_IDENTITY].status == StepStatus.PENDING
        assert "request_identity_operation_signature" not in provider.calls

    def test_rejected_token_cannot_be_overridden(self, orchestrator, provider, params):
        orchestrator.start(params)
        provider.status_overrides = {"valid_did": False}
        assert orchestrator.submit_identity_token(VALID_TOKEN) is False
        assert orchestrator.retry_verification(StepIndex.MIGRATE_IDENTITY) is False
        assert orchestrator.override_available(StepIndex.MIGRATE_IDENTITY)

        assert orchestrator.submit_identity_token("bad") is False
        step = orchestrator.steps[StepIndex.MIGRATE_IDENTITY]
        assert step.error == "Token is invalid"
        assert step.is_verification_error is False

        assert orchestrator.continue_anyway(StepIndex.MIGRATE_IDENTITY) is False
        assert orchestrator.steps[StepIndex.FINALIZE].status == StepStatus.PENDING
        assert "activate_account" not in provider.calls
        assert "deactivate_account" not in provider.calls
        assert provider.source_active

    def test_oracle_exception_is_not_ready(self, make_orchestrator, params):
        class ExplodingOracle:
            def verify(self, step, *, manual_submission=False):
                raise RuntimeError("oracle bug")

        orchestrator = make_orchestrator(oracle=ExplodingOracle())
        assert orchestrator.start(params) is False
        step = orchestrator.steps[StepIndex.CREATE_ACCOUNT]
        assert step.is_verification_error
        assert step.error.startswith("oracle bug")


# ---------------------------------------------------------------------------
# Test: identity phase
# ---------------------------------------------------------------------------


class TestIdentityPhase:
    def test_token_required_event(self, orchestrator, params, event_bus):
        orchestrator.start(params)
        assert len(event_bus.events_of(MigrationEventKind.IDENTITY_TOKEN_REQUIRED)) == 1

    def test_token_before_request_is_ignored(self, orchestrator, provider):
        assert orchestrator.submit_identity_token(VALID_TOKEN) is False
        assert "sign_identity_operation" not in provider.calls

    def test_blank_token_is_ignored(self, orchestrator, provider, params):
        orchestrator.start(params)
        assert orchestrator.submit_identity_token("   ") is False
        assert "sign_identity_operation" not in provider.calls

    def test_duplicate_phase_three_skips_request(self, orchestrator, provider, params):
        orchestrator.start(params)
        assert orchestrator.retry_step(StepIndex.MIGRATE_IDENTITY) is True
        assert provider.calls.count("request_identity_operation_signature") == 1

    def test_automatic_verification_never_completes_identity(
        self, orchestrator, provider, params
    ):
        orchestrator.start(params)
        provider.identity_on_target = True
        assert orchestrator.retry_verification(StepIndex.MIGRATE_IDENTITY) is False
        step = orchestrator.steps[StepIndex.MIGRATE_IDENTITY]
        assert step.status == StepStatus.IN_PROGRESS
        assert orchestrator.retry_attempts(StepIndex.MIGRATE_IDENTITY) == 0

    def test_signature_request_failure(self, orchestrator, provider, params):
        provider.fail_next(
            "request_identity_operation_signature",
            RemoteError("Failed to request identity migration"),
        )
        assert orchestrator.start(params) is False
        step = orchestrator.steps[StepIndex.MIGRATE_IDENTITY]
        assert step.status == StepStatus.ERROR
        assert step.name == "Migrate Identity"
        assert orchestrator.submit_identity_token(VALID_TOKEN) is False

    def test_identity_verification_failure_is_retryable(self, orchestrator, provider, params):
        orchestrator.start(params)
        provider.status_overrides = {"valid_did": False}
        assert orchestrator.submit_identity_token(VALID_TOKEN) is False
        step = orchestrator.steps[StepIndex.MIGRATE_IDENTITY]
        assert step.is_verification_error

        provider.status_overrides = {}
        assert orchestrator.retry_verification(StepIndex.MIGRATE_IDENTITY) is True
        assert orchestrator.is_complete


# ---------------------------------------------------------------------------
# Test: completion and snapshots
# ---------------------------------------------------------------------------


class TestCompletion:
    def test_completion_fires_once(self, orchestrator, params, event_bus):
        orchestrator.start(params)
        assert orchestrator.submit_identity_token(VALID_TOKEN) is True
        assert orchestrator.is_complete

        orchestrator.retry_verification(StepIndex.FINALIZE)
        assert len(event_bus.events_of(MigrationEventKind.MIGRATION_COMPLETE)) == 1

    def test_reverifying_earlier_step_clears_completion(self, orchestrator, provider, params):
        orchestrator.start(params)
        orchestrator.submit_identity_token(VALID_TOKEN)
        assert orchestrator.is_complete

        provider.status_overrides = {"activated": True}
        assert orchestrator.retry_verification(StepIndex.CREATE_ACCOUNT) is False
        assert orchestrator.steps[StepIndex.FINALIZE].status == StepStatus.PENDING
        assert not orchestrator.is_complete

    def test_snapshot_is_frozen_copy(self, orchestrator, params):
        orchestrator.start(params)
        snap = orchestrator.snapshot()
        assert snap.active_step == StepIndex.MIGRATE_IDENTITY
        assert not snap.is_complete
        assert snap.failed_steps == []

        orchestrator.submit_identity_token(VALID_TOKEN)
        assert snap.steps[StepIndex.FINALIZE].status == StepStatus.PENDING
        assert orchestrator.snapshot().is_complete

    def test_restart_resets_run(self, orchestrator, provider, params):
        provider.status_overrides = {"indexed_records": 1}
        orchestrator.start(params)
        provider.status_overrides = {}
        orchestrator.start(params)
        assert orchestrator.retry_attempts(StepIndex.MIGRATE_DATA) == 0
        assert orchestrator.steps[StepIndex.MIGRATE_DATA].status == StepStatus.COMPLETED
