"""Migration orchestrator: the state machine driving one account migration.

Four phases run in order:

1. Create Account   create the target account keeping the source DID
2. Migrate Data     repository, then blobs, then preferences
3. Migrate Identity request the re-keying signature, then suspend until the
                    e-mailed token arrives through :meth:`submit_identity_token`
4. Finalize         activate the target, deactivate the source

Each write phase is followed by a verification gate.  A failed gate leaves
the step in ``error`` flagged as a verification error and increments its
retry counter; after ``override_threshold`` failures the caller may
:meth:`continue_anyway`.  A failed write (business-logic error) halts the
run until the caller redrives that phase with :meth:`retry_step`.

Entry points never raise.  Failures become step state plus a ``False``
return value.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from airport.client.errors import RemoteError
from airport.client.protocol import RemoteCapabilityClient
from airport.config import AirportConfig, availability_from_config
from airport.config import config as default_config
from airport.core.event_bus import MigrationEventBus
from airport.core.step_table import (
    InvalidTransitionError,
    StepTable,
    initial_steps,
    rename_step,
    update_step,
)
from airport.core.verification import VerificationOracle
from airport.models.events import MigrationEvent, MigrationEventKind
from airport.models.params import MigrationParameters, ParameterValidationError
from airport.models.state import MigrationRunState, RetryState
from airport.models.status import MigrationAvailability, VerificationStatus
from airport.models.steps import IDENTITY_TOKEN_PROMPT, StepIndex, StepStatus

logger = logging.getLogger(__name__)

AvailabilityGate = Callable[[], MigrationAvailability]


class MigrationOrchestrator:
    """Drives the four-phase migration for one authenticated context.

    Parameters
    ----------
    client:
        Provider client; the only component that touches the network.
    oracle:
        Verification oracle.  Built over ``client`` if not provided.
    event_bus:
        Where step/state events go.  A private bus is created if not provided.
    availability:
        Callable returning the migration-availability gate.  Defaults to the
        configured ``AIRPORT_MIGRATION_STATE``.
    config:
        Runtime configuration.  Uses the module singleton if not provided.
    sleep:
        Delay primitive used between a verified step and the next phase to
        let the provider propagate.  Tests pass a no-op.
    """

    def __init__(
        self,
        client: RemoteCapabilityClient,
        *,
        oracle: VerificationOracle | None = None,
        event_bus: MigrationEventBus | None = None,
        availability: AvailabilityGate | None = None,
        config: AirportConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or default_config
        self.client = client
        self.oracle = oracle or VerificationOracle(client)
        self.event_bus = event_bus or MigrationEventBus()
        self._availability = availability or (
            lambda: availability_from_config(self._config)
        )
        self._sleep = sleep

        # Serialises every entry point for this run.
        self._lock = threading.RLock()

        self._params: MigrationParameters | None = None
        self._reset()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def start(self, params: MigrationParameters) -> bool:
        """Reset the run and drive it from phase 1.

        Returns ``True`` when every phase ran without halting on an error,
        including when phase 3 suspends to wait for the identity token.
        """
        with self._lock:
            self._reset()
            self._params = params
            logger.info("Starting migration: %s", params.log_safe())

            try:
                availability = self._availability()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not read migration availability: %s", exc)
                availability = None

            if availability is not None:
                self._emit(
                    MigrationEventKind.STATE_UPDATED, availability=availability
                )
                if not availability.allow_migration:
                    self._set(
                        StepIndex.CREATE_ACCOUNT,
                        StepStatus.ERROR,
                        availability.message or "Migration is currently unavailable",
                    )
                    return False

            try:
                params.validate_required()
            except ParameterValidationError as exc:
                self._set(StepIndex.CREATE_ACCOUNT, StepStatus.ERROR, str(exc))
                return False

            return self._run_phase(StepIndex.CREATE_ACCOUNT)

    def submit_identity_token(self, token: str) -> bool:
        """Sign and submit the identity operation with the e-mailed token.

        Only valid once phase 3 has requested the signature.  A rejected
        token leaves step 3 in a business-logic error; the caller may submit
        another token.
        """
        with self._lock:
            token = (token or "").strip()
            step = self._steps[StepIndex.MIGRATE_IDENTITY]
            if not token:
                logger.warning("Ignoring empty identity token")
                return False
            if not self._identity_requested or step.status not in (
                StepStatus.IN_PROGRESS,
                StepStatus.ERROR,
            ):
                logger.warning(
                    "Identity token submitted while step 3 is %s; ignoring",
                    step.status.value,
                )
                return False

            try:
                signed = self.client.sign_identity_operation(
                    self.client.source_account_id, token
                )
                self.client.submit_identity_operation(signed)
            except Exception as exc:  # noqa: BLE001
                self._fail(StepIndex.MIGRATE_IDENTITY, exc)
                return False

            self._identity_submitted = True
            self._set(StepIndex.MIGRATE_IDENTITY, StepStatus.VERIFYING)
            return self._gate_and_advance(
                StepIndex.MIGRATE_IDENTITY, manual_submission=True
            )

    def retry_verification(self, step: StepIndex | int) -> bool:
        """Re-run only the verification gate of ``step``."""
        with self._lock:
            try:
                step = StepIndex(step)
            except ValueError:
                logger.warning("No such step: %r", step)
                return False
            logger.info("Retrying verification for step %d", step.number)
            current = self._steps[step]
            if current.status == StepStatus.PENDING:
                logger.warning("Step %d has not run yet", step.number)
                return False
            if current.status == StepStatus.ERROR and not current.is_verification_error:
                logger.warning(
                    "Step %d failed on its write path; redrive it with retry_step",
                    step.number,
                )
                return False
            manual = step == StepIndex.MIGRATE_IDENTITY and self._identity_submitted
            return self._gate_and_advance(step, manual_submission=manual)

    def continue_anyway(self, step: StepIndex | int) -> bool:
        """Mark ``step`` completed despite its verification gate.

        Only allowed while the step is failing its verification gate and the
        override has been offered for it.  The next phase then runs without
        re-checking its preconditions.
        """
        with self._lock:
            try:
                step = StepIndex(step)
            except ValueError:
                logger.warning("No such step: %r", step)
                return False
            current = self._steps[step]
            if current.status != StepStatus.ERROR or not current.is_verification_error:
                logger.warning(
                    "Step %d is not failing verification; nothing to override",
                    step.number,
                )
                return False
            if not self._retries[step].override_available:
                logger.warning(
                    "Override for step %d is not available (%d failed checks)",
                    step.number,
                    self._retries[step].attempts,
                )
                return False

            logger.warning("Continuing past step %d without verification", step.number)
            try:
                self._set(step, StepStatus.COMPLETED)
            except InvalidTransitionError as exc:
                logger.warning("%s", exc)
                return False
            self._set_override(step, False)
            return self._advance_from(step)

    def retry_step(self, step: StepIndex | int) -> bool:
        """Redrive the write path of ``step`` after a business-logic error."""
        with self._lock:
            try:
                step = StepIndex(step)
            except ValueError:
                logger.warning("No such step: %r", step)
                return False
            if step > StepIndex.CREATE_ACCOUNT and (
                self._steps[step - 1].status != StepStatus.COMPLETED
            ):
                logger.warning(
                    "Cannot redrive step %d before step %d is completed",
                    step.number,
                    step,
                )
                return False
            if step == StepIndex.CREATE_ACCOUNT:
                if self._params is None:
                    logger.warning("Cannot redrive step 1 before start()")
                    return False
                # Step 1 goes back through the availability gate and validation.
                return self.start(self._params)
            logger.info("Redriving step %d", step.number)
            return self._run_phase(step)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def steps(self) -> StepTable:
        return self._steps

    @property
    def active_step(self) -> StepIndex | None:
        return self._active

    @property
    def is_complete(self) -> bool:
        return self._completed

    def retry_attempts(self, step: StepIndex | int) -> int:
        return self._retries[StepIndex(step)].attempts

    def override_available(self, step: StepIndex | int) -> bool:
        return self._retries[StepIndex(step)].override_available

    def snapshot(self) -> MigrationRunState:
        """Frozen copy of the run state for observers."""
        with self._lock:
            return MigrationRunState(
                active_step=self._active,
                steps=self._steps,
                retries=dict(self._retries),
            )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _run_phase(self, step: StepIndex) -> bool:
        phases: dict[StepIndex, Callable[[], bool]] = {
            StepIndex.CREATE_ACCOUNT: self._phase_create_account,
            StepIndex.MIGRATE_DATA: self._phase_migrate_data,
            StepIndex.MIGRATE_IDENTITY: self._phase_migrate_identity,
            StepIndex.FINALIZE: self._phase_finalize,
        }
        try:
            return phases[step]()
        except InvalidTransitionError as exc:
            logger.warning("Phase %d refused: %s", step.number, exc)
            return False

    def _phase_create_account(self) -> bool:
        params = self._params
        if params is None:
            logger.warning("Cannot create the account before start()")
            return False
        self._begin(StepIndex.CREATE_ACCOUNT)
        try:
            created = self.client.create_account(
                params.service,
                params.handle,
                params.email,
                params.password,
                params.invite,
            )
        except Exception as exc:  # noqa: BLE001
            self._fail(StepIndex.CREATE_ACCOUNT, exc)
            return False

        logger.info("Created %s on %s", created.account_id, params.service)
        self._set(StepIndex.CREATE_ACCOUNT, StepStatus.VERIFYING)
        return self._gate_and_advance(StepIndex.CREATE_ACCOUNT)

    def _phase_migrate_data(self) -> bool:
        self._begin(StepIndex.MIGRATE_DATA)
        try:
            source = self.client.source_account_id
            target = self.client.target_account_id or source

            logger.info("Data migration: repository")
            car = self.client.export_repository(source)
            self.client.import_repository(target, car)

            logger.info("Data migration: blobs")
            cids = self.client.list_blobs(source)
            for n, cid in enumerate(cids, start=1):
                data, mime_type = self.client.get_blob(source, cid)
                self.client.upload_blob(target, data, mime_type)
                logger.debug("Blob %d/%d migrated (%s)", n, len(cids), cid)

            logger.info("Data migration: preferences")
            preferences = self.client.get_preferences(source)
            self.client.put_preferences(target, preferences)
        except Exception as exc:  # noqa: BLE001
            self._fail(StepIndex.MIGRATE_DATA, exc)
            return False

        self._set(StepIndex.MIGRATE_DATA, StepStatus.VERIFYING)
        return self._gate_and_advance(StepIndex.MIGRATE_DATA)

    def _phase_migrate_identity(self) -> bool:
        current = self._steps[StepIndex.MIGRATE_IDENTITY]
        if current.status in (StepStatus.IN_PROGRESS, StepStatus.COMPLETED):
            logger.info(
                "Identity migration already %s; skipping duplicate request",
                current.status.value,
            )
            return True

        self._begin(StepIndex.MIGRATE_IDENTITY)
        try:
            self.client.request_identity_operation_signature(
                self.client.source_account_id
            )
        except Exception as exc:  # noqa: BLE001
            self._fail(StepIndex.MIGRATE_IDENTITY, exc)
            return False

        self._identity_requested = True
        self._identity_submitted = False
        self._steps = rename_step(
            self._steps, StepIndex.MIGRATE_IDENTITY, IDENTITY_TOKEN_PROMPT
        )
        self._emit_step(StepIndex.MIGRATE_IDENTITY)
        self._emit(MigrationEventKind.IDENTITY_TOKEN_REQUIRED)
        logger.info("Identity migration requested; waiting for the e-mailed token")
        return True

    def _phase_finalize(self) -> bool:
        self._begin(StepIndex.FINALIZE)
        try:
            target = self.client.target_account_id or self.client.source_account_id
            self.client.activate_account(target)
            self.client.deactivate_account(self.client.source_account_id)
        except Exception as exc:  # noqa: BLE001
            self._fail(StepIndex.FINALIZE, exc)
            return False

        self._set(StepIndex.FINALIZE, StepStatus.VERIFYING)
        return self._gate_and_advance(StepIndex.FINALIZE)

    # ------------------------------------------------------------------
    # Verification gate and sequencing
    # ------------------------------------------------------------------

    def _gate_and_advance(
        self, step: StepIndex, *, manual_submission: bool = False
    ) -> bool:
        if not self._verify_gate(step, manual_submission=manual_submission):
            return False
        return self._advance_from(step)

    def _verify_gate(self, step: StepIndex, *, manual_submission: bool) -> bool:
        if step == StepIndex.MIGRATE_IDENTITY and not manual_submission:
            logger.info("Skipping automatic verification of identity migration")
            return False

        if self._steps[step].status != StepStatus.VERIFYING:
            self._set(step, StepStatus.VERIFYING)

        try:
            result = self.oracle.verify(step, manual_submission=manual_submission)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Verification of step %d raised", step.number)
            result = VerificationStatus(
                step_number=step.number, ready=False, reason=str(exc) or type(exc).__name__
            )

        if result.ready:
            self._set(step, StepStatus.COMPLETED)
            self._record_success(step)
            return True

        self._record_failure(step)
        self._set(
            step, StepStatus.ERROR, result.describe(), is_verification_error=True
        )
        logger.info(
            "Step %d verification failed; waiting for retry or override", step.number
        )
        return False

    def _advance_from(self, step: StepIndex) -> bool:
        if step.is_last:
            self._complete()
            return True
        if self._config.propagation_delay_seconds > 0:
            self._sleep(self._config.propagation_delay_seconds)
        return self._run_phase(StepIndex(step + 1))

    def _complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        logger.info("Migration complete")
        self._emit(MigrationEventKind.MIGRATION_COMPLETE)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self._steps: StepTable = initial_steps()
        self._retries: dict[StepIndex, RetryState] = {
            step: RetryState() for step in StepIndex
        }
        self._active: StepIndex | None = None
        self._completed = False
        self._identity_requested = False
        self._identity_submitted = False

    def _begin(self, step: StepIndex) -> None:
        self._set(step, StepStatus.IN_PROGRESS)
        self._clear_retries(step)
        self._active = step

    def _set(
        self,
        step: StepIndex,
        status: StepStatus,
        error: str | None = None,
        *,
        is_verification_error: bool = False,
    ) -> None:
        logger.debug(
            "Step %d -> %s%s",
            step.number,
            status.value,
            f" ({error.splitlines()[0]})" if error else "",
        )
        self._steps = update_step(
            self._steps, step, status, error,
            is_verification_error=is_verification_error,
        )
        if step < StepIndex.MIGRATE_IDENTITY:
            # A redriven earlier step invalidates any identity request.
            self._identity_requested = False
            self._identity_submitted = False
        if step < StepIndex.FINALIZE:
            self._completed = False
        self._emit_step(step)
        for later in StepIndex:
            if later > step:
                self._clear_retries(later)

    def _fail(self, step: StepIndex, exc: BaseException) -> None:
        """Record a business-logic failure on ``step``."""
        if isinstance(exc, RemoteError):
            message = exc.message
            logger.warning("Step %d failed: %s", step.number, message)
        else:
            message = str(exc) or type(exc).__name__
            logger.exception("Step %d failed unexpectedly", step.number)
        try:
            self._set(step, StepStatus.ERROR, message)
        except InvalidTransitionError:
            logger.error("Could not record failure on step %d: %s", step.number, message)

    def _record_success(self, step: StepIndex) -> None:
        previous = self._retries[step]
        self._retries[step] = RetryState()
        self._emit(MigrationEventKind.RETRY_COUNT_UPDATED, step_index=step, count=0)
        if previous.override_available:
            self._emit(
                MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED,
                step_index=step,
                flag=False,
            )

    def _record_failure(self, step: StepIndex) -> None:
        previous = self._retries[step]
        attempts = previous.attempts + 1
        offer = attempts >= self._config.override_threshold
        self._retries[step] = RetryState(attempts=attempts, override_available=offer)
        self._emit(
            MigrationEventKind.RETRY_COUNT_UPDATED, step_index=step, count=attempts
        )
        if offer != previous.override_available:
            self._emit(
                MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED,
                step_index=step,
                flag=offer,
            )

    def _clear_retries(self, step: StepIndex) -> None:
        """Forget the failed checks of ``step`` once its write path reruns."""
        previous = self._retries[step]
        if previous == RetryState():
            return
        self._retries[step] = RetryState()
        self._emit(MigrationEventKind.RETRY_COUNT_UPDATED, step_index=step, count=0)
        if previous.override_available:
            self._emit(
                MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED,
                step_index=step,
                flag=False,
            )

    def _set_override(self, step: StepIndex, offer: bool) -> None:
        previous = self._retries[step]
        if previous.override_available == offer:
            return
        self._retries[step] = previous.model_copy(update={"override_available": offer})
        self._emit(
            MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED, step_index=step, flag=offer
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit_step(self, step: StepIndex) -> None:
        self._emit(
            MigrationEventKind.STEP_UPDATED, step_index=step, step=self._steps[step]
        )

    def _emit(self, kind: MigrationEventKind, **fields: object) -> None:
        self.event_bus.publish(MigrationEvent(kind=kind, **fields))
