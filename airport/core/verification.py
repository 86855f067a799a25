"""Verification oracle: reduces provider status to a per-step verdict.

Step rules
----------
1. Create Account: target repository initialised (commit, rev, blocks) and
   the target account not yet activated.
2. Migrate Data: step-1 repository conditions, indexed records caught up with
   the source, imported blobs caught up with the source.  Both counters lag
   behind the writes because indexing is asynchronous on the provider.
3. Migrate Identity: the identity document resolves to the target.  Only
   checked after an explicit token submission; the ledger update is
   asynchronous and must be user-gated.
4. Finalize: target activated and identity document still valid.
"""

from __future__ import annotations

import logging

from airport.client.errors import RemoteError
from airport.client.protocol import RemoteCapabilityClient
from airport.models.status import AccountStatus, VerificationStatus
from airport.models.steps import StepIndex

logger = logging.getLogger(__name__)

AWAITING_TOKEN_REASON = (
    "Identity migration is verified only after the e-mailed token is submitted"
)


def reduce_status(
    step: StepIndex,
    status: AccountStatus,
    expected: tuple[int, int] | None = None,
) -> VerificationStatus:
    """Pure reduction of a target status snapshot to a verdict for ``step``.

    ``expected`` is the source's (record count, blob count) and is only
    consulted for step 2.
    """
    step = StepIndex(step)
    repo = {
        "repo_commit": bool(status.repo_commit),
        "repo_rev": bool(status.repo_rev),
        "repo_blocks": status.repo_blocks > 0,
    }

    if step == StepIndex.CREATE_ACCOUNT:
        reasons = []
        if not status.repo_initialized:
            reasons.append("Target repository is not initialised")
        if status.activated:
            reasons.append("Target account is already activated")
        return VerificationStatus(
            step_number=step.number,
            ready=not reasons,
            reason="; ".join(reasons) or None,
            activated=status.activated,
            **repo,
        )

    if step == StepIndex.MIGRATE_DATA:
        expected_records, expected_blobs = expected or (0, 0)
        reasons = []
        if not status.repo_initialized:
            reasons.append("Target repository is not initialised")
        if status.indexed_records < expected_records:
            reasons.append(
                f"Indexed {status.indexed_records} of {expected_records} records"
            )
        if status.imported_blobs < expected_blobs:
            reasons.append(
                f"Imported {status.imported_blobs} of {expected_blobs} blobs"
            )
        return VerificationStatus(
            step_number=step.number,
            ready=not reasons,
            reason="; ".join(reasons) or None,
            expected_records=expected_records,
            indexed_records=status.indexed_records,
            private_state_values=status.private_state_values,
            expected_blobs=expected_blobs,
            imported_blobs=status.imported_blobs,
            **repo,
        )

    if step == StepIndex.MIGRATE_IDENTITY:
        return VerificationStatus(
            step_number=step.number,
            ready=status.valid_did,
            reason=None if status.valid_did else (
                "Identity document does not point at the new provider yet"
            ),
            valid_did=status.valid_did,
        )

    reasons = []
    if not status.activated:
        reasons.append("Target account is not activated")
    if not status.valid_did:
        reasons.append("Identity document does not point at the new provider")
    return VerificationStatus(
        step_number=step.number,
        ready=not reasons,
        reason="; ".join(reasons) or None,
        activated=status.activated,
        valid_did=status.valid_did,
    )


class VerificationOracle:
    """Queries provider status and reduces it with :func:`reduce_status`.

    Parameters
    ----------
    client:
        The provider client to read status through.
    """

    def __init__(self, client: RemoteCapabilityClient) -> None:
        self._client = client

    def verify(
        self, step: StepIndex, *, manual_submission: bool = False
    ) -> VerificationStatus:
        """Return the current verdict for ``step``.

        Never raises for provider failures; they become a not-ready status
        whose reason is the provider's message.
        """
        step = StepIndex(step)
        logger.debug("Verifying step %d", step.number)

        if step == StepIndex.MIGRATE_IDENTITY and not manual_submission:
            return VerificationStatus(
                step_number=step.number, ready=False, reason=AWAITING_TOKEN_REASON
            )

        account_id = self._client.target_account_id
        if not account_id:
            return VerificationStatus(
                step_number=step.number,
                ready=False,
                reason="Target account has not been created",
            )

        try:
            status = self._client.check_account_status(account_id)
            expected = (
                self._client.expected_counts()
                if step == StepIndex.MIGRATE_DATA
                else None
            )
        except RemoteError as exc:
            logger.warning("Status check for step %d failed: %s", step.number, exc)
            return VerificationStatus(
                step_number=step.number, ready=False, reason=exc.message
            )

        result = reduce_status(step, status, expected)
        logger.info(
            "Step %d verification: %s",
            step.number,
            "ready" if result.ready else result.reason,
        )
        return result
