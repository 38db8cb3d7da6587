from __future__ import annotations

import asyncio
import logging

from submission_commit.domain.contracts import RecordStore
from submission_commit.domain.dto import NotFound, Verified, VerificationResult
from submission_commit.domain.models import SubmissionRecord
from submission_commit.domain.retry import BackoffPolicy, ProbeResult, Sleep, retry_until

COMPONENT_ID = "domain.submission.verify"
logger = logging.getLogger("commit")


async def verify_record(
    *,
    record_store: RecordStore,
    submission_id: str,
    expected_owner_id: str,
    policy: BackoffPolicy,
    sleep: Sleep = asyncio.sleep,
) -> VerificationResult:
    """Confirm a just-written record is readable and owned by the caller.

    Replicated document stores may serve stale reads right after a write, so a
    miss is retried with linear backoff instead of failing the commit.
    """

    async def _probe() -> ProbeResult[SubmissionRecord]:
        record = await record_store.get_record(submission_id=submission_id)
        if record is None:
            return ProbeResult(accepted=False, error="record is not visible yet")
        if record.owner_id != expected_owner_id:
            return ProbeResult(
                accepted=False,
                value=record,
                error=f"record owner mismatch: expected {expected_owner_id}, got {record.owner_id}",
            )
        return ProbeResult(accepted=True, value=record)

    outcome = await retry_until(_probe, policy=policy, sleep=sleep)

    if outcome.accepted and outcome.value is not None:
        return Verified(record=outcome.value, attempts=outcome.attempts)

    logger.warning(
        "record verification exhausted",
        extra={"submission_id": submission_id, "attempts": outcome.attempts, "last_error": outcome.last_error},
    )
    return NotFound(attempts=outcome.attempts, last_error=outcome.last_error)
