from __future__ import annotations

from collections.abc import Sequence
import logging

from submission_commit.domain.contracts import BlobStore, ReconciliationLedger, RecordStore
from submission_commit.domain.dto import CompensationReport
from submission_commit.domain.models import OrphanKind

COMPONENT_ID = "domain.submission.compensate"
logger = logging.getLogger("commit")


async def compensate_submission(
    *,
    submission_id: str,
    uploaded_paths: Sequence[str],
    record_store: RecordStore,
    blob_store: BlobStore,
    ledger: ReconciliationLedger | None = None,
) -> CompensationReport:
    """Best-effort reversal of a failed commit. Never raises.

    Blobs go first so no metadata entry can outlive its object; the record
    delete also drops the metadata sub-collection. Anything that cannot be
    removed is logged and handed to the reconciliation ledger.
    """
    deleted: list[str] = []
    failed: list[str] = []
    for path in uploaded_paths:
        try:
            existed = await blob_store.delete(path=path)
        except Exception as exc:
            failed.append(path)
            logger.warning(
                "compensation blob delete failed",
                extra={"submission_id": submission_id, "path": path, "error": str(exc)},
            )
            await _record_orphan(ledger, kind="blob", ref=path, submission_id=submission_id, error=str(exc))
            continue
        deleted.append(path)
        if not existed:
            logger.info(
                "compensation blob already absent",
                extra={"submission_id": submission_id, "path": path},
            )

    record_deleted = False
    record_error: str | None = None
    try:
        existed = await record_store.delete_record(submission_id=submission_id)
    except Exception as exc:
        record_error = str(exc)
        logger.warning(
            "compensation record delete failed",
            extra={"submission_id": submission_id, "error": record_error},
        )
        await _record_orphan(ledger, kind="record", ref=submission_id, submission_id=submission_id, error=record_error)
    else:
        record_deleted = True
        if not existed:
            logger.info("compensation record already absent", extra={"submission_id": submission_id})

    report = CompensationReport(
        submission_id=submission_id,
        deleted_paths=tuple(deleted),
        failed_paths=tuple(failed),
        record_deleted=record_deleted,
        record_error=record_error,
    )
    logger.info(
        "compensation completed",
        extra={
            "submission_id": submission_id,
            "deleted_blobs": len(deleted),
            "failed_blobs": len(failed),
            "record_deleted": record_deleted,
        },
    )
    return report


async def _record_orphan(
    ledger: ReconciliationLedger | None,
    *,
    kind: OrphanKind,
    ref: str,
    submission_id: str,
    error: str,
) -> None:
    if ledger is None:
        return
    try:
        await ledger.record_orphan(kind=kind, ref=ref, submission_id=submission_id, error=error)
    except Exception:
        # Last line of defence: the log line is the only trace left.
        logger.exception(
            "reconciliation ledger write failed",
            extra={"submission_id": submission_id, "path": ref},
        )
