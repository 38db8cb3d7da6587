from __future__ import annotations

from dataclasses import dataclass
import logging

from submission_commit.domain.contracts import BlobStore, ReconciliationLedger, RecordStore
from submission_commit.domain.use_cases.reconcile import reverse_orphan

logger = logging.getLogger("runtime")


@dataclass
class ReconcileWorkerLoop:
    """Drains the reconciliation ledger one orphan per tick."""

    role: str
    ledger: ReconciliationLedger
    record_store: RecordStore
    blob_store: BlobStore
    max_attempts: int = 5
    stage: str = "reconcile"

    async def run_once(self) -> bool:
        item = await self.ledger.claim_next()
        if item is None:
            return False

        try:
            await reverse_orphan(item, record_store=self.record_store, blob_store=self.blob_store)
        except Exception as exc:
            released = await self.ledger.release(
                item_id=item.item_id,
                error=str(exc),
                max_attempts=self.max_attempts,
            )
            logger.warning(
                "orphan reconcile failed",
                extra={
                    "item_id": item.item_id,
                    "submission_id": item.submission_id,
                    "path": item.ref,
                    "attempts": released.attempts,
                    "state": released.status,
                    "error": str(exc),
                },
            )
            return True

        await self.ledger.mark_resolved(item_id=item.item_id)
        logger.info(
            "orphan reconciled",
            extra={"item_id": item.item_id, "submission_id": item.submission_id, "path": item.ref},
        )
        return True
