from __future__ import annotations

from submission_commit.domain.contracts import BlobStore, RecordStore
from submission_commit.domain.errors import DomainInvariantError
from submission_commit.domain.models import OrphanItem

COMPONENT_ID = "domain.reconcile.orphan"


async def reverse_orphan(
    item: OrphanItem,
    *,
    record_store: RecordStore,
    blob_store: BlobStore,
) -> None:
    """Retry the delete compensation could not finish. Already-absent targets count as done."""
    if item.kind == "blob":
        await blob_store.delete(path=item.ref)
        return
    if item.kind == "record":
        await record_store.delete_record(submission_id=item.ref)
        return
    raise DomainInvariantError(f"unsupported orphan kind: {item.kind}")
