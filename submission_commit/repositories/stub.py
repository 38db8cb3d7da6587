from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from submission_commit.domain.errors import DomainInvariantError, RecordNotFoundError, RecordStoreError
from submission_commit.domain.models import OrphanItem, OrphanKind, OrphanStatus, SubmissionRecord

FaultHook = Callable[..., Exception | None]


@dataclass
class _SubmissionRow:
    submission_id: str
    tracking_code: str
    owner_id: str
    payload: dict[str, object]
    status: str
    # Reads left before a fresh write becomes visible (replica lag).
    hidden_reads: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass
class InMemoryRecordStore:
    """Non-network record store with deterministic lag and fault injection.

    `visibility_lag_reads` hides each new record from that many reads.
    Fault hooks receive the call's keyword arguments and return an exception
    to raise, or None to proceed.
    """

    records: dict[str, _SubmissionRow] = field(default_factory=dict)
    documents: dict[str, dict[str, dict[str, object]]] = field(default_factory=dict)
    visibility_lag_reads: int = 0
    # Owner id reported by reads; simulates a record attributed to someone else.
    owner_override: str | None = None
    create_fault: FaultHook | None = None
    read_fault: FaultHook | None = None
    metadata_fault: FaultHook | None = None
    touch_fault: FaultHook | None = None
    delete_fault: FaultHook | None = None
    reads: list[str] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    touches: list[str] = field(default_factory=list)

    async def create_record(
        self,
        *,
        submission_id: str,
        tracking_code: str,
        owner_id: str,
        payload: dict[str, object],
        status: str,
    ) -> SubmissionRecord:
        _raise_fault(self.create_fault, submission_id=submission_id)
        if submission_id in self.records:
            raise RecordStoreError(f"submission already exists: {submission_id}")
        row = _SubmissionRow(
            submission_id=submission_id,
            tracking_code=tracking_code,
            owner_id=owner_id,
            payload=dict(payload),
            status=status,
            hidden_reads=self.visibility_lag_reads,
        )
        self.records[submission_id] = row
        self.documents[submission_id] = {}
        return _snapshot(row)

    async def get_record(self, *, submission_id: str) -> SubmissionRecord | None:
        self.reads.append(submission_id)
        _raise_fault(self.read_fault, submission_id=submission_id)
        row = self.records.get(submission_id)
        if row is None:
            return None
        if row.hidden_reads > 0:
            row.hidden_reads -= 1
            return None
        snapshot = _snapshot(row)
        if self.owner_override is not None:
            return replace(snapshot, owner_id=self.owner_override)
        return snapshot

    async def touch_record(self, *, submission_id: str) -> None:
        _raise_fault(self.touch_fault, submission_id=submission_id)
        row = self.records.get(submission_id)
        if row is None:
            raise RecordNotFoundError(f"submission not found: {submission_id}")
        row.updated_at = datetime.now(tz=UTC)
        self.touches.append(submission_id)

    async def delete_record(self, *, submission_id: str) -> bool:
        _raise_fault(self.delete_fault, submission_id=submission_id)
        self.deletes.append(submission_id)
        self.documents.pop(submission_id, None)
        return self.records.pop(submission_id, None) is not None

    async def put_document_metadata(
        self,
        *,
        submission_id: str,
        document_id: str,
        metadata: dict[str, object],
    ) -> None:
        _raise_fault(self.metadata_fault, submission_id=submission_id, document_id=document_id)
        if submission_id not in self.records:
            raise RecordNotFoundError(f"submission not found: {submission_id}")
        self.documents.setdefault(submission_id, {})[document_id] = dict(metadata)

    async def list_document_metadata(self, *, submission_id: str) -> list[dict[str, object]]:
        items = self.documents.get(submission_id, {})
        return [dict(items[key]) for key in sorted(items)]


@dataclass
class InMemoryReconciliationLedger:
    items: dict[int, OrphanItem] = field(default_factory=dict)
    claimed: set[int] = field(default_factory=set)
    next_item_id: int = 1

    async def record_orphan(
        self,
        *,
        kind: OrphanKind,
        ref: str,
        submission_id: str,
        error: str,
    ) -> OrphanItem:
        now = datetime.now(tz=UTC)
        item = OrphanItem(
            item_id=self.next_item_id,
            kind=kind,
            ref=ref,
            submission_id=submission_id,
            status=OrphanStatus.OPEN,
            attempts=0,
            last_error=error,
            created_at=now,
            updated_at=now,
        )
        self.items[item.item_id] = item
        self.next_item_id += 1
        return item

    async def claim_next(self) -> OrphanItem | None:
        for item_id in sorted(self.items):
            item = self.items[item_id]
            if item.status == OrphanStatus.OPEN and item_id not in self.claimed:
                self.claimed.add(item_id)
                return item
        return None

    async def mark_resolved(self, *, item_id: int) -> None:
        item = self._get(item_id)
        self.items[item_id] = replace(
            item,
            status=OrphanStatus.RESOLVED,
            attempts=item.attempts + 1,
            updated_at=datetime.now(tz=UTC),
        )
        self.claimed.discard(item_id)

    async def release(self, *, item_id: int, error: str, max_attempts: int) -> OrphanItem:
        item = self._get(item_id)
        attempts = item.attempts + 1
        status = OrphanStatus.DEAD_LETTER if attempts >= max_attempts else OrphanStatus.OPEN
        updated = replace(
            item,
            status=status,
            attempts=attempts,
            last_error=error,
            updated_at=datetime.now(tz=UTC),
        )
        self.items[item_id] = updated
        self.claimed.discard(item_id)
        return updated

    async def list_open(self) -> list[OrphanItem]:
        return [self.items[key] for key in sorted(self.items) if self.items[key].status == OrphanStatus.OPEN]

    def _get(self, item_id: int) -> OrphanItem:
        item = self.items.get(item_id)
        if item is None:
            raise DomainInvariantError(f"reconciliation item not found: {item_id}")
        return item


def _snapshot(row: _SubmissionRow) -> SubmissionRecord:
    return SubmissionRecord(
        submission_id=row.submission_id,
        tracking_code=row.tracking_code,
        owner_id=row.owner_id,
        payload=dict(row.payload),
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _raise_fault(hook: FaultHook | None, **kwargs: object) -> None:
    if hook is None:
        return
    exc = hook(**kwargs)
    if exc is not None:
        raise exc
