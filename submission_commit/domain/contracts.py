from __future__ import annotations

from typing import Protocol, runtime_checkable

from submission_commit.domain.models import OrphanItem, OrphanKind, SubmissionRecord, UploadedBlob

SUBMISSIONS_PREFIX = "submissions/"
DOCUMENTS_SEGMENT = "documents"


@runtime_checkable
class RecordStore(Protocol):
    """Document-database contract for submission records.

    Records live in a top-level collection keyed by submission id; document
    metadata lives in a sub-collection scoped under the same id. Reads may be
    served by a lagging replica right after a write, so callers that need
    read-after-write must go through the consistency verifier.
    """

    async def create_record(
        self,
        *,
        submission_id: str,
        tracking_code: str,
        owner_id: str,
        payload: dict[str, object],
        status: str,
    ) -> SubmissionRecord: ...

    async def get_record(self, *, submission_id: str) -> SubmissionRecord | None: ...

    async def touch_record(self, *, submission_id: str) -> None: ...

    # Removes the record together with its metadata sub-collection.
    # Returns False when there was nothing to delete.
    async def delete_record(self, *, submission_id: str) -> bool: ...

    async def put_document_metadata(
        self,
        *,
        submission_id: str,
        document_id: str,
        metadata: dict[str, object],
    ) -> None: ...

    async def list_document_metadata(self, *, submission_id: str) -> list[dict[str, object]]: ...


@runtime_checkable
class BlobStore(Protocol):
    """Object-store contract using submission-scoped paths."""

    async def upload(self, *, path: str, payload: bytes, content_type: str) -> UploadedBlob: ...

    # Returns False when the object did not exist.
    async def delete(self, *, path: str) -> bool: ...

    async def exists(self, *, path: str) -> bool: ...

    async def list_paths(self, *, prefix: str) -> list[str]: ...


@runtime_checkable
class FileReferenceResolver(Protocol):
    """Read-only view of the client-side file reference cache."""

    async def resolve(self, document_id: str) -> bytes | None: ...


@runtime_checkable
class ReconciliationLedger(Protocol):
    """Durable list of side effects compensation could not reverse."""

    async def record_orphan(
        self,
        *,
        kind: OrphanKind,
        ref: str,
        submission_id: str,
        error: str,
    ) -> OrphanItem: ...

    async def claim_next(self) -> OrphanItem | None: ...

    async def mark_resolved(self, *, item_id: int) -> None: ...

    async def release(self, *, item_id: int, error: str, max_attempts: int) -> OrphanItem: ...

    async def list_open(self) -> list[OrphanItem]: ...


def submission_prefix(submission_id: str) -> str:
    return f"{SUBMISSIONS_PREFIX}{submission_id}/"


def document_blob_path(*, submission_id: str, archived_file_name: str) -> str:
    return f"{submission_prefix(submission_id)}{DOCUMENTS_SEGMENT}/{archived_file_name}"
