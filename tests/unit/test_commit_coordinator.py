from __future__ import annotations

import asyncio
import re

import pytest

from submission_commit.domain.dto import (
    CommitCancelled,
    CommitSucceeded,
    MetadataWriteFailed,
    MissingFileReferences,
    RecordCreateFailed,
    UploadFailed,
    VerificationFailed,
)
from submission_commit.domain.errors import BlobStoreError, DomainValidationError, RecordStoreError
from submission_commit.domain.models import CommitState
from submission_commit.clients.stub import InMemoryBlobStore, InMemoryFileReferenceCache
from submission_commit.domain.use_cases.commit import SubmissionCommitCoordinator
from submission_commit.lib.artifacts.repository import SubmissionDocumentRepository
from submission_commit.repositories.stub import InMemoryRecordStore
from tests.unit.commit_harness import build_harness, document


@pytest.mark.unit
def test_commit_happy_path_creates_record_blobs_and_metadata() -> None:
    harness = build_harness(files={"doc-a": b"alpha", "doc-b": b"bravo"})

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={"kind": "assessment", "year": 2024},
            documents=[
                document("doc-a", title="Site Plan", file_name="plans/site.pdf"),
                document("doc-b", title="Invoice"),
            ],
        )
        assert isinstance(result, CommitSucceeded)
        assert re.fullmatch(r"sub_[0-9A-HJKMNP-TV-Z]{26}", result.submission_id)
        assert result.tracking_code.startswith("PENDING-")
        assert result.history[-1] == CommitState.METADATA_WRITTEN

        record = await harness.record_store.get_record(submission_id=result.submission_id)
        assert record is not None
        assert record.owner_id == "user-1"
        assert record.status == "created"
        assert record.payload == {"kind": "assessment", "year": 2024}

        prefix = f"submissions/{result.submission_id}/documents/"
        assert await harness.blob_store.list_paths(prefix=prefix) == [
            f"{prefix}invoice.zip",
            f"{prefix}site-plan.zip",
        ]
        metadata = await harness.record_store.list_document_metadata(submission_id=result.submission_id)
        assert [item["document_id"] for item in metadata] == ["doc-a", "doc-b"]
        assert metadata[0]["original_file_name"] == "plans/site.pdf"
        assert metadata[0]["status"] == "pending"
        assert harness.record_store.touches == [result.submission_id]

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_without_documents_still_verifies_and_touches_record() -> None:
    harness = build_harness()

    async def _run() -> None:
        result = await harness.coordinator.commit(owner_id="user-1", payload={})
        assert isinstance(result, CommitSucceeded)
        assert result.documents == ()
        assert harness.blob_store.uploads == []
        assert harness.record_store.touches == [result.submission_id]

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_waits_out_replica_lag_with_linear_backoff() -> None:
    harness = build_harness(
        record_store=InMemoryRecordStore(visibility_lag_reads=2),
        files={"doc-a": b"alpha"},
    )

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
        )
        assert isinstance(result, CommitSucceeded)
        assert harness.sleeps == [0.5, 1.0]
        assert len(harness.record_store.reads) == 3

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_reports_verification_failure_and_deletes_record() -> None:
    harness = build_harness(
        record_store=InMemoryRecordStore(visibility_lag_reads=10),
        files={"doc-a": b"alpha"},
        max_attempts=3,
    )

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
        )
        assert isinstance(result, VerificationFailed)
        assert result.attempts == 3
        assert result.last_error == "record is not visible yet"
        assert result.action == "retry"
        assert harness.sleeps == [0.5, 1.0]
        assert harness.record_store.records == {}
        assert harness.blob_store.uploads == []
        assert harness.files.lookups == []
        assert result.compensation is not None
        assert result.compensation.record_deleted is True
        assert result.history[-2:] == (CommitState.ROLLING_BACK, CommitState.ROLLED_BACK)

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_treats_owner_mismatch_as_verification_failure() -> None:
    harness = build_harness(
        record_store=InMemoryRecordStore(owner_override="intruder"),
        max_attempts=2,
    )

    async def _run() -> None:
        result = await harness.coordinator.commit(owner_id="user-1", payload={})
        assert isinstance(result, VerificationFailed)
        assert result.last_error == "record owner mismatch: expected user-1, got intruder"
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_reports_every_missing_file_before_uploading() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a"), document("doc-b"), document("doc-c")],
        )
        assert isinstance(result, MissingFileReferences)
        assert result.document_ids == ("doc-b", "doc-c")
        assert result.action == "remediate"
        assert set(result.document_messages) == {"doc-b", "doc-c"}
        assert harness.blob_store.uploads == []
        assert harness.record_store.records == {}
        assert harness.record_store.deletes == [result.submission_id]

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_upload_failure_removes_earlier_blobs_and_record() -> None:
    blob_store_fault = BlobStoreError("quota exceeded")
    harness = build_harness(files={"doc-a": b"alpha", "doc-b": b"bravo", "doc-c": b"charlie"})
    harness.blob_store.upload_fault = lambda path: blob_store_fault if path.endswith("/docb.zip") else None

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a"), document("doc-b"), document("doc-c")],
        )
        assert isinstance(result, UploadFailed)
        assert result.document_id == "doc-b"
        assert result.cause == "quota exceeded"
        assert result.category == "partial_commit"
        assert result.compensation is not None
        assert result.compensation.deleted_paths == (f"submissions/{result.submission_id}/documents/doca.zip",)
        # doc-c is never attempted once doc-b fails.
        assert all(not path.endswith("/docc.zip") for path in harness.blob_store.uploads)
        assert harness.blob_store.objects == {}
        assert harness.record_store.records == {}
        assert harness.record_store.documents == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_metadata_failure_removes_every_uploaded_blob() -> None:
    harness = build_harness(files={"doc-a": b"alpha", "doc-b": b"bravo"})
    harness.record_store.metadata_fault = lambda **kwargs: (
        RecordStoreError("write rejected") if kwargs["document_id"] == "doc-b" else None
    )

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a"), document("doc-b")],
        )
        assert isinstance(result, MetadataWriteFailed)
        assert result.document_id == "doc-b"
        assert result.compensation is not None
        assert len(result.compensation.deleted_paths) == 2
        assert harness.blob_store.objects == {}
        assert harness.record_store.records == {}
        assert harness.record_store.documents == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_touch_failure_is_reported_as_metadata_write_failure() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})
    harness.record_store.touch_fault = lambda **kwargs: RecordStoreError("deadline exceeded")

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
        )
        assert isinstance(result, MetadataWriteFailed)
        assert result.document_id is None
        assert result.message == "failed to finalize submission record: deadline exceeded"
        assert harness.blob_store.objects == {}
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_record_create_failure_needs_no_compensation() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})
    harness.record_store.create_fault = lambda **kwargs: RecordStoreError("unavailable")

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
        )
        assert isinstance(result, RecordCreateFailed)
        assert result.cause == "unavailable"
        assert result.compensation is None
        assert result.history == (CommitState.START, CommitState.FAILED)
        assert harness.record_store.deletes == []
        assert harness.files.lookups == []

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_compensation_failures_land_in_reconciliation_ledger() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})
    harness.record_store.touch_fault = lambda **kwargs: RecordStoreError("deadline exceeded")
    harness.blob_store.delete_fault = lambda path: BlobStoreError("delete denied")
    harness.record_store.delete_fault = lambda **kwargs: RecordStoreError("delete denied")

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
        )
        assert isinstance(result, MetadataWriteFailed)
        assert result.cause == "deadline exceeded"
        assert result.compensation is not None
        assert result.compensation.clean is False
        assert result.compensation.record_deleted is False

        orphans = await harness.ledger.list_open()
        assert [(item.kind, item.ref) for item in orphans] == [
            ("blob", f"submissions/{result.submission_id}/documents/doca.zip"),
            ("record", result.submission_id),
        ]

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_names_colliding_titles_with_numeric_suffix() -> None:
    harness = build_harness(files={"doc-a": b"alpha", "doc-b": b"bravo", "doc-c": b"charlie"})

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[
                document("doc-a", title="Report"),
                document("doc-b", title="report!"),
                document("doc-c", title=""),
            ],
        )
        assert isinstance(result, CommitSucceeded)
        assert [item.archived_file_name for item in result.documents] == [
            "report.zip",
            "report-2.zip",
            "docc.zip",
        ]

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_rejects_duplicate_document_ids_before_writing() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})

    async def _run() -> None:
        with pytest.raises(DomainValidationError, match="duplicate document ids: doc-a"):
            await harness.coordinator.commit(
                owner_id="user-1",
                payload={},
                documents=[document("doc-a"), document("doc-a")],
            )
        with pytest.raises(DomainValidationError, match="owner_id is required"):
            await harness.coordinator.commit(owner_id="", payload={})

    asyncio.run(_run())
    assert harness.record_store.records == {}


@pytest.mark.unit
def test_commit_cancelled_before_start_writes_nothing() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})

    async def _run() -> None:
        cancel = asyncio.Event()
        cancel.set()
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
            cancel_event=cancel,
        )
        assert isinstance(result, CommitCancelled)
        assert result.step == CommitState.START
        assert result.submission_id is None
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_cancelled_after_verification_rolls_back_record() -> None:
    harness = build_harness(files={"doc-a": b"alpha"})

    async def _run() -> None:
        cancel = asyncio.Event()

        def _cancel_on_read(**kwargs: object) -> None:
            del kwargs
            cancel.set()
            return None

        harness.record_store.read_fault = _cancel_on_read
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
            cancel_event=cancel,
        )
        assert isinstance(result, CommitCancelled)
        assert result.step == CommitState.VERIFIED
        assert result.action == "retry"
        assert harness.files.lookups == []
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_resolver_argument_overrides_configured_resolver() -> None:
    harness = build_harness(files={"doc-a": b"configured"})
    own_files = InMemoryFileReferenceCache(files={"doc-a": b"per-call"})

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-a")],
            resolver=own_files,
        )
        assert isinstance(result, CommitSucceeded)
        assert own_files.lookups == ["doc-a"]
        assert harness.files.lookups == []

    asyncio.run(_run())


@pytest.mark.unit
def test_commit_without_any_resolver_is_rejected_before_writing() -> None:
    record_store = InMemoryRecordStore()
    coordinator = SubmissionCommitCoordinator(
        record_store=record_store,
        documents=SubmissionDocumentRepository(blob_store=InMemoryBlobStore()),
    )

    with pytest.raises(DomainValidationError, match="no file reference resolver configured"):
        asyncio.run(coordinator.commit(owner_id="user-1", payload={}, documents=[document("doc-a")]))

    assert record_store.records == {}
