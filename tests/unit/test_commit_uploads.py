from __future__ import annotations

import asyncio

import pytest

from submission_commit.clients.stub import InMemoryBlobStore
from submission_commit.domain.dto import CommitCancelled, CommitSucceeded, UploadFailed
from submission_commit.domain.errors import BlobStoreError
from submission_commit.domain.models import CommitState
from submission_commit.domain.use_cases.commit import UploadAccumulator
from tests.unit.commit_harness import build_harness, document

FILES = {f"doc-{index}": f"payload-{index}".encode() for index in range(1, 5)}
DOCUMENTS = [document(f"doc-{index}", title=f"Part {index}") for index in range(1, 5)]


@pytest.mark.unit
def test_bounded_uploads_respect_concurrency_limit_and_keep_input_order() -> None:
    harness = build_harness(
        blob_store=InMemoryBlobStore(upload_delay_seconds=0.01),
        files=FILES,
        upload_concurrency=2,
    )

    async def _run() -> None:
        result = await harness.coordinator.commit(owner_id="user-1", payload={}, documents=DOCUMENTS)
        assert isinstance(result, CommitSucceeded)
        assert [item.document_id for item in result.documents] == ["doc-1", "doc-2", "doc-3", "doc-4"]
        assert harness.blob_store.max_in_flight == 2
        assert len(harness.blob_store.objects) == 4

    asyncio.run(_run())


@pytest.mark.unit
def test_bounded_upload_failure_drains_in_flight_and_compensates_all() -> None:
    harness = build_harness(
        blob_store=InMemoryBlobStore(upload_delay_seconds=0.01),
        files=FILES,
        upload_concurrency=2,
    )
    harness.blob_store.upload_fault = lambda path: BlobStoreError("bucket offline") if path.endswith("/part-1.zip") else None

    async def _run() -> None:
        result = await harness.coordinator.commit(owner_id="user-1", payload={}, documents=DOCUMENTS)
        assert isinstance(result, UploadFailed)
        assert result.document_id == "doc-1"
        assert result.cause == "bucket offline"
        assert harness.blob_store.in_flight == 0
        # Nothing beyond the first window is issued after the failure.
        assert not any(path.endswith("/part-4.zip") for path in harness.blob_store.uploads)
        assert harness.blob_store.objects == {}
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_sequential_upload_timeout_compensates_the_pending_path() -> None:
    harness = build_harness(
        blob_store=InMemoryBlobStore(upload_delay_seconds=1.0),
        files={"doc-1": b"slow"},
        upload_timeout_seconds=0.05,
    )

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=[document("doc-1", title="Slow")],
        )
        assert isinstance(result, UploadFailed)
        assert result.cause == "upload timed out after 0.05s"
        assert result.compensation is not None
        assert result.compensation.deleted_paths == (f"submissions/{result.submission_id}/documents/slow.zip",)
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
def test_cancel_event_between_uploads_stops_issuing_new_ones() -> None:
    harness = build_harness(files=FILES)
    cancel = asyncio.Event()

    def _cancel_after_first(path: str) -> None:
        if path.endswith("/part-1.zip"):
            cancel.set()
        return None

    harness.blob_store.upload_fault = _cancel_after_first

    async def _run() -> None:
        result = await harness.coordinator.commit(
            owner_id="user-1",
            payload={},
            documents=DOCUMENTS,
            cancel_event=cancel,
        )
        assert isinstance(result, CommitCancelled)
        assert result.step == CommitState.UPLOADING
        assert len(harness.blob_store.uploads) == 1
        assert harness.blob_store.objects == {}
        assert harness.record_store.records == {}

    asyncio.run(_run())


@pytest.mark.unit
@pytest.mark.parametrize("upload_concurrency", [1, 3])
def test_task_cancellation_mid_upload_rolls_back_and_propagates(upload_concurrency: int) -> None:
    harness = build_harness(
        blob_store=InMemoryBlobStore(upload_delay_seconds=0.5),
        files=FILES,
        upload_concurrency=upload_concurrency,
    )

    async def _run() -> None:
        task = asyncio.create_task(harness.coordinator.commit(owner_id="user-1", payload={}, documents=DOCUMENTS))
        await asyncio.sleep(0.05)
        assert harness.blob_store.in_flight >= 1
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert harness.record_store.records == {}
        assert harness.blob_store.objects == {}
        assert len(harness.record_store.deletes) == 1
        assert len(harness.blob_store.deletes) == upload_concurrency

    asyncio.run(_run())


@pytest.mark.unit
def test_upload_accumulator_keeps_first_seen_order_without_duplicates() -> None:
    async def _run() -> None:
        accumulator = UploadAccumulator()
        await asyncio.gather(
            accumulator.add("submissions/s/documents/a.zip"),
            accumulator.add("submissions/s/documents/b.zip"),
            accumulator.add("submissions/s/documents/a.zip"),
        )
        assert accumulator.snapshot() == (
            "submissions/s/documents/a.zip",
            "submissions/s/documents/b.zip",
        )

    asyncio.run(_run())


@pytest.mark.unit
@pytest.mark.parametrize("upload_concurrency", [1, 3])
def test_archive_failure_reports_upload_failed_and_compensates(upload_concurrency: int) -> None:
    # doc-2 resolves to something the archiver cannot zip.
    files = {**FILES, "doc-2": "not bytes"}
    harness = build_harness(files=files, upload_concurrency=upload_concurrency)  # type: ignore[arg-type]

    async def _run() -> None:
        result = await harness.coordinator.commit(owner_id="user-1", payload={}, documents=DOCUMENTS[:3])
        assert isinstance(result, UploadFailed)
        assert result.document_id == "doc-2"
        assert "must be bytes" in result.cause
        assert result.compensation is not None
        assert result.compensation.deleted_paths == (f"submissions/{result.submission_id}/documents/part-1.zip",)
        assert not any(path.endswith("/part-3.zip") for path in harness.blob_store.uploads)
        assert harness.blob_store.objects == {}
        assert harness.record_store.records == {}
        assert await harness.ledger.list_open() == []

    asyncio.run(_run())
