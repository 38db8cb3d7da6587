from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
import logging

from submission_commit.domain.contracts import FileReferenceResolver, ReconciliationLedger, RecordStore
from submission_commit.domain.dto import (
    CommitCancelled,
    CommitError,
    CommitResult,
    CommitSucceeded,
    CompensationReport,
    MetadataWriteFailed,
    Missing,
    MissingFileReferences,
    NotFound,
    RecordCreateFailed,
    UploadFailed,
    VerificationFailed,
)
from submission_commit.domain.errors import ArchiveError, DomainValidationError
from submission_commit.domain.ids import generate_submission_identifiers
from submission_commit.domain.lifecycle import CommitStateTracker
from submission_commit.domain.models import (
    CommitState,
    DocumentArtifact,
    ResolvedDocument,
    SubmissionIdentifiers,
    SubmissionStatus,
)
from submission_commit.domain.retry import BackoffPolicy, Sleep
from submission_commit.domain.use_cases.compensate import compensate_submission
from submission_commit.domain.use_cases.validate import validate_file_references
from submission_commit.domain.use_cases.verify import verify_record
from submission_commit.lib.artifacts.codecs import ArchivedFile
from submission_commit.lib.artifacts.repository import SubmissionDocumentRepository
from submission_commit.lib.artifacts.types import DocumentArtifactMetadata

COMPONENT_ID = "domain.submission.commit"
logger = logging.getLogger("commit")


@dataclass
class UploadAccumulator:
    """Ordered, lock-guarded list of blob paths that may exist and must be compensated."""

    _paths: list[str] = field(default_factory=list)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def add(self, path: str) -> None:
        async with self._lock:
            if path not in self._paths:
                self._paths.append(path)

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._paths)


@dataclass
class SubmissionCommitCoordinator:
    """Saga controller for one review package.

    Steps run strictly in order: create record, verify, validate files,
    upload, write metadata, touch record. Every failure after the record
    exists is paired with a compensation run, and the caller receives a
    tagged `CommitError` carrying the original cause.
    """

    record_store: RecordStore
    documents: SubmissionDocumentRepository
    resolver: FileReferenceResolver | None = None
    ledger: ReconciliationLedger | None = None
    verify_policy: BackoffPolicy = field(default_factory=BackoffPolicy)
    upload_timeout_seconds: float = 60.0
    upload_concurrency: int = 1
    sleep: Sleep = asyncio.sleep
    id_factory: Callable[[], SubmissionIdentifiers] = generate_submission_identifiers

    def __post_init__(self) -> None:
        if self.upload_concurrency < 1:
            raise ValueError("upload_concurrency must be at least 1")
        if self.upload_timeout_seconds <= 0:
            raise ValueError("upload_timeout_seconds must be positive")

    async def commit(
        self,
        *,
        owner_id: str,
        payload: Mapping[str, object],
        documents: Iterable[DocumentArtifact] = (),
        cancel_event: asyncio.Event | None = None,
        resolver: FileReferenceResolver | None = None,
    ) -> CommitResult:
        """Run the saga once. `resolver` overrides the configured one for this call only."""
        document_list = tuple(documents)
        _ensure_commit_inputs(owner_id=owner_id, documents=document_list)
        active_resolver = resolver if resolver is not None else self.resolver
        if active_resolver is None:
            raise DomainValidationError("no file reference resolver configured")

        tracker = CommitStateTracker()
        if _is_cancelled(cancel_event):
            tracker.advance(CommitState.FAILED)
            return CommitCancelled(step=CommitState.START, history=tuple(tracker.history))

        identifiers = self.id_factory()
        submission_id = identifiers.submission_id
        tracker.submission_id = submission_id
        logger.info(
            "commit started",
            extra={"submission_id": submission_id, "documents": len(document_list)},
        )

        try:
            await self.record_store.create_record(
                submission_id=submission_id,
                tracking_code=identifiers.tracking_code,
                owner_id=owner_id,
                payload=dict(payload),
                status=SubmissionStatus.CREATED,
            )
        except Exception as exc:
            tracker.advance(CommitState.FAILED)
            logger.warning(
                "commit failed",
                extra={"submission_id": submission_id, "error_code": RecordCreateFailed.code, "error": str(exc)},
            )
            return RecordCreateFailed(cause=str(exc), history=tuple(tracker.history))
        tracker.advance(CommitState.RECORD_CREATED)

        uploaded = UploadAccumulator()
        try:
            return await self._commit_created(
                identifiers=identifiers,
                owner_id=owner_id,
                documents=document_list,
                tracker=tracker,
                uploaded=uploaded,
                cancel_event=cancel_event,
                resolver=active_resolver,
            )
        except BaseException:
            # Task cancellation and unexpected bugs still must not leave partial state.
            if tracker.state not in (CommitState.ROLLING_BACK, CommitState.ROLLED_BACK, CommitState.METADATA_WRITTEN):
                tracker.advance(CommitState.ROLLING_BACK)
                await asyncio.shield(self._compensate(submission_id=submission_id, uploaded=uploaded))
                tracker.advance(CommitState.ROLLED_BACK)
            raise

    async def _commit_created(
        self,
        *,
        identifiers: SubmissionIdentifiers,
        owner_id: str,
        documents: tuple[DocumentArtifact, ...],
        tracker: CommitStateTracker,
        uploaded: UploadAccumulator,
        cancel_event: asyncio.Event | None,
        resolver: FileReferenceResolver,
    ) -> CommitResult:
        submission_id = identifiers.submission_id

        verification = await verify_record(
            record_store=self.record_store,
            submission_id=submission_id,
            expected_owner_id=owner_id,
            policy=self.verify_policy,
            sleep=self.sleep,
        )
        if isinstance(verification, NotFound):
            return await self._fail(
                VerificationFailed(attempts=verification.attempts, last_error=verification.last_error),
                tracker=tracker,
                uploaded=uploaded,
            )
        tracker.advance(CommitState.VERIFIED)
        if _is_cancelled(cancel_event):
            return await self._fail(CommitCancelled(step=tracker.state), tracker=tracker, uploaded=uploaded)

        validation = await validate_file_references(documents=documents, resolver=resolver)
        if isinstance(validation, Missing):
            return await self._fail(
                MissingFileReferences(document_ids=validation.document_ids),
                tracker=tracker,
                uploaded=uploaded,
            )
        tracker.advance(CommitState.VALIDATED)
        if _is_cancelled(cancel_event):
            return await self._fail(CommitCancelled(step=tracker.state), tracker=tracker, uploaded=uploaded)

        tracker.advance(CommitState.UPLOADING)
        if self.upload_concurrency == 1:
            upload_outcome = await self._upload_sequential(
                submission_id=submission_id,
                resolved=validation.documents,
                uploaded=uploaded,
                cancel_event=cancel_event,
            )
        else:
            upload_outcome = await self._upload_bounded(
                submission_id=submission_id,
                resolved=validation.documents,
                uploaded=uploaded,
                cancel_event=cancel_event,
            )
        if isinstance(upload_outcome, CommitError):
            return await self._fail(upload_outcome, tracker=tracker, uploaded=uploaded)
        if _is_cancelled(cancel_event):
            return await self._fail(CommitCancelled(step=tracker.state), tracker=tracker, uploaded=uploaded)

        for metadata in upload_outcome:
            try:
                await self.record_store.put_document_metadata(
                    submission_id=submission_id,
                    document_id=metadata.document_id,
                    metadata=self.documents.dump_metadata(metadata),
                )
            except Exception as exc:
                return await self._fail(
                    MetadataWriteFailed(cause=str(exc), document_id=metadata.document_id),
                    tracker=tracker,
                    uploaded=uploaded,
                )

        try:
            await self.record_store.touch_record(submission_id=submission_id)
        except Exception as exc:
            return await self._fail(MetadataWriteFailed(cause=str(exc)), tracker=tracker, uploaded=uploaded)

        tracker.advance(CommitState.METADATA_WRITTEN)
        logger.info(
            "commit succeeded",
            extra={"submission_id": submission_id, "documents": len(upload_outcome)},
        )
        return CommitSucceeded(
            submission_id=submission_id,
            tracking_code=identifiers.tracking_code,
            documents=tuple(upload_outcome),
            history=tuple(tracker.history),
        )

    async def _upload_sequential(
        self,
        *,
        submission_id: str,
        resolved: tuple[ResolvedDocument, ...],
        uploaded: UploadAccumulator,
        cancel_event: asyncio.Event | None,
    ) -> list[DocumentArtifactMetadata] | CommitError:
        reserved_names: set[str] = set()
        results: list[DocumentArtifactMetadata] = []
        for item in resolved:
            if _is_cancelled(cancel_event):
                return CommitCancelled(step=CommitState.UPLOADING)
            try:
                archived = self.documents.archive(
                    document=item.document,
                    payload=item.payload,
                    reserved_names=reserved_names,
                )
            except ArchiveError as exc:
                return UploadFailed(document_id=item.document.document_id, cause=str(exc))

            outcome = await self._upload_one(
                submission_id=submission_id,
                document=item.document,
                archived=archived,
                uploaded=uploaded,
            )
            if isinstance(outcome, UploadFailed):
                return outcome
            results.append(outcome)
        return results

    async def _upload_bounded(
        self,
        *,
        submission_id: str,
        resolved: tuple[ResolvedDocument, ...],
        uploaded: UploadAccumulator,
        cancel_event: asyncio.Event | None,
    ) -> list[DocumentArtifactMetadata] | CommitError:
        semaphore = asyncio.Semaphore(self.upload_concurrency)
        halt = asyncio.Event()
        failures: list[CommitError] = []
        reserved_names: set[str] = set()
        tasks: list[asyncio.Task[DocumentArtifactMetadata | UploadFailed]] = []

        async def _run(document: DocumentArtifact, archived: ArchivedFile) -> DocumentArtifactMetadata | UploadFailed:
            try:
                outcome = await self._upload_one(
                    submission_id=submission_id,
                    document=document,
                    archived=archived,
                    uploaded=uploaded,
                )
                if isinstance(outcome, UploadFailed):
                    if not failures:
                        failures.append(outcome)
                    halt.set()
                return outcome
            finally:
                semaphore.release()

        try:
            for item in resolved:
                await semaphore.acquire()
                if halt.is_set():
                    semaphore.release()
                    break
                if _is_cancelled(cancel_event):
                    semaphore.release()
                    if not failures:
                        failures.append(CommitCancelled(step=CommitState.UPLOADING))
                    halt.set()
                    break
                try:
                    archived = self.documents.archive(
                        document=item.document,
                        payload=item.payload,
                        reserved_names=reserved_names,
                    )
                except ArchiveError as exc:
                    semaphore.release()
                    if not failures:
                        failures.append(UploadFailed(document_id=item.document.document_id, cause=str(exc)))
                    halt.set()
                    break
                tasks.append(asyncio.create_task(_run(item.document, archived)))
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        # In-flight uploads drain; anything that landed is already in `uploaded`.
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        if failures:
            return failures[0]
        return [outcome for outcome in outcomes if isinstance(outcome, DocumentArtifactMetadata)]

    async def _upload_one(
        self,
        *,
        submission_id: str,
        document: DocumentArtifact,
        archived: ArchivedFile,
        uploaded: UploadAccumulator,
    ) -> DocumentArtifactMetadata | UploadFailed:
        path = self.documents.path_for(submission_id=submission_id, archived=archived)
        try:
            metadata = await asyncio.wait_for(
                self.documents.upload(submission_id=submission_id, document=document, archived=archived),
                timeout=self.upload_timeout_seconds,
            )
        except TimeoutError:
            # Outcome unknown: the object may still land, so it is compensated too.
            await uploaded.add(path)
            return UploadFailed(
                document_id=document.document_id,
                cause=f"upload timed out after {self.upload_timeout_seconds:g}s",
            )
        except asyncio.CancelledError:
            await uploaded.add(path)
            raise
        except Exception as exc:
            logger.warning(
                "document upload failed",
                extra={"submission_id": submission_id, "document_id": document.document_id, "path": path},
            )
            return UploadFailed(document_id=document.document_id, cause=str(exc))

        await uploaded.add(metadata.stored_path)
        logger.info(
            "document uploaded",
            extra={"submission_id": submission_id, "document_id": document.document_id, "path": metadata.stored_path},
        )
        return metadata

    async def _fail(
        self,
        error: CommitError,
        *,
        tracker: CommitStateTracker,
        uploaded: UploadAccumulator,
    ) -> CommitError:
        submission_id = tracker.submission_id or ""
        tracker.advance(CommitState.ROLLING_BACK)
        logger.warning(
            "commit failed",
            extra={"submission_id": submission_id, "error_code": error.code, "error": error.message},
        )
        report = await asyncio.shield(self._compensate(submission_id=submission_id, uploaded=uploaded))
        tracker.advance(CommitState.ROLLED_BACK)
        return replace(
            error,
            submission_id=submission_id,
            compensation=report,
            history=tuple(tracker.history),
        )

    async def _compensate(self, *, submission_id: str, uploaded: UploadAccumulator) -> CompensationReport:
        return await compensate_submission(
            submission_id=submission_id,
            uploaded_paths=uploaded.snapshot(),
            record_store=self.record_store,
            blob_store=self.documents.blob_store,
            ledger=self.ledger,
        )


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _ensure_commit_inputs(*, owner_id: str, documents: tuple[DocumentArtifact, ...]) -> None:
    if not owner_id:
        raise DomainValidationError("owner_id is required")
    seen: set[str] = set()
    duplicates: list[str] = []
    for document in documents:
        if not document.document_id:
            raise DomainValidationError("document id is required")
        if document.document_id in seen and document.document_id not in duplicates:
            duplicates.append(document.document_id)
        seen.add(document.document_id)
    if duplicates:
        raise DomainValidationError(f"duplicate document ids: {', '.join(duplicates)}")
