from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from submission_commit.api.handlers.deps import ApiDeps
from submission_commit.clients.filesystem import FilesystemBlobStore
from submission_commit.clients.stub import InMemoryBlobStore, OwnerFileReferenceCaches
from submission_commit.domain.contracts import BlobStore, ReconciliationLedger, RecordStore
from submission_commit.domain.use_cases.commit import SubmissionCommitCoordinator
from submission_commit.lib.artifacts import build_document_repository
from submission_commit.lib.artifacts.repository import SubmissionDocumentRepository
from submission_commit.repositories.postgres import (
    AsyncpgPoolManager,
    PostgresReconciliationLedger,
    PostgresRecordStore,
)
from submission_commit.repositories.stub import InMemoryReconciliationLedger, InMemoryRecordStore
from submission_commit.roles import RuntimeRole
from submission_commit.settings import (
    CommitSettings,
    StorageSettings,
    commit_settings_from_env,
    storage_settings_from_env,
)
from submission_commit.workers.loop import ReconcileWorkerLoop


@dataclass
class RuntimeContainer:
    record_store: RecordStore
    blob_store: BlobStore
    ledger: ReconciliationLedger
    file_references: OwnerFileReferenceCaches
    document_repository: SubmissionDocumentRepository
    coordinator: SubmissionCommitCoordinator
    settings: CommitSettings
    api_deps: ApiDeps
    worker_loop: ReconcileWorkerLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None


def build_runtime_container(
    role: RuntimeRole,
    *,
    settings: CommitSettings | None = None,
    storage: StorageSettings | None = None,
) -> RuntimeContainer:
    settings = settings or commit_settings_from_env()
    storage = storage or storage_settings_from_env()

    on_startup: Callable[[], Awaitable[None]] | None = None
    on_shutdown: Callable[[], Awaitable[None]] | None = None
    record_store: RecordStore
    ledger: ReconciliationLedger
    if storage.database_url:
        pool_manager = AsyncpgPoolManager(dsn=storage.database_url)
        record_store = PostgresRecordStore(pool_manager=pool_manager)
        ledger = PostgresReconciliationLedger(pool_manager=pool_manager)
        on_startup = pool_manager.startup
        on_shutdown = pool_manager.shutdown
    else:
        record_store = InMemoryRecordStore()
        ledger = InMemoryReconciliationLedger()

    blob_store: BlobStore
    if storage.blob_store_root is not None:
        blob_store = FilesystemBlobStore(root=storage.blob_store_root)
    else:
        blob_store = InMemoryBlobStore()

    file_references = OwnerFileReferenceCaches()
    document_repository = build_document_repository(
        blob_store=blob_store,
        compression_level=settings.archive_compression_level,
    )
    coordinator = SubmissionCommitCoordinator(
        record_store=record_store,
        documents=document_repository,
        ledger=ledger,
        verify_policy=settings.verify_policy(),
        upload_timeout_seconds=float(settings.upload_timeout_seconds),
        upload_concurrency=settings.upload_concurrency,
    )
    api_deps = ApiDeps(
        coordinator=coordinator,
        record_store=record_store,
        document_repository=document_repository,
        file_references=file_references,
        ledger=ledger,
    )

    worker_loop: ReconcileWorkerLoop | None = None
    if role.runs_worker:
        worker_loop = ReconcileWorkerLoop(
            role=role.name,
            ledger=ledger,
            record_store=record_store,
            blob_store=blob_store,
            max_attempts=settings.reconcile_max_attempts,
        )

    return RuntimeContainer(
        record_store=record_store,
        blob_store=blob_store,
        ledger=ledger,
        file_references=file_references,
        document_repository=document_repository,
        coordinator=coordinator,
        settings=settings,
        api_deps=api_deps,
        worker_loop=worker_loop,
        on_startup=on_startup,
        on_shutdown=on_shutdown,
    )
