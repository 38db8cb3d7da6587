from __future__ import annotations

from dataclasses import dataclass

from submission_commit.clients.stub import OwnerFileReferenceCaches
from submission_commit.domain.contracts import ReconciliationLedger, RecordStore
from submission_commit.domain.use_cases.commit import SubmissionCommitCoordinator
from submission_commit.lib.artifacts.repository import SubmissionDocumentRepository


@dataclass(frozen=True)
class ApiDeps:
    coordinator: SubmissionCommitCoordinator
    record_store: RecordStore
    document_repository: SubmissionDocumentRepository
    file_references: OwnerFileReferenceCaches
    ledger: ReconciliationLedger
