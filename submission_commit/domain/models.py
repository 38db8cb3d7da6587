from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Literal


@dataclass(frozen=True)
class SubmissionIdentifiers:
    submission_id: str
    tracking_code: str


# Submission record lifecycle owned by this service. Later states
# (under review, approved, archived) belong to the downstream review workflow.
class SubmissionStatus(StrEnum):
    CREATED = "created"


# Commit attempt state machine.
#
# IMPORTANT: keep synchronized with ALLOWED_TRANSITIONS in
# submission_commit/domain/lifecycle.py.
class CommitState(StrEnum):
    START = "start"
    RECORD_CREATED = "record_created"
    VERIFIED = "verified"
    VALIDATED = "validated"
    UPLOADING = "uploading"
    METADATA_WRITTEN = "metadata_written"

    # Failure path.
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    # Failure before anything was written; nothing to roll back.
    FAILED = "failed"


@dataclass(frozen=True)
class SubmissionRecord:
    submission_id: str
    tracking_code: str
    owner_id: str
    payload: dict[str, object]
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class DocumentArtifact:
    document_id: str
    title: str
    category: str
    file_name: str | None = None

    @property
    def original_file_name(self) -> str:
        return self.file_name or self.document_id


@dataclass(frozen=True)
class ResolvedDocument:
    document: DocumentArtifact
    payload: bytes


@dataclass(frozen=True)
class UploadedBlob:
    stored_path: str
    download_ref: str
    size_bytes: int
    uploaded_at: datetime


OrphanKind = Literal["blob", "record"]


class OrphanStatus(StrEnum):
    OPEN = "open"
    RESOLVED = "resolved"
    DEAD_LETTER = "dead_letter"


@dataclass(frozen=True)
class OrphanItem:
    item_id: int
    kind: OrphanKind
    ref: str
    submission_id: str
    status: str
    attempts: int
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
