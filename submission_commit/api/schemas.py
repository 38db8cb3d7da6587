from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from submission_commit.lib.artifacts.types import DocumentArtifactMetadata


SUBMISSION_ID_PATTERN = r"^sub_[0-9A-HJKMNP-TV-Z]{26}$"
TRACKING_CODE_PATTERN = r"^PENDING-[0-9]{8}-[0-9]{6}-[0-9A-Z]{4}$"
DOCUMENT_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._:-]{0,255}$"
OWNER_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._:@-]{0,127}$"


class ErrorResponse(BaseModel):
    detail: str


class CommitErrorResponse(BaseModel):
    code: str
    message: str
    category: str
    action: str
    submission_id: str | None = None
    document_id: str | None = None
    document_ids: list[str] | None = None
    # Per-document remediation messages for missing file references.
    documents: dict[str, str] | None = None
    cause: str | None = None


class CommitErrorEnvelope(BaseModel):
    detail: CommitErrorResponse


class WorkerMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    items_total: int
    idle_ticks_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    worker_loop_enabled: bool
    worker_loop_ready: bool
    worker_metrics: WorkerMetrics


class DocumentInput(BaseModel):
    id: str = Field(pattern=DOCUMENT_ID_PATTERN)
    title: str = Field(min_length=1, max_length=512)
    category: str = Field(min_length=1, max_length=128)
    file_name: str | None = Field(default=None, min_length=1, max_length=512)


class CreateSubmissionRequest(BaseModel):
    owner_id: str = Field(pattern=OWNER_ID_PATTERN)
    payload: dict[str, object] = Field(default_factory=dict)
    documents: list[DocumentInput] = Field(default_factory=list)


class CreateSubmissionResponse(BaseModel):
    submission_id: str = Field(pattern=SUBMISSION_ID_PATTERN)
    tracking_code: str = Field(pattern=TRACKING_CODE_PATTERN)
    documents: list[DocumentArtifactMetadata]


class SubmissionResponse(BaseModel):
    submission_id: str
    tracking_code: str
    owner_id: str
    status: str
    payload: dict[str, object]
    created_at: datetime | None = None
    updated_at: datetime | None = None
    documents: list[DocumentArtifactMetadata]


class FileReferenceResponse(BaseModel):
    owner_id: str
    document_id: str
    size_bytes: int = Field(ge=0)


class ReconciliationItemResponse(BaseModel):
    item_id: int
    kind: str
    ref: str
    submission_id: str
    status: str
    attempts: int
    last_error: str | None = None


class ReconciliationListResponse(BaseModel):
    items: list[ReconciliationItemResponse]
