from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from submission_commit.domain.error_taxonomy import (
    CallerAction,
    CommitErrorCode,
    ErrorCategory,
    caller_action,
    categorize_error,
)
from submission_commit.domain.models import CommitState, ResolvedDocument, SubmissionRecord
from submission_commit.lib.artifacts.types import DocumentArtifactMetadata


@dataclass(frozen=True)
class Verified:
    record: SubmissionRecord
    attempts: int


@dataclass(frozen=True)
class NotFound:
    attempts: int
    last_error: str | None = None


VerificationResult = Verified | NotFound


@dataclass(frozen=True)
class AllResolved:
    documents: tuple[ResolvedDocument, ...]


@dataclass(frozen=True)
class Missing:
    document_ids: tuple[str, ...]


ValidationResult = AllResolved | Missing


@dataclass(frozen=True)
class CompensationReport:
    submission_id: str
    deleted_paths: tuple[str, ...] = ()
    failed_paths: tuple[str, ...] = ()
    record_deleted: bool = False
    record_error: str | None = None

    @property
    def clean(self) -> bool:
        return not self.failed_paths and self.record_error is None


@dataclass(frozen=True)
class CommitSucceeded:
    submission_id: str
    tracking_code: str
    documents: tuple[DocumentArtifactMetadata, ...] = ()
    history: tuple[CommitState, ...] = ()


# Tagged error variants returned (not raised) by the commit coordinator.
# `code` is the discriminator; the payload fields carry what the caller needs
# to either retry the whole operation or fix specific documents.
@dataclass(frozen=True, kw_only=True)
class CommitError:
    code: ClassVar[CommitErrorCode]

    submission_id: str | None = None
    compensation: CompensationReport | None = None
    history: tuple[CommitState, ...] = field(default=())

    @property
    def category(self) -> ErrorCategory:
        return categorize_error(self.code)

    @property
    def action(self) -> CallerAction:
        return caller_action(self.code)

    @property
    def message(self) -> str:
        return self.code.replace("_", " ")


@dataclass(frozen=True, kw_only=True)
class RecordCreateFailed(CommitError):
    code: ClassVar[CommitErrorCode] = "record_create_failed"

    cause: str

    @property
    def message(self) -> str:
        return f"submission record could not be created: {self.cause}"


@dataclass(frozen=True, kw_only=True)
class VerificationFailed(CommitError):
    code: ClassVar[CommitErrorCode] = "verification_failed"

    attempts: int
    last_error: str | None = None

    @property
    def message(self) -> str:
        return f"submission record was not confirmed after {self.attempts} attempts: {self.last_error or 'not visible'}"


@dataclass(frozen=True, kw_only=True)
class MissingFileReferences(CommitError):
    code: ClassVar[CommitErrorCode] = "missing_file_references"

    document_ids: tuple[str, ...]

    @property
    def document_messages(self) -> dict[str, str]:
        return {
            document_id: f"file for document '{document_id}' is no longer available; attach it again"
            for document_id in self.document_ids
        }

    @property
    def message(self) -> str:
        return f"missing files for documents: {', '.join(self.document_ids)}"


@dataclass(frozen=True, kw_only=True)
class UploadFailed(CommitError):
    code: ClassVar[CommitErrorCode] = "upload_failed"

    document_id: str
    cause: str

    @property
    def message(self) -> str:
        return f"failed to upload document '{self.document_id}': {self.cause}"


@dataclass(frozen=True, kw_only=True)
class MetadataWriteFailed(CommitError):
    code: ClassVar[CommitErrorCode] = "metadata_write_failed"

    cause: str
    document_id: str | None = None

    @property
    def message(self) -> str:
        if self.document_id is None:
            return f"failed to finalize submission record: {self.cause}"
        return f"failed to save metadata for document '{self.document_id}': {self.cause}"


@dataclass(frozen=True, kw_only=True)
class CommitCancelled(CommitError):
    code: ClassVar[CommitErrorCode] = "commit_cancelled"

    step: CommitState

    @property
    def message(self) -> str:
        return f"submission was cancelled after step '{self.step}'"


CommitResult = CommitSucceeded | CommitError
