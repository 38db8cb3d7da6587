from __future__ import annotations

from fastapi import HTTPException

from submission_commit.api.handlers.deps import ApiDeps
from submission_commit.api.schemas import (
    CommitErrorResponse,
    CreateSubmissionRequest,
    CreateSubmissionResponse,
    SubmissionResponse,
)
from submission_commit.domain.dto import (
    CommitError,
    CommitSucceeded,
    MetadataWriteFailed,
    MissingFileReferences,
    RecordCreateFailed,
    UploadFailed,
)
from submission_commit.domain.error_taxonomy import CommitErrorCode
from submission_commit.domain.models import DocumentArtifact

COMPONENT_ID = "api.commit_submission"

HTTP_STATUS_BY_ERROR_CODE: dict[CommitErrorCode, int] = {
    "record_create_failed": 503,
    "verification_failed": 503,
    "missing_file_references": 422,
    "upload_failed": 502,
    "metadata_write_failed": 502,
    "commit_cancelled": 409,
}


async def commit_submission_handler(
    *,
    request: CreateSubmissionRequest,
    api_deps: ApiDeps,
) -> CreateSubmissionResponse:
    result = await api_deps.coordinator.commit(
        owner_id=request.owner_id,
        resolver=api_deps.file_references.for_owner(request.owner_id),
        payload=request.payload,
        documents=[
            DocumentArtifact(
                document_id=item.id,
                title=item.title,
                category=item.category,
                file_name=item.file_name,
            )
            for item in request.documents
        ],
    )
    if not isinstance(result, CommitSucceeded):
        raise HTTPException(
            status_code=HTTP_STATUS_BY_ERROR_CODE[result.code],
            detail=commit_error_response(result).model_dump(exclude_none=True),
        )

    # Committed files leave the owner's cache; other owners are untouched.
    for item in request.documents:
        api_deps.file_references.discard(request.owner_id, item.id)

    return CreateSubmissionResponse(
        submission_id=result.submission_id,
        tracking_code=result.tracking_code,
        documents=list(result.documents),
    )


async def get_submission_handler(*, submission_id: str, api_deps: ApiDeps) -> SubmissionResponse | None:
    record = await api_deps.record_store.get_record(submission_id=submission_id)
    if record is None:
        return None
    raw_items = await api_deps.record_store.list_document_metadata(submission_id=submission_id)
    return SubmissionResponse(
        submission_id=record.submission_id,
        tracking_code=record.tracking_code,
        owner_id=record.owner_id,
        status=record.status,
        payload=record.payload,
        created_at=record.created_at,
        updated_at=record.updated_at,
        documents=[api_deps.document_repository.load_metadata(raw) for raw in raw_items],
    )


def commit_error_response(error: CommitError) -> CommitErrorResponse:
    response = CommitErrorResponse(
        code=error.code,
        message=error.message,
        category=error.category,
        action=error.action,
        submission_id=error.submission_id,
    )
    if isinstance(error, MissingFileReferences):
        response.document_ids = list(error.document_ids)
        response.documents = error.document_messages
    elif isinstance(error, UploadFailed):
        response.document_id = error.document_id
        response.cause = error.cause
    elif isinstance(error, MetadataWriteFailed):
        response.document_id = error.document_id
        response.cause = error.cause
    elif isinstance(error, RecordCreateFailed):
        response.cause = error.cause
    return response
