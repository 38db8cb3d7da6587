from __future__ import annotations

from submission_commit.api.handlers.deps import ApiDeps
from submission_commit.api.schemas import FileReferenceResponse

COMPONENT_ID = "api.put_file_reference"


async def put_file_reference_handler(
    *,
    owner_id: str,
    document_id: str,
    payload: bytes,
    api_deps: ApiDeps,
) -> FileReferenceResponse:
    api_deps.file_references.put(owner_id, document_id, payload)
    return FileReferenceResponse(owner_id=owner_id, document_id=document_id, size_bytes=len(payload))


async def discard_file_reference_handler(*, owner_id: str, document_id: str, api_deps: ApiDeps) -> None:
    api_deps.file_references.discard(owner_id, document_id)
