from __future__ import annotations

import logging

from submission_commit.domain.contracts import FileReferenceResolver
from submission_commit.domain.dto import AllResolved, Missing, ValidationResult
from submission_commit.domain.models import DocumentArtifact, ResolvedDocument

COMPONENT_ID = "domain.documents.validate"
logger = logging.getLogger("commit")


async def validate_file_references(
    *,
    documents: tuple[DocumentArtifact, ...],
    resolver: FileReferenceResolver,
) -> ValidationResult:
    """Resolve every document before any upload starts.

    Reports all unresolved ids at once, in input order, so the caller can
    re-attach every missing file in a single pass.
    """
    resolved: list[ResolvedDocument] = []
    missing: list[str] = []
    for document in documents:
        try:
            payload = await resolver.resolve(document.document_id)
        except Exception:
            logger.warning(
                "file reference lookup failed",
                extra={"document_id": document.document_id},
                exc_info=True,
            )
            payload = None

        if payload is None:
            if document.document_id not in missing:
                missing.append(document.document_id)
            continue
        resolved.append(ResolvedDocument(document=document, payload=payload))

    if missing:
        return Missing(document_ids=tuple(missing))
    return AllResolved(documents=tuple(resolved))
