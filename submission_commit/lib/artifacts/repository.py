from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from submission_commit.domain.contracts import BlobStore, document_blob_path
from submission_commit.domain.models import DocumentArtifact
from submission_commit.lib.artifacts.codecs import (
    DEFAULT_COMPRESSION_LEVEL,
    ArchivedFile,
    archive_document,
    decode_metadata,
    encode_metadata,
    unique_archive_name,
)
from submission_commit.lib.artifacts.types import DocumentArtifactMetadata

CompatPolicy = Literal["strict", "compatible"]

SCHEMA_VERSION_BY_CONTRACT: dict[str, dict[str, str]] = {
    "v1": {
        "document-artifact": "document-artifact:v1",
    }
}


@dataclass(frozen=True)
class SubmissionDocumentRepository:
    """Archive + upload path for document artifacts.

    Owns the blob layout `submissions/{id}/documents/{archived_name}` and the
    metadata contract; the commit coordinator never builds paths or dicts itself.
    """

    blob_store: BlobStore
    active_contract_version: str = "v1"
    compat_policy: CompatPolicy = "strict"
    compression_level: int = DEFAULT_COMPRESSION_LEVEL

    def __post_init__(self) -> None:
        if self.active_contract_version not in SCHEMA_VERSION_BY_CONTRACT:
            raise ValueError(f"unsupported artifact contract version: {self.active_contract_version}")
        if self.compat_policy not in ("strict", "compatible"):
            raise ValueError(f"unsupported artifact compat policy: {self.compat_policy}")
        if not 0 <= self.compression_level <= 9:
            raise ValueError(f"compression level must be within 0..9, got {self.compression_level}")

    def archive(self, *, document: DocumentArtifact, payload: bytes, reserved_names: set[str]) -> ArchivedFile:
        archived = archive_document(
            title=document.title,
            file_name=document.original_file_name,
            payload=payload,
            fallback_name=document.document_id,
            compression_level=self.compression_level,
        )
        name = unique_archive_name(name=archived.name, reserved=reserved_names)
        reserved_names.add(name)
        if name == archived.name:
            return archived
        return ArchivedFile(
            name=name,
            payload=archived.payload,
            entry_name=archived.entry_name,
            original_size_bytes=archived.original_size_bytes,
            content_type=archived.content_type,
        )

    def path_for(self, *, submission_id: str, archived: ArchivedFile) -> str:
        return document_blob_path(submission_id=submission_id, archived_file_name=archived.name)

    async def upload(
        self,
        *,
        submission_id: str,
        document: DocumentArtifact,
        archived: ArchivedFile,
    ) -> DocumentArtifactMetadata:
        blob = await self.blob_store.upload(
            path=self.path_for(submission_id=submission_id, archived=archived),
            payload=archived.payload,
            content_type=archived.content_type,
        )
        return DocumentArtifactMetadata(
            document_id=document.document_id,
            title=document.title,
            category=document.category,
            stored_path=blob.stored_path,
            download_ref=blob.download_ref,
            original_file_name=document.original_file_name,
            archived_file_name=archived.name,
            size_bytes=blob.size_bytes,
            original_size_bytes=archived.original_size_bytes,
            uploaded_at=blob.uploaded_at,
            schema_version=SCHEMA_VERSION_BY_CONTRACT[self.active_contract_version]["document-artifact"],
        )

    async def delete(self, *, stored_path: str) -> bool:
        return await self.blob_store.delete(path=stored_path)

    def dump_metadata(self, metadata: DocumentArtifactMetadata) -> dict[str, object]:
        self._validate_schema("document-artifact", metadata.schema_version)
        return encode_metadata(metadata)

    def load_metadata(self, raw: dict[str, object]) -> DocumentArtifactMetadata:
        metadata = decode_metadata(raw)
        self._validate_schema("document-artifact", metadata.schema_version)
        return metadata

    def _validate_schema(self, artifact_kind: str, actual_schema_version: str) -> None:
        expected_schema_version = SCHEMA_VERSION_BY_CONTRACT[self.active_contract_version][artifact_kind]
        if actual_schema_version == expected_schema_version:
            return

        if self.compat_policy == "compatible":
            expected_family = expected_schema_version.split(":", maxsplit=1)[0]
            actual_family = actual_schema_version.split(":", maxsplit=1)[0]
            if expected_family == actual_family:
                return

        raise ValueError(
            f"artifact schema mismatch for {artifact_kind}: expected {expected_schema_version}, got {actual_schema_version}"
        )
