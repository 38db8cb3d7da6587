from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

# v1 contract for document metadata persisted in the per-submission
# sub-collection. An entry exists only after its blob has been uploaded.


class DocumentArtifactMetadata(BaseModel):
    # Caller-supplied identity, unique within one submission.
    document_id: str = Field(min_length=1)
    title: str
    category: str
    # Blob location; presence means the file is committed.
    stored_path: str = Field(min_length=1)
    download_ref: str
    # File names before and after archiving.
    original_file_name: str
    archived_file_name: str
    # Archived size is what the blob store holds.
    size_bytes: int = Field(ge=0)
    original_size_bytes: int = Field(ge=0)
    uploaded_at: datetime
    # Review status seeded for the downstream workflow.
    status: Literal["pending"] = "pending"
    schema_version: str = Field(default="document-artifact:v1")
