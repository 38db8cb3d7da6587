from __future__ import annotations

import os
from typing import cast

from submission_commit.domain.contracts import BlobStore
from submission_commit.lib.artifacts.codecs import DEFAULT_COMPRESSION_LEVEL
from submission_commit.lib.artifacts.repository import CompatPolicy, SubmissionDocumentRepository

DEFAULT_ARTIFACT_CONTRACT_VERSION = "v1"
DEFAULT_ARTIFACT_COMPAT_POLICY = "strict"


def build_document_repository(
    *,
    blob_store: BlobStore,
    active_contract_version: str | None = None,
    compat_policy: str | None = None,
    compression_level: int | None = None,
) -> SubmissionDocumentRepository:
    version = active_contract_version or os.getenv(
        "ARTIFACT_CONTRACT_VERSION", DEFAULT_ARTIFACT_CONTRACT_VERSION
    )
    policy = compat_policy or os.getenv("ARTIFACT_COMPAT_POLICY", DEFAULT_ARTIFACT_COMPAT_POLICY)
    if policy not in ("strict", "compatible"):
        raise ValueError(f"unsupported artifact compat policy: {policy}")

    return SubmissionDocumentRepository(
        blob_store=blob_store,
        active_contract_version=version,
        compat_policy=cast(CompatPolicy, policy),
        compression_level=DEFAULT_COMPRESSION_LEVEL if compression_level is None else compression_level,
    )
