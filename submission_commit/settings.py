from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from submission_commit.domain.retry import BackoffPolicy


@dataclass(frozen=True)
class CommitSettings:
    verify_max_attempts: int = 5
    verify_base_delay_ms: int = 500
    upload_timeout_seconds: int = 60
    upload_concurrency: int = 1
    archive_compression_level: int = 6
    reconcile_max_attempts: int = 5

    def verify_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.verify_max_attempts,
            base_delay_seconds=self.verify_base_delay_ms / 1000,
        )


@dataclass(frozen=True)
class StorageSettings:
    database_url: str | None = None
    blob_store_root: Path | None = None


def commit_settings_from_env() -> CommitSettings:
    compression_level = env_int("ARCHIVE_COMPRESSION_LEVEL", 6)
    return CommitSettings(
        verify_max_attempts=env_int("VERIFY_MAX_ATTEMPTS", 5),
        verify_base_delay_ms=env_int("VERIFY_BASE_DELAY_MS", 500),
        upload_timeout_seconds=env_int("UPLOAD_TIMEOUT_SECONDS", 60),
        upload_concurrency=env_int("UPLOAD_CONCURRENCY", 1),
        archive_compression_level=compression_level if compression_level <= 9 else 6,
        reconcile_max_attempts=env_int("RECONCILE_MAX_ATTEMPTS", 5),
    )


def storage_settings_from_env() -> StorageSettings:
    blob_root = os.getenv("BLOB_STORE_ROOT")
    return StorageSettings(
        database_url=os.getenv("DATABASE_URL") or None,
        blob_store_root=Path(blob_root) if blob_root else None,
    )


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
