"""Filesystem-backed blob store.

Objects live under a root directory using the same relative layout as the
object store (`submissions/{id}/documents/{name}`), which makes local runs and
integration tests inspectable with plain shell tools.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
import os
from pathlib import Path, PurePosixPath

from submission_commit.domain.contracts import SUBMISSIONS_PREFIX
from submission_commit.domain.errors import BlobStoreError
from submission_commit.domain.models import UploadedBlob


@dataclass(frozen=True)
class FilesystemBlobStore:
    root: Path

    async def upload(self, *, path: str, payload: bytes, content_type: str) -> UploadedBlob:
        del content_type
        target = self._resolve(path)
        try:
            await asyncio.to_thread(_write_atomic, target, bytes(payload))
        except OSError as exc:
            raise BlobStoreError(f"failed to write {path}: {exc}") from exc
        return UploadedBlob(
            stored_path=path,
            download_ref=target.as_uri(),
            size_bytes=len(payload),
            uploaded_at=datetime.now(tz=UTC),
        )

    async def delete(self, *, path: str) -> bool:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise BlobStoreError(f"failed to delete {path}: {exc}") from exc
        return True

    async def exists(self, *, path: str) -> bool:
        return self._resolve(path).is_file()

    async def list_paths(self, *, prefix: str) -> list[str]:
        base = self.root.resolve()
        if not base.exists():
            return []
        paths = [
            file_path.relative_to(base).as_posix()
            for file_path in base.rglob("*")
            if file_path.is_file() and not file_path.name.endswith(".partial")
        ]
        return sorted(path for path in paths if path.startswith(prefix))

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not path.startswith(SUBMISSIONS_PREFIX):
            raise BlobStoreError(f"invalid blob path: {path}")
        base = self.root.resolve()
        target = (base / Path(*relative.parts)).resolve()
        if base not in target.parents:
            raise BlobStoreError(f"blob path escapes store root: {path}")
        return target


def _write_atomic(target: Path, payload: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name(f"{target.name}.partial")
    partial.write_bytes(payload)
    os.replace(partial, target)
