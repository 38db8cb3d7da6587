from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from submission_commit.domain.contracts import SUBMISSIONS_PREFIX
from submission_commit.domain.errors import BlobStoreError
from submission_commit.domain.models import UploadedBlob

FaultHook = Callable[..., Exception | None]


@dataclass
class InMemoryBlobStore:
    """Object store stub; fault hooks get `path=` and return an exception to raise."""

    objects: dict[str, bytes] = field(default_factory=dict)
    content_types: dict[str, str] = field(default_factory=dict)
    uploads: list[str] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    upload_fault: FaultHook | None = None
    delete_fault: FaultHook | None = None
    upload_delay_seconds: float = 0.0
    in_flight: int = 0
    max_in_flight: int = 0

    async def upload(self, *, path: str, payload: bytes, content_type: str) -> UploadedBlob:
        if not path.startswith(SUBMISSIONS_PREFIX):
            raise BlobStoreError(f"blob path must start with {SUBMISSIONS_PREFIX}")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.upload_delay_seconds:
                await asyncio.sleep(self.upload_delay_seconds)
            else:
                await asyncio.sleep(0)
            _raise_fault(self.upload_fault, path=path)
            self.uploads.append(path)
            self.objects[path] = bytes(payload)
            self.content_types[path] = content_type
        finally:
            self.in_flight -= 1
        return UploadedBlob(
            stored_path=path,
            download_ref=f"memory://{path}",
            size_bytes=len(payload),
            uploaded_at=datetime.now(tz=UTC),
        )

    async def delete(self, *, path: str) -> bool:
        _raise_fault(self.delete_fault, path=path)
        self.deletes.append(path)
        self.content_types.pop(path, None)
        return self.objects.pop(path, None) is not None

    async def exists(self, *, path: str) -> bool:
        return path in self.objects

    async def list_paths(self, *, prefix: str) -> list[str]:
        return sorted(path for path in self.objects if path.startswith(prefix))


@dataclass
class InMemoryFileReferenceCache:
    """Process-local stand-in for the client-side file reference cache."""

    files: dict[str, bytes] = field(default_factory=dict)
    resolve_fault: FaultHook | None = None
    lookups: list[str] = field(default_factory=list)

    def put(self, document_id: str, payload: bytes) -> None:
        self.files[document_id] = bytes(payload)

    def discard(self, document_id: str) -> None:
        self.files.pop(document_id, None)

    async def resolve(self, document_id: str) -> bytes | None:
        self.lookups.append(document_id)
        _raise_fault(self.resolve_fault, document_id=document_id)
        return self.files.get(document_id)


@dataclass
class OwnerFileReferenceCaches:
    """One file reference cache per owner, so owners never see each other's files."""

    partitions: dict[str, InMemoryFileReferenceCache] = field(default_factory=dict)

    def for_owner(self, owner_id: str) -> InMemoryFileReferenceCache:
        partition = self.partitions.get(owner_id)
        if partition is None:
            partition = self.partitions[owner_id] = InMemoryFileReferenceCache()
        return partition

    def put(self, owner_id: str, document_id: str, payload: bytes) -> None:
        self.for_owner(owner_id).put(document_id, payload)

    def discard(self, owner_id: str, document_id: str) -> None:
        partition = self.partitions.get(owner_id)
        if partition is None:
            return
        partition.discard(document_id)
        if not partition.files:
            del self.partitions[owner_id]

    def files_for(self, owner_id: str) -> dict[str, bytes]:
        partition = self.partitions.get(owner_id)
        return dict(partition.files) if partition is not None else {}


def _raise_fault(hook: FaultHook | None, **kwargs: object) -> None:
    if hook is None:
        return
    exc = hook(**kwargs)
    if exc is not None:
        raise exc
