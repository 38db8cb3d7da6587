from __future__ import annotations

from dataclasses import dataclass
import io
from pathlib import PurePosixPath
import re
import zipfile

from submission_commit.domain.errors import ArchiveError
from submission_commit.lib.artifacts.types import DocumentArtifactMetadata

ARCHIVE_CONTENT_TYPE = "application/zip"
ARCHIVE_SUFFIX = ".zip"
DEFAULT_COMPRESSION_LEVEL = 6

# Fixed entry timestamp keeps archives byte-for-byte reproducible.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_UNSAFE_TITLE_CHARS = re.compile(r"[^a-zA-Z0-9\s]")
_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True)
class ArchivedFile:
    name: str
    payload: bytes
    entry_name: str
    original_size_bytes: int
    content_type: str = ARCHIVE_CONTENT_TYPE


def sanitize_title(title: str) -> str:
    cleaned = _UNSAFE_TITLE_CHARS.sub("", title).strip()
    return _WHITESPACE_RUN.sub("-", cleaned).lower()


def archive_file_name(*, title: str, fallback: str) -> str:
    stem = sanitize_title(title) or sanitize_title(fallback) or "document"
    return f"{stem}{ARCHIVE_SUFFIX}"


def entry_name_for(file_name: str) -> str:
    # Only the base name goes into the archive; directory parts are dropped.
    name = PurePosixPath(file_name.replace("\\", "/")).name
    return name or "document"


def zip_single_file(*, entry_name: str, payload: bytes, compression_level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise ArchiveError(f"file payload must be bytes, got {type(payload).__name__}")

    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=compression_level) as archive:
            info = zipfile.ZipInfo(filename=entry_name, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, bytes(payload), compresslevel=compression_level)
    except (ValueError, zipfile.BadZipFile, OSError) as exc:
        raise ArchiveError(f"failed to archive '{entry_name}': {exc}") from exc
    return buffer.getvalue()


def archive_document(
    *,
    title: str,
    file_name: str,
    payload: bytes,
    fallback_name: str,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> ArchivedFile:
    entry_name = entry_name_for(file_name)
    archived = zip_single_file(entry_name=entry_name, payload=payload, compression_level=compression_level)
    return ArchivedFile(
        name=archive_file_name(title=title, fallback=fallback_name),
        payload=archived,
        entry_name=entry_name,
        original_size_bytes=len(payload),
    )


def unique_archive_name(*, name: str, reserved: set[str]) -> str:
    """Suffix `-2`, `-3`, ... until the name is free within one submission."""
    if name not in reserved:
        return name
    stem = name.removesuffix(ARCHIVE_SUFFIX)
    index = 2
    while f"{stem}-{index}{ARCHIVE_SUFFIX}" in reserved:
        index += 1
    return f"{stem}-{index}{ARCHIVE_SUFFIX}"


def encode_metadata(metadata: DocumentArtifactMetadata) -> dict[str, object]:
    return metadata.model_dump(mode="json")


def decode_metadata(raw: dict[str, object]) -> DocumentArtifactMetadata:
    return DocumentArtifactMetadata.model_validate(raw)
