from __future__ import annotations

from datetime import UTC, datetime
import importlib
import secrets

from submission_commit.domain.models import SubmissionIdentifiers

ulid_module = importlib.import_module("ulid")

TRACKING_CODE_PREFIX = "PENDING"
_TRACKING_SUFFIX_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def new_submission_public_id() -> str:
    return f"sub_{ulid_module.new().str}"


def new_tracking_code(*, now: datetime | None = None) -> str:
    """Temporary human-readable code, replaced later by a permanent protocol code."""
    moment = now or datetime.now(UTC)
    suffix = "".join(secrets.choice(_TRACKING_SUFFIX_ALPHABET) for _ in range(4))
    return f"{TRACKING_CODE_PREFIX}-{moment:%Y%m%d}-{moment:%H%M%S}-{suffix}"


def generate_submission_identifiers(*, now: datetime | None = None) -> SubmissionIdentifiers:
    return SubmissionIdentifiers(
        submission_id=new_submission_public_id(),
        tracking_code=new_tracking_code(now=now),
    )
