from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary returned by the commit protocol.
CommitErrorCode = Literal[
    "record_create_failed",
    "verification_failed",
    "missing_file_references",
    "upload_failed",
    "metadata_write_failed",
    "commit_cancelled",
]

ErrorCategory = Literal[
    "transient_infrastructure",
    "consistency",
    "precondition",
    "partial_commit",
    "cancelled",
]

# What the caller can do about it: retry the whole flow, or fix inputs first.
CallerAction = Literal["retry", "remediate"]

CANONICAL_ERROR_CODES: tuple[CommitErrorCode, ...] = (
    "record_create_failed",
    "verification_failed",
    "missing_file_references",
    "upload_failed",
    "metadata_write_failed",
    "commit_cancelled",
)

ERROR_CATEGORY_MAP: Mapping[CommitErrorCode, ErrorCategory] = {
    "record_create_failed": "transient_infrastructure",
    "verification_failed": "consistency",
    "missing_file_references": "precondition",
    "upload_failed": "partial_commit",
    "metadata_write_failed": "partial_commit",
    "commit_cancelled": "cancelled",
}

# Only precondition failures can be fixed by the caller without a blind retry.
REMEDIABLE_ERROR_CODES: frozenset[CommitErrorCode] = frozenset({"missing_file_references"})

# Codes raised after the record exists; each one is paired with a compensation run.
COMPENSATED_ERROR_CODES: frozenset[CommitErrorCode] = frozenset(
    {
        "verification_failed",
        "missing_file_references",
        "upload_failed",
        "metadata_write_failed",
    }
)


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def categorize_error(code: CommitErrorCode) -> ErrorCategory:
    return ERROR_CATEGORY_MAP[code]


def caller_action(code: CommitErrorCode) -> CallerAction:
    if code in REMEDIABLE_ERROR_CODES:
        return "remediate"
    return "retry"
