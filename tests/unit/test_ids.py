from __future__ import annotations

from datetime import UTC, datetime
import re

import pytest

from submission_commit.domain.ids import generate_submission_identifiers, new_submission_public_id, new_tracking_code


@pytest.mark.unit
def test_submission_public_id_is_prefixed_ulid() -> None:
    first = new_submission_public_id()
    second = new_submission_public_id()

    assert re.fullmatch(r"sub_[0-9A-HJKMNP-TV-Z]{26}", first)
    assert first != second


@pytest.mark.unit
def test_tracking_code_embeds_timestamp() -> None:
    code = new_tracking_code(now=datetime(2024, 3, 9, 14, 5, 7, tzinfo=UTC))

    assert re.fullmatch(r"PENDING-20240309-140507-[0-9A-Z]{4}", code)


@pytest.mark.unit
def test_generated_identifiers_pair_id_and_code() -> None:
    identifiers = generate_submission_identifiers()

    assert identifiers.submission_id.startswith("sub_")
    assert identifiers.tracking_code.startswith("PENDING-")
