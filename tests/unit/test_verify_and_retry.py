from __future__ import annotations

import asyncio

import pytest

from submission_commit.domain.dto import NotFound, Verified
from submission_commit.domain.errors import RecordStoreError
from submission_commit.domain.retry import BackoffPolicy, ProbeResult, retry_until
from submission_commit.domain.use_cases.verify import verify_record
from submission_commit.repositories.stub import InMemoryRecordStore


def _recording_sleep(delays: list[float]):
    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    return _sleep


@pytest.mark.unit
def test_backoff_policy_is_linear_and_bounded() -> None:
    policy = BackoffPolicy(max_attempts=5, base_delay_seconds=0.5)

    assert [policy.delay_for(attempt) for attempt in range(1, 5)] == [0.5, 1.0, 1.5, 2.0]
    assert policy.total_delay_seconds() == 5.0


@pytest.mark.unit
@pytest.mark.parametrize(
    ("max_attempts", "base_delay_seconds"),
    [(0, 0.5), (3, -1.0)],
)
def test_backoff_policy_rejects_invalid_bounds(max_attempts: int, base_delay_seconds: float) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(max_attempts=max_attempts, base_delay_seconds=base_delay_seconds)


@pytest.mark.unit
def test_retry_until_stops_on_first_accepted_probe() -> None:
    delays: list[float] = []
    answers = iter([ProbeResult(accepted=False, error="not yet"), ProbeResult(accepted=True, value="ok")])

    async def _probe() -> ProbeResult[str]:
        return next(answers)

    outcome = asyncio.run(retry_until(_probe, policy=BackoffPolicy(), sleep=_recording_sleep(delays)))

    assert outcome.accepted is True
    assert outcome.attempts == 2
    assert outcome.value == "ok"
    assert delays == [0.5]


@pytest.mark.unit
def test_retry_until_absorbs_probe_exceptions_as_last_error() -> None:
    delays: list[float] = []

    async def _probe() -> ProbeResult[str]:
        raise ConnectionError("socket closed")

    outcome = asyncio.run(
        retry_until(_probe, policy=BackoffPolicy(max_attempts=3, base_delay_seconds=1.0), sleep=_recording_sleep(delays))
    )

    assert outcome.accepted is False
    assert outcome.attempts == 3
    assert outcome.last_error == "ConnectionError: socket closed"
    assert delays == [1.0, 2.0]


@pytest.mark.unit
def test_verify_record_returns_verified_after_lagged_reads() -> None:
    delays: list[float] = []
    store = InMemoryRecordStore(visibility_lag_reads=1)

    async def _run() -> None:
        await store.create_record(
            submission_id="sub-1",
            tracking_code="PENDING-20240101-000000-AAAA",
            owner_id="owner-1",
            payload={},
            status="created",
        )
        result = await verify_record(
            record_store=store,
            submission_id="sub-1",
            expected_owner_id="owner-1",
            policy=BackoffPolicy(max_attempts=3, base_delay_seconds=0.25),
            sleep=_recording_sleep(delays),
        )
        assert isinstance(result, Verified)
        assert result.attempts == 2
        assert result.record.owner_id == "owner-1"

    asyncio.run(_run())
    assert delays == [0.25]


@pytest.mark.unit
def test_verify_record_retries_read_errors_then_gives_up() -> None:
    delays: list[float] = []
    store = InMemoryRecordStore(read_fault=lambda **kwargs: RecordStoreError("replica unavailable"))

    result = asyncio.run(
        verify_record(
            record_store=store,
            submission_id="sub-1",
            expected_owner_id="owner-1",
            policy=BackoffPolicy(max_attempts=2, base_delay_seconds=0.1),
            sleep=_recording_sleep(delays),
        )
    )

    assert isinstance(result, NotFound)
    assert result.attempts == 2
    assert result.last_error == "RecordStoreError: replica unavailable"
    assert store.reads == ["sub-1", "sub-1"]
    assert delays == [0.1]
