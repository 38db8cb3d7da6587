from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded retry with linear backoff: wait `base * attempt` after each miss."""

    max_attempts: int = 5
    base_delay_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must not be negative")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * attempt

    def total_delay_seconds(self) -> float:
        # No wait follows the final attempt.
        return sum(self.delay_for(attempt) for attempt in range(1, self.max_attempts))


@dataclass(frozen=True)
class ProbeResult(Generic[T]):
    accepted: bool
    value: T | None = None
    error: str | None = None


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    accepted: bool
    attempts: int
    value: T | None = None
    last_error: str | None = None


async def retry_until(
    probe: Callable[[], Awaitable[ProbeResult[T]]],
    *,
    policy: BackoffPolicy,
    sleep: Sleep = asyncio.sleep,
) -> RetryOutcome[T]:
    """Run `probe` until it accepts or attempts run out.

    Exceptions raised by the probe count as a rejected attempt and their text
    becomes `last_error`; they are never propagated.
    """
    last_error: str | None = None
    last_value: T | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await probe()
        except Exception as exc:
            last_error = f"{type(exc).__name__}: {exc}"
        else:
            if result.accepted:
                return RetryOutcome(accepted=True, attempts=attempt, value=result.value)
            last_error = result.error
            last_value = result.value

        if attempt < policy.max_attempts:
            await sleep(policy.delay_for(attempt))

    return RetryOutcome(
        accepted=False,
        attempts=policy.max_attempts,
        value=last_value,
        last_error=last_error,
    )
