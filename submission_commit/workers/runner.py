from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from submission_commit.settings import env_int
from submission_commit.workers.loop import ReconcileWorkerLoop


@dataclass(frozen=True)
class WorkerRuntimeSettings:
    poll_interval_ms: int = 200
    idle_backoff_ms: int = 1000
    error_backoff_ms: int = 2000
    # items processed by one `--drain` run at most
    drain_max_items: int = 1000


@dataclass
class WorkerRuntimeState:
    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    items_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0

    def record_tick(self, *, did_work: bool) -> None:
        self.ticks_total += 1
        if did_work:
            self.items_total += 1
        else:
            self.idle_ticks_total += 1

    def record_error(self) -> None:
        self.ticks_total += 1
        self.errors_total += 1


def worker_runtime_settings_from_env() -> WorkerRuntimeSettings:
    return WorkerRuntimeSettings(
        poll_interval_ms=env_int("WORKER_POLL_INTERVAL_MS", 200),
        idle_backoff_ms=env_int("WORKER_IDLE_BACKOFF_MS", 1000),
        error_backoff_ms=env_int("WORKER_ERROR_BACKOFF_MS", 2000),
        drain_max_items=env_int("WORKER_DRAIN_MAX_ITEMS", 1000),
    )


async def run_worker_until_stopped(
    *,
    worker_loop: ReconcileWorkerLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
    state: WorkerRuntimeState | None = None,
) -> None:
    """Poll the reconciliation ledger until `stop_event` is set.

    Busy ticks are followed by the short poll interval, idle ticks by the idle
    backoff and failed ticks by the error backoff; the stop event interrupts
    any of those waits.
    """
    state = state or WorkerRuntimeState()
    state.started = True
    context = {"role": role, "service": role, "run_id": run_id}
    logger.info("worker loop started", extra=context)

    while not stop_event.is_set():
        try:
            did_work = await worker_loop.run_once()
        except Exception:
            state.record_error()
            delay_ms = settings.error_backoff_ms
            logger.exception("worker tick error", extra=context)
        else:
            state.record_tick(did_work=did_work)
            delay_ms = settings.poll_interval_ms if did_work else settings.idle_backoff_ms
            if did_work:
                logger.info("worker tick", extra={**context, "did_work": "true"})

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            continue

    logger.info("worker loop stopped", extra=context)
    state.stopped = True


async def drain_until_idle(
    *,
    worker_loop: ReconcileWorkerLoop,
    role: str,
    run_id: str,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
) -> WorkerRuntimeState:
    """Process ledger items back to back and return once nothing is claimable.

    Stops early on the first tick error or after `drain_max_items` items.
    """
    state = WorkerRuntimeState(started=True)
    context = {"role": role, "service": role, "run_id": run_id}
    while state.items_total < settings.drain_max_items:
        try:
            did_work = await worker_loop.run_once()
        except Exception:
            state.record_error()
            logger.exception("worker drain error", extra=context)
            break
        state.record_tick(did_work=did_work)
        if not did_work:
            break

    state.stopped = True
    logger.info(
        "worker drain finished",
        extra={**context, "items_total": state.items_total, "errors_total": state.errors_total},
    )
    return state
