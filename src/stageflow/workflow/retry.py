"""Per-stage timeout races, backoff sleeps and cancellation.

All waits are cooperative; nothing here blocks the event loop, so unrelated
runs in the same process keep making progress.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from stageflow.errors import StageTimeoutError, WorkflowCancelledError
from stageflow.workflow.types import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_delay_ms(policy: RetryPolicy, attempt: int, default_multiplier: float = 1.0) -> float:
    """Delay to sleep after failed attempt number `attempt` (1-based).

    A policy without its own multiplier uses `default_multiplier`.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    multiplier = policy.backoff_multiplier
    if multiplier is None:
        multiplier = default_multiplier
    return policy.delay_ms * multiplier ** (attempt - 1)


async def _cancel(task: asyncio.Task) -> None:
    if task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Abandoned task failed after losing the race", exc_info=True)


async def _race(
    awaitable: Awaitable[T],
    *,
    timeout_ms: float | None,
    cancel_event: asyncio.Event | None,
    stage_id: str | None,
) -> T:
    work = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future] = {work}
    cancel_waiter: asyncio.Task | None = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    timeout = timeout_ms / 1000 if timeout_ms is not None else None
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await _cancel(work)
        raise
    finally:
        if cancel_waiter is not None:
            await _cancel(cancel_waiter)

    if work in done:
        return work.result()

    await _cancel(work)
    if cancel_waiter is not None and cancel_waiter in done:
        raise WorkflowCancelledError()
    raise StageTimeoutError(stage_id or "", timeout_ms or 0)


async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout_ms: float,
    cancel_event: asyncio.Event | None = None,
    stage_id: str | None = None,
) -> T:
    """Race work against a timer and an optional cancellation signal.

    The first to finish wins and the losing work is cancelled.

    Raises:
        StageTimeoutError: The timer fired first.
        WorkflowCancelledError: The cancellation event fired first.
    """
    if cancel_event is not None and cancel_event.is_set():
        _close(awaitable)
        raise WorkflowCancelledError()
    return await _race(awaitable, timeout_ms=timeout_ms, cancel_event=cancel_event, stage_id=stage_id)


async def wait_or_cancel(awaitable: Awaitable[T], cancel_event: asyncio.Event | None = None) -> T:
    """Await work with no timer, aborting if the cancellation event fires."""
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        _close(awaitable)
        raise WorkflowCancelledError()
    return await _race(awaitable, timeout_ms=None, cancel_event=cancel_event, stage_id=None)


async def sleep_or_cancel(delay_ms: float, cancel_event: asyncio.Event | None = None) -> None:
    """Sleep for `delay_ms`, waking early with `WorkflowCancelledError` on cancellation."""
    if cancel_event is None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
        return
    if cancel_event.is_set():
        raise WorkflowCancelledError()
    if delay_ms <= 0:
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_ms / 1000)
    except TimeoutError:
        return
    raise WorkflowCancelledError()


def _close(awaitable: Awaitable[object]) -> None:
    # Avoid "coroutine was never awaited" warnings for work we never start.
    close = getattr(awaitable, "close", None)
    if callable(close):
        close()
