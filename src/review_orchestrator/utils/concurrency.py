"""Async concurrency primitives used by the scheduler and worker sandboxes."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable

T = TypeVar("T")


async def gather_settled(
    awaitables: Iterable[Awaitable[T]],
    *,
    limit: int,
) -> list[T | BaseException]:
    """Await every item under a concurrency ``limit`` and keep input order.

    Exceptions are returned in place of values so one failure never cancels
    its siblings. Cancellation of the caller still propagates.
    """

    if limit <= 0:
        raise ValueError("limit must be > 0")
    items = list(awaitables)
    if not items:
        return []
    semaphore = asyncio.Semaphore(min(limit, len(items)))

    async def _bounded(awaitable: Awaitable[T]) -> T:
        async with semaphore:
            return await awaitable

    tasks = [asyncio.ensure_future(_bounded(item)) for item in items]
    try:
        return list(await asyncio.gather(*tasks, return_exceptions=True))
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        with suppress(Exception):
            await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_with_timeout(coroutine: Awaitable[T], timeout_seconds: float) -> T:
    """Run ``coroutine`` as a task and cancel it after ``timeout_seconds``."""
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
        if task in done:
            return await task

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    except asyncio.CancelledError:
        if not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        raise


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects rejected before scheduling so CPython does not
    # emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "gather_settled",
    "run_with_timeout",
]
