"""Bounded-concurrency execution helpers.

Two disciplines are used by the scheduler:

- ``run_bounded``: start one task per item, at most ``max_concurrent`` of
  them past the semaphore at any time (outer level, one task per batch).
- ``run_workers``: a fixed number of workers pull items from a shared
  ``asyncio.Queue`` until it is empty (inner level, one item per page).

Neither preserves completion order; callers sort what they need.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrent: int,
) -> list[R]:
    """Run ``worker`` for every item with at most ``max_concurrent`` in flight.

    Args:
        items: Work items
        worker: Coroutine function processing one item
        max_concurrent: Maximum number of workers running at once

    Returns:
        Worker results in the same order as ``items``

    Raises:
        ValueError: If max_concurrent is not positive
        Exception: The first exception raised by a worker, after every
            other worker has finished
    """
    if max_concurrent <= 0:
        raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
    if not items:
        return []

    semaphore = asyncio.Semaphore(max_concurrent)

    async def run_with_semaphore(item: T) -> R:
        async with semaphore:
            return await worker(item)

    results = await asyncio.gather(*(run_with_semaphore(item) for item in items), return_exceptions=True)

    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results  # type: ignore[return-value]


async def run_workers(
    items: Sequence[T],
    handler: Callable[[T], Awaitable[R]],
    workers: int,
) -> list[R]:
    """Process items with a fixed pool of workers sharing one pending queue.

    Args:
        items: Work items
        handler: Coroutine function processing one item; must not raise
        workers: Pool size (capped at the number of items)

    Returns:
        Handler results in completion order
    """
    if workers <= 0:
        raise ValueError(f"workers must be positive, got {workers}")

    pending: asyncio.Queue[T] = asyncio.Queue()
    for item in items:
        pending.put_nowait(item)

    results: list[R] = []

    async def worker(worker_id: int) -> None:
        while True:
            try:
                item = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.debug("Worker %d picked up an item (%d left)", worker_id, pending.qsize())
            results.append(await handler(item))

    await asyncio.gather(*(worker(i + 1) for i in range(min(workers, len(items)))))
    return results
