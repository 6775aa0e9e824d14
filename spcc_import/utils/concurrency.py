"""
Bounded fan-out for independent async work items.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")

CompletionCallback = Callable[[int, int], None]


async def bounded_map(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
    on_complete: Optional[CompletionCallback] = None,
) -> List[R]:
    """
    Run ``worker`` over ``items`` with at most ``limit`` calls in flight.

    Results are returned in completion order. ``on_complete(completed, total)``
    fires once per finished item with a strictly increasing count.

    The worker is expected to capture its own failures. If it raises anyway,
    the remaining work is cancelled and the exception propagates.

    Args:
        items: Work items
        worker: Coroutine function applied to each item
        limit: Maximum concurrent workers (>= 1)
        on_complete: Optional progress callback

    Returns:
        Worker results in completion order
    """
    if limit < 1:
        raise ValueError(f"concurrency limit must be at least 1, got {limit}")

    items = list(items)
    total = len(items)
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    tasks = [asyncio.create_task(run(item)) for item in items]
    results: List[R] = []
    try:
        for next_done in asyncio.as_completed(tasks):
            results.append(await next_done)
            if on_complete is not None:
                on_complete(len(results), total)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
    return results
