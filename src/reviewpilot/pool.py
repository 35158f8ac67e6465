"""Bounded-concurrency mapping."""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar


T = TypeVar("T")
R = TypeVar("R")


async def map_limit(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """Apply ``fn(item, index)`` with at most ``limit`` calls in flight.

    Results keep the order of ``items``. The first exception cancels the
    remaining workers and propagates.
    """
    results: list = [None] * len(items)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            results[index] = await fn(items[index], index)

    workers = [asyncio.ensure_future(worker()) for _ in range(max(1, min(limit, len(items))))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results
