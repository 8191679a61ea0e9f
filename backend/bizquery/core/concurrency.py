"""
Bounded fan-out helper.

Upstream fan-out (one call per user inbox, one call per company) runs through
gather_bounded so a large tenant cannot open an unbounded number of
concurrent requests.
"""
import asyncio
from typing import Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    func: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    limit: int,
) -> List[R]:
    """
    Run func over items with at most `limit` calls in flight.

    Results are returned in input order. Exceptions propagate like
    asyncio.gather; callers that need isolation catch inside func.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")

    semaphore = asyncio.Semaphore(limit)

    async def _run(item: T) -> R:
        async with semaphore:
            return await func(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))
