# app/core/batching.py

"""
Bounded-concurrency helpers for repository writes.
"""

import asyncio
from typing import Awaitable, Callable, Iterator, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("size must be >= 1")
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


async def process_in_batches(
    items: Sequence[T],
    handler: Callable[[T], Awaitable[R]],
    batch_size: int = 3,
    delay: float = 0.0,
) -> list[R]:
    """
    Run ``handler`` over ``items``, ``batch_size`` at a time.

    Items within a batch run concurrently; batches run one after another
    with ``delay`` seconds between them (none after the last). Results
    come back in input order.
    """
    results: list[R] = []
    batches = list(chunked(items, batch_size))

    for index, batch in enumerate(batches):
        results.extend(await asyncio.gather(*(handler(item) for item in batch)))
        if delay and index < len(batches) - 1:
            await asyncio.sleep(delay)

    return results
