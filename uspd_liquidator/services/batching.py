"""Bounded all-settled fan-out."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T], Awaitable[R]],
) -> list[tuple[T, R | BaseException]]:
    """Run ``worker`` over ``items``, ``batch_size`` at a time.

    Every outcome is collected, success or exception, so one failing item
    never aborts its batch. Results keep the order of ``items``.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    outcomes: list[tuple[T, R | BaseException]] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        results = await asyncio.gather(
            *(worker(item) for item in batch), return_exceptions=True
        )
        outcomes.extend(zip(batch, results))
    return outcomes
