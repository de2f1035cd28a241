"""Backoff utilities.

`exponential_backoff` hands out up to `max_attempts` attempts. The first runs
immediately; before each later one it sleeps, starting at `initial_delay` and
multiplying by `multiplier` up to `max_delay`. Each attempt receives the wait
that preceded it (0.0 for the first).
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    waited = 0.0
    next_wait = min(initial_delay, max_delay)
    for attempt in range(max_attempts):
        if attempt:
            await asyncio.sleep(next_wait)
            waited, next_wait = next_wait, min(next_wait * multiplier, max_delay)
        yield waited
