"""Retry pacing for broker connects.

`exponential_backoff` yields ``(attempt, waited)`` pairs, numbered from 1.
The first attempt runs immediately (``waited == 0.0``); before every later
attempt it sleeps ``initial_delay * multiplier ** (attempt - 2)`` seconds,
capped at ``max_delay``. Iteration ends after ``max_attempts`` yields.
"""
import asyncio
from typing import AsyncIterator, Tuple


def backoff_delay(attempt: int, initial_delay: float, max_delay: float, multiplier: float) -> float:
    """Seconds to wait before ``attempt``; zero for the first one."""
    if attempt <= 1:
        return 0.0
    return min(initial_delay * multiplier ** (attempt - 2), max_delay)


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[Tuple[int, float]]:
    attempt = 1
    while attempt <= max_attempts:
        waited = backoff_delay(attempt, initial_delay, max_delay, multiplier)
        if waited > 0:
            await asyncio.sleep(waited)
        yield attempt, waited
        attempt += 1
