"""Backoff utilities.

`exponential_backoff` yields the current delay for the caller to attempt an operation,
then sleeps for that delay before the next attempt. Used for broker connection retries;
the poll loop itself retries with a fixed delay.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)
