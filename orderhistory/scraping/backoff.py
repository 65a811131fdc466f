"""
Retry bound and exponential backoff delays for page fetches.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from orderhistory.config import ScraperSettings

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """
    `max_attempts` counts every attempt, the first one included.

    The delay before retry n (1-based) is
    `initial_seconds * multiplier ** (n - 1)`, capped at `max_seconds`.
    """

    max_attempts: int = 3
    initial_seconds: float = 0.5
    multiplier: float = 2.0
    max_seconds: float = 30.0
    sleep: SleepFunc = field(default=asyncio.sleep, compare=False, repr=False)

    @classmethod
    def from_settings(cls, settings: ScraperSettings, *, sleep: SleepFunc | None = None) -> "BackoffPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            initial_seconds=settings.backoff_initial_seconds,
            multiplier=settings.backoff_multiplier,
            max_seconds=settings.backoff_max_seconds,
            sleep=sleep or asyncio.sleep,
        )

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delay(self, attempt: int) -> float:
        exponent = max(0, attempt - 1)
        return min(self.max_seconds, self.initial_seconds * (self.multiplier**exponent))

    async def wait(self, attempt: int) -> None:
        await self.sleep(self.delay(attempt))


async def no_sleep(_seconds: float) -> None:
    """Sleep function for tests: yields to the loop without waiting."""
    await asyncio.sleep(0)
