"""
Domain-aware request rate limiter.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from urllib.parse import urlparse

from orderhistory.scraping.backoff import SleepFunc


class DomainRateLimiter:
    """
    Enforces minimum interval between requests per domain.

    Each caller reserves the next free slot for its domain before sleeping,
    so concurrent tasks are spaced out instead of all waking together.
    A rate of 0 (or None) disables throttling.
    """

    def __init__(
        self,
        *,
        rate_limit_per_second: float | None,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._min_interval = 1.0 / rate_limit_per_second if rate_limit_per_second else 0.0
        self._clock = clock
        self._sleep = sleep
        self._next_slot_by_domain: dict[str, float] = {}

    @property
    def enabled(self) -> bool:
        return self._min_interval > 0

    def reserve(self, url: str) -> float:
        """
        Claim the next request slot for the URL's domain and return the
        number of seconds to wait before using it.
        """

        if not self.enabled:
            return 0.0

        parsed = urlparse(url)
        domain = parsed.netloc.lower() or parsed.path.lower()
        if not domain:
            return 0.0

        now = self._clock()
        slot = max(now, self._next_slot_by_domain.get(domain, now))
        self._next_slot_by_domain[domain] = slot + self._min_interval
        return slot - now

    async def wait(self, url: str) -> None:
        """
        Sleep as needed so outbound requests respect per-domain throttling.
        """

        wait_seconds = self.reserve(url)
        if wait_seconds > 0:
            await self._sleep(wait_seconds)
