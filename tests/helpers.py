"""
tests/helpers.py

Fakes shared by the scraping tests. No network access anywhere.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from orderhistory.config import ScraperSettings
from orderhistory.scraping.backoff import BackoffPolicy, no_sleep
from orderhistory.scraping.cache import InMemoryPageCache, PageCache
from orderhistory.scraping.channel import LatestMessageChannel
from orderhistory.scraping.errors import FetchFailedError
from orderhistory.scraping.scheduler import RequestScheduler
from orderhistory.scraping.statistics import Statistics
from orderhistory.scraping.types import RawResponse

# An outcome is page text, an exception to raise, a callable taking the URL,
# or a list of outcomes consumed one per call (the last one repeats).
Outcome = Any


class FakeFetcher:
    """
    Serves canned outcomes per URL and records every fetch.
    """

    def __init__(
        self,
        pages: dict[str, Outcome] | None = None,
        *,
        default: Outcome = None,
        delay: float = 0.0,
    ) -> None:
        self.pages = dict(pages or {})
        self.default = default
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.cleared = 0
        self.gate: asyncio.Event | None = None

    def _next_outcome(self, url: str) -> Outcome:
        outcome = self.pages.get(url, self.default)
        if isinstance(outcome, list):
            if len(outcome) > 1:
                return outcome.pop(0)
            return outcome[0]
        return outcome

    async def fetch(self, url: str) -> RawResponse:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self._next_outcome(url)
            if callable(outcome) and not isinstance(outcome, BaseException):
                outcome = outcome(url)
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is None:
                raise FetchFailedError(url, f"Non-retryable status=404 url={url}", attempts=1, status_code=404)
            return RawResponse(url=url, text=outcome, status_code=200, final_url=url)
        finally:
            self.in_flight -= 1

    def clear_session(self) -> None:
        self.cleared += 1


class RecordingSleep:
    """
    Async sleep replacement that records requested delays.
    """

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


def identity(response: RawResponse) -> str:
    return response.text


def make_settings(**overrides: Any) -> ScraperSettings:
    values: dict[str, Any] = {
        "site": "www.amazon.co.uk",
        "max_concurrency": 4,
        "max_attempts": 3,
        "rate_limit_per_second": 0.0,
        "stats_interval_seconds": 60.0,
    }
    values.update(overrides)
    return ScraperSettings(**values)


def make_scheduler(
    fetcher: FakeFetcher,
    *,
    cache: PageCache | None = None,
    statistics: Statistics | None = None,
    channel: LatestMessageChannel | None = None,
    max_concurrency: int = 4,
    max_attempts: int = 3,
    sleep: Callable[[float], Any] = no_sleep,
    purpose: str = "test",
    on_signin_required: Callable[[str], None] | None = None,
) -> RequestScheduler:
    return RequestScheduler(
        purpose=purpose,
        channel_supplier=lambda: channel,
        statistics=statistics or Statistics(),
        fetcher=fetcher,
        cache=cache if cache is not None else InMemoryPageCache(),
        max_concurrency=max_concurrency,
        backoff=BackoffPolicy(max_attempts=max_attempts, sleep=sleep),
        on_signin_required=on_signin_required,
    )


async def settle(rounds: int = 10) -> None:
    """Let pending loop callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
