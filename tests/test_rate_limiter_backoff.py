"""
tests/test_rate_limiter_backoff.py

Pytest unit tests for BackoffPolicy, DomainRateLimiter and gather_settled.
"""

from __future__ import annotations

import asyncio

import pytest

from helpers import RecordingSleep, make_settings
from orderhistory.scraping.backoff import BackoffPolicy
from orderhistory.scraping.errors import FetchFailedError
from orderhistory.scraping.fanout import gather_settled
from orderhistory.scraping.rate_limiter import DomainRateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# BackoffPolicy
# ---------------------------------------------------------------------------


class TestBackoffPolicy:
    def test_attempt_bound_includes_first_attempt(self) -> None:
        policy = BackoffPolicy(max_attempts=3)
        assert policy.should_retry(1)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_single_attempt_never_retries(self) -> None:
        assert not BackoffPolicy(max_attempts=1).should_retry(1)

    def test_delays_grow_exponentially_and_cap(self) -> None:
        policy = BackoffPolicy(initial_seconds=1.0, multiplier=3.0, max_seconds=5.0)
        assert [policy.delay(attempt) for attempt in (1, 2, 3)] == [1.0, 3.0, 5.0]

    def test_wait_uses_injected_sleep(self) -> None:
        sleep = RecordingSleep()
        policy = BackoffPolicy(initial_seconds=0.5, sleep=sleep)

        async def scenario() -> None:
            await policy.wait(1)
            await policy.wait(2)

        asyncio.run(scenario())
        assert sleep.delays == [0.5, 1.0]

    def test_from_settings(self) -> None:
        settings = make_settings(max_attempts=5, backoff_initial_seconds=2.0, backoff_max_seconds=9.0)
        policy = BackoffPolicy.from_settings(settings)
        assert policy.max_attempts == 5
        assert policy.delay(1) == 2.0
        assert policy.delay(4) == 9.0


# ---------------------------------------------------------------------------
# DomainRateLimiter
# ---------------------------------------------------------------------------


class TestDomainRateLimiter:
    def test_disabled_when_rate_is_zero(self) -> None:
        limiter = DomainRateLimiter(rate_limit_per_second=0)
        assert not limiter.enabled
        assert limiter.reserve("https://www.amazon.com/a") == 0.0

    def test_reservations_are_spaced_per_domain(self) -> None:
        clock = FakeClock()
        limiter = DomainRateLimiter(rate_limit_per_second=2.0, clock=clock)

        waits = [limiter.reserve("https://www.amazon.com/page") for _ in range(3)]

        assert waits == [0.0, 0.5, 1.0]

    def test_domains_are_independent(self) -> None:
        clock = FakeClock()
        limiter = DomainRateLimiter(rate_limit_per_second=1.0, clock=clock)

        assert limiter.reserve("https://www.amazon.com/a") == 0.0
        assert limiter.reserve("https://www.amazon.co.uk/a") == 0.0
        assert limiter.reserve("https://WWW.AMAZON.COM/b") == 1.0

    def test_elapsed_time_frees_the_slot(self) -> None:
        clock = FakeClock()
        limiter = DomainRateLimiter(rate_limit_per_second=1.0, clock=clock)
        limiter.reserve("https://www.amazon.com/a")
        clock.now += 5.0
        assert limiter.reserve("https://www.amazon.com/b") == 0.0

    def test_wait_sleeps_only_when_needed(self) -> None:
        sleep = RecordingSleep()
        limiter = DomainRateLimiter(rate_limit_per_second=4.0, clock=FakeClock(), sleep=sleep)

        async def scenario() -> None:
            await limiter.wait("https://www.amazon.com/a")
            await limiter.wait("https://www.amazon.com/b")

        asyncio.run(scenario())
        assert sleep.delays == [0.25]


# ---------------------------------------------------------------------------
# gather_settled
# ---------------------------------------------------------------------------


async def _value(value: int) -> int:
    return value


async def _failure(url: str) -> int:
    raise FetchFailedError(url, attempts=1)


class TestGatherSettled:
    def test_empty_input(self) -> None:
        assert asyncio.run(gather_settled([], label="empty")) == []

    def test_partial_failure_keeps_successes_in_order(self) -> None:
        async def scenario() -> list[int]:
            return await gather_settled([_value(1), _failure("u"), _value(3)], label="mixed")

        assert asyncio.run(scenario()) == [1, 3]

    def test_total_failure_raises_first_error(self) -> None:
        async def scenario() -> list[int]:
            return await gather_settled([_failure("first"), _failure("second")], label="all bad")

        with pytest.raises(FetchFailedError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.url == "first"
