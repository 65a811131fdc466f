"""
orderhistory/scraping/scheduler.py

Priority request scheduler for one scrape purpose.

Lifecycle of a request
----------------------
``schedule()`` consults the page cache first. A hit is converted and
resolved on the spot, without a concurrency slot. A miss (or ``no_cache``)
is pushed onto a heap ordered by ``(priority, submission sequence)``.

Dispatch runs as a loop callback coalesced with ``call_soon``, so every
request submitted in the same tick is ordered before the first one starts.
At most ``max_concurrency`` requests run at once. A running request holds
its slot through rate-limit waits, fetch attempts and backoff sleeps.

States: QUEUED -> RUNNING -> SUCCEEDED | FAILED, and QUEUED | RUNNING ->
CANCELLED on ``abort()``. A sign-in interruption moves the request from
RUNNING back to QUEUED and suspends dispatch until ``resume()``.

All state lives on the event loop; there are no locks.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
from collections.abc import Callable
from typing import Any

from orderhistory.config import ScraperSettings
from orderhistory.logging_utils import log_event
from orderhistory.schemas.messages import SignInRequired
from orderhistory.scraping.backoff import BackoffPolicy
from orderhistory.scraping.cache import PageCache
from orderhistory.scraping.channel import ChannelSupplier
from orderhistory.scraping.errors import (
    ChannelClosedError,
    ConversionError,
    FetchFailedError,
    SchedulerAbortedError,
    SchedulerError,
    SignInRequiredError,
    TransientFetchError,
)
from orderhistory.scraping.fetcher import Fetcher
from orderhistory.scraping.rate_limiter import DomainRateLimiter
from orderhistory.scraping.statistics import StatisticName, Statistics
from orderhistory.scraping.types import (
    Converter,
    RawResponse,
    RequestState,
    ScheduledRequest,
    ScheduleResponse,
    cache_key_for,
    priority_key,
)

logger = logging.getLogger(__name__)


class RequestScheduler:
    """
    Owns the queue, the running set and the statistics of one purpose.
    """

    def __init__(
        self,
        *,
        purpose: str,
        channel_supplier: ChannelSupplier,
        statistics: Statistics,
        fetcher: Fetcher,
        cache: PageCache,
        max_concurrency: int = 4,
        backoff: BackoffPolicy | None = None,
        rate_limiter: DomainRateLimiter | None = None,
        on_signin_required: Callable[[str], None] | None = None,
    ) -> None:
        self._purpose = purpose
        self._channel_supplier = channel_supplier
        self._stats = statistics
        self._fetcher = fetcher
        self._cache = cache
        self._max_concurrency = max(1, max_concurrency)
        self._backoff = backoff or BackoffPolicy()
        self._rate_limiter = rate_limiter
        self._on_signin_required = on_signin_required

        self._queue: list[ScheduledRequest] = []
        self._running: set[ScheduledRequest] = set()
        self._sequence = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._dispatch_pending = False
        self._suspended = False
        self._aborted = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def purpose(self) -> str:
        return self._purpose

    @property
    def cache(self) -> PageCache:
        return self._cache

    @property
    def statistics(self) -> Statistics:
        return self._stats

    @property
    def signin_required(self) -> bool:
        return self._suspended

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    @property
    def running_count(self) -> int:
        return len(self._running)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def schedule(
        self,
        url: str,
        converter: Converter,
        priority: str | int,
        no_cache: bool = False,
        *,
        cacheable: bool = True,
        cache_context: str | None = None,
    ) -> asyncio.Future[ScheduleResponse[Any]]:
        """
        Submit one fetch and return a future for its converted result.

        Must be called from a coroutine running on the scrape loop. The
        future rejects with a SchedulerError subclass carrying the URL.
        """

        if not url or not url.strip():
            raise ValueError("url must be a non-empty string")
        priority_key(priority)

        loop = self._get_loop()
        future: asyncio.Future[ScheduleResponse[Any]] = loop.create_future()

        if self._aborted:
            future.set_exception(SchedulerAbortedError(url, self._purpose))
            return future

        key = cache_key_for(url, cache_context)
        if not no_cache and self._resolve_from_cache(url, key, converter, future):
            return future

        self._sequence += 1
        request = ScheduledRequest(
            url=url,
            converter=converter,
            priority=priority,
            sequence=self._sequence,
            future=future,
            cache_key=key,
            no_cache=no_cache,
            cacheable=cacheable,
        )
        heapq.heappush(self._queue, request)
        self._stats.increment(StatisticName.QUEUED_COUNT)
        log_event(
            logger,
            logging.DEBUG,
            "request_queued",
            url=url,
            priority=priority,
            no_cache=no_cache,
            purpose=self._purpose,
        )
        self._request_dispatch()
        return future

    def _resolve_from_cache(
        self,
        url: str,
        key: str,
        converter: Converter,
        future: asyncio.Future,
    ) -> bool:
        cached = self._cache.get(key)
        if not isinstance(cached, str):
            return False

        response = RawResponse(url=url, text=cached, final_url=url, from_cache=True)
        try:
            result = converter(response)
        except Exception as exc:
            # Entry no longer matches what the converter expects; refetch.
            log_event(
                logger,
                logging.WARNING,
                "cached_payload_conversion_failed",
                url=url,
                error=str(exc),
            )
            return False

        self._stats.increment(StatisticName.CACHE_HIT_COUNT)
        self._stats.increment(StatisticName.SUCCEEDED_COUNT)
        future.set_result(ScheduleResponse(result=result, query=url))
        log_event(logger, logging.DEBUG, "cache_hit", url=url, purpose=self._purpose)
        return True

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _request_dispatch(self) -> None:
        if self._dispatch_pending or self._aborted:
            return
        self._dispatch_pending = True
        self._get_loop().call_soon(self._dispatch)

    def _dispatch(self) -> None:
        self._dispatch_pending = False
        if self._aborted or self._suspended:
            return

        loop = self._get_loop()
        while self._queue and len(self._running) < self._max_concurrency:
            request = heapq.heappop(self._queue)
            self._stats.decrement(StatisticName.QUEUED_COUNT)
            if request.future.done():
                # Caller gave up on the future before it was dispatched.
                request.transition(RequestState.CANCELLED)
                continue

            request.transition(RequestState.RUNNING)
            self._stats.increment(StatisticName.RUNNING_COUNT)
            self._running.add(request)
            request.task = loop.create_task(self._run(request))
            log_event(
                logger,
                logging.DEBUG,
                "request_dispatched",
                url=request.url,
                priority=request.priority,
                purpose=self._purpose,
            )

    async def _run(self, request: ScheduledRequest) -> None:
        try:
            result = await self._execute(request)
        except SignInRequiredError as exc:
            self._suspend(request, exc)
        except SchedulerError as exc:
            self._settle_failure(request, exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._settle_failure(
                request,
                FetchFailedError(
                    request.url,
                    f"Unexpected fetch error url={request.url}: {exc}",
                    attempts=request.attempt,
                ),
            )
        else:
            self._settle_success(request, result)
        finally:
            self._running.discard(request)
            self._request_dispatch()

    async def _execute(self, request: ScheduledRequest) -> Any:
        response = await self._fetch_with_retry(request)
        try:
            result = request.converter(response)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "conversion_failed",
                url=request.url,
                purpose=self._purpose,
                error=str(exc),
            )
            raise ConversionError(request.url, exc) from exc

        if request.cacheable:
            if self._cache.offload_writes:
                await asyncio.to_thread(self._cache.set, request.cache_key, response.text)
            else:
                self._cache.set(request.cache_key, response.text)
        return result

    async def _fetch_with_retry(self, request: ScheduledRequest) -> RawResponse:
        while True:
            request.attempt += 1
            if self._rate_limiter is not None:
                await self._rate_limiter.wait(request.url)
            try:
                return await self._fetcher.fetch(request.url)
            except FetchFailedError as exc:
                exc.attempts = request.attempt
                raise
            except TransientFetchError as exc:
                if not self._backoff.should_retry(request.attempt):
                    raise FetchFailedError(
                        request.url,
                        f"Failed to fetch {request.url} after {request.attempt} attempt(s): {exc}",
                        attempts=request.attempt,
                        status_code=exc.status_code,
                    ) from exc
                delay = self._backoff.delay(request.attempt)
                log_event(
                    logger,
                    logging.WARNING,
                    "fetch_retry",
                    url=request.url,
                    attempt=request.attempt,
                    max_attempts=self._backoff.max_attempts,
                    delay_seconds=round(delay, 3),
                    error=str(exc),
                )
                await self._backoff.wait(request.attempt)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _settle_success(self, request: ScheduledRequest, result: Any) -> None:
        if request.is_terminal:
            return
        request.transition(RequestState.SUCCEEDED)
        self._stats.decrement(StatisticName.RUNNING_COUNT)
        self._stats.increment(StatisticName.SUCCEEDED_COUNT)
        if not request.future.done():
            request.future.set_result(ScheduleResponse(result=result, query=request.url))

    def _settle_failure(self, request: ScheduledRequest, error: SchedulerError) -> None:
        if request.is_terminal:
            return
        request.transition(RequestState.FAILED)
        self._stats.decrement(StatisticName.RUNNING_COUNT)
        self._stats.increment(StatisticName.FAILED_COUNT)
        log_event(
            logger,
            logging.WARNING,
            "request_failed",
            url=request.url,
            attempts=request.attempt,
            error_type=type(error).__name__,
            error=str(error),
            purpose=self._purpose,
        )
        if not request.future.done():
            request.future.set_exception(error)

    # ------------------------------------------------------------------
    # Sign-in suspension
    # ------------------------------------------------------------------

    def _suspend(self, request: ScheduledRequest, error: SignInRequiredError) -> None:
        if request.is_terminal:
            return

        # The interrupted attempt is not charged against the retry bound.
        request.attempt = max(0, request.attempt - 1)
        request.transition(RequestState.QUEUED)
        request.task = None
        self._stats.decrement(StatisticName.RUNNING_COUNT)
        self._stats.increment(StatisticName.QUEUED_COUNT)
        heapq.heappush(self._queue, request)

        if self._suspended:
            return
        self._suspended = True
        log_event(
            logger,
            logging.WARNING,
            "scheduler_suspended_signin_required",
            url=error.url,
            purpose=self._purpose,
        )
        self._post_signin_required(error.url)
        if self._on_signin_required is not None:
            self._on_signin_required(error.url)

    def _post_signin_required(self, url: str) -> None:
        channel = self._channel_supplier()
        if channel is None:
            return
        try:
            channel.post(SignInRequired(url=url, purpose=self._purpose))
        except ChannelClosedError as exc:
            log_event(logger, logging.DEBUG, "signin_notice_dropped", url=url, error=str(exc))

    def resume(self) -> None:
        """
        Clear a sign-in suspension and restart dispatch.
        """

        if self._aborted or not self._suspended:
            return
        self._suspended = False
        log_event(
            logger,
            logging.INFO,
            "scheduler_resumed",
            purpose=self._purpose,
            queued=len(self._queue),
        )
        self._request_dispatch()

    # ------------------------------------------------------------------
    # Abort
    # ------------------------------------------------------------------

    def abort(self) -> None:
        """
        Cancel every queued and running request and make this scheduler inert.

        Pending futures reject with SchedulerAbortedError before this returns.
        Cancelled requests are not counted as failures.
        """

        if self._aborted:
            return
        self._aborted = True

        pending = list(self._queue) + list(self._running)
        self._queue.clear()
        self._running.clear()

        cancelled = 0
        for request in pending:
            if request.is_terminal:
                continue
            request.transition(RequestState.CANCELLED)
            cancelled += 1
            if request.task is not None and not request.task.done():
                request.task.cancel()
            if not request.future.done():
                request.future.set_exception(SchedulerAbortedError(request.url, self._purpose))

        self._stats.set(StatisticName.QUEUED_COUNT, 0)
        self._stats.set(StatisticName.RUNNING_COUNT, 0)
        log_event(
            logger,
            logging.INFO,
            "scheduler_aborted",
            purpose=self._purpose,
            cancelled=cancelled,
        )


def create_scheduler(
    purpose: str,
    channel_supplier: ChannelSupplier,
    statistics: Statistics,
    *,
    fetcher: Fetcher,
    cache: PageCache,
    settings: ScraperSettings | None = None,
    backoff: BackoffPolicy | None = None,
    rate_limiter: DomainRateLimiter | None = None,
    on_signin_required: Callable[[str], None] | None = None,
) -> RequestScheduler:
    """
    Build a scheduler for one purpose from scraper settings.
    """

    settings = settings or ScraperSettings()
    if rate_limiter is None and settings.rate_limit_per_second:
        rate_limiter = DomainRateLimiter(rate_limit_per_second=settings.rate_limit_per_second)
    return RequestScheduler(
        purpose=purpose,
        channel_supplier=channel_supplier,
        statistics=statistics,
        fetcher=fetcher,
        cache=cache,
        max_concurrency=settings.max_concurrency,
        backoff=backoff or BackoffPolicy.from_settings(settings),
        rate_limiter=rate_limiter,
        on_signin_required=on_signin_required,
    )
