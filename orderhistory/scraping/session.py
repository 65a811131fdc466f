"""
orderhistory/scraping/session.py

Scrape session: owns exactly one live scheduler at a time.

Every new purpose (a scrape of some years, a date range, the transactions
feed, or an abort) replaces the scheduler: the old one is aborted, the
statistics are cleared and a fresh scheduler is created. Control messages
arrive through ``handle()``; progress and results leave through the
message channel.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from datetime import date
from typing import Any

from orderhistory.config import ScraperSettings
from orderhistory.domain.orders import OrderRecord, Transaction
from orderhistory.entities.order import (
    fetch_orders_by_range,
    fetch_orders_by_year,
    get_years,
    latest_year_of,
    sync_order,
)
from orderhistory.entities.transactions import TransactionStore, fetch_transactions
from orderhistory.logging_utils import log_event
from orderhistory.schemas.messages import (
    Abort,
    AdvertisePeriods,
    ClearCache,
    ControlMessage,
    ForceLogout,
    Notification,
    OrdersReady,
    OutboundMessage,
    ScrapeRange,
    ScrapeTransactions,
    ScrapeYears,
    SignInCompleted,
    TransactionsReady,
)
from orderhistory.scraping.backoff import BackoffPolicy
from orderhistory.scraping.cache import PageCache
from orderhistory.scraping.channel import ChannelSupplier
from orderhistory.scraping.errors import ChannelClosedError, SchedulerAbortedError, SchedulerError
from orderhistory.scraping.fanout import gather_settled
from orderhistory.scraping.fetcher import Fetcher
from orderhistory.scraping.rate_limiter import DomainRateLimiter
from orderhistory.scraping.scheduler import RequestScheduler, create_scheduler
from orderhistory.scraping.statistics import Statistics, StatisticsPublisher

logger = logging.getLogger(__name__)

UNKNOWN_PURPOSE = "unknown"
ABORTED_PURPOSE = "aborted"
TRANSACTIONS_PURPOSE = "transactions"
MONTH_PERIODS = [1, 2, 3]


def years_purpose(years: list[int]) -> str:
    return ", ".join(str(year) for year in years)


def range_purpose(start_date: date, end_date: date) -> str:
    return f"{start_date.isoformat()} -> {end_date.isoformat()}"


class ScrapeSession:
    """
    Purpose lifecycle, control message dispatch and statistics publishing.
    """

    def __init__(
        self,
        *,
        fetcher: Fetcher,
        cache: PageCache,
        transaction_store: TransactionStore,
        settings: ScraperSettings,
        channel_supplier: ChannelSupplier,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.transaction_store = transaction_store
        self.settings = settings
        self._channel_supplier = channel_supplier
        self._backoff = backoff
        self._rate_limiter = (
            DomainRateLimiter(rate_limit_per_second=settings.rate_limit_per_second)
            if settings.rate_limit_per_second
            else None
        )

        self.statistics = Statistics()
        self._scheduler: RequestScheduler | None = None
        self._purpose = UNKNOWN_PURPOSE
        self._publisher = StatisticsPublisher(
            statistics=self.statistics,
            purpose_supplier=lambda: self._purpose,
            channel_supplier=channel_supplier,
            interval_seconds=settings.stats_interval_seconds,
        )
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Scheduler lifecycle
    # ------------------------------------------------------------------

    @property
    def purpose(self) -> str:
        return self._purpose

    @property
    def signin_required(self) -> bool:
        return self._scheduler is not None and self._scheduler.signin_required

    @property
    def scheduler(self) -> RequestScheduler:
        if self._scheduler is None:
            return self.reset(UNKNOWN_PURPOSE)
        return self._scheduler

    def reset(self, purpose: str) -> RequestScheduler:
        """
        Abort the current scheduler and start a fresh one for `purpose`.
        """

        previous = self._scheduler
        if previous is not None:
            previous.abort()

        self.statistics.clear()
        self._purpose = purpose
        self._scheduler = create_scheduler(
            purpose,
            self._channel_supplier,
            self.statistics,
            fetcher=self.fetcher,
            cache=self.cache,
            settings=self.settings,
            backoff=self._backoff,
            rate_limiter=self._rate_limiter,
        )
        self._publisher.start()
        log_event(
            logger,
            logging.INFO,
            "scheduler_reset",
            purpose=purpose,
            previous_purpose=previous.purpose if previous is not None else None,
        )
        return self._scheduler

    def abort(self) -> None:
        self.reset(ABORTED_PURPOSE)

    def publish_statistics(self) -> bool:
        return self._publisher.publish_now()

    # ------------------------------------------------------------------
    # Outbound messages
    # ------------------------------------------------------------------

    def post(self, message: OutboundMessage) -> bool:
        channel = self._channel_supplier()
        if channel is None:
            return False
        try:
            channel.post(message)
        except ChannelClosedError as exc:
            log_event(logger, logging.DEBUG, "message_dropped", action=message.action, error=str(exc))
            return False
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()
        self.transaction_store.clear()
        self.post(Notification(text="Cache cleared"))

    def force_logout(self) -> None:
        self.fetcher.clear_session()
        self.post(Notification(text=f"Logged out of {self.settings.site}"))

    def signin_completed(self) -> None:
        if self._scheduler is not None:
            self._scheduler.resume()

    async def advertise_periods(self) -> list[int]:
        years = await get_years(self.scheduler, self.settings.site)
        periods = MONTH_PERIODS + years if years else []
        self.post(AdvertisePeriods(periods=periods))
        return periods

    async def scrape_years(self, years: list[int]) -> list[OrderRecord]:
        scheduler = self.reset(years_purpose(years))
        return await self._scrape_orders(scheduler, years=years)

    async def scrape_range(self, start_date: date, end_date: date) -> list[OrderRecord]:
        scheduler = self.reset(range_purpose(start_date, end_date))
        return await self._scrape_orders(scheduler, start_date=start_date, end_date=end_date)

    async def scrape_transactions(self) -> list[Transaction]:
        return await self._scrape_transactions(self.reset(TRANSACTIONS_PURPOSE))

    async def _scrape_orders(
        self,
        scheduler: RequestScheduler,
        *,
        years: list[int] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[OrderRecord]:
        site = self.settings.site

        async def run() -> list[OrderRecord]:
            latest_year = latest_year_of(await get_years(scheduler, site))
            if years is not None:
                orders = await fetch_orders_by_year(years, scheduler, latest_year, site=site)
            else:
                orders = await fetch_orders_by_range(start_date, end_date, scheduler, latest_year, site=site)
            return await gather_settled(
                [sync_order(order) for order in orders],
                label=f"orders {scheduler.purpose}",
            )

        records = await self._run_purpose(scheduler, run())
        if records is not None:
            self.post(
                OrdersReady(purpose=scheduler.purpose, orders=[record.to_dict() for record in records])
            )
        return records or []

    async def _scrape_transactions(self, scheduler: RequestScheduler) -> list[Transaction]:
        transactions = await self._run_purpose(
            scheduler,
            fetch_transactions(scheduler, self.transaction_store, self.settings.site),
        )
        if transactions is not None:
            self.post(
                TransactionsReady(
                    purpose=scheduler.purpose,
                    transactions=[transaction.to_dict() for transaction in transactions],
                )
            )
        return transactions or []

    async def _run_purpose(self, scheduler: RequestScheduler, work: Coroutine[Any, Any, Any]) -> Any | None:
        """
        Await a purpose's work. Returns None when it was aborted or every
        request it depended on failed.
        """

        try:
            result = await work
        except SchedulerAbortedError:
            log_event(logger, logging.INFO, "purpose_abandoned", purpose=scheduler.purpose)
            return None
        except SchedulerError as exc:
            log_event(
                logger,
                logging.ERROR,
                "purpose_failed",
                purpose=scheduler.purpose,
                url=exc.url,
                error=str(exc),
            )
            self.post(Notification(text=f"Scrape of {scheduler.purpose} failed: {exc}"))
            return None
        if scheduler.aborted:
            log_event(logger, logging.INFO, "purpose_abandoned", purpose=scheduler.purpose)
            return None
        self.publish_statistics()
        return result

    # ------------------------------------------------------------------
    # Control messages
    # ------------------------------------------------------------------

    def handle(self, message: ControlMessage) -> asyncio.Task | None:
        """
        Dispatch one control message. Long-running scrapes run as tasks on
        the current loop; the task is returned so callers may await it.
        The new purpose is in place before this returns.
        """

        if isinstance(message, ScrapeYears):
            scheduler = self.reset(years_purpose(message.years))
            return self._spawn(self._scrape_orders(scheduler, years=message.years))
        if isinstance(message, ScrapeRange):
            scheduler = self.reset(range_purpose(message.start_date, message.end_date))
            return self._spawn(
                self._scrape_orders(scheduler, start_date=message.start_date, end_date=message.end_date)
            )
        if isinstance(message, ScrapeTransactions):
            return self._spawn(self._scrape_transactions(self.reset(TRANSACTIONS_PURPOSE)))
        if isinstance(message, ClearCache):
            self.clear_cache()
            return None
        if isinstance(message, ForceLogout):
            self.force_logout()
            return None
        if isinstance(message, SignInCompleted):
            self.signin_completed()
            return None
        if isinstance(message, Abort):
            self.abort()
            return None
        raise TypeError(f"Unsupported control message: {type(message).__name__}")

    def _spawn(self, work: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(work)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(logger, logging.ERROR, "session_task_failed", error_type=type(exc).__name__, error=str(exc))

    async def close(self) -> None:
        if self._scheduler is not None:
            self._scheduler.abort()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._publisher.stop()
