"""
orderhistory/scraping/statistics.py

Live progress counters for one scrape purpose, and the periodic job that
publishes them.

Publishing
----------
``StatisticsPublisher`` registers one APScheduler interval job on an
``AsyncIOScheduler`` bound to the running event loop. Each tick reads the
current snapshot and posts a ``StatisticsUpdate``. A missing or closed
channel turns a tick into a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from orderhistory.logging_utils import log_event
from orderhistory.schemas.messages import StatisticsUpdate
from orderhistory.scraping.channel import ChannelSupplier, MessageChannel
from orderhistory.scraping.errors import ChannelClosedError

logger = logging.getLogger(__name__)

PUBLISH_JOB_ID = "statistics_publish"


class StatisticName:
    QUEUED_COUNT = "QUEUED_COUNT"
    RUNNING_COUNT = "RUNNING_COUNT"
    SUCCEEDED_COUNT = "SUCCEEDED_COUNT"
    FAILED_COUNT = "FAILED_COUNT"
    CACHE_HIT_COUNT = "CACHE_HIT_COUNT"

    ALL = (QUEUED_COUNT, RUNNING_COUNT, SUCCEEDED_COUNT, FAILED_COUNT, CACHE_HIT_COUNT)


class Statistics:
    """
    Named non-negative counters.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {name: 0 for name in StatisticName.ALL}

    def clear(self) -> None:
        for name in self._counters:
            self._counters[name] = 0

    def increment(self, name: str) -> None:
        self._counters[name] = self._counters.get(name, 0) + 1

    def decrement(self, name: str) -> None:
        self._counters[name] = max(0, self._counters.get(name, 0) - 1)

    def set(self, name: str, value: int) -> None:
        self._counters[name] = max(0, value)

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    def snapshot(self) -> dict[str, int]:
        return dict(self._counters)

    def publish(self, channel: MessageChannel | None, purpose: str) -> bool:
        """
        Post the current snapshot. Returns False when nothing was delivered.
        """

        if channel is None:
            return False
        try:
            channel.post(StatisticsUpdate(statistics=self.snapshot(), purpose=purpose))
        except ChannelClosedError as exc:
            log_event(logger, logging.DEBUG, "statistics_channel_closed", purpose=purpose, error=str(exc))
            return False
        return True


class StatisticsPublisher:
    """
    Periodically publishes a Statistics snapshot for the current purpose.
    """

    def __init__(
        self,
        *,
        statistics: Statistics,
        purpose_supplier: Callable[[], str],
        channel_supplier: ChannelSupplier,
        interval_seconds: float = 2.0,
    ) -> None:
        self.statistics = statistics
        self._purpose_supplier = purpose_supplier
        self._channel_supplier = channel_supplier
        self._interval_seconds = max(0.1, interval_seconds)
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def publish_now(self) -> bool:
        return self.statistics.publish(self._channel_supplier(), self._purpose_supplier())

    async def _publish_once(self) -> None:
        self.publish_now()

    def start(self) -> None:
        """
        Register the interval job on the running loop. Restarting an already
        running publisher only resets its timer.
        """

        if self.running:
            self.restart()
            return

        scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone="UTC")
        scheduler.add_job(
            self._publish_once,
            trigger="interval",
            seconds=self._interval_seconds,
            id=PUBLISH_JOB_ID,
            name="Scrape statistics publish",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        log_event(logger, logging.DEBUG, "statistics_publisher_started", interval_seconds=self._interval_seconds)

    def restart(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.reschedule_job(PUBLISH_JOB_ID, trigger="interval", seconds=self._interval_seconds)

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        log_event(logger, logging.DEBUG, "statistics_publisher_stopped")
