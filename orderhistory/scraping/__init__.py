"""
Request scheduling, caching and progress accounting for order history scrapes.
"""

from orderhistory.scraping.cache import InMemoryPageCache, PageCache, SQLAlchemyPageCache
from orderhistory.scraping.errors import (
    ChannelClosedError,
    ConversionError,
    FetchFailedError,
    SchedulerAbortedError,
    SchedulerError,
    SignInRequiredError,
    TransientFetchError,
)
from orderhistory.scraping.scheduler import RequestScheduler, create_scheduler
from orderhistory.scraping.statistics import StatisticName, Statistics, StatisticsPublisher
from orderhistory.scraping.types import RawResponse, ScheduleResponse

__all__ = [
    "ChannelClosedError",
    "ConversionError",
    "FetchFailedError",
    "InMemoryPageCache",
    "PageCache",
    "RawResponse",
    "RequestScheduler",
    "SQLAlchemyPageCache",
    "ScheduleResponse",
    "SchedulerAbortedError",
    "SchedulerError",
    "SignInRequiredError",
    "StatisticName",
    "Statistics",
    "StatisticsPublisher",
    "TransientFetchError",
    "create_scheduler",
]
