"""
orderhistory/services/order_history_service.py

Wires settings, the cache database, the fetcher and the scrape session
together for the API and CLI.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import sessionmaker

from db.session import get_session_factory
from orderhistory import __version__
from orderhistory.config import ScraperSettings, get_scraper_settings
from orderhistory.entities.transactions import TransactionStore
from orderhistory.logging_utils import log_event
from orderhistory.scraping.backoff import BackoffPolicy
from orderhistory.scraping.cache import SQLAlchemyPageCache
from orderhistory.scraping.channel import LatestMessageChannel
from orderhistory.scraping.fetcher import Fetcher, PageFetcher
from orderhistory.scraping.session import ScrapeSession
from orderhistory.sites.urls import is_supported_site, origin_for

logger = logging.getLogger(__name__)


class OrderHistoryService:
    """
    One scrape session plus the channel its messages are posted to.
    """

    def __init__(
        self,
        *,
        settings: ScraperSettings | None = None,
        session_factory: sessionmaker | None = None,
        fetcher: Fetcher | None = None,
        channel: LatestMessageChannel | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self.settings = settings or get_scraper_settings()
        self.channel = channel or LatestMessageChannel()
        factory = session_factory or get_session_factory()
        origin = origin_for(self.settings.site)

        self.page_cache = SQLAlchemyPageCache(session_factory=factory, scope=origin)
        self.page_cache.clear_if_version_changed(__version__)
        self.transaction_store = TransactionStore(
            cache=SQLAlchemyPageCache(
                session_factory=factory,
                scope=f"{origin}#transactions",
                create_tables=False,
            )
        )
        self._owned_fetcher = PageFetcher(settings=self.settings) if fetcher is None else None
        self.fetcher = fetcher or self._owned_fetcher
        self.session = ScrapeSession(
            fetcher=self.fetcher,
            cache=self.page_cache,
            transaction_store=self.transaction_store,
            settings=self.settings,
            channel_supplier=lambda: self.channel,
            backoff=backoff,
        )
        if not is_supported_site(self.settings.site):
            log_event(logger, logging.WARNING, "site_not_fully_supported", site=self.settings.site)

    async def close(self) -> None:
        await self.session.close()
        self.channel.close()
        if self._owned_fetcher is not None:
            self._owned_fetcher.close()
