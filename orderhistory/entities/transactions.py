"""
orderhistory/entities/transactions.py

The card transactions feed, merged with previously scraped transactions.

The merged list is stored as one zlib-compressed, base64-encoded JSON
document under a single cache key, so it survives page cache clears of
other scopes and can be cleared on its own.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import zlib

from orderhistory.domain.orders import Transaction
from orderhistory.logging_utils import log_event
from orderhistory.parsing.transactions import TransactionsPage, parse_transactions_page
from orderhistory.scraping.cache import PageCache
from orderhistory.scraping.errors import SchedulerAbortedError, SchedulerError
from orderhistory.scraping.scheduler import RequestScheduler
from orderhistory.scraping.types import RawResponse
from orderhistory.sites.urls import site_from_url, transactions_url

logger = logging.getLogger(__name__)

TRANSACTIONS_CACHE_KEY = "ALL_TRANSACTIONS"
TRANSACTIONS_PAGE_PRIORITY = "1"
MAX_TRANSACTION_PAGES = 200


class TransactionStore:
    """
    Compressed persistent copy of every transaction seen so far.
    """

    def __init__(self, *, cache: PageCache) -> None:
        self._cache = cache

    def load(self) -> list[Transaction]:
        stored = self._cache.get(TRANSACTIONS_CACHE_KEY)
        if not isinstance(stored, str):
            return []
        try:
            raw = zlib.decompress(base64.b64decode(stored)).decode("utf-8")
            return [Transaction.from_dict(item) for item in json.loads(raw)]
        except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            log_event(logger, logging.WARNING, "transaction_cache_unreadable", error=str(exc))
            return []

    def save(self, transactions: list[Transaction]) -> None:
        payload = json.dumps([transaction.to_dict() for transaction in transactions], sort_keys=True)
        compressed = base64.b64encode(zlib.compress(payload.encode("utf-8"))).decode("ascii")
        self._cache.set(TRANSACTIONS_CACHE_KEY, compressed)

    def clear(self) -> None:
        self._cache.clear()


def merge_transactions(first: list[Transaction], second: list[Transaction]) -> list[Transaction]:
    """
    Union of both lists without duplicates, newest first.
    """

    merged: dict[tuple, Transaction] = {}
    for transaction in [*first, *second]:
        merged.setdefault(transaction.identity(), transaction)
    return sorted(merged.values(), key=lambda t: t.date, reverse=True)


async def fetch_transactions(
    scheduler: RequestScheduler,
    store: TransactionStore,
    site: str,
) -> list[Transaction]:
    """
    Page through the feed until a page reaches back past the newest stored
    transaction, then persist and return the merged list.

    A page that fails after the first ends pagination; whatever was merged
    so far is still saved. A failing first page is raised only when there
    is no stored history to fall back on.
    """

    cached = store.load()
    newest_cached = max((t.date for t in cached), default=None)
    transactions = list(cached)

    def convert(response: RawResponse) -> TransactionsPage:
        return parse_transactions_page(response.text, site=site_from_url(response.url) or site)

    url: str | None = transactions_url(site)
    visited: set[str] = set()
    while url and url not in visited and len(visited) < MAX_TRANSACTION_PAGES:
        visited.add(url)
        try:
            response = await scheduler.schedule(
                url,
                convert,
                TRANSACTIONS_PAGE_PRIORITY,
                True,
                cacheable=False,
            )
        except SchedulerAbortedError:
            raise
        except SchedulerError as exc:
            log_event(logger, logging.WARNING, "transactions_page_failed", url=url, error=str(exc))
            if len(visited) == 1 and not cached:
                raise
            break
        page = response.result
        log_event(logger, logging.INFO, "transactions_page_scraped", url=url, count=len(page.transactions))
        if not page.transactions:
            break
        transactions = merge_transactions(page.transactions, transactions)
        oldest_on_page = min(t.date for t in page.transactions)
        if newest_cached is not None and oldest_on_page < newest_cached:
            break
        url = page.next_url

    store.save(transactions)
    return transactions
