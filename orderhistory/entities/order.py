"""
orderhistory/entities/order.py

Orders assembled from list, detail and invoice pages.

An ``Order`` knows its list-page fields immediately. Its detail and invoice
pages are scheduled when it is built, and the remaining fields resolve
through async accessors as those fetches complete.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import date

from orderhistory.domain.orders import OrderDetailPage, OrderItem, OrderRecord
from orderhistory.logging_utils import log_event
from orderhistory.parsing.order_detail import parse_order_detail
from orderhistory.parsing.orders import (
    OrderHeader,
    OrderParseError,
    OrdersPage,
    parse_order_header,
    parse_orders_page,
)
from orderhistory.parsing.payments import parse_payments
from orderhistory.parsing.years import parse_years
from orderhistory.scraping.errors import SchedulerError
from orderhistory.scraping.fanout import gather_settled
from orderhistory.scraping.scheduler import RequestScheduler
from orderhistory.scraping.types import RawResponse, ScheduleResponse
from orderhistory.sites.urls import (
    ORDERS_PER_LIST_PAGE,
    list_templates_for,
    normalize_url,
    order_detail_url,
    order_history_url,
    order_list_url,
    order_payments_url,
    site_from_url,
)

logger = logging.getLogger(__name__)

DateFilter = Callable[[date | None], bool]

FIRST_LIST_PAGE_PRIORITY = "00000"
LIST_PAGE_PRIORITY = "2"
YEARS_PAGE_PRIORITY = 0


class Order:
    """
    One order, with detail and payments resolved lazily.
    """

    def __init__(self, header: OrderHeader, *, scheduler: RequestScheduler, list_url: str) -> None:
        self.id = header.order_id
        self.list_url = list_url
        self.site = site_from_url(list_url)
        self.date = header.date
        self.who = header.who
        self.list_total = header.total
        self.detail_url = (
            normalize_url(header.detail_href, self.site)
            if header.detail_href
            else order_detail_url(self.id, self.site)
        )
        self.payments_url = order_payments_url(self.id, self.site)

        self._detail_future: asyncio.Future[ScheduleResponse[OrderDetailPage]] = scheduler.schedule(
            self.detail_url,
            self._convert_detail,
            self.id,
            False,
        )
        self._payments_future: asyncio.Future[ScheduleResponse[list[str]]] | None = None
        if not self.is_digital:
            self._payments_future = scheduler.schedule(
                self.payments_url,
                _convert_payments,
                self.id,
                False,
            )

    def __repr__(self) -> str:
        return f"Order(id={self.id!r}, date={self.date!r}, site={self.site!r})"

    @property
    def is_digital(self) -> bool:
        return self.id.startswith("D")

    def _convert_detail(self, response: RawResponse) -> OrderDetailPage:
        return parse_order_detail(
            response.text,
            order_id=self.id,
            site=self.site,
            fallback_date=self.date,
            fallback_total=self.list_total,
            fallback_who=self.who,
        )

    async def detail(self) -> OrderDetailPage:
        response = await self._detail_future
        return response.result

    async def total(self) -> str:
        return (await self.detail()).details.total

    async def postage(self) -> str:
        return (await self.detail()).details.postage

    async def postage_refund(self) -> str:
        return (await self.detail()).details.postage_refund

    async def gift(self) -> str:
        return (await self.detail()).details.gift

    async def us_tax(self) -> str:
        return (await self.detail()).details.us_tax

    async def vat(self) -> str:
        return (await self.detail()).details.vat

    async def gst(self) -> str:
        return (await self.detail()).details.gst

    async def pst(self) -> str:
        return (await self.detail()).details.pst

    async def refund(self) -> str:
        return (await self.detail()).details.refund

    async def invoice_url(self) -> str:
        return (await self.detail()).details.invoice_url

    async def recipient(self) -> str:
        return (await self.detail()).details.who

    async def item_list(self) -> list[OrderItem]:
        return list((await self.detail()).items)

    async def payments(self) -> list[str]:
        if self._payments_future is None:
            when = self.date.isoformat() if self.date else ""
            return [f"{when}: {self.list_total}" if self.list_total else when]
        response = await self._payments_future
        return response.result


def _convert_payments(response: RawResponse) -> list[str]:
    return parse_payments(response.text)


async def sync_order(order: Order) -> OrderRecord:
    """
    Await every field of an order and return the resolved record.
    """

    page = await order.detail()
    payments = await order.payments()
    details = page.details
    return OrderRecord(
        id=order.id,
        site=order.site,
        list_url=order.list_url,
        detail_url=order.detail_url,
        payments_url=order.payments_url,
        invoice_url=details.invoice_url,
        date=details.date or order.date,
        total=details.total,
        who=details.who,
        postage=details.postage,
        postage_refund=details.postage_refund,
        gift=details.gift,
        us_tax=details.us_tax,
        vat=details.vat,
        gst=details.gst,
        pst=details.pst,
        refund=details.refund,
        items=list(page.items),
        payments=payments,
    )


# ---------------------------------------------------------------------------
# Years
# ---------------------------------------------------------------------------


async def get_years(scheduler: RequestScheduler, site: str) -> list[int]:
    """
    Years offered by the order history page, newest first. Empty when the
    page cannot be fetched.
    """

    url = order_history_url(site)
    try:
        response = await scheduler.schedule(
            url,
            lambda raw: parse_years(raw.text),
            YEARS_PAGE_PRIORITY,
            True,
            cacheable=False,
        )
    except SchedulerError as exc:
        log_event(logger, logging.WARNING, "get_years_failed", url=url, error=str(exc))
        return []
    return response.result


def latest_year_of(years: Iterable[int]) -> int:
    return max(years, default=-1)


# ---------------------------------------------------------------------------
# Order lists
# ---------------------------------------------------------------------------


def _convert_orders_page(response: RawResponse) -> OrdersPage:
    return parse_orders_page(response.text, url=response.url)


async def _fetch_headers_for_template(
    year: int,
    template: str,
    scheduler: RequestScheduler,
    site: str,
    no_cache_first_page: bool,
) -> list[tuple[OrderHeader, str]]:
    first = await scheduler.schedule(
        order_list_url(template, site=site, year=year, start_index=0),
        _convert_orders_page,
        FIRST_LIST_PAGE_PRIORITY,
        no_cache_first_page,
    )
    expected = first.result.expected_order_count
    log_event(logger, logging.INFO, "order_count_found", year=year, expected=expected, url=first.query)

    page_futures = [
        scheduler.schedule(
            order_list_url(template, site=site, year=year, start_index=start_index),
            _convert_orders_page,
            LIST_PAGE_PRIORITY,
            False,
        )
        for start_index in range(0, expected, ORDERS_PER_LIST_PAGE)
    ]
    pages = await gather_settled(page_futures, label=f"order list pages year={year}")

    headers: list[tuple[OrderHeader, str]] = []
    for page in pages:
        for elem in page.result.order_elements:
            try:
                headers.append((parse_order_header(elem, list_url=page.query), page.query))
            except OrderParseError as exc:
                log_event(logger, logging.WARNING, "order_header_unparseable", url=exc.url)
    return headers


async def fetch_orders_by_year(
    years: Iterable[int],
    scheduler: RequestScheduler,
    latest_year: int,
    date_filter: DateFilter | None = None,
    *,
    site: str,
) -> list[Order]:
    """
    Orders of the given years, one per order id.

    The latest year's first list page bypasses the cache so new orders are
    seen. Orders the date filter rejects are dropped before their detail
    pages are scheduled.
    """

    fetches = [
        _fetch_headers_for_template(year, template, scheduler, site, year == latest_year)
        for year in years
        for template in list_templates_for(site)
    ]
    header_groups = await gather_settled(fetches, label="order list templates")

    orders: list[Order] = []
    seen: set[str] = set()
    for group in header_groups:
        for header, list_url in group:
            if header.order_id in seen:
                continue
            seen.add(header.order_id)
            if date_filter is not None and not date_filter(header.date):
                continue
            orders.append(Order(header, scheduler=scheduler, list_url=list_url))
    return orders


async def fetch_orders_by_range(
    start_date: date,
    end_date: date,
    scheduler: RequestScheduler,
    latest_year: int,
    *,
    site: str,
) -> list[Order]:
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")

    def in_window(order_date: date | None) -> bool:
        return order_date is not None and start_date <= order_date <= end_date

    return await fetch_orders_by_year(
        range(start_date.year, end_date.year + 1),
        scheduler,
        latest_year,
        in_window,
        site=site,
    )
