"""
orderhistory/parsing/orders.py

Order list pages: the expected order count and the per-order card elements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from bs4 import Tag

from orderhistory.logging_utils import log_event
from orderhistory.parsing.html_parsers import ORDER_ID_HREF_REGEX, HTMLParsingLayer

logger = logging.getLogger(__name__)

ORDER_DATE_LABELS = ["Order placed", "Commande effectuée", "Ordine effettuato", "Pedido realizado"]


class OrderParseError(ValueError):
    """
    An order element from a list page has no usable order id.
    """

    def __init__(self, list_url: str, message: str | None = None) -> None:
        self.url = list_url
        super().__init__(message or f"could not parse order id from order list page {list_url}")


@dataclass(frozen=True)
class OrdersPage:
    expected_order_count: int
    order_elements: list[Tag] = field(default_factory=list)


@dataclass(frozen=True)
class OrderHeader:
    """
    Order fields readable from its card on a list page.
    """

    order_id: str
    date: date | None
    total: str
    who: str
    detail_href: str = ""


def parse_orders_page(html: str, *, url: str = "") -> OrdersPage:
    """
    Raises ValueError when the page carries no order count, which is what
    the site serves to logged-out or blocked sessions.
    """

    soup = HTMLParsingLayer.soup(html)
    count_span = soup.select_one("span.num-orders")
    if count_span is None:
        raise ValueError(f"cannot find order count element in {url or 'orders page'}")

    tokens = HTMLParsingLayer.text_of(count_span).split(" ")
    try:
        expected_order_count = int(tokens[0].replace(",", ""))
    except ValueError as exc:
        raise ValueError(f"cannot read order count from {count_span.get_text()!r}") from exc

    container = soup.find(id="ordersContainer") or soup
    elements = [
        elem
        for elem in container.select(".order")
        if elem.find_parent(class_="order") is None
    ]
    if not elements and expected_order_count:
        log_event(logger, logging.WARNING, "order_list_page_empty", url=url, expected=expected_order_count)
    return OrdersPage(expected_order_count=expected_order_count, order_elements=elements)


def extract_order_id(elem: Tag) -> str | None:
    for anchor in elem.find_all("a", href=True):
        match = ORDER_ID_HREF_REGEX.match(anchor["href"])
        if match and match.group(1):
            return match.group(1)
    return None


def parse_order_header(elem: Tag, *, list_url: str) -> OrderHeader:
    order_id = extract_order_id(elem)
    if not order_id:
        raise OrderParseError(list_url)

    detail_href = ""
    for anchor in elem.find_all("a", href=True):
        if "order-details" in anchor["href"] or "order-summary" in anchor["href"]:
            detail_href = anchor["href"]
            break

    return OrderHeader(
        order_id=order_id,
        date=HTMLParsingLayer.parse_date(HTMLParsingLayer.labelled_value(elem, ORDER_DATE_LABELS)),
        total=HTMLParsingLayer.labelled_value(elem, ["Total"]),
        who=HTMLParsingLayer.text_of(elem.select_one("div.recipient span.trigger-text")),
        detail_href=detail_href,
    )
