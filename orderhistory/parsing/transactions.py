"""
orderhistory/parsing/transactions.py

One page of the card transactions feed.

Dates head ``transaction-date-container`` blocks; the following sibling
holds ``transactions-line-item`` rows. The first child div of a row holds
card and amount, the rest hold order links or the vendor name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from bs4 import Tag

from orderhistory.domain.orders import Transaction
from orderhistory.parsing.html_parsers import ORDER_ID_TEXT_REGEX, HTMLParsingLayer
from orderhistory.sites.urls import normalize_url

CARD_REGEX = re.compile(r"(.*\*{4}.*)")
NEXT_PAGE_LABELS = ("Next page",)


@dataclass(frozen=True)
class TransactionsPage:
    transactions: list[Transaction] = field(default_factory=list)
    next_url: str | None = None


def _parse_line_item(when, elem: Tag) -> Transaction | None:
    children = elem.find_all("div", recursive=False)
    if not children:
        return None
    card_and_amount, rest = children[0], children[1:]

    order_ids: list[str] = []
    vendor = "??"
    for child in rest:
        text = HTMLParsingLayer.text_of(child)
        match = ORDER_ID_TEXT_REGEX.search(text)
        if match:
            order_ids.append(match.group(1))
        elif text:
            vendor = text

    spans = [HTMLParsingLayer.text_of(span) for span in card_and_amount.find_all("span")]
    card_info = next((span for span in spans if CARD_REGEX.match(span)), "??")
    amount_text = spans[1] if len(spans) > 1 else "0"
    amount = HTMLParsingLayer.money_amount(amount_text)
    if amount_text.lstrip().startswith("-"):
        amount = -abs(amount)

    return Transaction(
        date=when,
        order_ids=order_ids,
        card_info=card_info,
        amount=amount,
        vendor=vendor,
    )


def _next_url(soup, site: str) -> str | None:
    for anchor in soup.find_all("a", href=True):
        if anchor.get("rel") == ["next"] or HTMLParsingLayer.text_of(anchor) in NEXT_PAGE_LABELS:
            return normalize_url(anchor["href"], site)
    return None


def parse_transactions_page(html: str, *, site: str) -> TransactionsPage:
    soup = HTMLParsingLayer.soup(html)
    transactions: list[Transaction] = []
    for date_elem in soup.select("div.transaction-date-container"):
        when = HTMLParsingLayer.parse_date(HTMLParsingLayer.text_of(date_elem))
        if when is None:
            continue
        container = date_elem.find_next_sibling("div")
        if container is None:
            continue
        for line_item in container.select("div.transactions-line-item"):
            transaction = _parse_line_item(when, line_item)
            if transaction is not None:
                transactions.append(transaction)
    return TransactionsPage(transactions=transactions, next_url=_next_url(soup, site))
