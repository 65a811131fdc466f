"""
BeautifulSoup helpers shared by the Amazon page parsers.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from bs4 import BeautifulSoup, Tag

MONEY_REGEX = re.compile(
    r"((?:[A-Z]{3}\s?)?([$£€¥]|CDN\$|R\$|EUR)?\s?(-?\d[\d,]*(?:\.\d{1,2})?))"
)
ORDER_ID_HREF_REGEX = re.compile(r".*(?:orderID=|orderNumber%3D)([A-Z0-9-]*).*")
ORDER_ID_TEXT_REGEX = re.compile(r"([A-Z0-9]{3}-\d+-\d+)")
DATE_PATTERNS = [
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%d. %B %Y",
    "%m/%d/%Y",
]


class HTMLParsingLayer:
    """
    Deterministic parser utilities for order history documents.
    """

    @staticmethod
    def soup(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "html.parser")

    @staticmethod
    def clean_text(value: str) -> str:
        return re.sub(r"\s+", " ", value).strip()

    @classmethod
    def text_of(cls, node: Tag | None) -> str:
        if node is None:
            return ""
        return cls.clean_text(node.get_text(" ", strip=True))

    @classmethod
    def parse_date(cls, value: str) -> date | None:
        compact = cls.clean_text(value)
        if not compact:
            return None
        for pattern in DATE_PATTERNS:
            try:
                return datetime.strptime(compact, pattern).date()
            except ValueError:
                continue
        return None

    @classmethod
    def labelled_value(cls, root: Tag, labels: list[str]) -> str:
        """
        Value of a label/value pair laid out as
        ``<div><div><span>Label</span></div><div><span class="value">..``.
        """

        for span in root.find_all("span"):
            label_text = cls.text_of(span)
            if not any(label in label_text for label in labels):
                continue
            if "value" in (span.get("class") or []):
                continue
            label_div = span.find_parent("div")
            if label_div is None or label_div.parent is None:
                continue
            value = label_div.parent.select_one("span.value")
            if value is not None:
                return cls.text_of(value)
        return ""

    @classmethod
    def subtotal_value(
        cls,
        root: Tag,
        labels: list[str],
        *,
        exclude: tuple[str, ...] = (),
    ) -> str:
        """
        Amount next to a labelled row of the ``od-subtotals`` summary block.
        """

        container = root.select_one("div[id*=od-subtotals]")
        if container is None:
            return ""
        for span in container.find_all("span"):
            label_text = cls.text_of(span)
            if not any(label in label_text for label in labels):
                continue
            if any(word in label_text for word in exclude):
                continue
            label_div = span.find_parent("div")
            if label_div is None:
                continue
            value_div = label_div.find_next_sibling("div")
            if value_div is None:
                continue
            value = value_div.find("span")
            return cls.text_of(value if value is not None else value_div)
        return ""

    @classmethod
    def money(cls, value: str) -> str:
        match = MONEY_REGEX.search(value)
        if match is None:
            return ""
        return cls.clean_text(match.group(1))

    @classmethod
    def money_amount(cls, value: str) -> float:
        match = MONEY_REGEX.search(value)
        if match is None:
            return 0.0
        return float(match.group(3).replace(",", ""))
