"""
Years offered by the order history page's time filter.
"""

from __future__ import annotations

import re

from orderhistory.parsing.html_parsers import HTMLParsingLayer

YEAR_OPTION_REGEX = re.compile(r"^year-(\d{4})$")


def parse_years(html: str) -> list[int]:
    soup = HTMLParsingLayer.soup(html)
    years: set[int] = set()
    for option in soup.find_all("option"):
        match = YEAR_OPTION_REGEX.match(str(option.get("value", "")).strip())
        if match:
            years.add(int(match.group(1)))
    return sorted(years, reverse=True)
