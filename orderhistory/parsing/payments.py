"""
Payment lines from an order invoice page, e.g.
``"Visa ending in 1234: 12 May 2019: £83.58"``.
"""

from __future__ import annotations

from orderhistory.parsing.html_parsers import HTMLParsingLayer

TRANSACTION_HEADINGS = ("Credit Card transactions", "Payment transactions")


def parse_payments(html: str) -> list[str]:
    soup = HTMLParsingLayer.soup(html)
    payments: list[str] = []

    for heading in soup.find_all(["b", "span", "h3"]):
        if not any(label in HTMLParsingLayer.text_of(heading) for label in TRANSACTION_HEADINGS):
            continue
        table = heading.find_next("table")
        if table is None:
            continue
        for row in table.find_all("tr"):
            cells = [HTMLParsingLayer.text_of(cell) for cell in row.find_all("td")]
            cells = [cell for cell in cells if cell]
            if len(cells) < 2:
                continue
            label = cells[0].rstrip(":").strip()
            payments.append(f"{label}: {cells[-1]}")
        if payments:
            return payments

    method = HTMLParsingLayer.text_of(soup.select_one(".pmts-payment-instrument-billing-address, .payment-method"))
    if method:
        payments.append(method)
    return payments
