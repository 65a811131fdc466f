"""
orderhistory/parsing/order_detail.py

Order detail pages: summary money fields, recipient, invoice link and items.

Each field tries a short list of layouts and falls back to what the list
page already told us (date, total, recipient).
"""

from __future__ import annotations

import re
from datetime import date

from bs4 import BeautifulSoup

from orderhistory.domain.orders import OrderDetailPage, OrderDetails, OrderItem
from orderhistory.parsing.html_parsers import HTMLParsingLayer
from orderhistory.sites.urls import normalize_url

ORDER_DATE_REGEX = re.compile(r"(?:Ordered on|Commandé le|Digital Order:)\s*(.*)", re.IGNORECASE)
GIFT_REGEX = re.compile(r"Gift (?:Certificate|Card) Amount: *-?([$£€0-9.,]*)", re.IGNORECASE)
VAT_REGEX = re.compile(r"VAT: *([-$£€0-9.,]*)", re.IGNORECASE)
ITEM_HREF_MARKERS = ("/gp/product/", "/dp/")


def _order_date(soup: BeautifulSoup, fallback: date | None) -> date | None:
    for node in soup.select(".order-date-invoice-item, .orderSummary"):
        match = ORDER_DATE_REGEX.search(HTMLParsingLayer.text_of(node))
        if match:
            parsed = HTMLParsingLayer.parse_date(match.group(1))
            if parsed is not None:
                return parsed
    return fallback


def _total(soup: BeautifulSoup, fallback: str) -> str:
    candidate = HTMLParsingLayer.subtotal_value(
        soup,
        ["Grand Total", "Montant total TTC", "Total général du paiement"],
    )
    if not candidate:
        node = soup.select_one("span[id*=grand-total-amount]")
        candidate = HTMLParsingLayer.text_of(node)
    if not candidate:
        node = soup.find(string=re.compile(r"Total for this [Oo]rder|Grand [Tt]otal:"))
        candidate = HTMLParsingLayer.clean_text(str(node)) if node else ""
    if not candidate:
        return fallback
    return re.sub(r"\s+", "", re.sub(r"^.*:", "", candidate)).replace("-", "")


def _gift(soup: BeautifulSoup) -> str:
    candidate = HTMLParsingLayer.subtotal_value(soup, ["Gift", "Importo Buono Regalo"])
    if not candidate:
        node = soup.find(string=re.compile(r"Gift (?:Certificate|Card)"))
        candidate = HTMLParsingLayer.clean_text(str(node)) if node else ""
    if not candidate:
        return ""
    match = GIFT_REGEX.search(candidate)
    if match:
        return match.group(1)
    if re.search(r"\d", candidate):
        return candidate.replace("-", "")
    return ""


def _vat(soup: BeautifulSoup) -> str:
    candidate = HTMLParsingLayer.subtotal_value(
        soup,
        ["VAT", "tax", "TVA", "IVA"],
        exclude=("Before", "before", "esclusa", "Estimated"),
    )
    if not candidate:
        node = soup.find(string=re.compile(r"VAT: "))
        candidate = HTMLParsingLayer.clean_text(str(node)) if node else ""
    match = VAT_REGEX.search(candidate)
    if match:
        return match.group(1)
    return candidate


def _us_tax(soup: BeautifulSoup) -> str:
    node = soup.select_one("span[id*=totalTax-amount]")
    if node is not None:
        return HTMLParsingLayer.money(HTMLParsingLayer.text_of(node))
    candidate = HTMLParsingLayer.subtotal_value(soup, ["Estimated tax to be collected:"])
    if candidate:
        return HTMLParsingLayer.money(candidate)
    for row in soup.find_all("tr"):
        text = HTMLParsingLayer.text_of(row)
        if "Tax Collected:" in text:
            return HTMLParsingLayer.money(text.split("Tax Collected:", 1)[1])
    return ""


def _who(soup: BeautifulSoup, fallback: str) -> str:
    if fallback:
        return fallback
    for selector in (
        "div.recipient span.trigger-text",
        "li.displayAddressFullName",
        "div[data-component=shippingAddress] li",
    ):
        text = HTMLParsingLayer.text_of(soup.select_one(selector))
        if text:
            return text
    return ""


def _invoice_url(soup: BeautifulSoup, site: str) -> str:
    anchor = soup.find("a", href=re.compile(r"/invoice"))
    if anchor is None:
        return ""
    return normalize_url(anchor["href"], site)


def parse_items(
    soup: BeautifulSoup,
    *,
    order_id: str,
    order_date: date | None,
    site: str,
) -> list[OrderItem]:
    items: list[OrderItem] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not any(marker in href for marker in ITEM_HREF_MARKERS):
            continue
        description = HTMLParsingLayer.text_of(anchor)
        if not description:
            continue
        url = normalize_url(href, site)
        if url in seen:
            continue
        seen.add(url)

        row = anchor.find_parent("div", class_="a-row")
        block = row.parent if row is not None and row.parent is not None else anchor.parent
        price = HTMLParsingLayer.money(HTMLParsingLayer.text_of(block.select_one(".a-color-price")))
        quantity_text = HTMLParsingLayer.text_of(block.select_one(".item-view-qty"))
        items.append(
            OrderItem(
                order_id=order_id,
                description=description,
                url=url,
                price=price,
                quantity=int(quantity_text) if quantity_text.isdigit() else 1,
                order_date=order_date,
            )
        )
    return items


def parse_order_detail(
    html: str,
    *,
    order_id: str,
    site: str,
    fallback_date: date | None = None,
    fallback_total: str = "",
    fallback_who: str = "",
) -> OrderDetailPage:
    soup = HTMLParsingLayer.soup(html)
    order_date = _order_date(soup, fallback_date)
    details = OrderDetails(
        date=order_date,
        total=_total(soup, fallback_total),
        postage=HTMLParsingLayer.subtotal_value(
            soup,
            ["Postage", "Shipping", "Livraison", "Delivery", "Costi di spedizione"],
            exclude=("FREE Shipping",),
        ),
        postage_refund=HTMLParsingLayer.subtotal_value(soup, ["FREE Shipping"]),
        gift=_gift(soup),
        us_tax=_us_tax(soup),
        vat=_vat(soup),
        gst=HTMLParsingLayer.subtotal_value(soup, ["GST", "HST"], exclude=("Before",)),
        pst=HTMLParsingLayer.subtotal_value(soup, ["PST", "RST", "QST"], exclude=("Before",)),
        refund=HTMLParsingLayer.subtotal_value(soup, ["Refund", "Totale rimborso"]),
        who=_who(soup, fallback_who),
        invoice_url=_invoice_url(soup, site),
    )
    return OrderDetailPage(
        details=details,
        items=parse_items(soup, order_id=order_id, order_date=order_date, site=site),
    )
