"""
tests/test_parsing.py

Pytest unit tests for the storefront page parsers and URL helpers.
"""

from __future__ import annotations

from datetime import date

import pytest

from orderhistory.parsing.html_parsers import HTMLParsingLayer
from orderhistory.parsing.order_detail import parse_order_detail
from orderhistory.parsing.orders import (
    OrderParseError,
    parse_order_header,
    parse_orders_page,
)
from orderhistory.parsing.payments import parse_payments
from orderhistory.parsing.transactions import parse_transactions_page
from orderhistory.parsing.years import parse_years
from orderhistory.sites.urls import (
    NO_JS_SUFFIX,
    is_supported_site,
    list_templates_for,
    normalize_url,
    order_detail_url,
    order_list_url,
    order_payments_url,
)
from pages import (
    item_block,
    order_card,
    order_detail_page,
    orders_list_page,
    payments_page,
    transaction_line,
    transactions_page,
)

SITE = "www.amazon.co.uk"
LIST_URL = "https://www.amazon.co.uk/gp/css/order-history?opt=ab&startIndex=0"


# ---------------------------------------------------------------------------
# HTMLParsingLayer
# ---------------------------------------------------------------------------


class TestHTMLParsingLayer:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("March 3, 2024", date(2024, 3, 3)),
            ("3 March 2024", date(2024, 3, 3)),
            ("2024-03-03", date(2024, 3, 3)),
            ("  3  Mar   2024 ", date(2024, 3, 3)),
            ("not a date", None),
            ("", None),
        ],
    )
    def test_parse_date(self, text: str, expected: date | None) -> None:
        assert HTMLParsingLayer.parse_date(text) == expected

    def test_money_keeps_symbol(self) -> None:
        assert HTMLParsingLayer.money("Grand Total: £1,234.56") == "£1,234.56"
        assert HTMLParsingLayer.money("no amount") == ""

    def test_money_amount(self) -> None:
        assert HTMLParsingLayer.money_amount("$1,234.50") == 1234.5
        assert HTMLParsingLayer.money_amount("nothing") == 0.0


# ---------------------------------------------------------------------------
# Years and order lists
# ---------------------------------------------------------------------------


def test_parse_years_newest_first() -> None:
    html = (
        '<select><option value="year-2022">2022</option>'
        '<option value="last30">30 days</option>'
        '<option value="year-2024">2024</option>'
        '<option value="year-2024">2024</option></select>'
    )
    assert parse_years(html) == [2024, 2022]
    assert parse_years("<html></html>") == []


class TestOrdersPage:
    def test_count_and_top_level_order_elements(self) -> None:
        html = orders_list_page(
            12,
            [
                order_card("203-1111111-1111111", placed="3 March 2024", total="£23.99"),
                order_card("203-2222222-2222222", placed="4 March 2024", total="£5.00"),
            ],
        )
        page = parse_orders_page(html, url=LIST_URL)
        assert page.expected_order_count == 12
        assert len(page.order_elements) == 2

    def test_missing_count_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_orders_page("<html><body>Sign in</body></html>", url=LIST_URL)

    def test_thousands_separator_in_count(self) -> None:
        page = parse_orders_page(orders_list_page(1, []).replace("1 orders", "1,204 orders"))
        assert page.expected_order_count == 1204

    def test_order_header_fields(self) -> None:
        html = orders_list_page(
            1,
            [order_card("203-1111111-1111111", placed="3 March 2024", total="£23.99", who="Sam Smith")],
        )
        elem = parse_orders_page(html).order_elements[0]

        header = parse_order_header(elem, list_url=LIST_URL)

        assert header.order_id == "203-1111111-1111111"
        assert header.date == date(2024, 3, 3)
        assert header.total == "£23.99"
        assert header.who == "Sam Smith"
        assert "order-details" in header.detail_href

    def test_order_without_id_raises_with_list_url(self) -> None:
        html = orders_list_page(1, [order_card("x", placed="3 March 2024", total="£1", detail_path="/help")])
        elem = parse_orders_page(html).order_elements[0]
        with pytest.raises(OrderParseError) as exc_info:
            parse_order_header(elem, list_url=LIST_URL)
        assert exc_info.value.url == LIST_URL


# ---------------------------------------------------------------------------
# Order detail and payments
# ---------------------------------------------------------------------------


class TestOrderDetail:
    def test_summary_fields_and_items(self) -> None:
        html = order_detail_page(
            ordered_on="3 March 2024",
            subtotals=[
                ("Item(s) Subtotal:", "£20.00"),
                ("Postage &amp; Packing:", "£3.99"),
                ("VAT:", "£4.00"),
                ("Grand Total:", "£23.99"),
            ],
            items=[
                item_block("B000TEST01", "Blue Widget", "£10.00", quantity=2),
                item_block("B000TEST02", "Red Widget", "£0.00"),
            ],
            invoice_path="/documents/download/abc/invoice.pdf",
        )

        page = parse_order_detail(
            html,
            order_id="203-1111111-1111111",
            site=SITE,
            fallback_who="Sam Smith",
        )

        details = page.details
        assert details.date == date(2024, 3, 3)
        assert details.total == "£23.99"
        assert details.postage == "£3.99"
        assert details.vat == "£4.00"
        assert details.gift == ""
        assert details.refund == ""
        assert details.who == "Sam Smith"
        assert details.invoice_url == "https://www.amazon.co.uk/documents/download/abc/invoice.pdf"

        assert [item.description for item in page.items] == ["Blue Widget", "Red Widget"]
        first = page.items[0]
        assert first.url == "https://www.amazon.co.uk/gp/product/B000TEST01/ref=ppx_od_dt_b_asin_title"
        assert first.price == "£10.00"
        assert first.quantity == 2
        assert first.order_date == date(2024, 3, 3)
        assert page.items[1].quantity == 1

    def test_falls_back_to_list_page_fields(self) -> None:
        page = parse_order_detail(
            "<html><body></body></html>",
            order_id="D01-1111111-1111111",
            site=SITE,
            fallback_date=date(2024, 1, 2),
            fallback_total="£0.99",
        )
        assert page.details.date == date(2024, 1, 2)
        assert page.details.total == "£0.99"
        assert page.items == []


def test_parse_payments_rows() -> None:
    html = payments_page([("Visa ending in 1234: 5 March 2024", "£23.99")])
    assert parse_payments(html) == ["Visa ending in 1234: 5 March 2024: £23.99"]


def test_parse_payments_falls_back_to_method() -> None:
    html = '<html><div class="payment-method">Mastercard ending in 9999</div></html>'
    assert parse_payments(html) == ["Mastercard ending in 9999"]


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactionsPage:
    def test_line_items_and_next_link(self) -> None:
        html = transactions_page(
            [
                (
                    "5 March 2024",
                    [
                        transaction_line("Visa ****1234", "-£23.99", order_id="203-1111111-1111111"),
                        transaction_line("Visa ****1234", "£5.00", vendor="AMZNMktplace"),
                    ],
                ),
                ("1 March 2024", [transaction_line("Amex ****0001", "-£1.50", vendor="Prime Video")]),
            ],
            next_path="/cpe/yourpayments/transactions?nextPageToken=abc",
        )

        page = parse_transactions_page(html, site=SITE)

        assert len(page.transactions) == 3
        first, second, third = page.transactions
        assert first.date == date(2024, 3, 5)
        assert first.order_ids == ["203-1111111-1111111"]
        assert first.card_info == "Visa ****1234"
        assert first.amount == -23.99
        assert first.vendor == "??"
        assert second.amount == 5.0
        assert second.vendor == "AMZNMktplace"
        assert third.date == date(2024, 3, 1)
        assert page.next_url == "https://www.amazon.co.uk/cpe/yourpayments/transactions?nextPageToken=abc"

    def test_last_page_has_no_next_url(self) -> None:
        page = parse_transactions_page(transactions_page([]), site=SITE)
        assert page.transactions == []
        assert page.next_url is None


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


class TestUrls:
    def test_list_templates_request_server_rendered_pages(self) -> None:
        templates = list_templates_for(SITE)
        assert len(templates) == 1
        url = order_list_url(templates[0], site=SITE, year=2023, start_index=20)
        assert url.startswith("https://www.amazon.co.uk/gp/css/order-history")
        assert "orderFilter=year-2023" in url
        assert "startIndex=20" in url
        assert url.endswith(NO_JS_SUFFIX)

    def test_unknown_site_uses_generic_templates(self) -> None:
        assert not is_supported_site("www.amazon.nl")
        assert len(list_templates_for("www.amazon.nl")) == 2

    def test_detail_and_payment_urls(self) -> None:
        assert order_detail_url("203-1-2", SITE).endswith("/gp/your-account/order-details/?ie=UTF8&orderID=203-1-2")
        assert order_payments_url("203-1-2", SITE).endswith("/gp/css/summary/print.html?ie=UTF8&orderID=203-1-2")
        assert order_payments_url("D01-1-2", SITE) == order_detail_url("D01-1-2", SITE)
        assert "order-summary" in order_detail_url("D01-1-2", SITE)

    def test_normalize_url(self) -> None:
        assert normalize_url("/gp/x", SITE) == "https://www.amazon.co.uk/gp/x"
        assert normalize_url("https://www.amazon.com/y", SITE) == "https://www.amazon.com/y"
