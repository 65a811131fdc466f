"""
orderhistory/sites/urls.py

URL templates and helpers for the supported Amazon storefronts.

Order list templates are ``%``-style format strings taking ``site``,
``year`` and ``start_index``. Storefronts without an entry use ``other``.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlparse

_LIST_BASE = "https://%(site)s/gp/css/order-history?opt=ab"
_FILTER = "&orderFilter=year-%(year)s&startIndex=%(start_index)s"

LIST_TEMPLATES_BY_SITE: dict[str, list[str]] = {
    "www.amazon.com": [
        _LIST_BASE + "&ie=UTF8&digitalOrders=1&unifiedOrders=0" + _FILTER + "&language=en_US",
        _LIST_BASE + "&ie=UTF8&digitalOrders=1&unifiedOrders=1" + _FILTER + "&language=en_US",
    ],
    "www.amazon.co.uk": [_LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER],
    "www.amazon.co.jp": [_LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER],
    "www.amazon.com.au": [_LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER],
    "www.amazon.ca": [_LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER],
    "www.amazon.fr": [_LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER],
    "www.amazon.de": [
        _LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER + "&language=en_GB"
    ],
    "www.amazon.es": [
        _LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER + "&language=en_GB"
    ],
    "www.amazon.it": [
        _LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER + "&language=en_GB"
    ],
    "www.amazon.in": [
        _LIST_BASE + "&digitalOrders=1&unifiedOrders=1&returnTo=" + _FILTER + "&language=en_GB"
    ],
    "www.amazon.com.mx": [
        "https://%(site)s/gp/your-account/order-history/ref=oh_aui_menu_date?ie=UTF8"
        "&orderFilter=year-%(year)s&startIndex=%(start_index)s",
        "https://%(site)s/gp/your-account/order-history/ref=oh_aui_menu_yo_new_digital?ie=UTF8"
        "&digitalOrders=1&orderFilter=year-%(year)s&unifiedOrders=0&startIndex=%(start_index)s",
    ],
    "other": [
        _LIST_BASE + "&ie=UTF8&digitalOrders=1&unifiedOrders=0" + _FILTER + "&language=en_GB",
        _LIST_BASE + "&ie=UTF8&digitalOrders=1&unifiedOrders=1" + _FILTER + "&language=en_GB",
    ],
}

# Ask for the server-rendered page rather than the client-side one.
NO_JS_SUFFIX = "&disableCsd=no-js"

ORDERS_PER_LIST_PAGE = 10


def origin_for(site: str) -> str:
    return f"https://{site.strip().lower()}"


def site_from_url(url: str) -> str:
    return urlparse(url).netloc.lower()


def is_supported_site(site: str) -> bool:
    return site.lower() in LIST_TEMPLATES_BY_SITE


def list_templates_for(site: str) -> list[str]:
    templates = LIST_TEMPLATES_BY_SITE.get(site.lower(), LIST_TEMPLATES_BY_SITE["other"])
    return [template + NO_JS_SUFFIX for template in templates]


def order_list_url(template: str, *, site: str, year: int, start_index: int) -> str:
    return template % {"site": site, "year": year, "start_index": start_index}


def normalize_url(url: str, site: str) -> str:
    """
    Make a possibly relative URL absolute against the site's origin.
    """

    return urljoin(origin_for(site) + "/", url.strip())


def order_history_url(site: str) -> str:
    return normalize_url("/gp/css/order-history?ie=UTF8&ref_=nav_youraccount_orders", site)


def order_detail_url(order_id: str, site: str) -> str:
    if order_id.startswith("D"):
        return normalize_url(
            f"/gp/digital/your-account/order-summary.html?ie=UTF8&orderID={order_id}",
            site,
        )
    return normalize_url(f"/gp/your-account/order-details/?ie=UTF8&orderID={order_id}", site)


def order_payments_url(order_id: str, site: str) -> str:
    if order_id.startswith("D"):
        return order_detail_url(order_id, site)
    return normalize_url(f"/gp/css/summary/print.html?ie=UTF8&orderID={order_id}", site)


def transactions_url(site: str) -> str:
    return normalize_url("/cpe/yourpayments/transactions", site)
