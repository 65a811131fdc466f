"""
tests/test_api.py

Pytest tests for the HTTP surface. The app runs its real lifespan against
an in-memory SQLite cache and a FakeFetcher.
"""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from db.session import build_session_factory, create_db_engine
from helpers import FakeFetcher, make_settings
from orderhistory import __version__
from orderhistory.main import create_app
from orderhistory.services.order_history_service import OrderHistoryService
from orderhistory.sites.urls import (
    list_templates_for,
    order_detail_url,
    order_history_url,
    order_list_url,
    order_payments_url,
)
from pages import order_card, order_detail_page, orders_list_page, payments_page, years_page

SITE = "www.amazon.co.uk"
ORDER_ID = "203-1111111-1111111"


def _pages() -> dict[str, str]:
    return {
        order_history_url(SITE): years_page([2024]),
        order_list_url(list_templates_for(SITE)[0], site=SITE, year=2024, start_index=0): orders_list_page(
            1, [order_card(ORDER_ID, placed="3 March 2024", total="£23.99")]
        ),
        order_detail_url(ORDER_ID, SITE): order_detail_page(
            ordered_on="3 March 2024",
            subtotals=[("Grand Total:", "£23.99")],
        ),
        order_payments_url(ORDER_ID, SITE): payments_page([("Visa ending in 1234", "£23.99")]),
    }


@pytest.fixture()
def app():
    engine = create_db_engine("sqlite://")
    factory = build_session_factory(engine)

    def service_factory() -> OrderHistoryService:
        return OrderHistoryService(
            settings=make_settings(site=SITE),
            session_factory=factory,
            fetcher=FakeFetcher(_pages()),
        )

    yield create_app(service_factory=service_factory)
    engine.dispose()


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _wait_for_message(client: TestClient, action: str, timeout: float = 5.0) -> list[dict]:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        messages = client.get("/scrape/messages", params={"action": action}).json()
        if messages:
            return messages
        time.sleep(0.05)
    return []


# ---------------------------------------------------------------------------
# Health and availability
# ---------------------------------------------------------------------------


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_service_unavailable_outside_lifespan(app) -> None:
    response = TestClient(app).get("/scrape/statistics")
    assert response.status_code == 503


# ---------------------------------------------------------------------------
# Control actions
# ---------------------------------------------------------------------------


class TestActions:
    def test_abort_is_accepted(self, client) -> None:
        response = client.post("/scrape/actions", json={"action": "abort"})
        assert response.status_code == 202
        assert response.json() == {"action": "abort", "purpose": "aborted", "started": False}

    def test_statistics_after_abort(self, client) -> None:
        client.post("/scrape/actions", json={"action": "abort"})
        body = client.get("/scrape/statistics").json()
        assert body["purpose"] == "aborted"
        assert body["signin_required"] is False
        assert set(body["statistics"].values()) == {0}

    def test_clear_cache_posts_notification(self, client) -> None:
        client.post("/scrape/actions", json={"action": "clear_cache"})
        messages = client.get("/scrape/messages", params={"action": "notification"}).json()
        assert messages == [{"action": "notification", "text": "Cache cleared"}]

    @pytest.mark.parametrize(
        "payload",
        [
            {"action": "launch_rockets"},
            {"action": "scrape_years", "years": []},
        ],
    )
    def test_invalid_action_rejected(self, client, payload: dict) -> None:
        response = client.post("/scrape/actions", json=payload)
        assert response.status_code == 422

    def test_scrape_years_runs_in_background(self, client) -> None:
        response = client.post("/scrape/actions", json={"action": "scrape_years", "years": [2024]})
        assert response.status_code == 202
        assert response.json()["started"] is True
        assert response.json()["purpose"] == "2024"

        messages = _wait_for_message(client, "orders_ready")

        assert len(messages) == 1
        assert messages[0]["purpose"] == "2024"
        assert [order["id"] for order in messages[0]["orders"]] == [ORDER_ID]
