"""
orderhistory/main.py

FastAPI application exposing the scrape session over HTTP.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

from orderhistory import __version__
from orderhistory.logging_utils import configure_logging
from orderhistory.services.order_history_service import OrderHistoryService

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[], OrderHistoryService]


def _configure_logging() -> None:
    configure_logging()


def create_app(service_factory: ServiceFactory | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The scrape service is built inside the lifespan so its scheduler and
    statistics job live on the server's event loop.
    """

    _configure_logging()
    factory = service_factory or OrderHistoryService

    @asynccontextmanager
    async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
        service = factory()
        application.state.order_history_service = service
        logger.info("Scrape service started site=%s", service.settings.site)
        try:
            yield
        finally:
            await service.close()
            application.state.order_history_service = None
            logger.info("Scrape service shut down")

    application = FastAPI(
        title="Order History Scraper API",
        version=__version__,
        lifespan=_lifespan,
    )

    from orderhistory.api.routers import scrape_control_router

    application.include_router(scrape_control_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return application


app = create_app()
