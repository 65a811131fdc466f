"""
Fan-out helper: await a group of scheduled requests, tolerating partial
failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from typing import TypeVar

from orderhistory.logging_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_settled(awaitables: Iterable[Awaitable[T]], *, label: str) -> list[T]:
    """
    Await every item and return the successful results in input order.

    Individual failures are logged and dropped. When every item fails, the
    first failure is raised.
    """

    items = list(awaitables)
    if not items:
        return []

    outcomes = await asyncio.gather(*items, return_exceptions=True)
    results: list[T] = []
    failures: list[BaseException] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            failures.append(outcome)
        else:
            results.append(outcome)

    for failure in failures:
        log_event(
            logger,
            logging.WARNING,
            "fanout_item_failed",
            label=label,
            error_type=type(failure).__name__,
            error=str(failure),
            url=getattr(failure, "url", None),
        )

    if failures and not results:
        raise failures[0]
    return results
