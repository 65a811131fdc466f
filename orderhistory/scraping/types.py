"""
Shared scheduler runtime data models.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class RequestState:
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {RequestState.SUCCEEDED, RequestState.FAILED, RequestState.CANCELLED}
)


@dataclass(frozen=True)
class RawResponse:
    """
    Page payload handed to converters, whether fetched or read from cache.
    """

    url: str
    text: str
    status_code: int = 200
    final_url: str = ""
    from_cache: bool = False


@dataclass(frozen=True)
class ScheduleResponse(Generic[T]):
    """
    Converted result of one scheduled request.
    """

    result: T
    query: str


Converter = Callable[[RawResponse], Any]


def priority_key(priority: str | int) -> tuple[int, Any]:
    """
    Sort key for request priorities: integers first, then strings.
    """

    if isinstance(priority, bool) or not isinstance(priority, (int, str)):
        raise ValueError(f"Unsupported priority {priority!r}: use int or str.")
    if isinstance(priority, int):
        return (0, priority)
    return (1, priority)


@dataclass(eq=False)
class ScheduledRequest:
    """
    One request owned by the scheduler from submission to settlement.
    """

    url: str
    converter: Converter
    priority: str | int
    sequence: int
    future: asyncio.Future
    cache_key: str
    no_cache: bool = False
    cacheable: bool = True
    attempt: int = 0
    state: str = RequestState.QUEUED
    task: asyncio.Task | None = field(default=None, repr=False)

    def sort_key(self) -> tuple[tuple[int, Any], int]:
        return (priority_key(self.priority), self.sequence)

    def __lt__(self, other: "ScheduledRequest") -> bool:
        return self.sort_key() < other.sort_key()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: str) -> None:
        if self.is_terminal:
            raise RuntimeError(
                f"Request {self.url} is already {self.state}; cannot move to {new_state}."
            )
        self.state = new_state


def cache_key_for(url: str, context: str | None = None) -> str:
    """
    Stable cache key for a URL, optionally qualified by caller context.
    """

    key = url.strip()
    if context:
        return f"{context}|{key}"
    return key
