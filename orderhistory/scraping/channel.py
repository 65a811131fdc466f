"""
Message channels carrying outbound messages to whoever drives the session.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Protocol

from orderhistory.schemas.messages import OutboundMessage
from orderhistory.scraping.errors import ChannelClosedError


class MessageChannel(Protocol):
    def post(self, message: OutboundMessage) -> None:
        ...


ChannelSupplier = Callable[[], "MessageChannel | None"]


class LatestMessageChannel:
    """
    Keeps the most recent message per action, plus a bounded history.

    Read from API threads while the scrape loop writes, hence the lock.
    """

    def __init__(self, *, history_size: int = 200) -> None:
        self._latest: dict[str, dict[str, Any]] = {}
        self._history: list[dict[str, Any]] = []
        self._history_size = max(1, history_size)
        self._closed = False
        self._lock = threading.Lock()

    def post(self, message: OutboundMessage) -> None:
        payload = message.model_dump(mode="json")
        with self._lock:
            if self._closed:
                raise ChannelClosedError(f"channel closed, dropped action={payload['action']}")
            self._latest[payload["action"]] = payload
            self._history.append(payload)
            del self._history[: -self._history_size]

    def latest(self, action: str) -> dict[str, Any] | None:
        with self._lock:
            return self._latest.get(action)

    def messages(self, *, action: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            if action is None:
                return list(self._history)
            return [item for item in self._history if item["action"] == action]

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed
