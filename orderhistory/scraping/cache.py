"""
Durable page cache for fetched payloads.

Values are JSON-serialized on write and decoded on read. A missing or
undecodable entry is a miss, never an error.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from db.base import Base
from db.models import PageCacheEntry
from orderhistory.logging_utils import log_event

logger = logging.getLogger(__name__)

CACHE_VERSION_KEY = "__cache_version__"


class PageCache(ABC):
    """
    Key -> JSON-serializable value store scoped to one site origin.

    Reads are expected to be fast local lookups. A backend whose writes go
    over the network sets `offload_writes` so the scheduler stores fetched
    pages from a worker thread.
    """

    offload_writes = False

    def __init__(self, *, scope: str) -> None:
        self._scope = scope

    @property
    def scope(self) -> str:
        return self._scope

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """
        Return the stored value, or None on a miss.
        """

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """
        Store a value. Last write wins.
        """

    @abstractmethod
    def clear(self) -> None:
        """
        Remove every entry of this scope.
        """

    def clear_if_version_changed(self, version: str) -> bool:
        """
        Clear the cache when it was written by a different release.
        Returns True when entries were cleared.
        """

        stored = self.get(CACHE_VERSION_KEY)
        if stored == version:
            return False
        if stored is not None:
            log_event(
                logger,
                logging.INFO,
                "page_cache_version_changed",
                scope=self.scope,
                stored_version=stored,
                version=version,
            )
            self.clear()
        self.set(CACHE_VERSION_KEY, version)
        return stored is not None


def _decode(raw: str | None, *, scope: str, key: str) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        log_event(logger, logging.WARNING, "page_cache_decode_failed", scope=scope, key=key)
        return None


class InMemoryPageCache(PageCache):
    """
    Process-local cache. Stores serialized JSON so reads never alias the
    caller's objects.
    """

    def __init__(self, *, scope: str = "memory") -> None:
        super().__init__(scope=scope)
        self._entries: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        return _decode(self._entries.get(key), scope=self.scope, key=key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = json.dumps(value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SQLAlchemyPageCache(PageCache):
    """
    Cache rows in the `page_cache_entries` table, one scope per site origin.

    Read failures are logged and treated as misses. Write failures are
    logged and dropped.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        scope: str,
        create_tables: bool = True,
        offload_writes: bool | None = None,
    ) -> None:
        super().__init__(scope=scope)
        self._session_factory = session_factory
        bind = session_factory.kw.get("bind")
        if offload_writes is None:
            # SQLite is local and shares one connection for in-memory URLs.
            offload_writes = bind is not None and bind.dialect.name != "sqlite"
        self.offload_writes = offload_writes
        if create_tables and bind is not None:
            Base.metadata.create_all(bind=bind, tables=[PageCacheEntry.__table__])

    def get(self, key: str) -> Any | None:
        try:
            with self._session_factory() as session:
                raw = session.scalar(
                    select(PageCacheEntry.value).where(
                        PageCacheEntry.scope == self.scope,
                        PageCacheEntry.cache_key == key,
                    )
                )
        except SQLAlchemyError as exc:
            log_event(
                logger,
                logging.WARNING,
                "page_cache_read_failed",
                scope=self.scope,
                key=key,
                error=str(exc),
            )
            return None
        return _decode(raw, scope=self.scope, key=key)

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        session = self._session_factory()
        try:
            entry = session.scalar(
                select(PageCacheEntry).where(
                    PageCacheEntry.scope == self.scope,
                    PageCacheEntry.cache_key == key,
                )
            )
            if entry is None:
                session.add(PageCacheEntry(scope=self.scope, cache_key=key, value=payload))
            else:
                entry.value = payload
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            log_event(
                logger,
                logging.WARNING,
                "page_cache_write_failed",
                scope=self.scope,
                key=key,
                error=str(exc),
            )
        finally:
            session.close()

    def clear(self) -> None:
        session = self._session_factory()
        try:
            result = session.execute(delete(PageCacheEntry).where(PageCacheEntry.scope == self.scope))
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()
        log_event(logger, logging.INFO, "page_cache_cleared", scope=self.scope, rows=result.rowcount)

    def __len__(self) -> int:
        with self._session_factory() as session:
            rows = session.scalars(
                select(PageCacheEntry.id).where(PageCacheEntry.scope == self.scope)
            ).all()
        return len(rows)
