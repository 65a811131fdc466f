"""
db/models/page_cache_entry.py

Durable fetched-page payloads, one row per (scope, cache_key).
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class PageCacheEntry(Base, TimestampMixin):
    __tablename__ = "page_cache_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Site origin the payload was fetched from, e.g. https://www.amazon.com",
    )
    cache_key: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
        comment="Request URL, optionally qualified by a caller context",
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-serialized payload",
    )

    __table_args__ = (
        UniqueConstraint("scope", "cache_key", name="uq_page_cache_entries_scope_key"),
        Index("ix_page_cache_entries_scope", "scope"),
    )
