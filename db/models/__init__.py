"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.page_cache_entry import PageCacheEntry

__all__ = ["PageCacheEntry"]
