"""
orderhistory/config.py

Environment-driven settings for the order history scraper.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ScraperSettings:
    """
    Runtime settings shared by the fetcher, scheduler and session.
    """

    site: str = "www.amazon.com"
    max_concurrency: int = 4
    timeout_seconds: float = 15.0
    max_attempts: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    backoff_max_seconds: float = 30.0
    rate_limit_per_second: float = 2.0
    stats_interval_seconds: float = 2.0
    user_agent: str = DEFAULT_USER_AGENT
    cookies_path: str | None = None


@lru_cache(maxsize=1)
def get_scraper_settings() -> ScraperSettings:
    """
    Return cached scraper settings from environment variables.
    """

    load_env_files()
    return ScraperSettings(
        site=_get_str_env("ORDER_SCRAPE_SITE", "www.amazon.com").lower(),
        max_concurrency=max(1, _get_int_env("ORDER_SCRAPE_MAX_CONCURRENCY", 4)),
        timeout_seconds=max(1.0, _get_float_env("ORDER_SCRAPE_TIMEOUT_SECONDS", 15.0)),
        max_attempts=max(1, _get_int_env("ORDER_SCRAPE_MAX_ATTEMPTS", 3)),
        backoff_initial_seconds=max(
            0.0,
            _get_float_env("ORDER_SCRAPE_BACKOFF_INITIAL_SECONDS", 0.5),
        ),
        backoff_multiplier=max(1.0, _get_float_env("ORDER_SCRAPE_BACKOFF_MULTIPLIER", 2.0)),
        backoff_max_seconds=max(0.0, _get_float_env("ORDER_SCRAPE_BACKOFF_MAX_SECONDS", 30.0)),
        rate_limit_per_second=max(0.0, _get_float_env("ORDER_SCRAPE_RATE_LIMIT_PER_SECOND", 2.0)),
        stats_interval_seconds=max(
            0.1,
            _get_float_env("ORDER_SCRAPE_STATS_INTERVAL_SECONDS", 2.0),
        ),
        user_agent=_get_str_env("ORDER_SCRAPE_USER_AGENT", DEFAULT_USER_AGENT),
        cookies_path=_get_optional_str_env("ORDER_SCRAPE_COOKIES_PATH"),
    )
