"""
Environment configuration for the page cache database.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

DEFAULT_CACHE_DATABASE_URL = "sqlite:///.cache/orderhistory.db"
ENV_FILENAMES = (".env", ".env.local")


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files(search_dirs: Iterable[Path] | None = None) -> list[Path]:
    """
    Load KEY=VALUE pairs from `.env` and `.env.local` in the project root
    and the working directory. Variables already set in the process win.

    Returns the files that were read.
    """

    if search_dirs is None:
        search_dirs = (Path(__file__).resolve().parents[1], Path.cwd())

    loaded: list[Path] = []
    seen: set[Path] = set()
    for directory in search_dirs:
        for filename in ENV_FILENAMES:
            env_path = (Path(directory) / filename).resolve()
            if env_path in seen or not env_path.is_file():
                continue
            seen.add(env_path)
            for raw_line in env_path.read_text(encoding="utf-8").splitlines():
                parsed = _parse_env_line(raw_line)
                if parsed is not None and parsed[0] not in os.environ:
                    os.environ[parsed[0]] = parsed[1]
            loaded.append(env_path)
    return loaded


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite bare PostgreSQL schemes to the psycopg 3 driver.
    SQLite and explicit driver URLs pass through unchanged.
    """

    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return "postgresql+psycopg://" + url[len(scheme):]
    return url


def resolve_database_url() -> str:
    """
    Resolve the page cache database URL.

    Priority:
    1) CACHE_DATABASE_URL
    2) DATABASE_URL
    3) a SQLite file under `.cache/` in the working directory
    """

    load_env_files()
    for name in ("CACHE_DATABASE_URL", "DATABASE_URL"):
        value = os.getenv(name, "").strip()
        if value:
            return normalize_postgres_url(value)

    return DEFAULT_CACHE_DATABASE_URL
