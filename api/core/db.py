"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`) when the Postgres dataset store is
selected.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

_pool: asyncpg.Pool | None = None

# Errors that mean "the database is not reachable", as opposed to a query
# that reached Postgres and was rejected (constraint violations etc).
_UNAVAILABLE_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.TooManyConnectionsError,
    OSError,
    asyncio.TimeoutError,
)


# Store outages are explicit and separable from query errors.
class StoreUnavailable(RuntimeError):
    status_code = 503


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    try:
        _pool = await asyncpg.create_pool(
            dsn=database_url(),
            min_size=1,
            max_size=5,
            command_timeout=30,
        )
    except _UNAVAILABLE_ERRORS as e:
        raise StoreUnavailable("Could not connect to the database.") from e


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise StoreUnavailable("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


@asynccontextmanager
async def translate_errors() -> AsyncIterator[None]:
    """
    Re-raise connection-level failures as `StoreUnavailable`.
    """
    try:
        yield
    except _UNAVAILABLE_ERRORS as e:
        raise StoreUnavailable("Database is unavailable.") from e


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    async with translate_errors():
        row = await pool().fetchrow(sql, *args)
    return _record_to_dict(row) if row is not None else None


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    async with translate_errors():
        rows = await pool().fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]

