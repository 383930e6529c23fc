"""Tests for the asyncpg helpers (no live database)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from core import db


def failing_pool(error: BaseException) -> MagicMock:
    pool = MagicMock()
    pool.fetchrow = AsyncMock(side_effect=error)
    pool.fetch = AsyncMock(side_effect=error)
    return pool


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ConnectionRefusedError(),
        asyncio.TimeoutError(),
        asyncpg.TooManyConnectionsError("too many"),
    ],
)
async def test_connection_failures_become_store_unavailable(error):
    with patch("core.db.pool", return_value=failing_pool(error)):
        with pytest.raises(db.StoreUnavailable):
            await db.fetch_one("SELECT 1")
        with pytest.raises(db.StoreUnavailable):
            await db.fetch_all("SELECT 1")


@pytest.mark.asyncio
async def test_query_errors_are_not_translated():
    error = asyncpg.UniqueViolationError("duplicate key value")
    with patch("core.db.pool", return_value=failing_pool(error)):
        with pytest.raises(asyncpg.UniqueViolationError):
            await db.fetch_one("INSERT ...")


@pytest.mark.asyncio
async def test_rows_come_back_as_dicts():
    pool = MagicMock()
    pool.fetchrow = AsyncMock(return_value={"id": 1})
    pool.fetch = AsyncMock(return_value=[{"id": 1}, {"id": 2}])
    with patch("core.db.pool", return_value=pool):
        assert await db.fetch_one("SELECT 1") == {"id": 1}
        assert await db.fetch_all("SELECT 1") == [{"id": 1}, {"id": 2}]


def test_pool_before_init_is_unavailable():
    with patch("core.db._pool", None):
        with pytest.raises(db.StoreUnavailable):
            db.pool()


def test_database_url_drops_sslmode(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@h:5432/app?sslmode=require&application_name=x")

    assert db.database_url() == "postgresql://u:p@h:5432/app?application_name=x"


def test_database_url_required(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError):
        db.database_url()
