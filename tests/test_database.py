"""Tests for the shared connection pool."""

import ssl
from unittest.mock import AsyncMock, MagicMock

import pytest

import database
from database import DatabaseError, DatabaseSchemaError

def test_ssl_follows_sslmode():
    assert database._ssl_for("postgresql://db/crescendo") is None
    assert database._ssl_for("postgresql://db/crescendo?sslmode=disable") is None
    assert database._ssl_for("postgresql://db/crescendo?sslmode=require").verify_mode == ssl.CERT_NONE

    strict = database._ssl_for("postgresql://db/crescendo?sslmode=verify-full")
    assert strict.check_hostname is True
    assert strict.verify_mode == ssl.CERT_REQUIRED

@pytest.mark.asyncio
async def test_get_pool_reuses_open_pool(monkeypatch):
    pool = MagicMock()
    monkeypatch.setattr(database, "_pool", pool)

    assert await database.get_pool() is pool

@pytest.mark.asyncio
async def test_unreachable_database(monkeypatch):
    monkeypatch.setattr(database, "_pool", None)
    monkeypatch.setattr(database, "ensure_database", AsyncMock(side_effect=OSError("refused")))

    with pytest.raises(DatabaseError, match="refused"):
        await database.init_db("postgresql://db/crescendo")

@pytest.mark.asyncio
async def test_schema_failure_closes_pool(monkeypatch):
    pool = MagicMock()
    pool.close = AsyncMock()
    schema_manager = MagicMock()
    schema_manager.return_value.initialize = AsyncMock(side_effect=DatabaseSchemaError("bad schema"))

    monkeypatch.setattr(database, "_pool", None)
    monkeypatch.setattr(database, "ensure_database", AsyncMock())
    monkeypatch.setattr(database, "_open_pool", AsyncMock(return_value=pool))
    monkeypatch.setattr(database, "SchemaManager", schema_manager)

    with pytest.raises(DatabaseSchemaError):
        await database.init_db("postgresql://db/crescendo")

    pool.close.assert_awaited_once()
    assert database._pool is None

@pytest.mark.asyncio
async def test_init_and_close(monkeypatch):
    pool = MagicMock()
    pool.close = AsyncMock()
    schema_manager = MagicMock()
    schema_manager.return_value.initialize = AsyncMock()

    monkeypatch.setattr(database, "_pool", None)
    monkeypatch.setattr(database, "ensure_database", AsyncMock())
    monkeypatch.setattr(database, "_open_pool", AsyncMock(return_value=pool))
    monkeypatch.setattr(database, "SchemaManager", schema_manager)

    assert await database.init_db() is pool
    assert await database.get_pool() is pool

    await database.close()
    pool.close.assert_awaited_once()
    assert database._pool is None
