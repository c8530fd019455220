"""Tests for the SQLAlchemy async adapters.

The engine is replaced with a MagicMock so no driver connects; statements
are captured from ``conn.execute`` and compared as text.
"""

import ast
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from db_safety.adapters.engine import AsyncEngineAdapter, create_async_engine_pooled
from db_safety.adapters.postgres import AsyncPostgresAdapter

ADAPTERS_DIR = Path(__file__).parent.parent / "src" / "db_safety" / "adapters"


def _with_mock_engine(adapter_cls=AsyncPostgresAdapter, **kwargs):
    """Build an adapter whose engine hands out one mock connection."""
    conn = AsyncMock()
    result = MagicMock()
    result.keys.return_value = ["id", "name"]
    result.fetchall.return_value = [(1, "a")]
    result.fetchone.return_value = (1, "a")
    conn.execute.return_value = result

    engine = MagicMock()
    engine.connect.return_value.__aenter__.return_value = conn
    engine.begin.return_value.__aenter__.return_value = conn
    engine.dispose = AsyncMock()

    with patch("db_safety.adapters.engine.create_async_engine_pooled", return_value=engine):
        adapter = adapter_cls("postgresql://u:p@localhost/db", **kwargs)
    return adapter, conn, engine


def _sql(conn: AsyncMock) -> str:
    return str(conn.execute.call_args.args[0])


# ============================================================================
# Engine factory
# ============================================================================


class TestCreateAsyncEnginePooled:
    """Pool defaults and overrides."""

    def test_defaults(self) -> None:
        with patch("db_safety.adapters.engine.create_async_engine") as mock_create:
            create_async_engine_pooled("postgresql+asyncpg://localhost/db")
        kwargs = mock_create.call_args.kwargs
        assert kwargs["pool_size"] == 5
        assert kwargs["max_overflow"] == 10
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["pool_recycle"] == 300

    def test_overrides(self) -> None:
        with patch("db_safety.adapters.engine.create_async_engine") as mock_create:
            create_async_engine_pooled("postgresql+asyncpg://localhost/db", pool_size=1)
        assert mock_create.call_args.kwargs["pool_size"] == 1


# ============================================================================
# PostgreSQL adapter
# ============================================================================


class TestPostgresUrl:
    """URL normalization to the asyncpg driver."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ],
    )
    def test_normalize(self, url: str, expected: str) -> None:
        assert AsyncPostgresAdapter._normalize_url(url) == expected

    def test_engine_gets_normalized_url_and_timeout(self) -> None:
        with patch("db_safety.adapters.engine.create_async_engine_pooled") as mock_pooled:
            AsyncPostgresAdapter("postgres://u:p@h/db")
        args, kwargs = mock_pooled.call_args
        assert args[0] == "postgresql+asyncpg://u:p@h/db"
        assert kwargs["connect_args"] == {"timeout": 5}


class TestPostgresAdapterQueries:
    """select / insert / delete / execute / fetch."""

    @pytest.mark.asyncio
    async def test_select_binds_filters(self) -> None:
        adapter, conn, _ = _with_mock_engine()
        rows = await adapter.select("public.orders", "*", filters={"id": 1, "sku": "A"}, order_by="id")

        assert rows == [{"id": 1, "name": "a"}]
        assert _sql(conn) == "SELECT * FROM public.orders WHERE id = :p_0 AND sku = :p_1 ORDER BY id"
        assert conn.execute.call_args.args[1] == {"p_0": 1, "p_1": "A"}

    @pytest.mark.asyncio
    async def test_insert_returning_and_jsonb(self) -> None:
        adapter, conn, _ = _with_mock_engine(jsonb_columns=["meta"])
        row = await adapter.insert("public.orders", {"id": 1, "meta": [1, 2], "_hidden": True})

        assert row == {"id": 1, "name": "a"}
        sql = _sql(conn)
        assert "VALUES (:id, CAST(:meta AS jsonb)) RETURNING *" in sql
        assert "_hidden" not in sql
        params = conn.execute.call_args.args[1]
        assert json.loads(params["meta"]) == [1, 2]

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        adapter, conn, _ = _with_mock_engine()
        await adapter.delete("public.orders", {"id": 7})
        assert _sql(conn) == "DELETE FROM public.orders WHERE id = :p_0"

    @pytest.mark.asyncio
    async def test_none_filters_match_null(self) -> None:
        adapter, conn, _ = _with_mock_engine()

        await adapter.select("public.orders", "*", filters={"id": 1, "note": None})
        assert _sql(conn) == "SELECT * FROM public.orders WHERE id = :p_0 AND note IS NULL"
        assert conn.execute.call_args.args[1] == {"p_0": 1}

        await adapter.delete("public.orders", {"note": None})
        assert _sql(conn) == "DELETE FROM public.orders WHERE note IS NULL"

    @pytest.mark.asyncio
    async def test_fetch_serializes_values(self) -> None:
        from datetime import datetime
        from decimal import Decimal
        from uuid import UUID

        adapter, conn, _ = _with_mock_engine()
        result = conn.execute.return_value
        result.keys.return_value = ["id", "at", "amount", "raw"]
        result.fetchall.return_value = [
            (UUID(int=1), datetime(2026, 1, 1, 12, 0), Decimal("1.10"), b"\x01\x02")
        ]

        rows = await adapter.fetch("SELECT 1")

        assert rows == [
            {
                "id": "00000000-0000-0000-0000-000000000001",
                "at": "2026-01-01T12:00:00",
                "amount": "1.10",
                "raw": "0102",
            }
        ]

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self) -> None:
        adapter, _, engine = _with_mock_engine()
        await adapter.close()
        engine.dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_test_connection(self) -> None:
        adapter, conn, _ = _with_mock_engine()
        conn.execute.return_value.scalar.return_value = 1
        assert await adapter.test_connection() is True


# ============================================================================
# MySQL adapter
# ============================================================================


class TestMySQLAdapter:
    """Only runs with the mysql extra installed."""

    def test_normalize_and_no_returning(self) -> None:
        pytest.importorskip("aiomysql")
        from db_safety.adapters.mysql import AsyncMySQLAdapter

        assert AsyncMySQLAdapter._normalize_url("mysql://u:p@h/shop") == "mysql+aiomysql://u:p@h/shop"
        assert AsyncMySQLAdapter.supports_returning is False

    @pytest.mark.asyncio
    async def test_insert_echoes_values(self) -> None:
        pytest.importorskip("aiomysql")
        from db_safety.adapters.mysql import AsyncMySQLAdapter

        adapter, conn, _ = _with_mock_engine(AsyncMySQLAdapter)
        row = await adapter.insert("shop.orders", {"id": 1})

        assert row == {"id": 1}
        assert "RETURNING" not in _sql(conn)


# ============================================================================
# Source checks
# ============================================================================


class TestAdapterSource:
    """All SQL goes through sqlalchemy.text()."""

    def test_engine_imports_text(self) -> None:
        tree = ast.parse((ADAPTERS_DIR / "engine.py").read_text())
        imported = {
            alias.name
            for node in ast.walk(tree)
            if isinstance(node, ast.ImportFrom) and node.module == "sqlalchemy"
            for alias in node.names
        }
        assert "text" in imported

    def test_adapters_subclass_engine_adapter(self) -> None:
        assert issubclass(AsyncPostgresAdapter, AsyncEngineAdapter)
