"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that all adapters must implement.
All methods are ``async def`` -- the library is async-first.

Dialects issue their introspection queries through ``fetch()`` and their
destructive statements through ``execute()`` and ``delete()``; the restore
dispatcher replays stored DDL through ``execute()`` and re-inserts snapshot
rows through ``select()`` and ``insert()``.

Usage:
    from db_safety.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.fetch(
            "SELECT COUNT(*) AS n FROM public.orders WHERE status = :status",
            {"status": "open"},
        )
        await client.execute("CREATE INDEX IF NOT EXISTS idx_status ON orders (status)")
        await client.close()
"""

from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    All methods are async -- callers must ``await`` every operation.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name, optionally schema-qualified (``"public.orders"``).
            columns: Comma-separated column names (e.g., ``"id, name, status"``).
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional column name to sort by.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row.

        Args:
            table: Table name, optionally schema-qualified.
            data: Dict of field=value pairs to insert.

        Returns:
            Dict representing the created row.

        Raises:
            Exception: If duplicate key or constraint violation.
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows from table.

        Args:
            table: Table name, optionally schema-qualified.
            filters: Dict of field=value filters (all must match via AND).
        """
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement (DDL or other non-query operations).

        Args:
            sql: Raw SQL statement to execute.
            params: Optional dict of named parameters for the SQL statement.
        """
        ...

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        """Run a raw SQL query and return every result row.

        Used for catalog introspection (``information_schema``,
        ``pg_catalog``, ``SHOW CREATE TABLE``) where the query shape does
        not fit ``select()``.

        Args:
            sql: Raw SQL query with ``:name`` placeholders.
            params: Optional dict of named parameters.

        Returns:
            List of dicts keyed by result column name.
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
