"""MySQL dialect.

Definitions come from ``SHOW CREATE TABLE`` (rewritten to
``CREATE TABLE IF NOT EXISTS``), ``information_schema.views``,
``SHOW CREATE FUNCTION`` and ``information_schema.statistics``.  The data
checksum is ``CHECKSUM TABLE``, which always covers the whole table even
for row-scoped references.

The namespace is the database.  An empty ``database_name`` means the
connection's current database (``DATABASE()``).  MySQL has no ``DROP ...
CASCADE``; dependent rows are removed only by ``ON DELETE CASCADE`` foreign
keys.
"""

import re

from db_safety.adapters.base import DatabaseClient
from db_safety.backup.models import ObjectReference
from db_safety.dialects.base import BaseDialect, check_identifier
from db_safety.errors import ObjectNotFoundError, UnsupportedObjectTypeError

_SCHEMA_MATCH = "table_schema = COALESCE(NULLIF(:db, ''), DATABASE())"

_DROP_KEYWORDS = {
    "table": "TABLE",
    "view": "VIEW",
    "function": "FUNCTION",
    "procedure": "PROCEDURE",
    "trigger": "TRIGGER",
}


class MySQLDialect(BaseDialect):
    """Catalog queries and DDL reconstruction for MySQL."""

    provider_type = "mysql"

    def namespace(self, ref: ObjectReference) -> str:
        return ref.database_name

    def _params(self, ref: ObjectReference) -> dict[str, str]:
        return {"db": ref.database_name, "name": ref.name}

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def get_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        """Reconstruct the DDL for *ref*.

        Raises:
            UnsupportedObjectTypeError: For types without a DDL strategy.
            ObjectNotFoundError: If the object does not exist or its body is
                hidden by missing privileges.
            ValueError: If the object name is not a plain identifier.
        """
        check_identifier(ref.name)
        if ref.type == "table":
            return await self._table_definition(client, ref)
        if ref.type == "view":
            return await self._view_definition(client, ref)
        if ref.type == "function":
            return await self._function_definition(client, ref)
        if ref.type == "index":
            return await self._index_definition(client, ref)
        raise UnsupportedObjectTypeError(ref.type, "definition", self.provider_type)

    async def _table_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        qualified = self.qualified_name(ref)
        definition = await self._scalar(client, f"SHOW CREATE TABLE {qualified}", {}, "Create Table")
        if not definition:
            raise ObjectNotFoundError(f"Table not found: {qualified}")
        return re.sub(
            r"^CREATE TABLE\s+`[^`]+`",
            f"CREATE TABLE IF NOT EXISTS {qualified}",
            definition,
            count=1,
        )

    async def _view_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        query = f"""
            SELECT view_definition AS view_definition
            FROM information_schema.views
            WHERE {_SCHEMA_MATCH}
              AND table_name = :name
        """
        definition = await self._scalar(client, query, self._params(ref), "view_definition")
        if definition is None:
            raise ObjectNotFoundError(f"View not found: {self.qualified_name(ref)}")
        return f"CREATE OR REPLACE VIEW {self.qualified_name(ref)} AS {definition}"

    async def _function_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        qualified = self.qualified_name(ref)
        definition = await self._scalar(
            client, f"SHOW CREATE FUNCTION {qualified}", {}, "Create Function"
        )
        if not definition:
            raise ObjectNotFoundError(
                f"Function not found or body not visible: {qualified}"
            )
        return definition

    async def _index_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        query = f"""
            SELECT
                table_name AS table_name,
                non_unique AS non_unique,
                column_name AS column_name
            FROM information_schema.statistics
            WHERE {_SCHEMA_MATCH}
              AND index_name = :name
            ORDER BY seq_in_index
        """
        rows = await client.fetch(query, self._params(ref))
        if not rows:
            raise ObjectNotFoundError(f"Index not found: {self.qualified_name(ref)}")

        table = ObjectReference(
            type="table", name=rows[0]["table_name"], database_name=ref.database_name
        )
        unique = "" if int(rows[0]["non_unique"]) else "UNIQUE "
        columns = ", ".join(row["column_name"] for row in rows)
        return (
            f"CREATE {unique}INDEX {check_identifier(ref.name)} "
            f"ON {self.qualified_name(table)} ({columns})"
        )

    # ------------------------------------------------------------------
    # Data info hooks
    # ------------------------------------------------------------------

    async def _checksum(self, client: DatabaseClient, ref: ObjectReference) -> str:
        value = await self._scalar(client, f"CHECKSUM TABLE {self.qualified_name(ref)}", {}, "Checksum")
        return "" if value is None else str(value)

    async def _data_size(self, client: DatabaseClient, ref: ObjectReference, row_count: int) -> int:
        query = f"""
            SELECT avg_row_length AS avg_row_length
            FROM information_schema.tables
            WHERE {_SCHEMA_MATCH}
              AND table_name = :name
        """
        avg_row_length = await self._scalar(client, query, self._params(ref), "avg_row_length")
        return int(avg_row_length or 0) * row_count

    async def _primary_key(self, client: DatabaseClient, ref: ObjectReference) -> list[str]:
        query = f"""
            SELECT column_name AS column_name
            FROM information_schema.key_column_usage
            WHERE {_SCHEMA_MATCH}
              AND table_name = :name
              AND constraint_name = 'PRIMARY'
            ORDER BY ordinal_position
        """
        rows = await client.fetch(query, self._params(ref))
        return [row["column_name"] for row in rows]

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    async def get_dependencies(self, client: DatabaseClient, ref: ObjectReference) -> list[str]:
        """Return ``database.object`` names *ref* references."""
        if ref.type == "table":
            query = f"""
                SELECT DISTINCT
                    CONCAT(referenced_table_schema, '.', referenced_table_name) AS dependency
                FROM information_schema.key_column_usage
                WHERE {_SCHEMA_MATCH}
                  AND table_name = :name
                  AND referenced_table_name IS NOT NULL
                ORDER BY 1
            """
        elif ref.type == "view":
            query = """
                SELECT DISTINCT CONCAT(table_schema, '.', table_name) AS dependency
                FROM information_schema.view_table_usage
                WHERE view_schema = COALESCE(NULLIF(:db, ''), DATABASE())
                  AND view_name = :name
                ORDER BY 1
            """
        elif ref.type == "index":
            query = f"""
                SELECT DISTINCT CONCAT(table_schema, '.', table_name) AS dependency
                FROM information_schema.statistics
                WHERE {_SCHEMA_MATCH}
                  AND index_name = :name
            """
        elif ref.type == "trigger":
            query = """
                SELECT CONCAT(event_object_schema, '.', event_object_table) AS dependency
                FROM information_schema.triggers
                WHERE trigger_schema = COALESCE(NULLIF(:db, ''), DATABASE())
                  AND trigger_name = :name
            """
        else:
            return []

        rows = await client.fetch(query, self._params(ref))
        return [row["dependency"] for row in rows]

    # ------------------------------------------------------------------
    # Counting and deletion hooks
    # ------------------------------------------------------------------

    async def _count_catalog(self, client: DatabaseClient, ref: ObjectReference) -> int:
        if ref.type == "view":
            query = f"""
                SELECT COUNT(*) AS n FROM information_schema.views
                WHERE {_SCHEMA_MATCH} AND table_name = :name
            """
        elif ref.type in ("function", "procedure"):
            query = f"""
                SELECT COUNT(*) AS n FROM information_schema.routines
                WHERE routine_schema = COALESCE(NULLIF(:db, ''), DATABASE())
                  AND routine_name = :name
                  AND routine_type = '{ref.type.upper()}'
            """
        elif ref.type == "trigger":
            query = """
                SELECT COUNT(*) AS n FROM information_schema.triggers
                WHERE trigger_schema = COALESCE(NULLIF(:db, ''), DATABASE())
                  AND trigger_name = :name
            """
        else:
            raise UnsupportedObjectTypeError(ref.type, "count", self.provider_type)

        return int(await self._scalar(client, query, self._params(ref), "n") or 0)

    def _drop_statement(self, ref: ObjectReference) -> str:
        if ref.type == "database":
            return f"DROP DATABASE IF EXISTS {check_identifier(ref.name)}"
        keyword = _DROP_KEYWORDS.get(ref.type)
        if keyword is None:
            raise UnsupportedObjectTypeError(ref.type, "delete", self.provider_type)
        return f"DROP {keyword} IF EXISTS {self.qualified_name(ref)}"
