"""PostgreSQL dialect.

Reconstructs DDL from the system catalogs:

- Tables: ``pg_attribute`` columns (``format_type``, ``pg_get_expr``
  defaults, identity and ``NOT NULL``) plus ``pg_constraint`` primary key,
  unique, check and foreign key constraints, rendered as
  ``CREATE TABLE IF NOT EXISTS``.
- Views: ``pg_views`` rendered as ``CREATE OR REPLACE VIEW``.
- Functions: ``pg_get_functiondef``.
- Indexes: ``pg_indexes`` with ``IF NOT EXISTS`` inserted.

The data checksum is md5 over the sorted per-row md5 digests, so it does
not depend on physical row order.  An empty table hashes to ``md5('')``.
"""

import json
import re
from typing import Any

from db_safety.adapters.base import DatabaseClient
from db_safety.backup.models import ObjectReference
from db_safety.dialects.base import BaseDialect, check_identifier
from db_safety.errors import ObjectNotFoundError, UnsupportedObjectTypeError

DEFAULT_SCHEMA = "public"

# Integer columns defaulting to an owned sequence are emitted as serial types
_SERIAL_TYPES = {
    "smallint": "smallserial",
    "integer": "serial",
    "bigint": "bigserial",
}

_CONSTRAINT_ORDER = {"p": 0, "u": 1, "c": 2, "f": 3}

_DROP_KEYWORDS = {
    "table": "TABLE",
    "view": "VIEW",
    "function": "FUNCTION",
    "index": "INDEX",
    "sequence": "SEQUENCE",
}


class PostgresDialect(BaseDialect):
    """Catalog queries and DDL reconstruction for PostgreSQL."""

    provider_type = "postgres"

    def namespace(self, ref: ObjectReference) -> str:
        return ref.schema_name or DEFAULT_SCHEMA

    def _params(self, ref: ObjectReference) -> dict[str, str]:
        return {"schema": self.namespace(ref), "name": ref.name}

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def get_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        """Reconstruct the DDL for *ref*.

        Raises:
            UnsupportedObjectTypeError: For types without a DDL strategy.
            ObjectNotFoundError: If the object does not exist.
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
        query = """
            SELECT
                a.attname AS column_name,
                format_type(a.atttypid, a.atttypmod) AS data_type,
                a.attnotnull AS not_null,
                a.attidentity::text AS identity,
                pg_get_expr(d.adbin, d.adrelid) AS default_value
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = :schema
              AND c.relname = :name
              AND c.relkind IN ('r', 'p')
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        columns = await client.fetch(query, self._params(ref))
        if not columns:
            raise ObjectNotFoundError(f"Table not found: {self.qualified_name(ref)}")

        constraints_query = """
            SELECT
                con.conname AS constraint_name,
                con.contype::text AS constraint_type,
                pg_get_constraintdef(con.oid) AS definition
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema
              AND c.relname = :name
              AND con.contype IN ('p', 'u', 'c', 'f')
        """
        constraints = await client.fetch(constraints_query, self._params(ref))
        constraints.sort(
            key=lambda con: (_CONSTRAINT_ORDER.get(con["constraint_type"], 9), con["constraint_name"])
        )

        lines = [self._column_line(col) for col in columns]
        lines.extend(
            f"CONSTRAINT {con['constraint_name']} {con['definition']}" for con in constraints
        )
        body = ",\n    ".join(lines)
        return f"CREATE TABLE IF NOT EXISTS {self.qualified_name(ref)} (\n    {body}\n);"

    @staticmethod
    def _column_line(column: dict) -> str:
        data_type = column["data_type"]
        default = column.get("default_value")
        identity = column.get("identity") or ""

        if default and default.startswith("nextval(") and data_type in _SERIAL_TYPES:
            data_type = _SERIAL_TYPES[data_type]
            default = None

        line = f"{column['column_name']} {data_type}"
        if identity == "a":
            line += " GENERATED ALWAYS AS IDENTITY"
        elif identity == "d":
            line += " GENERATED BY DEFAULT AS IDENTITY"
        elif default is not None:
            line += f" DEFAULT {default}"
        if column["not_null"]:
            line += " NOT NULL"
        return line

    async def _view_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        query = """
            SELECT definition
            FROM pg_views
            WHERE schemaname = :schema
              AND viewname = :name
        """
        definition = await self._scalar(client, query, self._params(ref), "definition")
        if definition is None:
            raise ObjectNotFoundError(f"View not found: {self.qualified_name(ref)}")
        return f"CREATE OR REPLACE VIEW {self.qualified_name(ref)} AS\n{definition.strip()}"

    async def _function_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        query = """
            SELECT pg_get_functiondef(p.oid) AS definition
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE n.nspname = :schema
              AND p.proname = :name
              AND p.prokind = 'f'
            ORDER BY p.oid
            LIMIT 1
        """
        definition = await self._scalar(client, query, self._params(ref), "definition")
        if definition is None:
            raise ObjectNotFoundError(f"Function not found: {self.qualified_name(ref)}")
        return definition.strip()

    async def _index_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        query = """
            SELECT indexdef
            FROM pg_indexes
            WHERE schemaname = :schema
              AND indexname = :name
        """
        definition = await self._scalar(client, query, self._params(ref), "indexdef")
        if definition is None:
            raise ObjectNotFoundError(f"Index not found: {self.qualified_name(ref)}")
        # CREATE [UNIQUE] INDEX name ON ... -> CREATE [UNIQUE] INDEX IF NOT EXISTS name ON ...
        return re.sub(r"^(CREATE (?:UNIQUE )?INDEX) ", r"\1 IF NOT EXISTS ", definition, count=1)

    # ------------------------------------------------------------------
    # Data info hooks
    # ------------------------------------------------------------------

    async def _checksum(self, client: DatabaseClient, ref: ObjectReference) -> str:
        where, params = self.where_clause(ref.filters, alias="t")
        query = f"""
            SELECT COALESCE(md5(string_agg(h, '' ORDER BY h)), md5('')) AS checksum
            FROM (
                SELECT md5(CAST((t.*) AS text)) AS h
                FROM {self.qualified_name(ref)} t{where}
            ) s
        """
        return await self._scalar(client, query, params, "checksum") or ""

    async def _data_size(self, client: DatabaseClient, ref: ObjectReference, row_count: int) -> int:
        where, params = self.where_clause(ref.filters, alias="t")
        query = f"""
            SELECT COALESCE(SUM(pg_column_size(t.*)), 0) AS data_size
            FROM {self.qualified_name(ref)} t{where}
        """
        return int(await self._scalar(client, query, params, "data_size") or 0)

    async def _primary_key(self, client: DatabaseClient, ref: ObjectReference) -> list[str]:
        query = """
            SELECT a.attname AS column_name
            FROM pg_index i
            JOIN pg_class c ON c.oid = i.indrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = ANY(i.indkey)
            WHERE n.nspname = :schema
              AND c.relname = :name
              AND i.indisprimary
            ORDER BY a.attnum
        """
        rows = await client.fetch(query, self._params(ref))
        return [row["column_name"] for row in rows]

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    async def get_dependencies(self, client: DatabaseClient, ref: ObjectReference) -> list[str]:
        """Return qualified names of the objects *ref* references.

        Tables list the tables their foreign keys point at, views their
        base tables, indexes and triggers their owning table.  Other types
        have no tracked dependencies.
        """
        if ref.type == "table":
            query = """
                SELECT DISTINCT rn.nspname || '.' || rc.relname AS dependency
                FROM pg_constraint con
                JOIN pg_class c ON c.oid = con.conrelid
                JOIN pg_namespace n ON n.oid = c.relnamespace
                JOIN pg_class rc ON rc.oid = con.confrelid
                JOIN pg_namespace rn ON rn.oid = rc.relnamespace
                WHERE con.contype = 'f'
                  AND n.nspname = :schema
                  AND c.relname = :name
                ORDER BY 1
            """
        elif ref.type == "view":
            query = """
                SELECT DISTINCT table_schema || '.' || table_name AS dependency
                FROM information_schema.view_table_usage
                WHERE view_schema = :schema
                  AND view_name = :name
                ORDER BY 1
            """
        elif ref.type == "index":
            query = """
                SELECT schemaname || '.' || tablename AS dependency
                FROM pg_indexes
                WHERE schemaname = :schema
                  AND indexname = :name
            """
        elif ref.type == "trigger":
            query = """
                SELECT DISTINCT event_object_schema || '.' || event_object_table AS dependency
                FROM information_schema.triggers
                WHERE trigger_schema = :schema
                  AND trigger_name = :name
                ORDER BY 1
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
            query = """
                SELECT COUNT(*) AS n FROM information_schema.views
                WHERE table_schema = :schema AND table_name = :name
            """
        elif ref.type == "function":
            query = """
                SELECT COUNT(*) AS n FROM information_schema.routines
                WHERE routine_schema = :schema AND routine_name = :name
            """
        elif ref.type == "trigger":
            query = """
                SELECT COUNT(DISTINCT trigger_name) AS n FROM information_schema.triggers
                WHERE trigger_schema = :schema AND trigger_name = :name
            """
        elif ref.type == "index":
            query = """
                SELECT COUNT(*) AS n FROM pg_indexes
                WHERE schemaname = :schema AND indexname = :name
            """
        else:
            raise UnsupportedObjectTypeError(ref.type, "count", self.provider_type)

        return int(await self._scalar(client, query, self._params(ref), "n") or 0)

    def _drop_statement(self, ref: ObjectReference) -> str:
        if ref.type == "schema":
            return f"DROP SCHEMA IF EXISTS {check_identifier(ref.name)} CASCADE"
        keyword = _DROP_KEYWORDS.get(ref.type)
        if keyword is None:
            raise UnsupportedObjectTypeError(ref.type, "delete", self.provider_type)
        return f"DROP {keyword} IF EXISTS {self.qualified_name(ref)} CASCADE"

    # ------------------------------------------------------------------
    # Row snapshots
    # ------------------------------------------------------------------

    async def row_exists(
        self, client: DatabaseClient, ref: ObjectReference, key: dict[str, Any]
    ) -> bool:
        """True if a row matches every column in *key*.

        Key values are coerced to the column types through
        ``jsonb_populate_record``, so serialized snapshot values (timestamps,
        UUIDs, numerics as text) compare like the originals and ``None``
        matches NULL.
        """
        qualified = self.qualified_name(ref)
        conditions = " AND ".join(
            f"t.{check_identifier(column)} IS NOT DISTINCT FROM k.{column}" for column in key
        ) or "TRUE"
        query = (
            f"SELECT 1 AS present FROM {qualified} t, "
            f"jsonb_populate_record(NULL::{qualified}, CAST(:key AS jsonb)) k "
            f"WHERE {conditions} LIMIT 1"
        )
        rows = await client.fetch(query, {"key": json.dumps(key, default=str)})
        return bool(rows)

    async def insert_row(
        self, client: DatabaseClient, ref: ObjectReference, row: dict[str, Any]
    ) -> None:
        """Insert a snapshot row, letting PostgreSQL coerce JSON values to column types.

        Generated columns are left out of the column list, and tables with a
        ``GENERATED ALWAYS AS IDENTITY`` column get ``OVERRIDING SYSTEM
        VALUE`` so the original key is kept.
        """
        qualified = self.qualified_name(ref)
        columns = await client.fetch(
            """
            SELECT
                a.attname AS column_name,
                a.attidentity::text AS identity,
                a.attgenerated::text AS generated
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema
              AND c.relname = :name
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
            """,
            self._params(ref),
        )
        writable = [col["column_name"] for col in columns if not col.get("generated")]
        overriding = ""
        if any(col.get("identity") == "a" for col in columns):
            overriding = " OVERRIDING SYSTEM VALUE"

        if writable:
            column_list = ", ".join(check_identifier(name) for name in writable)
            query = (
                f"INSERT INTO {qualified} ({column_list}){overriding} "
                f"SELECT {column_list} FROM "
                f"jsonb_populate_record(NULL::{qualified}, CAST(:row AS jsonb))"
            )
        else:
            query = (
                f"INSERT INTO {qualified}{overriding} "
                f"SELECT * FROM jsonb_populate_record(NULL::{qualified}, CAST(:row AS jsonb))"
            )
        await client.execute(query, {"row": json.dumps(row, default=str)})
