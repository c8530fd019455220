"""Dialect capability contract and shared helpers.

A dialect owns every provider-specific SQL statement the framework needs:

- ``get_definition``   -- reconstruct DDL for a table, view, function, index
- ``get_data_info``    -- row count, content checksum, size (tables only)
- ``get_dependencies`` -- objects this object references
- ``count_related``    -- rows (tables) or catalog entries (other types)
- ``delete``           -- the destructive operation exercised by the harness
- ``snapshot_rows``, ``row_exists``, ``insert_row`` -- row-scope snapshots

Dialects are stateless; every method takes the ``DatabaseClient`` to run
against.  Identifiers are validated before interpolation and all values are
bound parameters.
"""

import logging
import re
from typing import Any, Protocol

from pydantic import BaseModel, Field

from db_safety.adapters.base import DatabaseClient
from db_safety.backup.models import ObjectReference
from db_safety.errors import UnsupportedObjectTypeError

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def check_identifier(name: str) -> str:
    """Return *name* unchanged if it is a plain SQL identifier.

    Raises:
        ValueError: If *name* contains anything besides letters, digits,
            ``_`` and ``$``, or starts with a digit.
    """
    if not IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


class DataInfo(BaseModel):
    """Content summary of a table (or of its row scope)."""

    row_count: int
    checksum: str = ""
    data_size: int = 0
    primary_key: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)  # soft failures


class Dialect(Protocol):
    """Provider-specific introspection and destructive operations."""

    provider_type: str

    def qualified_name(self, ref: ObjectReference) -> str:
        ...

    async def get_definition(self, client: DatabaseClient, ref: ObjectReference) -> str:
        ...

    async def get_data_info(self, client: DatabaseClient, ref: ObjectReference) -> DataInfo:
        ...

    async def get_dependencies(self, client: DatabaseClient, ref: ObjectReference) -> list[str]:
        ...

    async def count_related(self, client: DatabaseClient, ref: ObjectReference) -> int:
        ...

    async def delete(self, client: DatabaseClient, ref: ObjectReference) -> None:
        ...

    async def snapshot_rows(
        self, client: DatabaseClient, ref: ObjectReference
    ) -> list[dict[str, Any]]:
        ...

    async def row_exists(
        self, client: DatabaseClient, ref: ObjectReference, key: dict[str, Any]
    ) -> bool:
        ...

    async def insert_row(
        self, client: DatabaseClient, ref: ObjectReference, row: dict[str, Any]
    ) -> None:
        ...


class BaseDialect:
    """Shared plumbing for SQL dialects.

    Subclasses set ``provider_type`` and implement the ``_``-prefixed
    query hooks plus ``get_definition``, ``get_dependencies``,
    ``_count_catalog`` and ``_drop_statement``.
    """

    provider_type: str = ""

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def namespace(self, ref: ObjectReference) -> str:
        """Schema (PostgreSQL) or database (MySQL) holding the object."""
        raise NotImplementedError

    def qualified_name(self, ref: ObjectReference) -> str:
        name = check_identifier(ref.name)
        namespace = self.namespace(ref)
        if namespace:
            return f"{check_identifier(namespace)}.{name}"
        return name

    def where_clause(
        self, filters: dict[str, Any] | None, alias: str = ""
    ) -> tuple[str, dict[str, Any]]:
        """Build `` WHERE col = :f_0 AND ...`` for a row scope.

        ``None`` values render as ``col IS NULL``.
        """
        if not filters:
            return "", {}
        prefix = f"{alias}." if alias else ""
        conditions: list[str] = []
        params: dict[str, Any] = {}
        for i, (column, value) in enumerate(filters.items()):
            column = f"{prefix}{check_identifier(column)}"
            if value is None:
                conditions.append(f"{column} IS NULL")
                continue
            param_name = f"f_{i}"
            conditions.append(f"{column} = :{param_name}")
            params[param_name] = value
        return " WHERE " + " AND ".join(conditions), params

    # ------------------------------------------------------------------
    # Data info
    # ------------------------------------------------------------------

    async def get_data_info(self, client: DatabaseClient, ref: ObjectReference) -> DataInfo:
        """Collect row count, checksum, size and primary key for a table.

        A failing row count raises.  Checksum, size and primary-key
        failures are recorded in ``DataInfo.errors`` instead.
        """
        if ref.type != "table":
            raise UnsupportedObjectTypeError(ref.type, "data info", self.provider_type)

        info = DataInfo(row_count=await self._row_count(client, ref))

        try:
            info.checksum = await self._checksum(client, ref)
        except Exception as e:
            info.errors.append(f"Checksum query failed: {e}")

        try:
            info.data_size = await self._data_size(client, ref, info.row_count)
        except Exception as e:
            info.errors.append(f"Data size query failed: {e}")

        try:
            info.primary_key = await self._primary_key(client, ref)
        except Exception as e:
            info.errors.append(f"Primary key query failed: {e}")

        return info

    async def _row_count(self, client: DatabaseClient, ref: ObjectReference) -> int:
        where, params = self.where_clause(ref.filters)
        rows = await client.fetch(
            f"SELECT COUNT(*) AS row_count FROM {self.qualified_name(ref)}{where}", params
        )
        return int(rows[0]["row_count"]) if rows else 0

    async def _checksum(self, client: DatabaseClient, ref: ObjectReference) -> str:
        raise NotImplementedError

    async def _data_size(self, client: DatabaseClient, ref: ObjectReference, row_count: int) -> int:
        raise NotImplementedError

    async def _primary_key(self, client: DatabaseClient, ref: ObjectReference) -> list[str]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Counting and deletion
    # ------------------------------------------------------------------

    async def count_related(self, client: DatabaseClient, ref: ObjectReference) -> int:
        """Count rows of a table, or catalog entries for other object types.

        A failing count (for example a table already dropped by a cascade)
        counts as 0.
        """
        try:
            if ref.type == "table":
                return await self._row_count(client, ref)
            return await self._count_catalog(client, ref)
        except UnsupportedObjectTypeError:
            logger.debug("No count query for %s %s", ref.type, ref.name)
            return 0
        except Exception as e:
            logger.warning("Count of %s %s failed, treating as 0: %s", ref.type, ref.name, e)
            return 0

    async def _count_catalog(self, client: DatabaseClient, ref: ObjectReference) -> int:
        raise NotImplementedError

    async def delete(self, client: DatabaseClient, ref: ObjectReference) -> None:
        """Delete scoped rows, or drop the whole object.

        Raises:
            UnsupportedObjectTypeError: If the dialect cannot drop this type.
        """
        if ref.is_row_scoped:
            for column in ref.filters:
                check_identifier(column)
            await client.delete(self.qualified_name(ref), ref.filters)
            return
        await client.execute(self._drop_statement(ref))

    def _drop_statement(self, ref: ObjectReference) -> str:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Row snapshots
    # ------------------------------------------------------------------

    async def snapshot_rows(
        self, client: DatabaseClient, ref: ObjectReference
    ) -> list[dict[str, Any]]:
        """Read every row in the reference's row scope."""
        for column in ref.filters or {}:
            check_identifier(column)
        return await client.select(self.qualified_name(ref), "*", filters=ref.filters)

    async def row_exists(
        self, client: DatabaseClient, ref: ObjectReference, key: dict[str, Any]
    ) -> bool:
        """True if a row matching every column in *key* is present."""
        where, params = self.where_clause(key)
        rows = await client.fetch(
            f"SELECT 1 AS present FROM {self.qualified_name(ref)}{where} LIMIT 1", params
        )
        return bool(rows)

    async def insert_row(
        self, client: DatabaseClient, ref: ObjectReference, row: dict[str, Any]
    ) -> None:
        for column in row:
            check_identifier(column)
        await client.insert(self.qualified_name(ref), row)

    async def _scalar(
        self, client: DatabaseClient, sql: str, params: dict[str, Any], key: str
    ) -> Any:
        rows = await client.fetch(sql, params)
        if not rows:
            return None
        return rows[0].get(key)
