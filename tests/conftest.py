"""Shared fixtures: an in-memory database and a dialect that drives it.

``FakeDatabase`` doubles as the ``DatabaseClient`` passed to the framework;
``FakeDialect`` reads and mutates it the way a real dialect would run SQL.
Foreign keys are modelled as ``(child_table, child_column, parent_column,
on_delete_cascade)`` tuples so cascade and orphan behaviour can be
exercised without a server.
"""

import hashlib
import json
from pathlib import Path
from typing import Any

import pytest

from db_safety.backup.models import ObjectReference, ValidationRules
from db_safety.dialects.base import DataInfo
from db_safety.errors import ObjectNotFoundError, UnsupportedObjectTypeError
from db_safety.framework import BackupIntegrityFramework


def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    return all(row.get(k) == v for k, v in (filters or {}).items())


class FakeDatabase:
    """In-memory objects, rows and foreign keys."""

    def __init__(self) -> None:
        self.definitions: dict[tuple[str, str], str] = {}
        self.rows: dict[str, list[dict[str, Any]]] = {}
        self.primary_keys: dict[str, list[str]] = {}
        self.dependencies: dict[str, list[str]] = {}
        self.foreign_keys: dict[str, list[tuple[str, str, str, bool]]] = {}
        self.dropped: dict[tuple[str, str], str] = {}
        self.executed: list[str] = []
        self.fail_checksum = False
        self.fail_dependencies = False
        self.fail_delete = False
        self.fail_execute = False
        self.closed = False

    # Setup helpers

    def add_table(
        self,
        name: str,
        rows: list[dict[str, Any]] | None = None,
        primary_key: list[str] | None = None,
    ) -> None:
        self.definitions[("table", name)] = f"CREATE TABLE IF NOT EXISTS {name} (...);"
        self.rows[name] = [dict(r) for r in rows or []]
        self.primary_keys[name] = primary_key or ["id"]

    def add_object(self, object_type: str, name: str, depends_on: list[str] | None = None) -> None:
        self.definitions[(object_type, name)] = f"CREATE {object_type.upper()} {name} ..."
        if depends_on is not None:
            self.dependencies[name] = depends_on

    def add_foreign_key(
        self, parent: str, child: str, child_column: str, parent_column: str = "id", cascade: bool = True
    ) -> None:
        self.foreign_keys.setdefault(parent, []).append((child, child_column, parent_column, cascade))

    # DatabaseClient surface

    async def execute(self, sql: str, params: dict | None = None) -> None:
        if self.fail_execute:
            raise RuntimeError("execute failed")
        self.executed.append(sql)
        for key, definition in list(self.dropped.items()):
            if definition == sql:
                self.definitions[key] = definition
                if key[0] == "table":
                    self.rows.setdefault(key[1], [])
                del self.dropped[key]

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        return []

    async def select(self, table, columns, filters=None, order_by=None) -> list[dict]:
        return [dict(r) for r in self.rows.get(table, []) if _matches(r, filters)]

    async def insert(self, table: str, data: dict) -> dict:
        self.rows.setdefault(table, []).append(dict(data))
        return dict(data)

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        self._delete_rows(table, filters)

    async def close(self) -> None:
        self.closed = True

    # Row deletion with foreign key behaviour

    def _delete_rows(self, table: str, filters: dict[str, Any] | None) -> None:
        doomed = [r for r in self.rows.get(table, []) if _matches(r, filters)]
        self.rows[table] = [r for r in self.rows.get(table, []) if not _matches(r, filters)]
        for child, child_column, parent_column, cascade in self.foreign_keys.get(table, []):
            if not cascade:
                continue
            for row in doomed:
                self._delete_rows(child, {child_column: row[parent_column]})


class FakeDialect:
    """Dialect over a ``FakeDatabase`` passed as the client."""

    provider_type = "fake"

    def qualified_name(self, ref: ObjectReference) -> str:
        return ref.name

    async def get_definition(self, client: FakeDatabase, ref: ObjectReference) -> str:
        if ref.type not in ("table", "view", "function", "index"):
            raise UnsupportedObjectTypeError(ref.type, "definition", self.provider_type)
        definition = client.definitions.get((ref.type, ref.name))
        if definition is None:
            raise ObjectNotFoundError(f"{ref.type} not found: {ref.name}")
        return definition

    async def get_data_info(self, client: FakeDatabase, ref: ObjectReference) -> DataInfo:
        if ref.type != "table":
            raise UnsupportedObjectTypeError(ref.type, "data info", self.provider_type)
        rows = [r for r in client.rows.get(ref.name, []) if _matches(r, ref.filters)]
        info = DataInfo(
            row_count=len(rows),
            data_size=len(json.dumps(rows)),
            primary_key=client.primary_keys.get(ref.name, []),
        )
        if client.fail_checksum:
            info.errors.append("Checksum query failed: boom")
        else:
            digests = sorted(hashlib.md5(json.dumps(r, sort_keys=True).encode()).hexdigest() for r in rows)
            info.checksum = hashlib.md5("".join(digests).encode()).hexdigest()
        return info

    async def get_dependencies(self, client: FakeDatabase, ref: ObjectReference) -> list[str]:
        if client.fail_dependencies:
            raise RuntimeError("dependency lookup failed")
        return list(client.dependencies.get(ref.name, []))

    async def count_related(self, client: FakeDatabase, ref: ObjectReference) -> int:
        if ref.type == "table":
            if ("table", ref.name) not in client.definitions:
                return 0
            return sum(1 for r in client.rows.get(ref.name, []) if _matches(r, ref.filters))
        return 1 if (ref.type, ref.name) in client.definitions else 0

    async def delete(self, client: FakeDatabase, ref: ObjectReference) -> None:
        if client.fail_delete:
            raise RuntimeError("delete failed")
        if ref.is_row_scoped:
            await client.delete(ref.name, ref.filters)
            return
        key = (ref.type, ref.name)
        client.dropped[key] = client.definitions.pop(key)
        if ref.type == "table":
            client._delete_rows(ref.name, None)

    async def snapshot_rows(self, client: FakeDatabase, ref: ObjectReference) -> list[dict]:
        return await client.select(ref.name, "*", filters=ref.filters)

    async def row_exists(self, client: FakeDatabase, ref: ObjectReference, key: dict) -> bool:
        return bool(await client.select(ref.name, "*", filters=key))

    async def insert_row(self, client: FakeDatabase, ref: ObjectReference, row: dict) -> None:
        await client.insert(ref.name, row)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def shop_db(fake_db: FakeDatabase) -> FakeDatabase:
    """orders(id) with order_items(order_id) referencing it."""
    fake_db.add_table(
        "orders",
        rows=[{"id": 1, "status": "open"}, {"id": 2, "status": "paid"}],
    )
    fake_db.add_table(
        "order_items",
        rows=[
            {"id": 10, "order_id": 1, "sku": "A"},
            {"id": 11, "order_id": 1, "sku": "B"},
            {"id": 12, "order_id": 2, "sku": "C"},
        ],
    )
    fake_db.dependencies["order_items"] = ["public.orders"]
    return fake_db


@pytest.fixture
def framework(tmp_path: Path) -> BackupIntegrityFramework:
    return BackupIntegrityFramework(
        "fake",
        backup_directory=tmp_path / "backups",
        rules=ValidationRules(),
        dialect=FakeDialect(),
    )
