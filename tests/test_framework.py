"""Tests for BackupIntegrityFramework: backup, restore, drift and counters.

Uses the in-memory FakeDatabase / FakeDialect from conftest, so every
"database" call is real Python rather than a mock expectation.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeDatabase, FakeDialect
from db_safety.backup.models import (
    FunctionDetails,
    IndexDetails,
    ObjectReference,
    TableDetails,
    ValidationRules,
    ViewDetails,
)
from db_safety.backup.restore import restore_object
from db_safety.errors import (
    BackupStoreError,
    DefinitionLookupError,
    InvalidBackupError,
    ObjectNotFoundError,
    RestoreError,
    UnsupportedObjectTypeError,
    UnsupportedProviderError,
)
from db_safety.framework import BackupIntegrityFramework

ORDERS = ObjectReference(type="table", name="orders", schema_name="public")


# ============================================================================
# Construction
# ============================================================================


class TestConstruction:
    """Provider lookup and the unknown-provider path."""

    def test_known_provider_gets_dialect(self, tmp_path: Path) -> None:
        framework = BackupIntegrityFramework("postgres", tmp_path)
        assert framework.dialect.provider_type == "postgres"

    def test_unknown_provider_constructs(self, tmp_path: Path) -> None:
        framework = BackupIntegrityFramework("oracle", tmp_path)
        with pytest.raises(UnsupportedProviderError):
            framework.dialect

    @pytest.mark.asyncio
    async def test_unknown_provider_backup_writes_nothing(self, tmp_path: Path) -> None:
        framework = BackupIntegrityFramework("oracle", tmp_path / "backups")

        with pytest.raises(UnsupportedProviderError):
            await framework.backup_object(AsyncMock(), ORDERS)

        assert not (tmp_path / "backups").exists()

    def test_default_rules(self, tmp_path: Path) -> None:
        assert BackupIntegrityFramework("postgres", tmp_path).rules == ValidationRules()


# ============================================================================
# Backup
# ============================================================================


class TestBackupObject:
    """Fatal vs soft failures, details and persistence."""

    @pytest.mark.asyncio
    async def test_table_backup_is_valid_and_persisted(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)

        assert backup.validation_status.is_valid
        assert backup.validation_status.validation_score == 100
        assert backup.row_count == 2
        assert backup.data_checksum
        assert backup.metadata_checksum
        assert backup.purpose == "backup"
        assert isinstance(backup.details, TableDetails)
        assert backup.details.primary_key == ["id"]
        assert backup.rows is None

        stored = framework.store.load("fake", "table", "orders")
        assert stored.id == backup.id

    @pytest.mark.asyncio
    async def test_row_scoped_backup_snapshots_rows(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        ref = ObjectReference(type="table", name="order_items", filters={"order_id": 1})
        backup = await framework.backup_object(shop_db, ref)

        assert backup.row_count == 2
        assert [r["id"] for r in backup.rows] == [10, 11]
        assert backup.details.row_scope == {"order_id": 1}
        assert backup.dependencies == ["public.orders"]

    @pytest.mark.asyncio
    async def test_cascade_purpose_is_recorded(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS, purpose="cascade_test")
        assert framework.store.load("fake", "table", "orders").purpose == "cascade_test"
        assert backup.purpose == "cascade_test"

    @pytest.mark.asyncio
    async def test_missing_object_raises_and_writes_nothing(
        self, framework: BackupIntegrityFramework, fake_db: FakeDatabase
    ) -> None:
        with pytest.raises(ObjectNotFoundError):
            await framework.backup_object(fake_db, ORDERS)

        assert not Path(framework.store.directory).exists()
        assert framework.metrics.failed_backups == 1
        assert framework.metrics.total_backups == 0

    @pytest.mark.asyncio
    async def test_unsupported_type_raises(
        self, framework: BackupIntegrityFramework, fake_db: FakeDatabase
    ) -> None:
        with pytest.raises(UnsupportedObjectTypeError):
            await framework.backup_object(fake_db, ObjectReference(type="sequence", name="s"))

    @pytest.mark.asyncio
    async def test_definition_query_failure_is_wrapped(self, tmp_path: Path) -> None:
        dialect = FakeDialect()
        dialect.get_definition = AsyncMock(side_effect=RuntimeError("connection reset"))
        framework = BackupIntegrityFramework("fake", tmp_path, dialect=dialect)

        with pytest.raises(DefinitionLookupError, match="connection reset"):
            await framework.backup_object(FakeDatabase(), ORDERS)

    @pytest.mark.asyncio
    async def test_checksum_failure_is_soft(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        shop_db.fail_checksum = True
        backup = await framework.backup_object(shop_db, ORDERS)

        assert "Checksum query failed: boom" in backup.collection_errors
        assert "Missing data checksum" in backup.validation_errors
        assert not backup.validation_status.is_valid
        assert framework.store.load("fake", "table", "orders").row_count == 2

    @pytest.mark.asyncio
    async def test_dependency_failure_is_soft(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        shop_db.fail_dependencies = True
        backup = await framework.backup_object(shop_db, ORDERS)

        assert backup.collection_errors == [
            "Failed to get dependencies: dependency lookup failed"
        ]
        assert backup.validation_status.validation_score == 100
        assert not backup.validation_status.is_valid

    @pytest.mark.asyncio
    async def test_data_info_failure_is_soft(self, tmp_path: Path, shop_db: FakeDatabase) -> None:
        dialect = FakeDialect()
        dialect.get_data_info = AsyncMock(side_effect=RuntimeError("timeout"))
        framework = BackupIntegrityFramework("fake", tmp_path, dialect=dialect)

        backup = await framework.backup_object(shop_db, ORDERS)

        assert backup.collection_errors == ["Failed to get data info: timeout"]
        assert backup.row_count is None
        assert "Missing row count" in backup.validation_errors

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, shop_db: FakeDatabase) -> None:
        store = MagicMock()
        store.save.side_effect = BackupStoreError("disk full")
        framework = BackupIntegrityFramework("fake", store=store, dialect=FakeDialect())

        with pytest.raises(BackupStoreError):
            await framework.backup_object(shop_db, ORDERS)
        assert framework.metrics.failed_backups == 1

    @pytest.mark.asyncio
    async def test_view_function_index_details(
        self, framework: BackupIntegrityFramework, fake_db: FakeDatabase
    ) -> None:
        fake_db.add_object("view", "open_orders", depends_on=["public.orders"])
        fake_db.add_object("index", "orders_status_idx", depends_on=["public.orders"])
        fake_db.definitions[("function", "total")] = (
            "CREATE OR REPLACE FUNCTION total() RETURNS int LANGUAGE plpgsql AS $$ ... $$"
        )

        view = await framework.backup_object(fake_db, ObjectReference(type="view", name="open_orders"))
        index = await framework.backup_object(
            fake_db, ObjectReference(type="index", name="orders_status_idx")
        )
        function = await framework.backup_object(fake_db, ObjectReference(type="function", name="total"))

        assert view.details == ViewDetails(base_tables=["public.orders"])
        assert index.details == IndexDetails(table_name="public.orders")
        assert function.details == FunctionDetails(language="plpgsql")
        assert view.row_count is None

    @pytest.mark.asyncio
    async def test_metrics_count_backups(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        await framework.backup_object(shop_db, ORDERS)
        shop_db.fail_checksum = True
        await framework.backup_object(
            shop_db, ObjectReference(type="table", name="order_items")
        )

        metrics = framework.metrics
        assert metrics.total_backups == 2
        assert metrics.valid_backups == 1
        assert metrics.failed_backups == 0

    def test_metrics_is_a_copy(self, framework: BackupIntegrityFramework) -> None:
        framework.metrics.total_backups = 99
        assert framework.metrics.total_backups == 0


# ============================================================================
# Restore
# ============================================================================


class TestRestore:
    """Definition replay and row re-insert."""

    @pytest.mark.asyncio
    async def test_invalid_backup_refused(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        shop_db.fail_checksum = True
        backup = await framework.backup_object(shop_db, ORDERS)

        with pytest.raises(InvalidBackupError):
            await framework.restore_object(shop_db, backup)

        assert shop_db.executed == []
        assert framework.metrics.failed_restores == 1

    @pytest.mark.asyncio
    async def test_definition_is_reexecuted(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)
        summary = await framework.restore_object(shop_db, backup)

        assert summary.ok
        assert shop_db.executed == [backup.definition]
        assert framework.metrics.restores == 1

    @pytest.mark.asyncio
    async def test_rows_reinserted_and_existing_skipped(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        ref = ObjectReference(type="table", name="order_items", filters={"order_id": 1})
        backup = await framework.backup_object(shop_db, ref)
        shop_db.rows["order_items"] = [r for r in shop_db.rows["order_items"] if r["id"] != 10]

        summary = await framework.restore_object(shop_db, backup)

        assert summary.rows_inserted == 1
        assert summary.rows_skipped == 1
        assert sorted(r["id"] for r in shop_db.rows["order_items"]) == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_rows_without_primary_key_match_whole_row(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        shop_db.primary_keys["order_items"] = []
        ref = ObjectReference(type="table", name="order_items", filters={"order_id": 1})
        backup = await framework.backup_object(shop_db, ref)
        assert backup.details.primary_key == []
        shop_db.rows["order_items"] = [r for r in shop_db.rows["order_items"] if r["id"] != 10]

        summary = await framework.restore_object(shop_db, backup)

        assert summary.rows_inserted == 1
        assert summary.rows_skipped == 1
        assert sorted(r["id"] for r in shop_db.rows["order_items"]) == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        ref = ObjectReference(type="table", name="order_items", filters={"order_id": 1})
        backup = await framework.backup_object(shop_db, ref)
        shop_db.rows["order_items"] = []

        summary = await framework.restore_object(shop_db, backup, dry_run=True)

        assert summary.definition_applied
        assert summary.rows_inserted == 2
        assert shop_db.executed == []
        assert shop_db.rows["order_items"] == []

    @pytest.mark.asyncio
    async def test_definition_failure_raises_restore_error(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)
        shop_db.fail_execute = True

        with pytest.raises(RestoreError, match="execute failed"):
            await framework.restore_object(shop_db, backup)

    @pytest.mark.asyncio
    async def test_row_failures_are_counted(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        ref = ObjectReference(type="table", name="order_items", filters={"order_id": 1})
        backup = await framework.backup_object(shop_db, ref)
        shop_db.rows["order_items"] = []
        dialect = FakeDialect()
        dialect.insert_row = AsyncMock(side_effect=RuntimeError("constraint violation"))

        summary = await restore_object(shop_db, backup, dialect)

        assert summary.rows_failed == 2
        assert not summary.ok

    @pytest.mark.asyncio
    async def test_unsupported_restore_type(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)
        backup.object_type = "sequence"

        with pytest.raises(UnsupportedObjectTypeError):
            await restore_object(shop_db, backup, FakeDialect())


# ============================================================================
# Drift
# ============================================================================


class TestDetectDrift:
    """Live object vs stored backup."""

    @pytest.mark.asyncio
    async def test_no_drift(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)
        report = await framework.detect_drift(shop_db, backup)

        assert not report.has_drift
        assert report.row_count_now == 2
        assert report.errors == []

    @pytest.mark.asyncio
    async def test_definition_change(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)
        shop_db.definitions[("table", "orders")] = "CREATE TABLE orders (id bigint);"

        report = await framework.detect_drift(shop_db, backup)
        assert report.definition_changed
        assert not report.data_changed

    @pytest.mark.asyncio
    async def test_data_loss_beyond_allowance(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        backup = await framework.backup_object(shop_db, ORDERS)
        shop_db.rows["orders"].pop()

        report = await framework.detect_drift(shop_db, backup)
        assert report.data_changed
        assert report.data_loss == pytest.approx(0.5)
        assert report.exceeds_allowable_loss
        assert report.has_drift

    @pytest.mark.asyncio
    async def test_dropped_object(
        self, framework: BackupIntegrityFramework, shop_db: FakeDatabase
    ) -> None:
        shop_db.add_object("view", "open_orders", depends_on=["public.orders"])
        backup = await framework.backup_object(
            shop_db, ObjectReference(type="view", name="open_orders")
        )
        del shop_db.definitions[("view", "open_orders")]

        report = await framework.detect_drift(shop_db, backup)
        assert report.definition_changed
        assert report.errors
        assert report.row_count_now is None
