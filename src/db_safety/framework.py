"""Backup integrity framework.

``BackupIntegrityFramework`` ties the pieces together for one provider:
the dialect (selected once, at construction), the validation rules, and the
backup store.  Every database call is awaited through the
``DatabaseClient`` the caller passes in, so cancelling the calling task
cancels in-flight introspection.

Two error tiers apply to ``backup_object``:

- Fatal (raises, nothing persisted): unsupported provider or object type,
  definition lookup failure, store write failure.
- Soft (recorded in ``collection_errors``, backup still persisted): data
  checksum, row count, size, row snapshot or dependency lookup failures.

A returned backup is always persisted but may still be invalid; check
``backup.validation_status.is_valid``.

Usage:
    from db_safety.framework import BackupIntegrityFramework
    from db_safety.backup.models import ObjectReference

    framework = BackupIntegrityFramework("postgres", "backups")
    backup = await framework.backup_object(
        adapter, ObjectReference(type="table", name="orders", schema_name="public")
    )
"""

import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from db_safety.adapters.base import DatabaseClient
from db_safety.backup.checksum import compute_metadata_checksum, generate_backup_id
from db_safety.backup.models import (
    BackupObject,
    DriftReport,
    FrameworkMetrics,
    FunctionDetails,
    IndexDetails,
    IntegrityReport,
    ObjectReference,
    RestoreSummary,
    TableDetails,
    ValidationRules,
    ValidationStatus,
    ViewDetails,
)
from db_safety.backup.report import build_integrity_report
from db_safety.backup.restore import restore_object
from db_safety.backup.store import BackupStore, JsonFileBackupStore
from db_safety.backup.validation import validate_backup
from db_safety.cascade.harness import run_cascade_delete_test
from db_safety.cascade.models import CascadeDeleteTest, CascadeTestResult
from db_safety.dialects import Dialect, get_dialect
from db_safety.errors import (
    BackupStoreError,
    DefinitionLookupError,
    ObjectNotFoundError,
    SafetyError,
    UnsupportedProviderError,
)

logger = logging.getLogger(__name__)

_LANGUAGE_RE = re.compile(r"\bLANGUAGE\s+'?(\w+)'?", re.IGNORECASE)


class BackupIntegrityFramework:
    """Backup, validate, restore and cascade-test objects of one provider.

    Args:
        provider_type: Provider key such as ``"postgres"`` or ``"mysql"``.
        backup_directory: Directory for the default JSON file store.
        rules: Validation rules (defaults to ``ValidationRules()``).
        store: Alternative ``BackupStore``; overrides ``backup_directory``.
        dialect: Alternative dialect; overrides provider lookup.

    An unknown ``provider_type`` is accepted here so that stored backups can
    still be reported on, but every database operation raises
    ``UnsupportedProviderError``.
    """

    def __init__(
        self,
        provider_type: str,
        backup_directory: str | Path = "backups",
        rules: ValidationRules | None = None,
        store: BackupStore | None = None,
        dialect: Dialect | None = None,
    ) -> None:
        self.provider_type = provider_type
        self.rules = rules or ValidationRules()
        self.store: BackupStore = store or JsonFileBackupStore(backup_directory)
        self._dialect = dialect
        if self._dialect is None:
            try:
                self._dialect = get_dialect(provider_type)
            except UnsupportedProviderError:
                logger.debug("No dialect for provider %s", provider_type)
        self._metrics = FrameworkMetrics()
        self._metrics_lock = threading.Lock()

    @property
    def dialect(self) -> Dialect:
        """The provider dialect.

        Raises:
            UnsupportedProviderError: If no dialect exists for the provider.
        """
        if self._dialect is None:
            raise UnsupportedProviderError(self.provider_type)
        return self._dialect

    @property
    def metrics(self) -> FrameworkMetrics:
        """Snapshot of the framework counters."""
        with self._metrics_lock:
            return self._metrics.model_copy()

    def _count(self, **increments: int) -> None:
        with self._metrics_lock:
            for name, amount in increments.items():
                setattr(self._metrics, name, getattr(self._metrics, name) + amount)

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    async def backup_object(
        self,
        client: DatabaseClient,
        ref: ObjectReference,
        purpose: Literal["backup", "cascade_test"] = "backup",
    ) -> BackupObject:
        """Back up one object, score it and persist it.

        Args:
            client: Database client to read from.
            ref: Object to back up.  A row-scoped table reference also
                snapshots the matching rows.
            purpose: ``"cascade_test"`` tags backups taken by the harness.

        Returns:
            The persisted ``BackupObject``.  It may be invalid.

        Raises:
            UnsupportedProviderError: If the provider has no dialect.
            UnsupportedObjectTypeError: If the type has no definition strategy.
            ObjectNotFoundError: If the object does not exist.
            DefinitionLookupError: If the definition query fails.
            BackupStoreError: If the backup cannot be written.
        """
        dialect = self.dialect

        backup = BackupObject(
            id=generate_backup_id(ref),
            provider_type=self.provider_type,
            object_type=ref.type,
            object_name=ref.name,
            database_name=ref.database_name,
            schema_name=ref.schema_name,
            backup_timestamp=datetime.now(timezone.utc),
            purpose=purpose,
        )

        try:
            backup.definition = await dialect.get_definition(client, ref)
        except SafetyError:
            self._count(failed_backups=1)
            raise
        except Exception as e:
            self._count(failed_backups=1)
            raise DefinitionLookupError(
                f"Failed to get definition of {ref.type} {ref.name}: {e}"
            ) from e

        if ref.type == "table":
            await self._collect_table_data(client, ref, backup)

        backup.metadata_checksum = compute_metadata_checksum(
            backup.definition, backup.object_type, backup.object_name
        )

        try:
            backup.dependencies = await dialect.get_dependencies(client, ref)
        except Exception as e:
            backup.collection_errors.append(f"Failed to get dependencies: {e}")

        if backup.details is None:
            backup.details = self._details_for(backup)

        status = validate_backup(backup, self.rules)

        try:
            self.store.save(backup)
        except BackupStoreError:
            self._count(failed_backups=1)
            raise

        self._count(total_backups=1, valid_backups=int(status.is_valid))
        logger.info(
            "Backed up %s %s (score %.0f, valid=%s)",
            ref.type,
            ref.name,
            status.validation_score,
            status.is_valid,
        )
        return backup

    async def _collect_table_data(
        self, client: DatabaseClient, ref: ObjectReference, backup: BackupObject
    ) -> None:
        details = TableDetails(row_scope=ref.filters)
        backup.details = details

        try:
            info = await self.dialect.get_data_info(client, ref)
        except Exception as e:
            backup.collection_errors.append(f"Failed to get data info: {e}")
        else:
            backup.data_checksum = info.checksum
            backup.row_count = info.row_count
            backup.data_size = info.data_size
            backup.collection_errors.extend(info.errors)
            details.primary_key = info.primary_key

        if ref.is_row_scoped:
            try:
                backup.rows = await self.dialect.snapshot_rows(client, ref)
            except Exception as e:
                backup.collection_errors.append(f"Failed to snapshot rows: {e}")

    @staticmethod
    def _details_for(backup: BackupObject) -> ViewDetails | FunctionDetails | IndexDetails | None:
        if backup.object_type == "view":
            return ViewDetails(base_tables=list(backup.dependencies))
        if backup.object_type == "function":
            match = _LANGUAGE_RE.search(backup.definition)
            return FunctionDetails(language=match.group(1).lower() if match else "")
        if backup.object_type == "index":
            return IndexDetails(table_name=backup.dependencies[0] if backup.dependencies else "")
        return None

    # ------------------------------------------------------------------
    # Validation and restore
    # ------------------------------------------------------------------

    def validate_backup_integrity(self, backup: BackupObject) -> ValidationStatus:
        """Re-score *backup* against the framework's rules, updating it in place."""
        return validate_backup(backup, self.rules)

    async def restore_object(
        self, client: DatabaseClient, backup: BackupObject, dry_run: bool = False
    ) -> RestoreSummary:
        """Restore one object from a valid backup.

        Raises:
            InvalidBackupError: If the backup is not valid.
            UnsupportedObjectTypeError: If the type has no restore strategy.
            RestoreError: If the definition cannot be applied.
        """
        try:
            summary = await restore_object(client, backup, self.dialect, dry_run=dry_run)
        except SafetyError:
            self._count(restores=1, failed_restores=1)
            raise
        self._count(restores=1, failed_restores=int(not summary.ok))
        return summary

    # ------------------------------------------------------------------
    # Cascade testing, reporting, drift
    # ------------------------------------------------------------------

    async def test_cascade_delete(
        self, client: DatabaseClient, test: CascadeDeleteTest
    ) -> CascadeTestResult:
        """Run a cascade-delete test.  Failures are reported, never raised."""
        return await run_cascade_delete_test(self, client, test)

    async def generate_integrity_report(self, include_transient: bool = True) -> IntegrityReport:
        """Re-score every stored backup against the current rules."""
        return build_integrity_report(
            self.provider_type,
            self.store,
            self.rules,
            metrics=self.metrics,
            include_transient=include_transient,
        )

    async def detect_drift(self, client: DatabaseClient, backup: BackupObject) -> DriftReport:
        """Compare a stored backup with the live object.

        Lookup failures are recorded in ``DriftReport.errors``.  A missing
        object counts as a changed definition.
        """
        dialect = self.dialect
        ref = backup.to_reference()
        report = DriftReport(
            object_type=backup.object_type,
            object_name=backup.object_name,
            row_count_before=backup.row_count,
        )

        try:
            definition = await dialect.get_definition(client, ref)
        except ObjectNotFoundError as e:
            report.definition_changed = True
            report.errors.append(str(e))
        except Exception as e:
            report.errors.append(f"Definition lookup failed: {e}")
        else:
            live_checksum = compute_metadata_checksum(
                definition, backup.object_type, backup.object_name
            )
            report.definition_changed = live_checksum != backup.metadata_checksum

        if backup.object_type != "table":
            return report

        try:
            info = await dialect.get_data_info(client, ref)
        except Exception as e:
            report.errors.append(f"Data info lookup failed: {e}")
            return report

        report.row_count_now = info.row_count
        report.data_changed = bool(backup.data_checksum) and info.checksum != backup.data_checksum
        if backup.row_count:
            missing = max(backup.row_count - info.row_count, 0)
            report.data_loss = missing / backup.row_count
            report.exceeds_allowable_loss = report.data_loss > self.rules.allowable_data_loss
        return report
