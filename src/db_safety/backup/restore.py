"""Replay a backup against a live database.

Only backups whose ``validation_status.is_valid`` is true are restored.
Each object type has one strategy; all of them re-execute the stored
definition, which is idempotent (``IF NOT EXISTS`` / ``OR REPLACE``).  The
table strategy then re-inserts snapshot rows that are missing, using the
primary key from ``TableDetails`` as the existence check.  Tables without a
primary key match on every column of the snapshot row.

No rollback is attempted.  A failed definition raises ``RestoreError``
and leaves whatever the database applied in place.

Usage:
    from db_safety.backup.restore import restore_object
    from db_safety.dialects import get_dialect

    summary = await restore_object(adapter, backup, get_dialect("postgres"))
"""

import logging
from typing import Any, Awaitable, Callable

from db_safety.adapters.base import DatabaseClient
from db_safety.backup.models import BackupObject, RestoreSummary, TableDetails
from db_safety.dialects.base import Dialect
from db_safety.errors import InvalidBackupError, RestoreError, UnsupportedObjectTypeError

logger = logging.getLogger(__name__)

RestoreStrategy = Callable[
    [DatabaseClient, BackupObject, Dialect, bool], Awaitable[RestoreSummary]
]


async def restore_object(
    client: DatabaseClient,
    backup: BackupObject,
    dialect: Dialect,
    dry_run: bool = False,
) -> RestoreSummary:
    """Restore one object from its backup.

    Args:
        client: Database client to restore into.
        backup: Backup to replay.  Must be valid.
        dialect: Dialect for the backup's provider.
        dry_run: When True, count what would be done without writing.

    Returns:
        ``RestoreSummary`` with the definition flag and row counts.

    Raises:
        InvalidBackupError: If the backup is not valid.
        UnsupportedObjectTypeError: If no strategy exists for the type.
        RestoreError: If executing the definition fails.
    """
    if not backup.validation_status.is_valid:
        raise InvalidBackupError(
            f"Refusing to restore invalid backup of {backup.object_type} "
            f"{backup.object_name}: {'; '.join(backup.validation_errors) or 'not validated'}"
        )

    strategy = _STRATEGIES.get(backup.object_type)
    if strategy is None:
        raise UnsupportedObjectTypeError(backup.object_type, "restore", backup.provider_type)

    summary = await strategy(client, backup, dialect, dry_run)
    logger.info(
        "Restored %s %s (rows inserted=%d skipped=%d failed=%d)",
        backup.object_type,
        backup.object_name,
        summary.rows_inserted,
        summary.rows_skipped,
        summary.rows_failed,
    )
    return summary


async def _apply_definition(
    client: DatabaseClient, backup: BackupObject, dry_run: bool
) -> RestoreSummary:
    summary = RestoreSummary(object_type=backup.object_type, object_name=backup.object_name)
    if not backup.definition:
        raise RestoreError(f"Backup of {backup.object_name} has no definition to apply")
    if not dry_run:
        try:
            await client.execute(backup.definition)
        except Exception as e:
            raise RestoreError(
                f"Failed to apply definition of {backup.object_type} {backup.object_name}: {e}"
            ) from e
    summary.definition_applied = True
    return summary


async def _restore_table(
    client: DatabaseClient, backup: BackupObject, dialect: Dialect, dry_run: bool
) -> RestoreSummary:
    summary = await _apply_definition(client, backup, dry_run)
    if not backup.rows:
        return summary

    ref = backup.to_reference()
    primary_key: list[str] = []
    if isinstance(backup.details, TableDetails):
        primary_key = backup.details.primary_key

    for row in backup.rows:
        try:
            key: dict[str, Any]
            if primary_key and all(col in row for col in primary_key):
                key = {col: row[col] for col in primary_key}
            else:
                key = dict(row)

            if key and await dialect.row_exists(client, ref, key):
                summary.rows_skipped += 1
                continue

            if not dry_run:
                await dialect.insert_row(client, ref, dict(row))
            summary.rows_inserted += 1
        except Exception as e:
            logger.warning("Failed to restore row into %s: %s", backup.object_name, e)
            summary.rows_failed += 1

    return summary


async def _restore_definition_only(
    client: DatabaseClient, backup: BackupObject, dialect: Dialect, dry_run: bool
) -> RestoreSummary:
    return await _apply_definition(client, backup, dry_run)


_STRATEGIES: dict[str, RestoreStrategy] = {
    "table": _restore_table,
    "view": _restore_definition_only,
    "function": _restore_definition_only,
    "index": _restore_definition_only,
}
