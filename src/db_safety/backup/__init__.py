"""Backup models, scoring, persistence, restore and reporting.

Usage:
    from db_safety.backup import JsonFileBackupStore, ObjectReference, validate_backup
"""

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
    ValidationFailure,
    ValidationRules,
    ValidationStatus,
    ViewDetails,
)
from db_safety.backup.store import BackupStore, JsonFileBackupStore
from db_safety.backup.validation import evaluate_backup, validate_backup

__all__ = [
    "BackupObject",
    "BackupStore",
    "DriftReport",
    "FrameworkMetrics",
    "FunctionDetails",
    "IndexDetails",
    "IntegrityReport",
    "JsonFileBackupStore",
    "ObjectReference",
    "RestoreSummary",
    "TableDetails",
    "ValidationFailure",
    "ValidationRules",
    "ValidationStatus",
    "ViewDetails",
    "compute_metadata_checksum",
    "evaluate_backup",
    "generate_backup_id",
    "validate_backup",
]
