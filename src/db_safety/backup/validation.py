"""Completeness and freshness scoring for backups.

Four checks, 25 points each, evaluated in order:

1. Definition present (when ``require_definition``).
2. Data captured -- tables only: a data checksum when
   ``require_data_checksum`` and a known row count when ``require_row_count``.
   Other object types pass.
3. Dependencies recorded -- only enforced for views, triggers and functions
   when ``require_dependencies``.
4. Age within ``max_backup_age``.  A stale backup gets no age credit and a
   10 point penalty.

The score is clamped to 0..100.  A backup is valid only with zero errors and
a score of at least 75.  Errors recorded while the backup was collected
(``collection_errors``) count as errors.

Usage:
    from db_safety.backup.validation import validate_backup

    status = validate_backup(backup, rules)
    if not status.is_valid:
        print(backup.validation_errors)
"""

from datetime import datetime, timezone

from db_safety.backup.models import BackupObject, ValidationRules, ValidationStatus

CHECK_POINTS = 25.0
STALE_PENALTY = 10.0
PASSING_SCORE = 75.0

# Object types expected to reference other objects
DEPENDENT_OBJECT_TYPES = frozenset({"view", "trigger", "function"})


def object_should_have_dependencies(object_type: str) -> bool:
    return object_type in DEPENDENT_OBJECT_TYPES


def evaluate_backup(
    backup: BackupObject,
    rules: ValidationRules,
    now: datetime | None = None,
) -> tuple[ValidationStatus, list[str]]:
    """Score a backup without modifying it.

    Args:
        backup: Backup to evaluate.
        rules: Validation policy.
        now: Reference time for the age check (default: current UTC time).

    Returns:
        Tuple of (``ValidationStatus``, list of error strings).  The error
        list starts with the backup's ``collection_errors``.
    """
    now = now or datetime.now(timezone.utc)
    status = ValidationStatus(last_validated=now)
    errors: list[str] = list(backup.collection_errors)
    score = 0.0

    # Definition
    if rules.require_definition and not backup.definition:
        errors.append("Missing object definition")
    else:
        status.definition_valid = True
        score += CHECK_POINTS

    # Data
    data_errors: list[str] = []
    if backup.object_type == "table":
        if rules.require_data_checksum and not backup.data_checksum:
            data_errors.append("Missing data checksum")
        if rules.require_row_count and backup.row_count is None:
            data_errors.append("Missing row count")
    if data_errors:
        errors.extend(data_errors)
    else:
        status.data_valid = True
        score += CHECK_POINTS

    # Dependencies
    if (
        rules.require_dependencies
        and object_should_have_dependencies(backup.object_type)
        and not backup.dependencies
    ):
        errors.append("Missing dependencies information")
    else:
        status.dependencies_valid = True
        score += CHECK_POINTS

    # Age
    timestamp = backup.backup_timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now - timestamp > rules.max_backup_age:
        errors.append("Backup is too old")
        score -= STALE_PENALTY
    else:
        score += CHECK_POINTS

    status.validation_score = min(max(score, 0.0), 100.0)
    status.is_valid = not errors and status.validation_score >= PASSING_SCORE

    return status, errors


def validate_backup(
    backup: BackupObject,
    rules: ValidationRules,
    now: datetime | None = None,
) -> ValidationStatus:
    """Score a backup and store the status and errors on it.

    Re-validating an unchanged backup with unchanged rules yields the same
    score and verdict.
    """
    status, errors = evaluate_backup(backup, rules, now)
    backup.validation_status = status
    backup.validation_errors = errors
    return status
