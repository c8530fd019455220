"""Fleet-wide integrity reporting over every stored backup.

Each stored backup is re-scored against the *current* rules, so the report
reflects today's policy rather than the policy in force at backup time.
Re-scoring does not write back to the store.
"""

import logging
from datetime import datetime, timedelta, timezone

from db_safety.backup.models import (
    BackupObject,
    FrameworkMetrics,
    IntegrityReport,
    ValidationFailure,
    ValidationRules,
)
from db_safety.backup.store import BackupStore
from db_safety.backup.validation import evaluate_backup
from db_safety.errors import BackupStoreError

logger = logging.getLogger(__name__)

LOW_INTEGRITY_SCORE = 80.0
RECOMMENDED_MAX_AGE = timedelta(hours=24)


def build_integrity_report(
    provider_type: str,
    store: BackupStore,
    rules: ValidationRules,
    metrics: FrameworkMetrics | None = None,
    include_transient: bool = True,
    now: datetime | None = None,
) -> IntegrityReport:
    """Load, re-score and summarize every stored backup.

    A store that cannot be read yields a report with ``errors`` set and
    zero counts instead of raising.

    Args:
        provider_type: Provider the report is for.
        store: Backup store to read from.
        rules: Rules to re-score against.
        metrics: Framework counters to embed in the report.
        include_transient: When False, backups taken for cascade tests are
            left out.
        now: Reference time for the age check.
    """
    now = now or datetime.now(timezone.utc)
    report = IntegrityReport(
        provider_type=provider_type,
        generated_at=now,
        metrics=metrics.model_copy() if metrics else FrameworkMetrics(),
    )

    try:
        backups = store.load_all()
    except BackupStoreError as e:
        logger.warning("Could not load backups for report: %s", e)
        report.errors.append(str(e))
        return report

    if not include_transient:
        backups = [b for b in backups if b.purpose != "cascade_test"]

    for backup in backups:
        _tally(report, backup, rules, now)

    if report.total_backups:
        report.integrity_score = report.valid_backups / report.total_backups * 100

    report.recommendations = generate_recommendations(report, rules)
    return report


def _tally(
    report: IntegrityReport, backup: BackupObject, rules: ValidationRules, now: datetime
) -> None:
    status, errors = evaluate_backup(backup, rules, now)
    report.total_backups += 1
    report.total_data_size += backup.data_size
    if status.is_valid:
        report.valid_backups += 1
    else:
        report.invalid_backups += 1
        report.validation_failures.append(
            ValidationFailure(
                object_name=backup.object_name,
                object_type=backup.object_type,
                errors=errors,
                score=status.validation_score,
            )
        )


def generate_recommendations(report: IntegrityReport, rules: ValidationRules) -> list[str]:
    """Rule-based advice for a finished report."""
    recommendations: list[str] = []

    if report.total_backups and report.integrity_score < LOW_INTEGRITY_SCORE:
        recommendations.append(
            "Integrity score is below 80%: tighten validation rules and re-run failing backups"
        )
    if report.validation_failures:
        recommendations.append(
            f"Review {len(report.validation_failures)} failed backup validation(s)"
        )
    if rules.max_backup_age > RECOMMENDED_MAX_AGE:
        recommendations.append("Reduce the maximum backup age to 24 hours or less")
    if not rules.require_encryption:
        recommendations.append("Enable encryption for backups containing sensitive data")

    return recommendations
