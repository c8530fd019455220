"""Cascade-delete test harness.

``run_cascade_delete_test`` brackets a destructive delete with backups
before and restores after:

1. Back up the primary object.  Failure ends the test with ``error`` set
   and nothing deleted.
2. Back up each dependent.  Failures become integrity violations.
3. Count each dependent.
4. Delete the primary object.  Failure ends the test with ``error`` set.
5. Count each dependent again and look for orphans.
6. Restore every backup, primary first, then dependents in declared order.
   Failures become integrity violations.

The result is always returned; nothing is raised except cancellation.

``CascadeTestRunner`` records results across runs and builds a
``CascadeTestReport``.

Usage:
    from db_safety.cascade import CascadeTestRunner

    runner = CascadeTestRunner(framework)
    result = await runner.run(adapter, test)
    report = runner.generate_report()
"""

import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from db_safety.adapters.base import DatabaseClient
from db_safety.backup.models import BackupObject
from db_safety.cascade.models import (
    CascadeDeleteTest,
    CascadeTestMetrics,
    CascadeTestReport,
    CascadeTestResult,
    CascadeTestSummary,
    OrphanedResource,
    orphan_severity,
)

if TYPE_CHECKING:
    from db_safety.framework import BackupIntegrityFramework

logger = logging.getLogger(__name__)

PASSING_SUCCESS_RATE = 80.0


async def run_cascade_delete_test(
    framework: "BackupIntegrityFramework",
    client: DatabaseClient,
    test: CascadeDeleteTest,
) -> CascadeTestResult:
    """Run one cascade-delete test against a live database.

    Args:
        framework: Framework providing backup, dialect and restore.
        client: Database client to run against.
        test: Scenario to run.

    Returns:
        ``CascadeTestResult``.  ``success`` is True only with no integrity
        violations and either no orphans or no orphan-prevention
        expectation.
    """
    started = time.monotonic()
    result = CascadeTestResult(test_name=test.test_name)
    primary = test.primary_object
    expected = test.expected_behavior

    def finish() -> CascadeTestResult:
        result.duration = time.monotonic() - started
        result.recommendations = result_recommendations(result, test)
        return result

    # Backups: primary is fatal, dependents best-effort
    backups: list[BackupObject] = []
    try:
        backups.append(await framework.backup_object(client, primary, purpose="cascade_test"))
    except Exception as e:
        logger.warning("Cascade test %s: primary backup failed: %s", test.test_name, e)
        result.error = f"Failed to backup primary object {primary.name}: {e}"
        return finish()

    for dependent in test.dependent_objects:
        try:
            backups.append(
                await framework.backup_object(client, dependent, purpose="cascade_test")
            )
        except Exception as e:
            result.integrity_violations.append(
                f"Failed to backup dependent object {dependent.name}: {e}"
            )

    dialect = framework.dialect

    for dependent in test.dependent_objects:
        result.pre_delete_counts[dependent.identifier] = await dialect.count_related(
            client, dependent
        )

    try:
        await dialect.delete(client, primary)
    except Exception as e:
        logger.warning("Cascade test %s: delete failed: %s", test.test_name, e)
        result.error = f"Failed to delete primary object {primary.name}: {e}"
        return finish()

    for dependent in test.dependent_objects:
        result.post_delete_counts[dependent.identifier] = await dialect.count_related(
            client, dependent
        )

    for dependent in test.dependent_objects:
        before = result.pre_delete_counts[dependent.identifier]
        after = result.post_delete_counts[dependent.identifier]
        if before != after:
            result.cascade_executed = True
        if after > 0 and expected.expects_cascade_for(dependent.type):
            result.orphaned_resource_count += after
            result.orphaned_objects.append(dependent.name)
            result.orphaned_resources.append(
                OrphanedResource(
                    type=dependent.type,
                    name=dependent.name,
                    schema_name=dependent.schema_name,
                    database_name=dependent.database_name,
                    parent_name=primary.name,
                    orphaned_count=after,
                    severity=orphan_severity(after),
                )
            )
            result.integrity_violations.append(
                f"Found {after} orphaned {dependent.type} record(s) in {dependent.name}"
            )

    for backup in backups:
        try:
            summary = await framework.restore_object(client, backup)
        except Exception as e:
            result.integrity_violations.append(
                f"Failed to restore {backup.object_type} {backup.object_name}: {e}"
            )
            continue
        if summary.rows_failed:
            result.integrity_violations.append(
                f"Failed to restore {summary.rows_failed} row(s) of {backup.object_name}"
            )

    result.success = not result.integrity_violations and (
        result.orphaned_resource_count == 0 or not expected.orphan_prevention
    )
    logger.info(
        "Cascade test %s: success=%s cascade_executed=%s orphans=%d",
        test.test_name,
        result.success,
        result.cascade_executed,
        result.orphaned_resource_count,
    )
    return finish()


def result_recommendations(result: CascadeTestResult, test: CascadeDeleteTest) -> list[str]:
    """Advice for a single finished test."""
    recommendations: list[str] = []
    if result.error or not result.success:
        recommendations.append(
            "Review cascade delete implementation for compliance with expected behavior"
        )
    if result.orphaned_resources:
        recommendations.append(
            "Implement foreign key constraints with appropriate CASCADE options"
        )
        recommendations.append("Add orphaned resource cleanup procedures")
    if result.integrity_violations:
        recommendations.append(
            "Address data integrity violations before production deployment"
        )
    if not result.error and not result.cascade_executed and test.expected_behavior.should_cascade:
        recommendations.append("Enable CASCADE DELETE in foreign key constraints")
    return recommendations


class CascadeTestRunner:
    """Runs cascade-delete tests and aggregates their results.

    Args:
        framework: Framework to run the tests with.
    """

    def __init__(self, framework: "BackupIntegrityFramework") -> None:
        self.framework = framework
        self.results: list[CascadeTestResult] = []
        self.metrics = CascadeTestMetrics()

    async def run(self, client: DatabaseClient, test: CascadeDeleteTest) -> CascadeTestResult:
        result = await run_cascade_delete_test(self.framework, client, test)
        self.record(result)
        return result

    async def run_all(
        self, client: DatabaseClient, tests: list[CascadeDeleteTest]
    ) -> list[CascadeTestResult]:
        """Run *tests* one after another.  They mutate shared state, so never in parallel."""
        return [await self.run(client, test) for test in tests]

    def record(self, result: CascadeTestResult) -> None:
        """Add a finished result to the metrics."""
        self.results.append(result)
        metrics = self.metrics
        metrics.total_tests += 1
        metrics.total_duration += result.duration
        if result.success:
            metrics.passed_tests += 1
        else:
            metrics.failed_tests += 1
        metrics.orphaned_resources_found += len(result.orphaned_resources)
        metrics.integrity_violations += len(result.integrity_violations)
        metrics.average_duration = metrics.total_duration / metrics.total_tests

    def generate_report(self) -> CascadeTestReport:
        report = CascadeTestReport(
            provider_type=self.framework.provider_type,
            generated_at=datetime.now(timezone.utc),
            test_results=list(self.results),
            metrics=self.metrics.model_copy(),
            summary=self._summary(),
        )
        if self.metrics.total_tests:
            report.success_rate = self.metrics.passed_tests / self.metrics.total_tests * 100
        report.recommendations = self._recommendations(report.success_rate)
        return report

    def _summary(self) -> CascadeTestSummary:
        summary = CascadeTestSummary()
        for result in self.results:
            summary.total_orphans_found += len(result.orphaned_resources)
            summary.total_violations_found += len(result.integrity_violations)
            for orphan in result.orphaned_resources:
                if orphan.severity == "CRITICAL":
                    summary.critical_issues += 1
                elif orphan.severity == "HIGH":
                    summary.high_priority_issues += 1
                elif orphan.severity == "MEDIUM":
                    summary.medium_priority_issues += 1
                elif orphan.severity == "LOW":
                    summary.low_priority_issues += 1
        return summary

    def _recommendations(self, success_rate: float) -> list[str]:
        recommendations: list[str] = []
        if self.metrics.failed_tests:
            recommendations.append(
                "Address failed cascade delete tests before production deployment"
            )
        if self.metrics.orphaned_resources_found:
            recommendations.append(
                "Implement comprehensive orphaned resource detection and cleanup"
            )
        if self.metrics.integrity_violations:
            recommendations.append("Resolve all data integrity violations")
        if self.metrics.total_tests and success_rate < PASSING_SUCCESS_RATE:
            recommendations.append(
                "Improve cascade delete implementation to achieve >80% success rate"
            )
        return recommendations
