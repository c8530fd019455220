"""Cascade-delete test harness and models."""

from db_safety.cascade.harness import CascadeTestRunner, run_cascade_delete_test
from db_safety.cascade.models import (
    CascadeBehavior,
    CascadeDeleteTest,
    CascadeTestMetrics,
    CascadeTestReport,
    CascadeTestResult,
    CascadeTestSummary,
    OrphanedResource,
    orphan_severity,
)

__all__ = [
    "CascadeBehavior",
    "CascadeDeleteTest",
    "CascadeTestMetrics",
    "CascadeTestReport",
    "CascadeTestResult",
    "CascadeTestRunner",
    "CascadeTestSummary",
    "OrphanedResource",
    "orphan_severity",
    "run_cascade_delete_test",
]
