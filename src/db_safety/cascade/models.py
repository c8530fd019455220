"""Pydantic models for cascade-delete tests.

A ``CascadeDeleteTest`` names a primary object to delete and the dependent
objects whose counts are observed before and after.  Row-scoped references
(``filters``) test a single parent row and its children:

    test = CascadeDeleteTest(
        test_name="orders cascade to items",
        primary_object=ObjectReference(
            type="table", name="orders", schema_name="public", filters={"id": 42}
        ),
        dependent_objects=[
            ObjectReference(
                type="table",
                name="order_items",
                schema_name="public",
                filters={"order_id": 42},
            ),
        ],
        expected_behavior=CascadeBehavior(should_cascade=True, orphan_prevention=True),
    )
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from db_safety.backup.models import ObjectReference

Severity = Literal["NONE", "LOW", "MEDIUM", "HIGH", "CRITICAL"]


def orphan_severity(count: int) -> Severity:
    """Severity band for a number of orphaned rows or objects."""
    if count == 0:
        return "NONE"
    if count < 10:
        return "LOW"
    if count < 100:
        return "MEDIUM"
    if count < 1000:
        return "HIGH"
    return "CRITICAL"


class CascadeBehavior(BaseModel):
    """What the caller expects the delete to do."""

    should_cascade: bool = False
    cascade_types: list[str] = Field(default_factory=list)  # empty = every type
    orphan_prevention: bool = False
    transaction_support: bool = False

    def expects_cascade_for(self, object_type: str) -> bool:
        """True when dependents of *object_type* should disappear with the primary."""
        if not self.should_cascade:
            return False
        return not self.cascade_types or object_type in self.cascade_types


class CascadeDeleteTest(BaseModel):
    """One cascade-delete scenario."""

    test_name: str
    primary_object: ObjectReference
    dependent_objects: list[ObjectReference] = Field(default_factory=list)
    expected_behavior: CascadeBehavior = Field(default_factory=CascadeBehavior)


class OrphanedResource(BaseModel):
    """A dependent that outlived a delete expected to cascade to it."""

    type: str
    name: str
    schema_name: str = ""
    database_name: str = ""
    parent_name: str = ""
    orphaned_count: int = 0
    severity: Severity = "NONE"


class CascadeTestResult(BaseModel):
    """Outcome of a cascade-delete test.  Failures are data, never raised."""

    test_name: str
    success: bool = False
    cascade_executed: bool = False
    orphaned_resource_count: int = 0
    orphaned_objects: list[str] = Field(default_factory=list)
    orphaned_resources: list[OrphanedResource] = Field(default_factory=list)
    integrity_violations: list[str] = Field(default_factory=list)
    pre_delete_counts: dict[str, int] = Field(default_factory=dict)
    post_delete_counts: dict[str, int] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
    duration: float = 0.0                           # seconds
    error: str = ""


class CascadeTestMetrics(BaseModel):
    """Counters over every test recorded by a ``CascadeTestRunner``."""

    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    orphaned_resources_found: int = 0
    integrity_violations: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0


class CascadeTestSummary(BaseModel):
    """Orphan counts by severity across all recorded tests."""

    total_orphans_found: int = 0
    total_violations_found: int = 0
    critical_issues: int = 0
    high_priority_issues: int = 0
    medium_priority_issues: int = 0
    low_priority_issues: int = 0


class CascadeTestReport(BaseModel):
    """Aggregate report over a batch of cascade-delete tests."""

    provider_type: str
    generated_at: datetime
    test_results: list[CascadeTestResult] = Field(default_factory=list)
    metrics: CascadeTestMetrics = Field(default_factory=CascadeTestMetrics)
    success_rate: float = 0.0
    summary: CascadeTestSummary = Field(default_factory=CascadeTestSummary)
    recommendations: list[str] = Field(default_factory=list)
