"""Pydantic models for object backups, validation, and integrity reports.

Usage:
    from db_safety.backup.models import ObjectReference, ValidationRules

    ref = ObjectReference(type="table", name="orders", schema_name="public")
    rules = ValidationRules(require_dependencies=True)

A reference may carry ``filters`` to scope a table to matching rows:

    ref = ObjectReference(
        type="table",
        name="order_items",
        schema_name="public",
        filters={"order_id": 42},
    )
"""

from datetime import datetime, timedelta
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Object references
# ============================================================================


class ObjectReference(BaseModel):
    """Caller-supplied handle to a live database object."""

    type: str                                       # table, view, function, index, ...
    name: str
    database_name: str = ""
    schema_name: str = ""
    identifier: str = ""                            # stable correlation key
    filters: dict[str, Any] | None = None           # row scope (tables only)

    @model_validator(mode="after")
    def _default_identifier(self) -> "ObjectReference":
        if not self.identifier:
            self.identifier = (
                f"{self.type}:{self.database_name}:{self.schema_name}:{self.name}"
            )
        return self

    @property
    def is_row_scoped(self) -> bool:
        """True when the reference targets matching rows, not the whole object."""
        return self.type == "table" and bool(self.filters)


# ============================================================================
# Validation policy and status
# ============================================================================


class ValidationRules(BaseModel):
    """Backup validation policy, fixed for the lifetime of a framework."""

    model_config = ConfigDict(frozen=True)

    require_definition: bool = True
    require_data_checksum: bool = True
    require_row_count: bool = True
    require_dependencies: bool = False
    allowable_data_loss: float = Field(default=0.01, ge=0.0, le=1.0)  # fraction
    max_backup_age: timedelta = timedelta(hours=24)
    require_encryption: bool = False
    require_compression: bool = False


class ValidationStatus(BaseModel):
    """Outcome of scoring a backup against ``ValidationRules``."""

    is_valid: bool = False
    definition_valid: bool = False
    data_valid: bool = False
    dependencies_valid: bool = False
    last_validated: datetime | None = None
    validation_score: float = 0.0                   # 0-100


# ============================================================================
# Per-type details (tagged on ``kind``)
# ============================================================================


class TableDetails(BaseModel):
    """Shape known for tables."""

    kind: Literal["table"] = "table"
    primary_key: list[str] = Field(default_factory=list)
    row_scope: dict[str, Any] | None = None


class ViewDetails(BaseModel):
    """Shape known for views."""

    kind: Literal["view"] = "view"
    base_tables: list[str] = Field(default_factory=list)


class FunctionDetails(BaseModel):
    """Shape known for functions."""

    kind: Literal["function"] = "function"
    language: str = ""


class IndexDetails(BaseModel):
    """Shape known for indexes."""

    kind: Literal["index"] = "index"
    table_name: str = ""


ObjectDetails = Annotated[
    TableDetails | ViewDetails | FunctionDetails | IndexDetails,
    Field(discriminator="kind"),
]


# ============================================================================
# Backup artifact
# ============================================================================


class BackupObject(BaseModel):
    """A validated snapshot of one database object."""

    id: str
    provider_type: str
    object_type: str
    object_name: str
    database_name: str = ""
    schema_name: str = ""
    definition: str = ""
    data_checksum: str = ""
    metadata_checksum: str = ""
    row_count: int | None = None                    # None = unknown
    data_size: int = 0
    dependencies: list[str] = Field(default_factory=list)
    backup_timestamp: datetime
    backup_version: str = "1.0"
    compression_type: str = "none"
    encryption_type: str = "none"
    validation_status: ValidationStatus = Field(default_factory=ValidationStatus)
    validation_errors: list[str] = Field(default_factory=list)
    collection_errors: list[str] = Field(default_factory=list)
    details: ObjectDetails | None = None
    rows: list[dict[str, Any]] | None = None        # snapshot for row-scoped tables
    purpose: Literal["backup", "cascade_test"] = "backup"
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_reference(self) -> ObjectReference:
        """Rebuild the reference this backup was taken from."""
        row_scope = None
        if isinstance(self.details, TableDetails):
            row_scope = self.details.row_scope
        return ObjectReference(
            type=self.object_type,
            name=self.object_name,
            database_name=self.database_name,
            schema_name=self.schema_name,
            filters=row_scope,
        )


# ============================================================================
# Framework bookkeeping
# ============================================================================


class FrameworkMetrics(BaseModel):
    """Aggregate counters kept by a ``BackupIntegrityFramework``."""

    total_backups: int = 0
    valid_backups: int = 0
    failed_backups: int = 0
    restores: int = 0
    failed_restores: int = 0


class RestoreSummary(BaseModel):
    """Result of replaying one backup."""

    object_type: str
    object_name: str
    definition_applied: bool = False
    rows_inserted: int = 0
    rows_skipped: int = 0
    rows_failed: int = 0

    @property
    def ok(self) -> bool:
        return self.definition_applied and self.rows_failed == 0


class DriftReport(BaseModel):
    """Differences between a stored backup and the live object."""

    object_type: str
    object_name: str
    definition_changed: bool = False
    data_changed: bool = False
    row_count_before: int | None = None
    row_count_now: int | None = None
    data_loss: float = 0.0                          # fraction of rows missing
    exceeds_allowable_loss: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return self.definition_changed or self.data_changed or self.exceeds_allowable_loss


# ============================================================================
# Integrity report
# ============================================================================


class ValidationFailure(BaseModel):
    """One backup that failed re-validation."""

    object_name: str
    object_type: str
    errors: list[str] = Field(default_factory=list)
    score: float = 0.0


class IntegrityReport(BaseModel):
    """Fleet-wide snapshot of every stored backup."""

    provider_type: str
    generated_at: datetime
    metrics: FrameworkMetrics = Field(default_factory=FrameworkMetrics)
    total_backups: int = 0
    valid_backups: int = 0
    invalid_backups: int = 0
    total_data_size: int = 0
    integrity_score: float = 0.0
    validation_failures: list[ValidationFailure] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
