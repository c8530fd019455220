"""db-safety: Backup integrity and cascade-delete safety for SQL databases.

Backs up individual database objects with content checksums, scores each
backup's completeness and freshness, restores objects from backup, and runs
cascade-delete tests that delete, observe and restore.

Usage:
    from db_safety import BackupIntegrityFramework, ObjectReference, get_adapter
    from db_safety import CascadeDeleteTest, CascadeBehavior, CascadeTestRunner
    from db_safety import ValidationRules, load_db_config
"""

__version__ = "0.1.0"

# Adapters
from db_safety.adapters.base import DatabaseClient
from db_safety.adapters.postgres import AsyncPostgresAdapter

# Backup
from db_safety.backup.models import (
    BackupObject,
    IntegrityReport,
    ObjectReference,
    ValidationRules,
    ValidationStatus,
)
from db_safety.backup.store import BackupStore, JsonFileBackupStore

# Cascade
from db_safety.cascade import (
    CascadeBehavior,
    CascadeDeleteTest,
    CascadeTestResult,
    CascadeTestRunner,
)

# Config
from db_safety.config.loader import load_db_config
from db_safety.config.models import DatabaseConfig, DatabaseProfile

# Dialects
from db_safety.dialects import get_dialect

# Errors
from db_safety.errors import SafetyError

# Factory
from db_safety.factory import (
    ProfileNotFoundError,
    connect,
    create_framework,
    get_adapter,
    resolve_url,
)

# Framework
from db_safety.framework import BackupIntegrityFramework

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncPostgresAdapter",
    # Backup
    "BackupObject",
    "BackupStore",
    "IntegrityReport",
    "JsonFileBackupStore",
    "ObjectReference",
    "ValidationRules",
    "ValidationStatus",
    # Cascade
    "CascadeBehavior",
    "CascadeDeleteTest",
    "CascadeTestResult",
    "CascadeTestRunner",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    # Dialects
    "get_dialect",
    # Errors
    "SafetyError",
    # Factory
    "get_adapter",
    "connect",
    "create_framework",
    "ProfileNotFoundError",
    "resolve_url",
    # Framework
    "BackupIntegrityFramework",
]

# Optional: AsyncMySQLAdapter (only available with mysql extra)
try:
    from db_safety.adapters.mysql import AsyncMySQLAdapter

    __all__.append("AsyncMySQLAdapter")
except ImportError:
    # mysql extra not installed -- AsyncMySQLAdapter unavailable
    pass
