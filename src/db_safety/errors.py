"""Exception hierarchy for backup, restore, and cascade testing.

Fatal conditions raise one of these exceptions.  Soft degradation (a failed
checksum query, a dependent that could not be backed up) is recorded on the
``BackupObject`` or ``CascadeTestResult`` instead.
"""


class SafetyError(Exception):
    """Base class for all db-safety errors."""


class UnsupportedProviderError(SafetyError):
    """Raised when no dialect is registered for a provider type."""

    def __init__(self, provider_type: str) -> None:
        self.provider_type = provider_type
        super().__init__(f"Unsupported provider type: {provider_type}")


class UnsupportedObjectTypeError(SafetyError):
    """Raised when an operation does not support the object's type."""

    def __init__(self, object_type: str, operation: str, provider_type: str = "") -> None:
        self.object_type = object_type
        self.operation = operation
        self.provider_type = provider_type
        prefix = f"{provider_type} " if provider_type else ""
        super().__init__(
            f"Unsupported {prefix}object type for {operation}: {object_type}"
        )


class ObjectNotFoundError(SafetyError):
    """Raised when introspection finds no object matching a reference."""


class DefinitionLookupError(SafetyError):
    """Raised when an object's DDL definition could not be reconstructed."""


class BackupStoreError(SafetyError):
    """Raised when a backup cannot be written to or read from the store."""


class InvalidBackupError(SafetyError):
    """Raised when restoring a backup whose validation status is not valid."""


class RestoreError(SafetyError):
    """Raised when replaying a backup's definition against the database fails."""
