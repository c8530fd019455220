"""Backup persistence.

``BackupStore`` is the Protocol the framework depends on.
``JsonFileBackupStore`` is the default backing: one pretty-printed JSON file
per object at ``<directory>/<provider>_<objectType>_<objectName>.json``.

There is no locking and no versioning.  Saving the same key again
overwrites the file in place, and concurrent writers to one key may
interleave.

Usage:
    from db_safety.backup.store import JsonFileBackupStore

    store = JsonFileBackupStore("backups")
    path = store.save(backup)
    backups = store.load_all()
"""

import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from db_safety.backup.models import BackupObject
from db_safety.errors import BackupStoreError

logger = logging.getLogger(__name__)


class BackupStore(Protocol):
    """Storage interface for ``BackupObject`` artifacts."""

    def path_for(self, provider_type: str, object_type: str, object_name: str) -> Path:
        ...

    def save(self, backup: BackupObject) -> Path:
        ...

    def load_all(self) -> list[BackupObject]:
        ...

    def load(self, provider_type: str, object_type: str, object_name: str) -> BackupObject:
        ...

    def delete(self, backup: BackupObject) -> None:
        ...


class JsonFileBackupStore:
    """File-per-object JSON store in a local directory.

    Args:
        directory: Directory holding the backup files.  Created on first
            save.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, provider_type: str, object_type: str, object_name: str) -> Path:
        """Return the file path for a backup key."""
        return self.directory / f"{provider_type}_{object_type}_{object_name}.json"

    def save(self, backup: BackupObject) -> Path:
        """Write a backup as indented JSON, replacing any previous file.

        Raises:
            BackupStoreError: If the directory or file cannot be written.
        """
        path = self.path_for(backup.provider_type, backup.object_type, backup.object_name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(backup.model_dump_json(indent=2))
        except OSError as e:
            raise BackupStoreError(f"Failed to write backup {path}: {e}") from e
        logger.debug("Saved backup %s to %s", backup.id, path)
        return path

    def load(self, provider_type: str, object_type: str, object_name: str) -> BackupObject:
        """Read one backup by key.

        Raises:
            BackupStoreError: If the file is missing or not a valid backup.
        """
        path = self.path_for(provider_type, object_type, object_name)
        return self.load_file(path)

    def load_file(self, path: str | Path) -> BackupObject:
        """Read one backup from an explicit path.

        Raises:
            BackupStoreError: If the file is missing or not a valid backup.
        """
        path = Path(path)
        try:
            return BackupObject.model_validate_json(path.read_text())
        except FileNotFoundError as e:
            raise BackupStoreError(f"Backup file not found: {path}") from e
        except (OSError, ValidationError) as e:
            raise BackupStoreError(f"Invalid backup file {path}: {e}") from e

    def load_all(self) -> list[BackupObject]:
        """Read every ``*.json`` backup in the directory.

        Files that cannot be read or parsed are skipped and logged, not
        reported as errors.

        Raises:
            BackupStoreError: If the directory does not exist.
        """
        if not self.directory.is_dir():
            raise BackupStoreError(f"Backup directory not found: {self.directory}")

        backups: list[BackupObject] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                backups.append(BackupObject.model_validate_json(path.read_text()))
            except (OSError, ValidationError) as e:
                logger.warning("Skipping unreadable backup %s: %s", path.name, e)
        return backups

    def delete(self, backup: BackupObject) -> None:
        """Remove a backup's file if present."""
        path = self.path_for(backup.provider_type, backup.object_type, backup.object_name)
        path.unlink(missing_ok=True)
