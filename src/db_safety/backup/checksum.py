"""Deterministic digests for backup identity and metadata integrity."""

import hashlib

from db_safety.backup.models import ObjectReference


def generate_backup_id(ref: ObjectReference) -> str:
    """Return a short digest of ``type:database:schema:name``.

    The same reference always yields the same ID, so a later backup of the
    same object overwrites the earlier one.
    """
    key = f"{ref.type}:{ref.database_name}:{ref.schema_name}:{ref.name}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()[:12]


def compute_metadata_checksum(definition: str, object_type: str, object_name: str) -> str:
    """md5 over ``definition + object_type + object_name``.

    Must be recomputed whenever any of the three inputs changes.  Data
    checksums and timestamps never feed into it.
    """
    hasher = hashlib.md5()
    hasher.update(definition.encode("utf-8"))
    hasher.update(object_type.encode("utf-8"))
    hasher.update(object_name.encode("utf-8"))
    return hasher.hexdigest()
