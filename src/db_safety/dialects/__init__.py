"""Provider dialects.

``get_dialect`` selects the dialect once per framework instance from the
provider type.

Usage:
    from db_safety.dialects import get_dialect

    dialect = get_dialect("postgres")
    ddl = await dialect.get_definition(client, ref)
"""

from db_safety.dialects.base import BaseDialect, DataInfo, Dialect, check_identifier
from db_safety.dialects.mysql import MySQLDialect
from db_safety.dialects.postgres import PostgresDialect
from db_safety.errors import UnsupportedProviderError

_DIALECTS: dict[str, type] = {
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "mysql": MySQLDialect,
}


def register_dialect(provider_type: str, dialect_class: type) -> None:
    """Register a dialect class for a provider type (replaces any existing)."""
    _DIALECTS[provider_type.lower()] = dialect_class


def supported_providers() -> list[str]:
    return sorted(_DIALECTS)


def get_dialect(provider_type: str) -> Dialect:
    """Return a dialect instance for *provider_type*.

    Raises:
        UnsupportedProviderError: If no dialect is registered.
    """
    dialect_class = _DIALECTS.get(provider_type.lower())
    if dialect_class is None:
        raise UnsupportedProviderError(provider_type)
    return dialect_class()


__all__ = [
    "BaseDialect",
    "DataInfo",
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "check_identifier",
    "get_dialect",
    "register_dialect",
    "supported_providers",
]
