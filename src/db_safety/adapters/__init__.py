"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and concrete async adapter
implementations for PostgreSQL and (optionally) MySQL.

``AsyncMySQLAdapter`` is only available when the ``mysql`` extra is
installed.  A missing ``aiomysql`` dependency does not prevent importing
the rest of the package.

Usage:
    from db_safety.adapters import DatabaseClient, AsyncPostgresAdapter

    # With mysql extra installed:
    from db_safety.adapters import AsyncMySQLAdapter
"""

from db_safety.adapters.base import DatabaseClient
from db_safety.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "AsyncPostgresAdapter",
]

try:
    from db_safety.adapters.mysql import AsyncMySQLAdapter

    __all__.append("AsyncMySQLAdapter")
except ImportError:
    # mysql extra not installed -- AsyncMySQLAdapter unavailable
    pass
