"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_safety.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_safety.config.loader import load_db_config
from db_safety.config.models import (
    BackupSettings,
    ConnectionResult,
    DatabaseConfig,
    DatabaseProfile,
)

__all__ = [
    "load_db_config",
    "BackupSettings",
    "ConnectionResult",
    "DatabaseConfig",
    "DatabaseProfile",
]
