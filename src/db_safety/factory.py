"""Database client and framework factory.

Profiles live in ``db.toml`` in the working directory.  The active profile
comes from the ``<PREFIX>DB_PROFILE`` environment variable or from the
``.db-profile`` lock file written by a successful ``connect()``.

Usage:
    >>> from db_safety.factory import connect, get_adapter, create_framework
    >>> result = await connect("local")
    >>> adapter = await get_adapter()
    >>> framework = create_framework()
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from db_safety.adapters.base import DatabaseClient
from db_safety.adapters.postgres import AsyncPostgresAdapter
from db_safety.config.loader import load_db_config
from db_safety.config.models import ConnectionResult, DatabaseConfig, DatabaseProfile
from db_safety.errors import SafetyError, UnsupportedProviderError
from db_safety.framework import BackupIntegrityFramework

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(SafetyError):
    """Raised when no database profile is configured."""


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection test.
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var
    2. .db-profile file (profile from previous connect)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for the environment variable, e.g. ``"APP_"``
            reads ``APP_DB_PROFILE``.

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_prefix}DB_PROFILE=<name> db-safety connect\n"
        "or:  db-safety connect <name>"
    )


def get_active_profile(
    env_prefix: str = "",
    config: DatabaseConfig | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in db.toml
    """
    return _lookup_profile(None, env_prefix, config)


def _lookup_profile(
    profile_name: str | None,
    env_prefix: str = "",
    config: DatabaseConfig | None = None,
) -> tuple[str, DatabaseProfile]:
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    config = config or load_db_config()

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    The password is URL-encoded before it replaces ``[YOUR-PASSWORD]``.
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Adapter Factory
# ============================================================================


def _provider_for_url(database_url: str) -> str:
    if database_url.startswith("mysql"):
        return "mysql"
    return "postgres"


def _create_adapter(
    provider: str,
    database_url: str,
    jsonb_columns: list[str] | None = None,
) -> DatabaseClient:
    provider = provider.lower()
    if provider in ("postgres", "postgresql"):
        return AsyncPostgresAdapter(database_url=database_url, jsonb_columns=jsonb_columns)
    if provider == "mysql":
        try:
            from db_safety.adapters.mysql import AsyncMySQLAdapter
        except ImportError as e:
            raise ImportError(
                "MySQL support requires the mysql extra: pip install 'db-safety[mysql]'"
            ) from e
        return AsyncMySQLAdapter(database_url=database_url)
    raise UnsupportedProviderError(provider)


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    jsonb_columns: list[str] | None = None,
) -> DatabaseClient:
    """Create a new database adapter.  Adapters are never cached.

    Args:
        profile_name: Profile from db.toml.  Defaults to the active profile.
        env_prefix: Prefix for the ``DB_PROFILE`` environment variable.
        database_url: Direct connection URL; bypasses profiles.  The
            provider is inferred from the scheme.
        jsonb_columns: JSONB columns for PostgreSQL adapters.  Defaults to
            the profile's ``jsonb_columns``.

    Raises:
        ProfileNotFoundError: If no profile is configured
        KeyError: If the profile is not in db.toml
        UnsupportedProviderError: If the profile's provider is unknown
    """
    if database_url is not None:
        return _create_adapter(_provider_for_url(database_url), database_url, jsonb_columns)

    profile_name, profile = _lookup_profile(profile_name, env_prefix)

    logger.debug("Creating %s adapter for profile %s", profile.provider, profile_name)
    return _create_adapter(
        profile.provider,
        resolve_url(profile),
        jsonb_columns if jsonb_columns is not None else profile.jsonb_columns,
    )


async def connect(profile_name: str | None = None, env_prefix: str = "") -> ConnectionResult:
    """Test a profile's connection and lock it as the active profile.

    Example:
        >>> result = await connect("local")
        >>> if not result.success:
        ...     print(result.error)
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    try:
        config = load_db_config()
    except FileNotFoundError as e:
        return ConnectionResult(success=False, error=str(e))

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys())
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Profile '{profile_name}' not found. Available: {available}",
        )
    profile = config.profiles[profile_name]

    try:
        adapter = _create_adapter(profile.provider, resolve_url(profile))
        try:
            await adapter.test_connection()
        finally:
            await adapter.close()
    except Exception as e:
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            provider=profile.provider,
            error=f"Failed to connect to database: {e}",
        )

    write_profile_lock(profile_name)
    return ConnectionResult(success=True, profile_name=profile_name, provider=profile.provider)


# ============================================================================
# Framework Factory
# ============================================================================


def create_framework(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: DatabaseConfig | None = None,
) -> BackupIntegrityFramework:
    """Build a framework from db.toml settings for a profile.

    The provider comes from the profile; backup directory and validation
    rules from the ``[backup]`` and ``[validation]`` sections.
    """
    config = config or load_db_config()
    _, profile = _lookup_profile(profile_name, env_prefix, config)

    return BackupIntegrityFramework(
        provider_type=profile.provider,
        backup_directory=config.backup.directory,
        rules=config.validation,
    )
