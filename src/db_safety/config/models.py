"""Pydantic models for db.toml configuration."""

from pydantic import BaseModel, Field

from db_safety.backup.models import ValidationRules


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"  # postgres or mysql
    jsonb_columns: list[str] = Field(default_factory=list)


class BackupSettings(BaseModel):
    """The ``[backup]`` section of db.toml."""

    directory: str = "backups"
    include_transient: bool = True  # count cascade-test backups in reports


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    backup: BackupSettings = Field(default_factory=BackupSettings)
    validation: ValidationRules = Field(default_factory=ValidationRules)


class ConnectionResult(BaseModel):
    """Result of ``connect()``."""

    success: bool
    profile_name: str | None = None
    provider: str | None = None
    error: str | None = None
