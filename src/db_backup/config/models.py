"""Pydantic models for database and backup configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: Literal["postgres", "supabase"] = "postgres"
    supabase_key: str | None = None  # Service key, supabase provider only


class BackupSettings(BaseModel):
    """``[backup]`` section of db.toml."""

    schema_name: str = "public"
    max_concurrency: int = Field(default=4, ge=1)
    timestamp_column: str = "created_at"
    output_dir: str = "backups"
    file_prefix: str = "db"
    excluded_tables: list[str] = Field(default_factory=list)


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    backup: BackupSettings = Field(default_factory=BackupSettings)
