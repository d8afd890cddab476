"""Configuration loading from db.toml."""

import tomllib
from pathlib import Path

from db_backup.config.models import BackupSettings, DatabaseConfig, DatabaseProfile


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ./db.toml in the current
            working directory)

    Returns:
        DatabaseConfig with all profiles and backup settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If a profile or the backup section is invalid

    Example:
        >>> config = load_db_config(Path("db.toml"))
        >>> config.backup.schema_name
        'public'
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create a db.toml with at least one [profiles.<name>] section."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    profiles = {
        name: DatabaseProfile(**profile_data)
        for name, profile_data in data.get("profiles", {}).items()
    }

    return DatabaseConfig(
        profiles=profiles,
        backup=BackupSettings(**data.get("backup", {})),
    )
