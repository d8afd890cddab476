"""Configuration management: profiles, backup settings, TOML loading.

Usage:
    >>> from db_backup.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_backup.config.loader import load_db_config
from db_backup.config.models import BackupSettings, DatabaseConfig, DatabaseProfile

__all__ = ["load_db_config", "BackupSettings", "DatabaseConfig", "DatabaseProfile"]
