"""db-backup: structure and data backups of a PostgreSQL schema.

Introspects a schema through an injected async client, extracts table
structure, row data, RLS policies, triggers, functions and extensions,
and encodes the result as JSON or a restorable SQL script.

Usage:
    from db_backup import BackupConfig, generate_backup, get_adapter, serialize_backup
    from db_backup import BackupDiagnostics, load_db_config
"""

__version__ = "0.1.0"

# Adapters
from db_backup.adapters.base import (
    BackupClient,
    CatalogQueryError,
    InvalidIdentifierError,
    MissingColumnError,
)
from db_backup.adapters.postgres import AsyncPostgresAdapter

# Config
from db_backup.config.loader import load_db_config
from db_backup.config.models import BackupSettings, DatabaseConfig, DatabaseProfile

# Factory
from db_backup.factory import ProfileNotFoundError, get_adapter, resolve_url

# Backup
from db_backup.backup.assembler import (
    TableDiscoveryError,
    generate_backup,
    list_backup_tables,
)
from db_backup.backup.models import BackupConfig, BackupData, BackupOptions
from db_backup.backup.serializer import (
    SerializedBackup,
    parse_backup_json,
    serialize_backup,
)
from db_backup.backup.validation import BackupConfigError, validate_backup_config
from db_backup.diagnostics import BackupDiagnostics

__all__ = [
    # Adapters
    "BackupClient",
    "AsyncPostgresAdapter",
    "CatalogQueryError",
    "MissingColumnError",
    "InvalidIdentifierError",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    "BackupSettings",
    # Factory
    "get_adapter",
    "ProfileNotFoundError",
    "resolve_url",
    # Backup
    "BackupConfig",
    "BackupOptions",
    "BackupData",
    "BackupConfigError",
    "validate_backup_config",
    "TableDiscoveryError",
    "generate_backup",
    "list_backup_tables",
    "SerializedBackup",
    "serialize_backup",
    "parse_backup_json",
    "BackupDiagnostics",
]

# Optional: AsyncSupabaseAdapter (only available with supabase extra)
try:
    from db_backup.adapters.supabase import AsyncSupabaseAdapter

    __all__.append("AsyncSupabaseAdapter")
except ImportError:
    # supabase extra not installed -- AsyncSupabaseAdapter unavailable
    pass
