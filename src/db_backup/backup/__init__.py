"""Backup generation: configuration, assembly, row extraction, encoding.

Usage:
    from db_backup.backup import BackupConfig, generate_backup, serialize_backup

    data = await generate_backup(client, BackupConfig(format="sql"), "admin-1")
    artifact = serialize_backup(data)
"""

from db_backup.backup.assembler import (
    TableDiscoveryError,
    generate_backup,
    is_system_table,
    list_backup_tables,
)
from db_backup.backup.data import get_table_data, normalize_value
from db_backup.backup.models import (
    BACKUP_FORMAT_VERSION,
    BackupConfig,
    BackupData,
    BackupMetadata,
    BackupOptions,
    RawValue,
    TableBackupEntry,
)
from db_backup.backup.serializer import (
    SerializedBackup,
    backup_filename,
    parse_backup_json,
    serialize_backup,
)
from db_backup.backup.validation import BackupConfigError, validate_backup_config

__all__ = [
    "BACKUP_FORMAT_VERSION",
    "BackupConfig",
    "BackupOptions",
    "BackupData",
    "BackupMetadata",
    "TableBackupEntry",
    "RawValue",
    "BackupConfigError",
    "validate_backup_config",
    "TableDiscoveryError",
    "generate_backup",
    "list_backup_tables",
    "is_system_table",
    "get_table_data",
    "normalize_value",
    "SerializedBackup",
    "serialize_backup",
    "parse_backup_json",
    "backup_filename",
]
