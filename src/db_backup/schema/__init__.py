"""Catalog introspection for backups.

Provides ``SchemaIntrospector`` (table discovery, structure, policies,
triggers, functions, extensions) and the pydantic models it returns.

Usage:
    from db_backup.schema import SchemaIntrospector, TableMetadata
"""

from db_backup.schema.introspector import (
    PLATFORM_EXTENSIONS,
    SchemaIntrospector,
    TableNotFoundError,
)
from db_backup.schema.models import (
    ColumnInfo,
    ForeignKeyInfo,
    FunctionInfo,
    IndexInfo,
    RLSPolicy,
    TableMetadata,
    TriggerInfo,
)

__all__ = [
    "SchemaIntrospector",
    "TableNotFoundError",
    "PLATFORM_EXTENSIONS",
    "ColumnInfo",
    "ForeignKeyInfo",
    "IndexInfo",
    "TableMetadata",
    "RLSPolicy",
    "TriggerInfo",
    "FunctionInfo",
]
