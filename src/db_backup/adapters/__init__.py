"""Backup client adapters package.

Provides the ``BackupClient`` Protocol and concrete async implementations
for PostgreSQL and (optionally) Supabase.

``AsyncSupabaseAdapter`` is only available when the ``supabase`` extra
is installed.  A missing ``supabase`` dependency does not prevent
importing the rest of the package.

Usage:
    from db_backup.adapters import BackupClient, AsyncPostgresAdapter

    # With supabase extra installed:
    from db_backup.adapters import AsyncSupabaseAdapter
"""

from db_backup.adapters.base import (
    BackupClient,
    CatalogClient,
    CatalogQueryError,
    InvalidIdentifierError,
    MissingColumnError,
    RowDataClient,
    quote_ident,
    validate_identifier,
)
from db_backup.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "BackupClient",
    "CatalogClient",
    "RowDataClient",
    "CatalogQueryError",
    "MissingColumnError",
    "InvalidIdentifierError",
    "quote_ident",
    "validate_identifier",
    "AsyncPostgresAdapter",
]

try:
    from db_backup.adapters.supabase import AsyncSupabaseAdapter

    __all__.append("AsyncSupabaseAdapter")
except ImportError:
    # supabase extra not installed -- AsyncSupabaseAdapter unavailable
    pass
