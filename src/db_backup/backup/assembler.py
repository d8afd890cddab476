"""Backup assembly: resolve tables, extract per table, merge into one document.

Per-table isolation is the central property: any exception raised while
processing one table is logged, recorded in the optional diagnostics
collector, and that table is left out of the document.  The run continues
with the remaining tables.  Only an invalid configuration or a failed table
discovery on a ``full`` run fails the whole operation.

Tables are processed by a bounded pool of asyncio workers.  Workers share
no mutable state except the result dict, and the final ``tables`` mapping
is ordered by table name regardless of completion order.

Usage:
    from db_backup.backup.assembler import generate_backup
    from db_backup.backup.models import BackupConfig, BackupOptions

    config = BackupConfig(scope="full", options=BackupOptions(include_data=False))
    data = await generate_backup(client, config, requested_by="admin-1")
    print(data.table_count)
"""

import asyncio
import logging
from datetime import datetime, timezone

from db_backup.adapters.base import BackupClient, validate_identifier
from db_backup.backup.data import DEFAULT_TIMESTAMP_COLUMN, get_table_data
from db_backup.backup.models import (
    BACKUP_FORMAT_VERSION,
    BackupConfig,
    BackupData,
    BackupMetadata,
    TableBackupEntry,
)
from db_backup.backup.validation import (
    BackupConfigError,
    resolve_date_bounds,
    validate_backup_config,
)
from db_backup.diagnostics import BackupDiagnostics
from db_backup.schema.introspector import SchemaIntrospector, TableNotFoundError
from db_backup.schema.models import TriggerInfo

logger = logging.getLogger(__name__)

# Platform bookkeeping tables, never part of a backup
EXCLUDED_TABLES = frozenset(
    {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }
)
EXCLUDED_PREFIXES = ("_", "supabase_")

DEFAULT_MAX_CONCURRENCY = 4


class TableDiscoveryError(RuntimeError):
    """Raised when a full-scope run cannot enumerate the schema's tables."""

    pass


def is_system_table(name: str, extra_excluded: frozenset[str] | set[str] = frozenset()) -> bool:
    """True if ``name`` is reserved by the platform or a migration tool.

    Example:
        >>> is_system_table("supabase_functions")
        True
        >>> is_system_table("posts")
        False
    """
    return (
        name in EXCLUDED_TABLES
        or name in extra_excluded
        or name.startswith(EXCLUDED_PREFIXES)
    )


async def list_backup_tables(
    client: BackupClient,
    schema_name: str = "public",
    extra_excluded: frozenset[str] | set[str] = frozenset(),
) -> list[str]:
    """Discover the tables a full backup would cover, sorted by name.

    Raises:
        TableDiscoveryError: If the catalog cannot be queried.
    """
    introspector = SchemaIntrospector(client, schema_name=schema_name)
    try:
        discovered = await introspector.discover_tables()
    except Exception as e:
        raise TableDiscoveryError(f"Error discovering tables: {e}") from e
    return sorted(t for t in discovered if not is_system_table(t, extra_excluded))


def _resolve_selective(tables: list[str]) -> list[str]:
    """Deduplicate selective table names, keeping first occurrence."""
    resolved: list[str] = []
    for name in tables:
        if name not in resolved:
            resolved.append(name)
    return resolved


async def generate_backup(
    client: BackupClient,
    config: BackupConfig,
    requested_by: str,
    *,
    schema_name: str = "public",
    timestamp_column: str = DEFAULT_TIMESTAMP_COLUMN,
    extra_excluded: frozenset[str] | set[str] = frozenset(),
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    diagnostics: BackupDiagnostics | None = None,
) -> BackupData:
    """Generate a backup document according to ``config``.

    Steps:
    1. Validate ``config`` (no catalog call is made if it is invalid).
    2. Resolve tables: discovery minus system tables (``full``), or
       ``config.tables`` as given (``selective``).
    3. Per table, isolated: structure, data and policies as enabled.
    4. Extensions once, if enabled.
    5. Functions once and triggers per table, if enabled.
    6. Stamp metadata.

    Args:
        client: Injected catalog + row data client.
        config: What to back up.
        requested_by: Identity recorded as ``metadata.generated_by``.
        schema_name: Schema to back up.
        timestamp_column: Column ``date_from``/``date_to`` apply to.
        extra_excluded: Additional table names to treat as system tables.
        max_concurrency: Tables processed at once (``1`` = sequential).
        diagnostics: Optional collector for skipped tables and degraded
            facets.

    Returns:
        The assembled ``BackupData``.

    Raises:
        BackupConfigError: If ``config`` is invalid.
        TableDiscoveryError: If a ``full`` run cannot list tables.

    Example:
        diagnostics = BackupDiagnostics()
        data = await generate_backup(
            client, config, "admin-1", diagnostics=diagnostics
        )
        if diagnostics.skipped_tables:
            logger.warning("Skipped: %s", list(diagnostics.skipped_tables))
    """
    report = validate_backup_config(config)
    if not report["valid"]:
        raise BackupConfigError(report["errors"])

    validate_identifier(schema_name)
    date_from, date_to = resolve_date_bounds(config)
    options = config.options
    introspector = SchemaIntrospector(client, schema_name=schema_name, diagnostics=diagnostics)

    # Resolve the table set
    if config.scope == "full":
        tables = await list_backup_tables(client, schema_name, extra_excluded)
    else:
        tables = _resolve_selective(config.tables)

    logger.info(
        "Starting %s backup of %d table(s) for %s", config.scope, len(tables), requested_by
    )

    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    entries: dict[str, TableBackupEntry] = {}

    async def backup_table(table: str) -> None:
        async with semaphore:
            try:
                validate_identifier(table)
                entry = TableBackupEntry()

                if options.include_structure:
                    entry.structure = await introspector.get_table_structure(
                        table, include_indexes=options.include_indexes
                    )

                if options.include_data:
                    entry.data = await get_table_data(
                        client,
                        table,
                        date_from,
                        date_to,
                        schema_name=schema_name,
                        timestamp_column=timestamp_column,
                        diagnostics=diagnostics,
                    )

                if not (options.include_structure or options.include_data):
                    # Nothing above touched the table itself
                    if not await introspector.table_exists(table):
                        raise TableNotFoundError(f"Table {schema_name}.{table} not found")

                if options.include_rls:
                    entry.policies = await introspector.get_rls_policies(table)

                entries[table] = entry
            except Exception as e:
                logger.warning("Error processing table %s: %s", table, e)
                if diagnostics is not None:
                    diagnostics.record_skip(table, e)

    await asyncio.gather(*(backup_table(t) for t in tables))

    backup = BackupData(
        metadata=BackupMetadata(
            generated_at=datetime.now(timezone.utc),
            generated_by=requested_by,
            version=BACKUP_FORMAT_VERSION,
            config=config,
        ),
        tables={name: entries[name] for name in sorted(entries)},
    )

    if options.include_extensions:
        backup.extensions = await introspector.get_extensions()

    if options.include_triggers:
        backup.functions = await introspector.get_functions()
        backup.triggers = await _collect_triggers(introspector, tables, semaphore)

    logger.info(
        "Backup assembled: %d of %d table(s) included", backup.table_count, len(tables)
    )
    return backup


async def _collect_triggers(
    introspector: SchemaIntrospector,
    tables: list[str],
    semaphore: asyncio.Semaphore,
) -> list[TriggerInfo]:
    """Collect triggers for every resolved table, flattened in table order."""

    async def triggers_for(table: str) -> list[TriggerInfo]:
        async with semaphore:
            try:
                validate_identifier(table)
                return await introspector.get_triggers(table)
            except Exception as e:
                logger.warning("Error getting triggers for %s: %s", table, e)
                return []

    per_table = await asyncio.gather(*(triggers_for(t) for t in sorted(tables)))
    return [trigger for triggers in per_table for trigger in triggers]
