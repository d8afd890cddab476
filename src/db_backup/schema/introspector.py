"""PostgreSQL catalog introspection for backups.

This module queries the live database through an injected client to extract:
- Tables in the working schema
- Columns (ordinal order), primary keys, foreign keys, non-primary indexes
- Row-level security policies
- Triggers (full ``CREATE TRIGGER`` text) and functions (full definitions)
- Installed extensions

Every catalog query is parameterized (``:schema_name``, ``:table_name``).
Optional facets (keys, indexes, policies, triggers, functions, extensions)
degrade to an empty list when their query fails; only column retrieval and
table discovery propagate errors.

Usage:
    introspector = SchemaIntrospector(client)
    tables = await introspector.discover_tables()
    structure = await introspector.get_table_structure("posts")
    policies = await introspector.get_rls_policies("posts")
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from db_backup.adapters.base import BackupClient
from db_backup.diagnostics import BackupDiagnostics
from db_backup.schema.models import (
    ColumnInfo,
    ForeignKeyInfo,
    FunctionInfo,
    IndexInfo,
    RLSPolicy,
    TableMetadata,
    TriggerInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Extensions every PostgreSQL database has; never a deliberate backup choice.
PLATFORM_EXTENSIONS = frozenset({"plpgsql"})


class TableNotFoundError(LookupError):
    """Raised when a table has no columns in the catalog."""

    pass


# ============================================================================
# Catalog queries
# ============================================================================

TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = :schema_name
      AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

TABLE_EXISTS_QUERY = """
    SELECT c.relname AS table_name
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = :schema_name
      AND c.relname = :table_name
      AND c.relkind IN ('r', 'p')
"""

COLUMNS_QUERY = """
    SELECT
        a.attname AS name,
        pg_catalog.format_type(a.atttypid, a.atttypmod) AS type,
        NOT a.attnotnull AS nullable,
        pg_get_expr(d.adbin, d.adrelid) AS default_value
    FROM pg_attribute a
    JOIN pg_class c ON c.oid = a.attrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
    WHERE n.nspname = :schema_name
      AND c.relname = :table_name
      AND a.attnum > 0
      AND NOT a.attisdropped
    ORDER BY a.attnum
"""

PRIMARY_KEYS_QUERY = """
    SELECT a.attname AS column_name
    FROM pg_index i
    JOIN pg_class c ON c.oid = i.indrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN LATERAL unnest(i.indkey) WITH ORDINALITY AS k(attnum, ordinality) ON TRUE
    JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
    WHERE n.nspname = :schema_name
      AND c.relname = :table_name
      AND i.indisprimary
    ORDER BY k.ordinality
"""

FOREIGN_KEYS_QUERY = """
    SELECT
        con.conname AS name,
        a.attname AS column,
        ref.relname AS referenced_table,
        fa.attname AS referenced_column,
        CASE con.confdeltype
            WHEN 'r' THEN 'RESTRICT'
            WHEN 'c' THEN 'CASCADE'
            WHEN 'n' THEN 'SET NULL'
            WHEN 'd' THEN 'SET DEFAULT'
            ELSE 'NO ACTION'
        END AS on_delete,
        CASE con.confupdtype
            WHEN 'r' THEN 'RESTRICT'
            WHEN 'c' THEN 'CASCADE'
            WHEN 'n' THEN 'SET NULL'
            WHEN 'd' THEN 'SET DEFAULT'
            ELSE 'NO ACTION'
        END AS on_update,
        k.key_position
    FROM pg_constraint con
    JOIN pg_class c ON c.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN pg_class ref ON ref.oid = con.confrelid
    JOIN LATERAL unnest(con.conkey, con.confkey)
        WITH ORDINALITY AS k(attnum, ref_attnum, key_position) ON TRUE
    JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
    JOIN pg_attribute fa ON fa.attrelid = con.confrelid AND fa.attnum = k.ref_attnum
    WHERE con.contype = 'f'
      AND n.nspname = :schema_name
      AND c.relname = :table_name
    ORDER BY con.conname, k.key_position
"""

# Key columns come from pg_get_indexdef so expression keys are kept as text.
INDEXES_QUERY = """
    SELECT
        i.relname AS name,
        ARRAY(
            SELECT pg_get_indexdef(ix.indexrelid, k.n, true)
            FROM generate_series(1, ix.indnkeyatts) AS k(n)
            ORDER BY k.n
        ) AS columns,
        ix.indisunique AS unique,
        am.amname AS type,
        pg_get_indexdef(ix.indexrelid) AS definition
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_am am ON am.oid = i.relam
    WHERE n.nspname = :schema_name
      AND t.relname = :table_name
      AND NOT ix.indisprimary
    ORDER BY i.relname
"""

POLICIES_QUERY = """
    SELECT
        tablename AS table_name,
        policyname AS policy_name,
        permissive,
        roles,
        cmd AS command,
        qual AS using,
        with_check
    FROM pg_policies
    WHERE schemaname = :schema_name
      AND tablename = :table_name
    ORDER BY policyname
"""

TRIGGERS_QUERY = """
    SELECT
        t.tgname AS trigger_name,
        pg_get_triggerdef(t.oid) AS trigger_definition,
        CAST(t.tgenabled AS text) AS is_enabled,
        p.proname AS function_name
    FROM pg_trigger t
    JOIN pg_class c ON t.tgrelid = c.oid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN pg_proc p ON t.tgfoid = p.oid
    WHERE n.nspname = :schema_name
      AND c.relname = :table_name
      AND NOT t.tgisinternal
    ORDER BY t.tgname
"""

FUNCTIONS_QUERY = """
    SELECT
        p.proname AS function_name,
        pg_get_functiondef(p.oid) AS function_definition,
        pg_catalog.pg_get_function_arguments(p.oid) AS arguments,
        pg_catalog.pg_get_function_result(p.oid) AS return_type,
        l.lanname AS language,
        CASE
            WHEN p.provolatile = 'i' THEN 'IMMUTABLE'
            WHEN p.provolatile = 's' THEN 'STABLE'
            ELSE 'VOLATILE'
        END AS volatility,
        CASE p.prosecdef
            WHEN true THEN 'SECURITY DEFINER'
            ELSE 'SECURITY INVOKER'
        END AS security
    FROM pg_proc p
    JOIN pg_namespace n ON p.pronamespace = n.oid
    JOIN pg_language l ON p.prolang = l.oid
    WHERE n.nspname = :schema_name
      AND p.prokind IN ('f', 'p')
      AND NOT EXISTS (
          SELECT 1 FROM pg_depend d
          WHERE d.objid = p.oid AND d.deptype = 'e'
      )
    ORDER BY p.proname
"""

EXTENSIONS_QUERY = """
    SELECT extname
    FROM pg_extension
    WHERE extname <> 'plpgsql'
    ORDER BY extname
"""


# ============================================================================
# Value coercion
# ============================================================================


def _as_bool(value: Any) -> bool:
    """Coerce catalog booleans (``True``, ``'t'``, ``'YES'``) to ``bool``."""
    if isinstance(value, str):
        return value.strip().lower() in ("t", "true", "yes", "y", "1")
    return bool(value)


def _as_list(value: Any) -> list[str]:
    """Coerce a catalog array (list or ``'{a,b}'`` text) to a list of str."""
    if value is None:
        return []
    if isinstance(value, str):
        inner = value.strip()
        if inner.startswith("{") and inner.endswith("}"):
            inner = inner[1:-1]
        return [part.strip().strip('"') for part in inner.split(",") if part.strip()]
    return [str(v) for v in value]


class SchemaIntrospector:
    """Introspects a PostgreSQL schema through a ``BackupClient``.

    The client is injected -- the introspector never opens connections
    of its own, so a test double can stand in for the database.

    Args:
        client: Catalog + row data client.
        schema_name: Schema to introspect (default: ``public``).
        diagnostics: Optional collector for degraded facets.

    Usage:
        introspector = SchemaIntrospector(client, schema_name="public")
        structure = await introspector.get_table_structure("users")
        structure.column_names
        # ['id', 'email', 'created_at']
    """

    def __init__(
        self,
        client: BackupClient,
        schema_name: str = "public",
        diagnostics: BackupDiagnostics | None = None,
    ) -> None:
        self._client = client
        self._schema_name = schema_name
        self._diagnostics = diagnostics

    @property
    def schema_name(self) -> str:
        return self._schema_name

    def _params(self, table_name: str | None = None) -> dict[str, str]:
        params = {"schema_name": self._schema_name}
        if table_name is not None:
            params["table_name"] = table_name
        return params

    async def _degrade(
        self,
        table_name: str,
        facet: str,
        fetch: Callable[[], Awaitable[list[T]]],
    ) -> list[T]:
        """Run ``fetch``; on any failure log it and return ``[]``."""
        try:
            return await fetch()
        except Exception as e:
            logger.warning("Could not read %s for %s: %s", facet, table_name, e)
            if self._diagnostics is not None:
                self._diagnostics.record_degraded(table_name, facet, e)
            return []

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover_tables(self) -> list[str]:
        """List base tables in the schema, sorted by name.

        No system-table filtering happens here; callers apply their own
        exclusion list.

        Raises:
            CatalogQueryError: If the catalog cannot be queried.
        """
        rows = await self._client.fetch_all(TABLES_QUERY, self._params())
        return sorted(row["table_name"] for row in rows)

    async def table_exists(self, table_name: str) -> bool:
        """True if ``table_name`` is a table in the schema."""
        rows = await self._client.fetch_all(TABLE_EXISTS_QUERY, self._params(table_name))
        return bool(rows)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    async def get_table_structure(
        self, table_name: str, include_indexes: bool = True
    ) -> TableMetadata:
        """Get columns, keys, indexes and row count for one table.

        Args:
            table_name: Table to describe.
            include_indexes: When ``False``, the index query is skipped and
                ``indexes`` is empty.

        Returns:
            ``TableMetadata`` with columns in ordinal order.

        Raises:
            TableNotFoundError: If the table has no columns in the catalog.
            CatalogQueryError: If the column query fails.
        """
        columns = await self._get_columns(table_name)
        if not columns:
            raise TableNotFoundError(
                f"Table {self._schema_name}.{table_name} not found"
            )

        primary_keys = await self._degrade(
            table_name, "primary keys", lambda: self._get_primary_keys(table_name)
        )
        foreign_keys = await self._degrade(
            table_name, "foreign keys", lambda: self._get_foreign_keys(table_name)
        )
        indexes: list[IndexInfo] = []
        if include_indexes:
            indexes = await self._degrade(
                table_name, "indexes", lambda: self._get_indexes(table_name)
            )

        return TableMetadata(
            table_name=table_name,
            columns=columns,
            primary_keys=primary_keys,
            foreign_keys=foreign_keys,
            indexes=indexes,
            row_count=await self._count_rows(table_name),
        )

    async def _get_columns(self, table_name: str) -> list[ColumnInfo]:
        """Get columns for a table in ordinal order."""
        rows = await self._client.fetch_all(COLUMNS_QUERY, self._params(table_name))
        return [
            ColumnInfo(
                name=row["name"],
                type=row["type"],
                nullable=_as_bool(row["nullable"]),
                default_value=row.get("default_value"),
            )
            for row in rows
        ]

    async def _get_primary_keys(self, table_name: str) -> list[str]:
        """Get primary key columns in key order."""
        rows = await self._client.fetch_all(PRIMARY_KEYS_QUERY, self._params(table_name))
        keys: list[str] = []
        for row in rows:
            if row["column_name"] not in keys:
                keys.append(row["column_name"])
        return keys

    async def _get_foreign_keys(self, table_name: str) -> list[ForeignKeyInfo]:
        """Get foreign key constraints, one entry per constraint.

        The catalog returns one row per key column, in key position order;
        rows sharing a constraint name are folded into a single entry.
        """
        rows = await self._client.fetch_all(FOREIGN_KEYS_QUERY, self._params(table_name))
        by_name: dict[str, ForeignKeyInfo] = {}
        for row in rows:
            fk = by_name.get(row["name"])
            if fk is None:
                fk = by_name[row["name"]] = ForeignKeyInfo(
                    name=row["name"],
                    referenced_table=row["referenced_table"],
                    on_delete=row.get("on_delete") or "NO ACTION",
                    on_update=row.get("on_update") or "NO ACTION",
                )
            if row["column"] in fk.columns:
                continue
            fk.columns.append(row["column"])
            fk.referenced_columns.append(row["referenced_column"])
        return list(by_name.values())

    async def _get_indexes(self, table_name: str) -> list[IndexInfo]:
        """Get indexes for a table (excluding primary key)."""
        rows = await self._client.fetch_all(INDEXES_QUERY, self._params(table_name))
        return [
            IndexInfo(
                name=row["name"],
                columns=_as_list(row["columns"]),
                unique=_as_bool(row["unique"]),
                type=row["type"],
                definition=row.get("definition"),
            )
            for row in rows
        ]

    async def _count_rows(self, table_name: str) -> int:
        """Best-effort exact row count; 0 on failure."""
        try:
            return await self._client.count_rows(self._schema_name, table_name)
        except Exception as e:
            logger.warning("Could not count rows in %s: %s", table_name, e)
            return 0

    # ------------------------------------------------------------------
    # Policies, triggers, functions, extensions
    # ------------------------------------------------------------------

    async def get_rls_policies(self, table_name: str) -> list[RLSPolicy]:
        """Get row-level security policies for a table ([] on failure)."""

        async def fetch() -> list[RLSPolicy]:
            rows = await self._client.fetch_all(POLICIES_QUERY, self._params(table_name))
            return [
                RLSPolicy(
                    table_name=row["table_name"],
                    policy_name=row["policy_name"],
                    command=row.get("command") or "ALL",
                    roles=_as_list(row.get("roles")),
                    using=row.get("using"),
                    with_check=row.get("with_check"),
                    permissive=str(row.get("permissive", "PERMISSIVE")).upper()
                    != "RESTRICTIVE",
                )
                for row in rows
            ]

        return await self._degrade(table_name, "policies", fetch)

    async def get_triggers(self, table_name: str) -> list[TriggerInfo]:
        """Get user triggers for a table ([] on failure)."""

        async def fetch() -> list[TriggerInfo]:
            rows = await self._client.fetch_all(TRIGGERS_QUERY, self._params(table_name))
            return [
                TriggerInfo(
                    trigger_name=row["trigger_name"],
                    definition=row["trigger_definition"],
                    # 'O' = fires in origin mode, 'A' = always; 'D' = disabled
                    is_enabled=str(row.get("is_enabled", "O")) in ("O", "A"),
                    function_name=row.get("function_name") or "",
                    table_name=table_name,
                )
                for row in rows
            ]

        return await self._degrade(table_name, "triggers", fetch)

    async def get_functions(self) -> list[FunctionInfo]:
        """Get functions and procedures of the schema ([] on failure).

        Functions owned by extensions are excluded.
        """

        async def fetch() -> list[FunctionInfo]:
            rows = await self._client.fetch_all(FUNCTIONS_QUERY, self._params())
            return [
                FunctionInfo(
                    function_name=row["function_name"],
                    definition=row["function_definition"],
                    arguments=row.get("arguments") or "",
                    return_type=row.get("return_type") or "",
                    language=row.get("language") or "",
                    volatility=row.get("volatility") or "VOLATILE",
                    security=row.get("security") or "SECURITY INVOKER",
                )
                for row in rows
            ]

        return await self._degrade("*", "functions", fetch)

    async def get_extensions(self) -> list[str]:
        """Get installed extensions, minus platform ones ([] on failure)."""

        async def fetch() -> list[str]:
            rows = await self._client.fetch_all(EXTENSIONS_QUERY)
            return [
                row["extname"]
                for row in rows
                if row["extname"] not in PLATFORM_EXTENSIONS
            ]

        return await self._degrade("*", "extensions", fetch)
