"""Async Supabase backup client.

Provides ``AsyncSupabaseAdapter``, an async implementation of the
``BackupClient`` protocol using the supabase-py async client.

Catalog queries go through an ``execute_sql(query_text)`` RPC function that
must exist in the target project; PostgREST cannot bind parameters into an
RPC query string, so named parameters are rendered as escaped SQL literals
before the call.  Row reads use the PostgREST query builder, one range
request per page.

The client is initialized lazily on first use with an ``asyncio.Lock``
to ensure thread-safe initialization.

Usage:
    from db_backup.adapters.supabase import AsyncSupabaseAdapter

    adapter = AsyncSupabaseAdapter(
        url="https://xyzproject.supabase.co",
        key="eyJ...",
    )

    rows = await adapter.fetch_rows("public", "posts")
    await adapter.close()
"""

import asyncio
import re
from datetime import date, datetime
from typing import Any

from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from db_backup.adapters.base import (
    CatalogQueryError,
    MissingColumnError,
    validate_identifier,
)

# SQLSTATE for "column does not exist"
UNDEFINED_COLUMN = "42703"

# Supabase default for PostgREST max-rows
PAGE_SIZE = 1000

# ``:name`` placeholders, but not ``::type`` casts
_PLACEHOLDER_RE = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")


def _sql_literal(value: Any) -> str:
    """Render a parameter value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        value = value.isoformat()
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def render_query(sql: str, params: dict[str, Any] | None) -> str:
    """Inline named parameters into ``sql`` as escaped literals.

    Raises:
        KeyError: If ``sql`` references a parameter missing from ``params``.

    Example:
        >>> render_query("SELECT 1 WHERE name = :name", {"name": "o'neil"})
        "SELECT 1 WHERE name = 'o''neil'"
    """
    if not params:
        return sql
    return _PLACEHOLDER_RE.sub(lambda m: _sql_literal(params[m.group(1)]), sql)


class AsyncSupabaseAdapter:
    """Async Supabase implementation of the ``BackupClient`` protocol.

    Args:
        url: Supabase project URL.
        key: Supabase service key (the anon key cannot read the catalog).
        rpc_function: Name of the SQL-executing RPC function.
        page_size: Rows per request in ``fetch_rows``; must not exceed the
            server's ``max-rows``.

    Example:
        adapter = AsyncSupabaseAdapter(
            url="https://xyzproject.supabase.co",
            key="eyJhbGciOiJIUzI1NiIs...",
        )
        tables = await adapter.fetch_all(
            "SELECT table_name FROM information_schema.tables"
        )
        await adapter.close()
    """

    def __init__(
        self,
        url: str,
        key: str,
        rpc_function: str = "execute_sql",
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._url: str = url
        self._key: str = key
        self._rpc_function: str = rpc_function
        self._page_size: int = page_size
        self._client: AsyncClient | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Get or create the async Supabase client.

        Uses an ``asyncio.Lock`` to ensure the client is created exactly
        once, even under concurrent access.
        """
        if self._client is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._client is None:
                    self._client = await acreate_client(self._url, self._key)
        return self._client

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def fetch_all(
        self, sql: str, params: dict[str, Any] | None = None
    ) -> list[dict]:
        """Run a catalog query through the ``execute_sql`` RPC function."""
        client = await self._get_client()
        try:
            result = await client.rpc(
                self._rpc_function, {"query_text": render_query(sql, params)}
            ).execute()
        except APIError as e:
            raise CatalogQueryError(f"Catalog query failed: {e.message}") from e
        return result.data or []

    # ------------------------------------------------------------------
    # Row data
    # ------------------------------------------------------------------

    async def fetch_rows(
        self,
        schema_name: str,
        table: str,
        date_column: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[dict]:
        """Select every row of a table with the PostgREST query builder.

        PostgREST caps each response at its ``max-rows`` setting, so rows
        are requested in ``page_size`` ranges until a short page comes back.
        """
        client = await self._get_client()
        schema_name = validate_identifier(schema_name)
        table = validate_identifier(table)
        filtered = bool(date_column) and (date_from is not None or date_to is not None)

        rows: list[dict] = []
        start = 0
        while True:
            query = client.schema(schema_name).table(table).select("*")
            if date_column and date_from is not None:
                query = query.gte(date_column, date_from.isoformat())
            if date_column and date_to is not None:
                query = query.lte(date_column, date_to.isoformat())
            query = query.range(start, start + self._page_size - 1)

            try:
                result = await query.execute()
            except APIError as e:
                message = e.message or ""
                if filtered and (
                    e.code == UNDEFINED_COLUMN or f"{date_column}" in message
                ):
                    raise MissingColumnError(table, date_column or "", message) from e
                raise CatalogQueryError(f"Error fetching data: {message}") from e

            page = result.data or []
            rows.extend(page)
            if len(page) < self._page_size:
                return rows
            start += self._page_size

    async def count_rows(self, schema_name: str, table: str) -> int:
        """Count rows with a ``HEAD`` request and ``count=exact``."""
        client = await self._get_client()
        try:
            result = await (
                client.schema(validate_identifier(schema_name))
                .table(validate_identifier(table))
                .select("*", count="exact", head=True)
                .execute()
            )
        except APIError as e:
            raise CatalogQueryError(f"Error counting rows: {e.message}") from e
        return result.count or 0

    async def close(self) -> None:
        """Close the Supabase async client.

        If the client was never initialized, this is a no-op.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
