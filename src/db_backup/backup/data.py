"""Row data extraction with best-effort date filtering.

Rows are read through the injected ``RowDataClient``.  When date bounds are
given they apply to a creation-timestamp column (``created_at`` by
default).  A table without that column raises ``MissingColumnError`` on the
filtered read; exactly that error triggers a second, unfiltered read.  Any
other failure propagates to the caller.

Values are normalized into the tagged ``RowValue`` union so both encoders
can handle every cell.

Usage:
    from db_backup.backup.data import get_table_data

    rows = await get_table_data(client, "posts", date_from, date_to)
"""

import json
import logging
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from db_backup.adapters.base import MissingColumnError, RowDataClient
from db_backup.backup.models import RawValue, Row, RowValue
from db_backup.diagnostics import BackupDiagnostics

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_COLUMN = "created_at"


def _array_literal(items: list) -> str:
    """Render a flat list as PostgreSQL array text (``{a,"b c",NULL}``)."""
    parts: list[str] = []
    for item in items:
        if item is None:
            parts.append("NULL")
            continue
        value = normalize_value(item)
        if isinstance(value, RawValue):
            value = value.raw
        if isinstance(value, bool):
            value = "true" if value else "false"
        text = str(value).replace("\\", "\\\\").replace('"', '\\"')
        parts.append(f'"{text}"')
    return "{" + ",".join(parts) + "}"


def normalize_value(value: Any) -> RowValue:
    """Map a driver value onto ``RowValue``.

    - ``None``, ``bool``, ``int``, finite ``float``, ``str``: unchanged
    - UUID, date/time values: string (ISO format for temporal values)
    - ``Decimal``, non-finite floats: ``RawValue`` with the exact text
    - ``dict``, nested lists: ``RawValue`` with JSON text
    - flat lists: ``RawValue`` with array text
    - ``bytes``: ``RawValue`` with ``\\x`` hex text
    """
    if value is None or isinstance(value, (bool, int, str, RawValue)):
        return value
    if isinstance(value, float):
        if math.isfinite(value):
            return value
        return RawValue(raw=str(value).replace("inf", "Infinity").replace("nan", "NaN"))
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return RawValue(raw=str(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return RawValue(raw="\\x" + bytes(value).hex())
    if isinstance(value, dict):
        return RawValue(raw=json.dumps(value, default=str))
    if isinstance(value, (list, tuple)):
        if any(isinstance(v, (dict, list, tuple)) for v in value):
            return RawValue(raw=json.dumps(list(value), default=str))
        return RawValue(raw=_array_literal(list(value)))
    return RawValue(raw=str(value))


def normalize_row(row: dict) -> Row:
    """Normalize every value of a row, keeping column order."""
    return {column: normalize_value(value) for column, value in row.items()}


async def get_table_data(
    client: RowDataClient,
    table: str,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    schema_name: str = "public",
    timestamp_column: str = DEFAULT_TIMESTAMP_COLUMN,
    diagnostics: BackupDiagnostics | None = None,
) -> list[Row]:
    """Read a table's rows, bounded on ``timestamp_column`` when possible.

    Both bounds are inclusive.  If the table has no ``timestamp_column``,
    the whole table is returned instead -- date filtering is per table and
    best effort.

    Args:
        client: Row data client.
        table: Table name.
        date_from: Lower bound (inclusive), or ``None``.
        date_to: Upper bound (inclusive), or ``None``.
        schema_name: Schema holding the table.
        timestamp_column: Column the bounds apply to.
        diagnostics: Optional collector notified of unfiltered fallbacks.

    Returns:
        Normalized rows in the order the backend returned them.

    Raises:
        CatalogQueryError: If the read fails for any reason other than a
            missing timestamp column.
    """
    if date_from is None and date_to is None:
        rows = await client.fetch_rows(schema_name, table)
        return [normalize_row(r) for r in rows]

    try:
        rows = await client.fetch_rows(
            schema_name,
            table,
            date_column=timestamp_column,
            date_from=date_from,
            date_to=date_to,
        )
    except MissingColumnError:
        logger.info(
            "Table %s has no %s column; backing up all rows", table, timestamp_column
        )
        if diagnostics is not None:
            diagnostics.record_fallback(table)
        rows = await client.fetch_rows(schema_name, table)

    return [normalize_row(r) for r in rows]
