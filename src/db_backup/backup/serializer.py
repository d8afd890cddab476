"""Backup serialization to JSON or a SQL script.

JSON is a direct rendering of ``BackupData`` and round-trips exactly through
``parse_backup_json``.  The SQL script is a restorable rendering; run
metadata (time, requester, config) only appears in its comment header.

SQL layout:
    header comments
    BEGIN;
    extensions
    sequences referenced by column defaults
    per table (in document order): CREATE TABLE + indexes, INSERTs, policies
    foreign keys (after every table exists)
    functions, triggers (verbatim definitions)
    COMMIT;

Usage:
    from db_backup.backup.serializer import serialize_backup

    result = serialize_backup(data, "sql")
    Path(backup_filename("shop", "sql")).write_bytes(result.content)
    print(result.size_mb, result.table_count)
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from db_backup.backup.models import (
    BackupData,
    BackupFormat,
    RawValue,
    Row,
    RowValue,
    TableBackupEntry,
)
from db_backup.schema.models import (
    ForeignKeyInfo,
    IndexInfo,
    RLSPolicy,
    TableMetadata,
)

CONTENT_TYPES: dict[str, str] = {
    "sql": "application/sql",
    "json": "application/json",
}

SECTION_RULE = "-- " + "=" * 60

# nextval('name'::regclass) in a column default; group 1 is the literal body
_NEXTVAL_RE = re.compile(r"nextval\('((?:[^']|'')+)'(?:::regclass)?\)")

_CREATE_INDEX_RE = re.compile(r"^CREATE (UNIQUE )?INDEX (?!IF NOT EXISTS )", re.IGNORECASE)


@dataclass
class SerializedBackup:
    """Encoded backup plus the summary a caller reports.

    Attributes:
        content: Encoded document (UTF-8).
        format: ``"sql"`` or ``"json"``.
        table_count: Tables actually represented in the document.
    """

    content: bytes
    format: BackupFormat
    table_count: int

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def size_mb(self) -> str:
        """Size in megabytes with two decimals, e.g. ``"0.42"``."""
        return f"{self.size_bytes / (1024 * 1024):.2f}"

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.format]

    @property
    def file_extension(self) -> str:
        return self.format


def backup_filename(
    prefix: str, fmt: BackupFormat, now: datetime | None = None
) -> str:
    """Build a timestamped backup file name.

    Example:
        >>> backup_filename("shop", "sql", datetime(2024, 1, 31, 12, 30, 5))
        'shop_backup_2024-01-31T12-30-05.sql'
    """
    now = now or datetime.now(timezone.utc)
    return f"{prefix}_backup_{now.strftime('%Y-%m-%dT%H-%M-%S')}.{fmt}"


# ------------------------------------------------------------------
# JSON
# ------------------------------------------------------------------


def render_json(data: BackupData) -> str:
    """Render the document as indented JSON."""
    return data.model_dump_json(indent=2)


def parse_backup_json(content: bytes | str) -> BackupData:
    """Parse a JSON backup back into ``BackupData``."""
    return BackupData.model_validate_json(content)


# ------------------------------------------------------------------
# SQL helpers
# ------------------------------------------------------------------


def _q(name: str) -> str:
    """Double-quote an identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def _terminate(statement: str) -> str:
    statement = statement.rstrip()
    return statement if statement.endswith(";") else statement + ";"


def format_value(value: RowValue) -> str:
    """Render a row value as a SQL literal.

    - ``None`` -> ``NULL``
    - ``bool`` -> ``TRUE`` / ``FALSE``
    - ``int``, ``float`` -> number text
    - ``str``, ``RawValue`` -> quoted literal with ``'`` doubled

    Example:
        >>> format_value("it's")
        "'it''s'"
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, RawValue):
        value = value.raw
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def _create_table_sql(structure: TableMetadata) -> list[str]:
    """CREATE TABLE (columns + primary key) and CREATE INDEX statements."""
    table = _q(structure.table_name)
    col_lines: list[str] = []
    for col in structure.columns:
        parts = [f"    {_q(col.name)} {col.type}"]
        if col.default_value is not None:
            parts.append(f"DEFAULT {col.default_value}")
        if not col.nullable:
            parts.append("NOT NULL")
        col_lines.append(" ".join(parts))

    if structure.primary_keys:
        pk_cols = ", ".join(_q(c) for c in structure.primary_keys)
        col_lines.append(f"    PRIMARY KEY ({pk_cols})")

    lines = [f"CREATE TABLE IF NOT EXISTS {table} ("]
    lines.append(",\n".join(col_lines))
    lines.append(");")

    lines.extend(_index_sql(structure.table_name, index) for index in structure.indexes)
    return lines


def _index_sql(table_name: str, index: IndexInfo) -> str:
    """CREATE INDEX from the catalog definition, else from the parts."""
    if index.definition:
        return _terminate(
            _CREATE_INDEX_RE.sub(
                r"CREATE \1INDEX IF NOT EXISTS ", index.definition.strip(), count=1
            )
        )
    unique = "UNIQUE " if index.unique else ""
    cols = ", ".join(_q(c) for c in index.columns)
    return (
        f"CREATE {unique}INDEX IF NOT EXISTS {_q(index.name)} "
        f"ON {_q(table_name)} USING {index.type} ({cols});"
    )


def _foreign_key_sql(table_name: str, fk: ForeignKeyInfo) -> str:
    cols = ", ".join(_q(c) for c in fk.columns)
    ref_cols = ", ".join(_q(c) for c in fk.referenced_columns)
    return (
        f"ALTER TABLE {_q(table_name)} ADD CONSTRAINT {_q(fk.name)} "
        f"FOREIGN KEY ({cols}) "
        f"REFERENCES {_q(fk.referenced_table)} ({ref_cols}) "
        f"ON DELETE {fk.on_delete} ON UPDATE {fk.on_update};"
    )


def sequence_names(data: BackupData) -> list[str]:
    """Sequences named by ``nextval(...)`` column defaults, in first-use order.

    Names are returned as written in the regclass literal, so a
    schema-qualified or quoted name is kept as is.

    Example:
        ``nextval('public."Order_seq"'::regclass)`` gives ``public."Order_seq"``.
    """
    names: list[str] = []
    for entry in data.tables.values():
        if entry.structure is None:
            continue
        for col in entry.structure.columns:
            for match in _NEXTVAL_RE.finditer(col.default_value or ""):
                name = match.group(1).replace("''", "'")
                if name not in names:
                    names.append(name)
    return names


def _insert_sql(table_name: str, rows: list[Row]) -> list[str]:
    """One INSERT statement per row."""
    lines: list[str] = []
    for row in rows:
        cols = ", ".join(_q(c) for c in row)
        vals = ", ".join(format_value(v) for v in row.values())
        lines.append(f"INSERT INTO {_q(table_name)} ({cols}) VALUES ({vals});")
    return lines


def _role_sql(role: str) -> str:
    return "PUBLIC" if role.lower() == "public" else _q(role)


def _policy_sql(table_name: str, policies: list[RLSPolicy]) -> list[str]:
    lines = [f"ALTER TABLE {_q(table_name)} ENABLE ROW LEVEL SECURITY;"]
    for policy in policies:
        statement = (
            f"CREATE POLICY {_q(policy.policy_name)} ON {_q(table_name)}"
            f" AS {'PERMISSIVE' if policy.permissive else 'RESTRICTIVE'}"
            f" FOR {policy.command.upper()}"
        )
        if policy.roles:
            statement += " TO " + ", ".join(_role_sql(r) for r in policy.roles)
        if policy.using:
            statement += f" USING ({policy.using})"
        if policy.with_check:
            statement += f" WITH CHECK ({policy.with_check})"
        lines.append(statement + ";")
    return lines


def _section(title: str) -> list[str]:
    return ["", SECTION_RULE, f"-- {title}", SECTION_RULE]


def _table_sql(name: str, entry: TableBackupEntry) -> list[str]:
    lines = _section(f"TABLE: {name}")
    if entry.structure is not None:
        lines.extend(_create_table_sql(entry.structure))
    if entry.data:
        lines.append("")
        lines.append(f"-- Data: {name} ({len(entry.data)} rows)")
        lines.extend(_insert_sql(name, entry.data))
    if entry.policies:
        lines.append("")
        lines.append(f"-- Policies: {name}")
        lines.extend(_policy_sql(name, entry.policies))
    return lines


def _header(data: BackupData) -> list[str]:
    meta = data.metadata
    config = meta.config
    lines = [
        "-- Database backup",
        f"-- Generated at: {meta.generated_at.isoformat()}",
        f"-- Generated by: {meta.generated_by}",
        f"-- Format version: {meta.version}",
        f"-- Scope: {config.scope}",
        f"-- Tables: {data.table_count}",
    ]
    enabled = [name for name, on in config.options.model_dump().items() if on]
    lines.append(f"-- Options: {', '.join(enabled)}")
    if config.date_from or config.date_to:
        lines.append(
            f"-- Date range: {config.date_from or '-'} .. {config.date_to or '-'}"
        )
    return lines


def render_sql(data: BackupData) -> str:
    """Render the document as a SQL script wrapped in a transaction."""
    lines = _header(data)
    lines.append("")
    lines.append("BEGIN;")

    if data.extensions:
        lines.extend(_section("EXTENSIONS"))
        for ext in data.extensions:
            lines.append(f"CREATE EXTENSION IF NOT EXISTS {_q(ext)};")

    sequences = sequence_names(data)
    if sequences:
        lines.extend(_section("SEQUENCES"))
        lines.extend(f"CREATE SEQUENCE IF NOT EXISTS {seq};" for seq in sequences)

    for name, entry in data.tables.items():
        lines.extend(_table_sql(name, entry))

    foreign_keys = [
        _foreign_key_sql(name, fk)
        for name, entry in data.tables.items()
        if entry.structure is not None
        for fk in entry.structure.foreign_keys
    ]
    if foreign_keys:
        lines.extend(_section("FOREIGN KEYS"))
        lines.extend(foreign_keys)

    if data.functions:
        lines.extend(_section("FUNCTIONS"))
        for func in data.functions:
            lines.append(f"-- {func.function_name}({func.arguments})")
            lines.append(_terminate(func.definition))
            lines.append("")

    if data.triggers:
        lines.extend(_section("TRIGGERS"))
        for trigger in data.triggers:
            lines.append(_terminate(trigger.definition))
            if not trigger.is_enabled:
                lines.append(
                    f"ALTER TABLE {_q(trigger.table_name)} "
                    f"DISABLE TRIGGER {_q(trigger.trigger_name)};"
                )

    lines.append("")
    lines.append("COMMIT;")
    return "\n".join(lines) + "\n"


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def serialize_backup(data: BackupData, fmt: BackupFormat | None = None) -> SerializedBackup:
    """Encode ``data`` as JSON or SQL.

    Args:
        data: Assembled backup document.
        fmt: ``"sql"`` or ``"json"``; defaults to ``data.metadata.config.format``.

    Returns:
        ``SerializedBackup`` with content, size and table count.

    Raises:
        ValueError: If ``fmt`` is not a known format.
    """
    fmt = fmt or data.metadata.config.format
    if fmt == "json":
        text = render_json(data)
    elif fmt == "sql":
        text = render_sql(data)
    else:
        raise ValueError(f"Unknown backup format: {fmt!r}")

    return SerializedBackup(
        content=text.encode("utf-8"),
        format=fmt,
        table_count=data.table_count,
    )
