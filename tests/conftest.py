"""Shared fixtures: an in-memory ``BackupClient`` over a small blog schema.

``FakeBackupClient`` answers the introspector's catalog queries by query
identity (the module-level query constants) and serves rows with the same
inclusive date filtering and missing-column behavior as the real adapters.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

import pytest

from db_backup.adapters.base import CatalogQueryError, MissingColumnError
from db_backup.schema.introspector import (
    COLUMNS_QUERY,
    EXTENSIONS_QUERY,
    FOREIGN_KEYS_QUERY,
    FUNCTIONS_QUERY,
    INDEXES_QUERY,
    POLICIES_QUERY,
    PRIMARY_KEYS_QUERY,
    TABLE_EXISTS_QUERY,
    TABLES_QUERY,
    TRIGGERS_QUERY,
)


def _col(name: str, type_: str, nullable: bool = True, default: str | None = None) -> dict:
    return {"name": name, "type": type_, "nullable": nullable, "default_value": default}


@dataclass
class FakeTable:
    """Catalog entries and rows for one table."""

    columns: list[dict]
    rows: list[dict] = field(default_factory=list)
    primary_keys: list[str] = field(default_factory=lambda: ["id"])
    foreign_keys: list[dict] = field(default_factory=list)
    indexes: list[dict] = field(default_factory=list)
    policies: list[dict] = field(default_factory=list)
    triggers: list[dict] = field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [c["name"] for c in self.columns]


class FakeBackupClient:
    """In-memory stand-in for ``AsyncPostgresAdapter``.

    Attributes:
        calls: ``(query, params)`` for every ``fetch_all``.
        row_calls: ``(table, date_column)`` for every ``fetch_rows``.
        count_calls: Table names passed to ``count_rows``.
        failing_tables: Any query touching one of these raises.
        failing_queries: Catalog queries that raise.
    """

    def __init__(
        self,
        tables: dict[str, FakeTable],
        functions: list[dict] | None = None,
        extensions: list[str] | None = None,
    ) -> None:
        self.tables = tables
        self.functions = functions or []
        self.extensions = extensions or []
        self.calls: list[tuple[str, dict]] = []
        self.row_calls: list[tuple[str, str | None]] = []
        self.count_calls: list[str] = []
        self.failing_tables: set[str] = set()
        self.failing_queries: set[str] = set()
        self.closed = False

    @property
    def total_calls(self) -> int:
        return len(self.calls) + len(self.row_calls) + len(self.count_calls)

    def _check(self, table: str | None) -> None:
        if table is not None and table in self.failing_tables:
            raise CatalogQueryError(f"simulated failure on {table}")

    async def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        params = params or {}
        self.calls.append((sql, params))
        if sql in self.failing_queries:
            raise CatalogQueryError("simulated catalog failure")

        name = params.get("table_name")
        self._check(name)
        table = self.tables.get(name) if name else None

        if sql is TABLES_QUERY:
            return [{"table_name": t} for t in self.tables]
        if sql is TABLE_EXISTS_QUERY:
            return [{"table_name": name}] if table else []
        if sql is EXTENSIONS_QUERY:
            return [{"extname": e} for e in self.extensions]
        if sql is FUNCTIONS_QUERY:
            return list(self.functions)
        if table is None:
            return []
        if sql is COLUMNS_QUERY:
            return list(table.columns)
        if sql is PRIMARY_KEYS_QUERY:
            return [{"column_name": c} for c in table.primary_keys]
        if sql is FOREIGN_KEYS_QUERY:
            return list(table.foreign_keys)
        if sql is INDEXES_QUERY:
            return list(table.indexes)
        if sql is POLICIES_QUERY:
            return [{"table_name": name, **p} for p in table.policies]
        if sql is TRIGGERS_QUERY:
            return list(table.triggers)
        raise CatalogQueryError(f"unexpected query: {sql[:40]}")

    async def fetch_rows(
        self,
        schema_name: str,
        table: str,
        date_column: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[dict]:
        self.row_calls.append((table, date_column))
        self._check(table)
        if table not in self.tables:
            raise CatalogQueryError(f'relation "{schema_name}.{table}" does not exist')

        fake = self.tables[table]
        if date_column is None:
            return [dict(r) for r in fake.rows]
        if date_column not in fake.column_names:
            raise MissingColumnError(table, date_column)

        selected = []
        for row in fake.rows:
            moment = datetime.fromisoformat(row[date_column])
            if date_from is not None and moment < date_from:
                continue
            if date_to is not None and moment > date_to:
                continue
            selected.append(dict(row))
        return selected

    async def count_rows(self, schema_name: str, table: str) -> int:
        self.count_calls.append(table)
        self._check(table)
        if table not in self.tables:
            raise CatalogQueryError(f'relation "{schema_name}.{table}" does not exist')
        return len(self.tables[table].rows)

    async def close(self) -> None:
        self.closed = True


# ------------------------------------------------------------------
# Fixture schema
# ------------------------------------------------------------------

# Timestamps of the 10 posts; 4 fall inside January 2024.
POST_TIMESTAMPS = [
    "2023-12-15T10:00:00+00:00",
    "2023-12-31T23:59:59+00:00",
    "2024-01-01T00:00:00+00:00",
    "2024-01-10T08:30:00+00:00",
    "2024-01-20T12:00:00+00:00",
    "2024-01-31T22:45:00+00:00",
    "2024-02-01T00:00:00+00:00",
    "2024-02-14T09:00:00+00:00",
    "2024-03-01T00:00:00+00:00",
    "2024-04-01T00:00:00+00:00",
]


def _users() -> FakeTable:
    return FakeTable(
        columns=[
            _col("id", "integer", nullable=False),
            _col("email", "text", nullable=False),
            _col("profile", "jsonb"),
            _col("created_at", "timestamp with time zone", nullable=False, default="now()"),
        ],
        rows=[
            {
                "id": 1,
                "email": "ada@example.com",
                "profile": {"theme": "dark"},
                "created_at": "2023-11-01T00:00:00+00:00",
            },
            {
                "id": 2,
                "email": "o'neil@example.com",
                "profile": None,
                "created_at": "2024-01-05T00:00:00+00:00",
            },
        ],
        indexes=[{"name": "users_email_key", "columns": ["email"], "unique": True, "type": "btree"}],
        policies=[
            {
                "policy_name": "users_select_own",
                "permissive": "PERMISSIVE",
                "roles": ["authenticated"],
                "command": "SELECT",
                "using": "(auth.uid() = id)",
                "with_check": None,
            }
        ],
    )


def _posts() -> FakeTable:
    return FakeTable(
        columns=[
            _col("id", "integer", nullable=False),
            _col("user_id", "integer", nullable=False),
            _col("title", "text", nullable=False),
            _col("rating", "numeric(4,2)"),
            _col("published", "boolean", nullable=False, default="false"),
            _col("created_at", "timestamp with time zone", nullable=False, default="now()"),
        ],
        rows=[
            {
                "id": i + 1,
                "user_id": 1 + i % 2,
                "title": "It's January" if ts.startswith("2024-01-10") else f"Post {i + 1}",
                "rating": Decimal("4.50"),
                "published": i % 2 == 0,
                "created_at": ts,
            }
            for i, ts in enumerate(POST_TIMESTAMPS)
        ],
        foreign_keys=[
            {
                "name": "posts_user_id_fkey",
                "column": "user_id",
                "referenced_table": "users",
                "referenced_column": "id",
                "on_delete": "CASCADE",
                "on_update": "NO ACTION",
            }
        ],
        indexes=[
            {"name": "posts_user_id_idx", "columns": "{user_id,created_at}", "unique": False, "type": "btree"}
        ],
        policies=[
            {
                "policy_name": "posts_block_drafts",
                "permissive": "RESTRICTIVE",
                "roles": "{public}",
                "command": "ALL",
                "using": "published",
                "with_check": "published",
            }
        ],
        triggers=[
            {
                "trigger_name": "posts_audit",
                "trigger_definition": (
                    "CREATE TRIGGER posts_audit AFTER INSERT ON public.posts "
                    "FOR EACH ROW EXECUTE FUNCTION audit()"
                ),
                "is_enabled": "D",
                "function_name": "audit",
            },
            {
                "trigger_name": "posts_touch",
                "trigger_definition": (
                    "CREATE TRIGGER posts_touch BEFORE UPDATE ON public.posts "
                    "FOR EACH ROW EXECUTE FUNCTION touch_updated_at()"
                ),
                "is_enabled": "O",
                "function_name": "touch_updated_at",
            },
        ],
    )


def _comments() -> FakeTable:
    return FakeTable(
        columns=[
            _col("id", "integer", nullable=False),
            _col("post_id", "integer", nullable=False),
            _col("body", "text"),
            _col("created_at", "timestamp with time zone", nullable=False, default="now()"),
        ],
        rows=[
            {"id": 1, "post_id": 3, "body": "first", "created_at": "2024-01-02T00:00:00+00:00"},
            {"id": 2, "post_id": 3, "body": None, "created_at": "2024-02-02T00:00:00+00:00"},
        ],
        foreign_keys=[
            {
                "name": "comments_post_id_fkey",
                "column": "post_id",
                "referenced_table": "posts",
                "referenced_column": "id",
                "on_delete": "CASCADE",
                "on_update": "NO ACTION",
            }
        ],
    )


def _tags() -> FakeTable:
    return FakeTable(
        columns=[_col("id", "integer", nullable=False), _col("name", "text", nullable=False)],
        rows=[{"id": 1, "name": "python"}, {"id": 2, "name": "sql"}, {"id": 3, "name": "ops"}],
    )


def _parent() -> FakeTable:
    return FakeTable(
        columns=[_col("a", "integer", nullable=False), _col("b", "integer", nullable=False)],
        rows=[{"a": 1, "b": 1}],
        primary_keys=["a", "b"],
    )


def _child() -> FakeTable:
    """Composite foreign key, a serial id, and a partial expression index."""
    fk = {
        "name": "child_fk",
        "referenced_table": "parent",
        "on_delete": "NO ACTION",
        "on_update": "NO ACTION",
    }
    return FakeTable(
        columns=[
            _col("id", "integer", nullable=False, default="nextval('child_id_seq'::regclass)"),
            _col("pa", "integer"),
            _col("pb", "integer"),
            _col("label", "text"),
        ],
        rows=[{"id": 1, "pa": 1, "pb": 1, "label": "only"}],
        # one catalog row per key column
        foreign_keys=[
            {**fk, "column": "pa", "referenced_column": "a", "key_position": 1},
            {**fk, "column": "pb", "referenced_column": "b", "key_position": 2},
        ],
        indexes=[
            {
                "name": "child_label_lower_idx",
                "columns": ["lower(label)"],
                "unique": True,
                "type": "btree",
                "definition": (
                    "CREATE UNIQUE INDEX child_label_lower_idx ON public.child "
                    "USING btree (lower(label)) WHERE (pa IS NOT NULL)"
                ),
            }
        ],
    )


FUNCTIONS = [
    {
        "function_name": "touch_updated_at",
        "function_definition": (
            "CREATE OR REPLACE FUNCTION public.touch_updated_at()\n"
            " RETURNS trigger\n LANGUAGE plpgsql\nAS $function$\n"
            "BEGIN NEW.updated_at = now(); RETURN NEW; END;\n$function$\n"
        ),
        "arguments": "",
        "return_type": "trigger",
        "language": "plpgsql",
        "volatility": "VOLATILE",
        "security": "SECURITY INVOKER",
    }
]


@pytest.fixture
def client() -> FakeBackupClient:
    """Three-table blog schema: users, posts, comments."""
    return FakeBackupClient(
        {"users": _users(), "posts": _posts(), "comments": _comments()},
        functions=FUNCTIONS,
        extensions=["pgcrypto", "uuid-ossp"],
    )


@pytest.fixture
def client_with_tags() -> FakeBackupClient:
    """Blog schema plus ``tags`` (no created_at) and platform tables."""
    return FakeBackupClient(
        {
            "users": _users(),
            "posts": _posts(),
            "comments": _comments(),
            "tags": _tags(),
            "schema_migrations": FakeTable(columns=[_col("version", "text")]),
            "_prisma_migrations": FakeTable(columns=[_col("id", "text")]),
            "supabase_functions": FakeTable(columns=[_col("id", "text")]),
        },
        functions=FUNCTIONS,
        extensions=["pgcrypto"],
    )


@pytest.fixture
def composite_client() -> FakeBackupClient:
    """``child(pa, pb)`` referencing ``parent(a, b)``."""
    return FakeBackupClient({"parent": _parent(), "child": _child()})
