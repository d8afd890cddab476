"""Pydantic models for catalog introspection results.

This module contains schema-domain models:
- Table structure: ColumnInfo, ForeignKeyInfo, IndexInfo, TableMetadata
- Security and code objects: RLSPolicy, TriggerInfo, FunctionInfo

Backup document models (BackupConfig, BackupData, ...) live in
db_backup.backup.models.
"""

from pydantic import BaseModel, Field


# ============================================================================
# Table Structure Models
# ============================================================================


class ColumnInfo(BaseModel):
    """A table column as declared in the catalog.

    ``type`` is the backend's own type text (``format_type`` output), never
    normalized, so every backend type is representable.

    Example:
        >>> col = ColumnInfo(name="id", type="uuid", nullable=False)
        >>> col.default_value is None
        True
    """

    name: str
    type: str
    nullable: bool = True
    default_value: str | None = None  # opaque expression text


class ForeignKeyInfo(BaseModel):
    """A foreign key constraint.

    ``columns`` and ``referenced_columns`` are paired by key position, so a
    composite key is one entry.

    Example:
        >>> fk = ForeignKeyInfo(
        ...     name="child_fk", columns=["pa", "pb"],
        ...     referenced_table="parent", referenced_columns=["a", "b"],
        ... )
        >>> fk.column, fk.referenced_column
        ('pa', 'a')
    """

    name: str
    columns: list[str] = Field(default_factory=list)
    referenced_table: str
    referenced_columns: list[str] = Field(default_factory=list)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"

    @property
    def column(self) -> str:
        """First local column."""
        return self.columns[0] if self.columns else ""

    @property
    def referenced_column(self) -> str:
        """First referenced column."""
        return self.referenced_columns[0] if self.referenced_columns else ""


class IndexInfo(BaseModel):
    """A non-primary index.

    ``columns`` holds key column names, or expression text for expression
    keys.  ``definition`` is the catalog's own ``CREATE INDEX`` text, which
    keeps predicates and operator classes that the other fields cannot.
    """

    name: str
    columns: list[str] = Field(default_factory=list)
    unique: bool = False
    type: str = "btree"  # access method: btree, hash, gin, gist, ...
    definition: str | None = None


class TableMetadata(BaseModel):
    """Structure of one table.

    ``columns`` keeps ordinal (declaration) order.  ``row_count`` is taken
    with a separate count and may differ from the number of extracted rows
    when a date filter applies.
    """

    table_name: str
    columns: list[ColumnInfo] = Field(default_factory=list)
    primary_keys: list[str] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list)
    indexes: list[IndexInfo] = Field(default_factory=list)
    row_count: int = 0

    @property
    def column_names(self) -> list[str]:
        """Column names in ordinal order."""
        return [c.name for c in self.columns]


# ============================================================================
# Policy / Trigger / Function Models
# ============================================================================


class RLSPolicy(BaseModel):
    """A row-level security policy.  Predicates are kept as opaque text."""

    table_name: str
    policy_name: str
    command: str = "ALL"  # SELECT, INSERT, UPDATE, DELETE, ALL
    roles: list[str] = Field(default_factory=list)
    using: str | None = None
    with_check: str | None = None
    permissive: bool = True


class TriggerInfo(BaseModel):
    """A user trigger with its full ``CREATE TRIGGER`` text."""

    trigger_name: str
    definition: str
    is_enabled: bool = True
    function_name: str = ""
    table_name: str


class FunctionInfo(BaseModel):
    """A stored function or procedure with its full definition text."""

    function_name: str
    definition: str
    arguments: str = ""
    return_type: str = ""
    language: str = ""
    volatility: str = "VOLATILE"  # IMMUTABLE, STABLE, VOLATILE
    security: str = "SECURITY INVOKER"  # or SECURITY DEFINER
