"""Backup configuration and document models.

``BackupConfig`` is what a caller asks for; ``BackupData`` is what the
engine produces.  Both round-trip losslessly through JSON.

Usage:
    from db_backup.backup.models import BackupConfig, BackupOptions

    config = BackupConfig(
        scope="selective",
        tables=["posts"],
        options=BackupOptions(include_structure=True, include_data=True),
        date_from="2024-01-01",
        date_to="2024-01-31",
        format="sql",
    )
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from db_backup.schema.models import FunctionInfo, RLSPolicy, TableMetadata, TriggerInfo

BACKUP_FORMAT_VERSION = "1.0.0"

BackupScope = Literal["full", "selective"]
BackupFormat = Literal["sql", "json"]


# ============================================================================
# Configuration
# ============================================================================


class BackupOptions(BaseModel):
    """Independent toggles, one per extraction facet."""

    include_structure: bool = True
    include_data: bool = True
    include_rls: bool = False
    include_triggers: bool = False
    include_indexes: bool = False
    include_extensions: bool = False

    @property
    def any_enabled(self) -> bool:
        """True if at least one facet is requested."""
        return any(
            (
                self.include_structure,
                self.include_data,
                self.include_rls,
                self.include_triggers,
                self.include_indexes,
                self.include_extensions,
            )
        )


class BackupConfig(BaseModel):
    """Input for one backup run.

    ``tables`` only matters for ``selective`` scope; a ``full`` run always
    discovers its tables.  ``date_from``/``date_to`` are ISO-8601 strings
    and only bound row extraction.

    Invariants are checked by ``validate_backup_config`` rather than on
    construction, so an invalid request can still be parsed and reported.
    """

    scope: BackupScope = "full"
    tables: list[str] = Field(default_factory=list)
    options: BackupOptions = Field(default_factory=BackupOptions)
    date_from: str | None = None
    date_to: str | None = None
    format: BackupFormat = "json"


# ============================================================================
# Row values
# ============================================================================


class RawValue(BaseModel):
    """Backend value with no lossless scalar form, kept as text.

    Used for decimals, JSON documents, arrays, byte strings and
    non-finite floats.
    """

    raw: str


RowValue = None | bool | int | float | str | RawValue
Row = dict[str, RowValue]


# ============================================================================
# Backup document
# ============================================================================


class BackupMetadata(BaseModel):
    """Who generated the backup, when, and with which configuration."""

    generated_at: datetime
    generated_by: str
    version: str = BACKUP_FORMAT_VERSION
    config: BackupConfig


class TableBackupEntry(BaseModel):
    """Everything captured for one table."""

    structure: TableMetadata | None = None
    data: list[Row] = Field(default_factory=list)
    policies: list[RLSPolicy] = Field(default_factory=list)


class BackupData(BaseModel):
    """The complete backup document."""

    metadata: BackupMetadata
    tables: dict[str, TableBackupEntry] = Field(default_factory=dict)
    extensions: list[str] = Field(default_factory=list)
    functions: list[FunctionInfo] = Field(default_factory=list)
    triggers: list[TriggerInfo] = Field(default_factory=list)

    @property
    def table_count(self) -> int:
        """Number of tables actually represented in the document."""
        return len(self.tables)
