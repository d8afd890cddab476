"""Run diagnostics for backup generation.

A backup run never fails because one table or one facet could not be read;
those failures are logged and absorbed.  ``BackupDiagnostics`` is an optional
collector callers can pass in to see what was absorbed without changing the
success/failure contract of ``generate_backup``.

Usage:
    from db_backup.diagnostics import BackupDiagnostics

    diagnostics = BackupDiagnostics()
    data = await generate_backup(client, config, "admin-1", diagnostics=diagnostics)
    for table, reason in diagnostics.skipped_tables.items():
        print(f"{table} skipped: {reason}")
"""

from dataclasses import dataclass, field


@dataclass
class BackupDiagnostics:
    """Failures absorbed during one backup run.

    Attributes:
        skipped_tables: Tables omitted from the document, mapped to the
            error that caused the skip.
        degraded_facets: ``(table, facet)`` pairs that fell back to an empty
            list (e.g. ``("posts", "indexes")``).  Schema-wide facets use
            ``"*"`` as the table.
        fallback_tables: Tables whose date-filtered read fell back to a full
            read because they have no timestamp column.
        warnings: Human-readable messages, in the order they occurred.
    """

    skipped_tables: dict[str, str] = field(default_factory=dict)
    degraded_facets: list[tuple[str, str]] = field(default_factory=list)
    fallback_tables: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def record_skip(self, table: str, error: BaseException) -> None:
        """Record a table that was dropped from the backup."""
        reason = f"{type(error).__name__}: {error}"
        self.skipped_tables[table] = reason
        self.warnings.append(f"table {table} skipped: {reason}")

    def record_degraded(self, table: str, facet: str, error: BaseException) -> None:
        """Record a facet that degraded to an empty list."""
        self.degraded_facets.append((table, facet))
        self.warnings.append(f"{facet} for {table} unavailable: {error}")

    def record_fallback(self, table: str) -> None:
        """Record a table read without its date filter."""
        self.fallback_tables.append(table)
        self.warnings.append(f"table {table} has no timestamp column; date filter ignored")

    @property
    def has_issues(self) -> bool:
        """True if anything was skipped, degraded, or read unfiltered."""
        return bool(self.skipped_tables or self.degraded_facets or self.fallback_tables)
