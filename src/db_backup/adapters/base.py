"""Backup client protocol definitions.

Defines the two capabilities the backup engine consumes from a database
backend:

- ``CatalogClient``: runs read-only introspection queries against the
  system catalog and returns rows as dicts.
- ``RowDataClient``: reads table rows (optionally bounded on a creation
  timestamp column) and counts rows.

``BackupClient`` combines both.  All methods are ``async def`` -- the
library is async-first.

Usage:
    from db_backup.adapters.base import BackupClient

    async def do_work(client: BackupClient) -> None:
        rows = await client.fetch_all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = :schema_name",
            {"schema_name": "public"},
        )
        posts = await client.fetch_rows("public", "posts")
        await client.close()
"""

import re
from datetime import datetime
from typing import Any, Protocol


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


class CatalogQueryError(Exception):
    """Raised when a catalog or data query fails at the backend."""

    pass


class MissingColumnError(CatalogQueryError):
    """Raised when a filtered row query names a column the table lacks.

    Kept distinct from every other failure so the row extractor can fall
    back to an unfiltered read.
    """

    def __init__(self, table: str, column: str, message: str = "") -> None:
        self.table = table
        self.column = column
        super().__init__(
            message or f"Column '{column}' does not exist on table '{table}'"
        )


class InvalidIdentifierError(ValueError):
    """Raised when a table or schema name is not a plain SQL identifier."""

    pass


# ------------------------------------------------------------------
# Identifier handling
# ------------------------------------------------------------------

# Letters, digits, underscore and $; must not start with a digit or $.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]{0,62}$")


def validate_identifier(name: str) -> str:
    """Return ``name`` unchanged if it is a plain SQL identifier.

    Table and schema names cannot be bound as query parameters, so any name
    that ends up interpolated into SQL text must pass this check first.

    Raises:
        InvalidIdentifierError: If ``name`` contains anything besides
            letters, digits, ``_`` and ``$`` or is longer than 63 bytes.

    Example:
        >>> validate_identifier("posts")
        'posts'
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise InvalidIdentifierError(f"Invalid SQL identifier: {name!r}")
    return name


def quote_ident(name: str) -> str:
    """Validate and double-quote an identifier.

    Example:
        >>> quote_ident("Posts")
        '"Posts"'
    """
    return '"' + validate_identifier(name) + '"'


# ------------------------------------------------------------------
# Protocols
# ------------------------------------------------------------------


class CatalogClient(Protocol):
    """Read-only access to the database's system catalog."""

    async def fetch_all(
        self, sql: str, params: dict[str, Any] | None = None
    ) -> list[dict]:
        """Run a catalog query and return its rows.

        Args:
            sql: Query text with ``:name`` style placeholders.
            params: Values for the placeholders.

        Returns:
            List of dicts (column name -> value), in result order.

        Raises:
            CatalogQueryError: If the query fails.
        """
        ...


class RowDataClient(Protocol):
    """Row-level reads used by the data extractor and the row counter."""

    async def fetch_rows(
        self,
        schema_name: str,
        table: str,
        date_column: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[dict]:
        """Read all rows of ``table``.

        When ``date_column`` is given, each supplied bound is applied
        inclusively (``date_column >= date_from``, ``date_column <= date_to``).

        Raises:
            MissingColumnError: If ``date_column`` does not exist on the table.
            CatalogQueryError: On any other failure.
        """
        ...

    async def count_rows(self, schema_name: str, table: str) -> int:
        """Return the exact number of rows in ``table``."""
        ...


class BackupClient(CatalogClient, RowDataClient, Protocol):
    """Everything the backup engine needs from one backend connection."""

    async def close(self) -> None:
        """Release connections held by the client."""
        ...
