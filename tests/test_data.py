"""Tests for row extraction and value normalization."""

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from db_backup.adapters.base import CatalogQueryError
from db_backup.backup.data import get_table_data, normalize_row, normalize_value
from db_backup.backup.models import RawValue
from db_backup.diagnostics import BackupDiagnostics

JAN_FROM = datetime(2024, 1, 1, tzinfo=timezone.utc)
JAN_TO = datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)


class TestNormalizeValue:
    """Driver values map onto the RowValue union."""

    @pytest.mark.parametrize("value", [None, True, False, 7, 1.5, "text"])
    def test_scalars_unchanged(self, value):
        assert normalize_value(value) == value

    def test_uuid_to_string(self):
        value = UUID("12345678-1234-5678-1234-567812345678")
        assert normalize_value(value) == "12345678-1234-5678-1234-567812345678"

    def test_temporal_to_iso(self):
        assert normalize_value(date(2024, 1, 31)) == "2024-01-31"
        moment = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)
        assert normalize_value(moment) == "2024-01-31T12:00:00+00:00"

    def test_decimal_keeps_exact_text(self):
        assert normalize_value(Decimal("4.50")) == RawValue(raw="4.50")

    def test_non_finite_float(self):
        assert normalize_value(math.inf) == RawValue(raw="Infinity")
        assert normalize_value(-math.inf) == RawValue(raw="-Infinity")
        assert normalize_value(math.nan) == RawValue(raw="NaN")

    def test_bytes_hex(self):
        assert normalize_value(b"\x01\xff") == RawValue(raw="\\x01ff")

    def test_dict_json(self):
        assert normalize_value({"a": 1}) == RawValue(raw='{"a": 1}')

    def test_flat_list_array_text(self):
        assert normalize_value(["a", None, 'b"c']) == RawValue(raw='{"a",NULL,"b\\"c"}')

    def test_nested_list_json(self):
        assert normalize_value([{"a": 1}]) == RawValue(raw='[{"a": 1}]')

    def test_row_keeps_column_order(self):
        row = normalize_row({"b": 1, "a": Decimal("2")})
        assert list(row) == ["b", "a"]
        assert row["a"] == RawValue(raw="2")


class TestGetTableData:
    """get_table_data() filtering and fallback."""

    @pytest.mark.asyncio
    async def test_unbounded_reads_everything(self, client):
        rows = await get_table_data(client, "posts")
        assert len(rows) == 10
        assert client.row_calls == [("posts", None)]

    @pytest.mark.asyncio
    async def test_january_bounds(self, client):
        """Both bounds are inclusive."""
        rows = await get_table_data(client, "posts", JAN_FROM, JAN_TO)
        assert [r["id"] for r in rows] == [3, 4, 5, 6]
        assert client.row_calls == [("posts", "created_at")]

    @pytest.mark.asyncio
    async def test_single_bound(self, client):
        rows = await get_table_data(
            client, "posts", date_from=datetime(2024, 3, 1, tzinfo=timezone.utc)
        )
        assert [r["id"] for r in rows] == [9, 10]

    @pytest.mark.asyncio
    async def test_missing_column_falls_back(self, client_with_tags):
        diagnostics = BackupDiagnostics()
        rows = await get_table_data(
            client_with_tags, "tags", JAN_FROM, JAN_TO, diagnostics=diagnostics
        )
        assert len(rows) == 3
        assert client_with_tags.row_calls == [("tags", "created_at"), ("tags", None)]
        assert diagnostics.fallback_tables == ["tags"]

    @pytest.mark.asyncio
    async def test_custom_timestamp_column(self, client):
        """A column the table lacks triggers the same fallback."""
        rows = await get_table_data(
            client, "posts", JAN_FROM, JAN_TO, timestamp_column="inserted_at"
        )
        assert len(rows) == 10

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, client):
        client.failing_tables.add("posts")
        with pytest.raises(CatalogQueryError):
            await get_table_data(client, "posts", JAN_FROM, JAN_TO)
        assert len(client.row_calls) == 1

    @pytest.mark.asyncio
    async def test_values_normalized(self, client):
        rows = await get_table_data(client, "users")
        assert rows[0]["profile"] == RawValue(raw='{"theme": "dark"}')
        assert rows[1]["profile"] is None
