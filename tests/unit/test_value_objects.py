"""Unit tests for domain value objects."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from relstore.domain.errors import InvalidValue
from relstore.domain.value_objects import (
    INVALID_ROW_ID,
    INVALID_TXN_ID,
    ColumnType,
    IndexHandle,
    MutationKind,
    RowId,
    TransactionId,
    TransactionState,
)


@pytest.mark.unit
class TestIdentifiers:
    """Tests for identifier types."""

    def test_row_id_is_int(self) -> None:
        """RowId is a plain int at runtime."""
        row_id = RowId(7)
        assert isinstance(row_id, int)
        assert row_id == 7

    def test_sentinels(self) -> None:
        """Sentinels are zero; real identifiers start at 1."""
        assert INVALID_ROW_ID == 0
        assert INVALID_TXN_ID == TransactionId(0)

    def test_index_handle(self) -> None:
        """IndexHandle is a frozen value with a readable form."""
        handle = IndexHandle("idx_lastname", "Persons")

        assert str(handle) == "idx_lastname ON Persons"
        assert handle == IndexHandle("idx_lastname", "Persons")
        with pytest.raises(AttributeError):
            handle.name = "other"  # type: ignore[misc]


@pytest.mark.unit
class TestTransactionState:
    """Tests for TransactionState enum."""

    def test_is_terminal(self) -> None:
        """COMMITTED and ABORTED are terminal states."""
        assert TransactionState.COMMITTED.is_terminal()
        assert TransactionState.ABORTED.is_terminal()
        assert not TransactionState.ACTIVE.is_terminal()

    def test_is_active(self) -> None:
        """Only ACTIVE state allows operations."""
        assert TransactionState.ACTIVE.is_active()
        assert not TransactionState.COMMITTED.is_active()
        assert not TransactionState.ABORTED.is_active()

    def test_mutation_kinds(self) -> None:
        assert [k.value for k in MutationKind] == ["insert", "update", "delete"]


@pytest.mark.unit
class TestColumnType:
    """Tests for ColumnType coercion."""

    def test_none_accepted_by_every_type(self) -> None:
        for column_type in ColumnType:
            assert column_type.coerce(None) is None

    def test_integer(self) -> None:
        assert ColumnType.INTEGER.coerce(5) == 5
        assert ColumnType.SERIAL.is_integer
        with pytest.raises(InvalidValue):
            ColumnType.INTEGER.coerce("5")
        with pytest.raises(InvalidValue):
            ColumnType.INTEGER.coerce(True)

    def test_float_accepts_int(self) -> None:
        value = ColumnType.FLOAT.coerce(3)
        assert value == 3.0
        assert isinstance(value, float)

    def test_varchar_max_length(self) -> None:
        """VARCHAR rejects values longer than max_length."""
        assert ColumnType.VARCHAR.coerce("Wolf", max_length=4) == "Wolf"
        with pytest.raises(InvalidValue, match="too long"):
            ColumnType.VARCHAR.coerce("Schmidt", max_length=4)

    def test_boolean_is_strict(self) -> None:
        assert ColumnType.BOOLEAN.coerce(False) is False
        with pytest.raises(InvalidValue):
            ColumnType.BOOLEAN.coerce(0)

    def test_date_from_iso_string(self) -> None:
        """DATE accepts dates, datetimes and ISO strings."""
        assert ColumnType.DATE.coerce("1990-01-01") == date(1990, 1, 1)
        assert ColumnType.DATE.coerce(date(1992, 5, 15)) == date(1992, 5, 15)
        assert ColumnType.DATE.coerce(datetime(1995, 7, 23, 10, 30)) == date(1995, 7, 23)

    def test_date_invalid(self) -> None:
        with pytest.raises(InvalidValue):
            ColumnType.DATE.coerce("1990-13-45")
        with pytest.raises(InvalidValue):
            ColumnType.DATE.coerce(19900101)

    def test_json_from_text_and_objects(self) -> None:
        """JSON accepts documents and JSON text."""
        assert ColumnType.JSON.coerce('{"eyeColor": "blue"}') == {"eyeColor": "blue"}
        assert ColumnType.JSON.coerce({"tags": [1, 2]}) == {"tags": [1, 2]}

    def test_json_detaches_caller_reference(self) -> None:
        document = {"eyeColor": "blue"}
        stored = ColumnType.JSON.coerce(document)
        document["eyeColor"] = "green"

        assert stored == {"eyeColor": "blue"}

    def test_json_invalid(self) -> None:
        with pytest.raises(InvalidValue):
            ColumnType.JSON.coerce("{not json")
        with pytest.raises(InvalidValue):
            ColumnType.JSON.coerce({"when": date(2020, 1, 1)})
