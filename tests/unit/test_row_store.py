"""Unit tests for RowStore and TableSchema."""

from __future__ import annotations

from datetime import date

import pytest

from relstore.domain.entities import Column, ForeignKey, TableSchema, eq
from relstore.domain.errors import DuplicateKey, InvalidValue, NotFound, SchemaError
from relstore.domain.services import RowStore, Sequence
from relstore.domain.value_objects import ColumnType


def persons_schema() -> TableSchema:
    return TableSchema(
        name="Persons",
        columns=(
            Column("PersonID", ColumnType.SERIAL, primary_key=True),
            Column("FirstName", ColumnType.VARCHAR, max_length=100),
            Column("DateOfBirth", ColumnType.DATE),
        ),
    )


@pytest.mark.unit
class TestTableSchema:
    """Tests for TableSchema validation."""

    def test_primary_key(self) -> None:
        schema = persons_schema()
        assert schema.primary_key.name == "PersonID"
        assert schema.column_names == ["PersonID", "FirstName", "DateOfBirth"]

    def test_requires_exactly_one_primary_key(self) -> None:
        with pytest.raises(SchemaError):
            TableSchema(name="T", columns=(Column("A", ColumnType.INTEGER),))
        with pytest.raises(SchemaError):
            TableSchema(
                name="T",
                columns=(
                    Column("A", ColumnType.INTEGER, primary_key=True),
                    Column("B", ColumnType.INTEGER, primary_key=True),
                ),
            )

    def test_primary_key_must_be_integer(self) -> None:
        with pytest.raises(SchemaError, match="INTEGER or SERIAL"):
            TableSchema(name="T", columns=(Column("A", ColumnType.VARCHAR, primary_key=True),))

    def test_duplicate_column(self) -> None:
        with pytest.raises(SchemaError, match="Duplicate column"):
            TableSchema(
                name="T",
                columns=(
                    Column("A", ColumnType.SERIAL, primary_key=True),
                    Column("A", ColumnType.TEXT),
                ),
            )

    def test_normalize_fills_missing_columns(self) -> None:
        row = persons_schema().normalize({"FirstName": "Alice", "DateOfBirth": "1990-01-01"})
        assert row == {"PersonID": None, "FirstName": "Alice", "DateOfBirth": date(1990, 1, 1)}

    def test_normalize_rejects_unknown_column(self) -> None:
        with pytest.raises(SchemaError):
            persons_schema().normalize({"Nickname": "Al"})

    def test_not_null_column(self) -> None:
        column = Column("Name", ColumnType.TEXT, nullable=False)
        with pytest.raises(InvalidValue, match="does not accept NULL"):
            column.coerce(None)

    def test_with_column(self) -> None:
        schema = persons_schema().with_column(Column("Attributes", ColumnType.JSON))
        assert schema.has_column("Attributes")
        with pytest.raises(SchemaError):
            schema.with_column(Column("Attributes", ColumnType.JSON))

    def test_str(self) -> None:
        column = Column("PersonID", ColumnType.INTEGER, references=ForeignKey("Persons", "PersonID"))
        assert str(column) == "PersonID INTEGER REFERENCES Persons(PersonID)"


@pytest.mark.unit
class TestSequence:
    """Tests for Sequence."""

    def test_monotonic(self) -> None:
        sequence = Sequence()
        assert [sequence.next_value() for _ in range(3)] == [1, 2, 3]
        assert sequence.last_value == 3

    def test_advance_past(self) -> None:
        sequence = Sequence()
        sequence.advance_past(10)
        assert sequence.next_value() == 11
        sequence.advance_past(5)
        assert sequence.next_value() == 12


@pytest.mark.unit
class TestRowStore:
    """Tests for RowStore."""

    @pytest.fixture
    def store(self) -> RowStore:
        store = RowStore()
        store.create_table(persons_schema())
        return store

    def test_insert_assigns_increasing_ids(self, store: RowStore) -> None:
        ids = [store.insert("Persons", {"FirstName": name}) for name in ("Alice", "Bob", "Carol")]
        assert ids == [1, 2, 3]

    def test_get(self, store: RowStore) -> None:
        row_id = store.insert("Persons", {"FirstName": "Alice", "DateOfBirth": "1990-01-01"})
        row = store.get("Persons", row_id)

        assert row["FirstName"] == "Alice"
        assert row["PersonID"] == row_id
        assert row["DateOfBirth"] == date(1990, 1, 1)

    def test_get_missing(self, store: RowStore) -> None:
        with pytest.raises(NotFound):
            store.get("Persons", 99)

    def test_unknown_table(self, store: RowStore) -> None:
        with pytest.raises(SchemaError):
            store.insert("Nobody", {})

    def test_duplicate_table(self, store: RowStore) -> None:
        with pytest.raises(SchemaError, match="already exists"):
            store.create_table(persons_schema())

    def test_explicit_key_advances_sequence(self, store: RowStore) -> None:
        assert store.insert("Persons", {"PersonID": 10, "FirstName": "Alice"}) == 10
        assert store.insert("Persons", {"FirstName": "Bob"}) == 11

    def test_duplicate_key(self, store: RowStore) -> None:
        store.insert("Persons", {"PersonID": 1})
        with pytest.raises(DuplicateKey):
            store.insert("Persons", {"PersonID": 1})

    def test_update(self, store: RowStore) -> None:
        row_id = store.insert("Persons", {"FirstName": "Alice"})
        store.update("Persons", row_id, {"FirstName": "Alicia"})
        assert store.get("Persons", row_id)["FirstName"] == "Alicia"

    def test_delete(self, store: RowStore) -> None:
        row_id = store.insert("Persons", {"FirstName": "Alice"})
        store.delete("Persons", row_id)
        assert not store.contains("Persons", row_id)
        with pytest.raises(NotFound):
            store.delete("Persons", row_id)

    def test_ids_never_reused(self, store: RowStore) -> None:
        first = store.insert("Persons", {"FirstName": "Alice"})
        store.delete("Persons", first)
        assert store.insert("Persons", {"FirstName": "Bob"}) == first + 1

    def test_scan_with_predicate(self, store: RowStore) -> None:
        for name in ("Alice", "Bob", "Alice"):
            store.insert("Persons", {"FirstName": name})

        rows = list(store.scan("Persons", eq("FirstName", "Alice")))
        assert [r["PersonID"] for r in rows] == [1, 3]

    def test_scan_is_a_snapshot(self, store: RowStore) -> None:
        store.insert("Persons", {"FirstName": "Alice"})
        rows = store.scan("Persons")
        store.insert("Persons", {"FirstName": "Bob"})

        assert len(list(rows)) == 1

    def test_add_column_backfills_null(self, store: RowStore) -> None:
        row_id = store.insert("Persons", {"FirstName": "Alice"})
        store.add_column("Persons", Column("Attributes", ColumnType.JSON))

        assert store.get("Persons", row_id)["Attributes"] is None

    def test_fork_is_copy_on_write(self, store: RowStore) -> None:
        """Writes to a fork are invisible to the original store."""
        store.insert("Persons", {"FirstName": "Alice"})
        fork = store.fork()
        fork.insert("Persons", {"FirstName": "Bob"})
        fork.update("Persons", 1, {"FirstName": "Alicia"})

        assert store.count("Persons") == 1
        assert store.get("Persons", 1)["FirstName"] == "Alice"
        assert fork.count("Persons") == 2

    def test_forks_share_sequences(self, store: RowStore) -> None:
        """An identifier reserved by a discarded fork is not handed out again."""
        fork = store.fork()
        assert fork.insert("Persons", {"FirstName": "Daniel"}) == 1
        assert store.insert("Persons", {"FirstName": "Alice"}) == 2
        assert store.last_id("Persons") == 2
