"""Row Store - authoritative, copy-on-write table storage.

A RowStore maps table names to their schema and rows. Rows are plain
dicts keyed by column name and are never mutated in place: an update
stores a new dict. Tables are copied lazily the first time a fork writes
to them, so a published store can be read without locks while a fork of
it is being modified.

Row identifiers come from per-table sequences shared by every fork.
A reserved identifier is never handed out again, even when the draft
that reserved it is discarded (PostgreSQL sequence semantics).

Usage:
    store = RowStore()
    store.create_table(schema)
    row_id = store.insert("Persons", {"FirstName": "Alice"})
    store.get("Persons", row_id)

References:
    - PostgreSQL docs, "Sequence Manipulation Functions"
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from relstore.domain.entities import Column, Expression, Row, TableSchema
from relstore.domain.errors import DuplicateKey, NotFound, SchemaError
from relstore.domain.value_objects import RowId


class Sequence:
    """Monotonic identifier generator for one table."""

    def __init__(self, start: int = 1) -> None:
        self._lock = threading.Lock()
        self._next = start

    def next_value(self) -> RowId:
        with self._lock:
            value = self._next
            self._next += 1
            return RowId(value)

    def advance_past(self, value: int) -> None:
        """Make sure the sequence never produces ``value`` or anything below."""
        with self._lock:
            if value >= self._next:
                self._next = value + 1

    @property
    def last_value(self) -> int:
        return self._next - 1


@dataclass
class TableData:
    """Schema and rows of one table."""

    schema: TableSchema
    rows: dict[RowId, dict[str, Any]]

    def copy(self) -> TableData:
        return TableData(schema=self.schema, rows=dict(self.rows))


class RowStore:
    """Copy-on-write storage for all tables.

    Thread Safety:
        A store that has been published is never written again and can
        be read from any thread. Writes go to forks, under the storage
        engine's write scope.
    """

    def __init__(
        self,
        tables: dict[str, TableData] | None = None,
        sequences: dict[str, Sequence] | None = None,
    ) -> None:
        self._tables: dict[str, TableData] = tables if tables is not None else {}
        self._sequences: dict[str, Sequence] = sequences if sequences is not None else {}
        self._owned: set[str] = set()

    def fork(self) -> RowStore:
        """Create a writable copy that shares unmodified tables with this store."""
        return RowStore(tables=dict(self._tables), sequences=self._sequences)

    def _table(self, name: str) -> TableData:
        try:
            return self._tables[name]
        except KeyError:
            raise SchemaError(f"Table '{name}' does not exist") from None

    def _writable(self, name: str) -> TableData:
        table = self._table(name)
        if name not in self._owned:
            table = table.copy()
            self._tables[name] = table
            self._owned.add(name)
        return table

    # Schema

    def create_table(self, schema: TableSchema) -> None:
        """Create an empty table.

        Raises:
            SchemaError: If the table already exists.
        """
        if schema.name in self._tables:
            raise SchemaError(f"Table '{schema.name}' already exists")
        self._tables[schema.name] = TableData(schema=schema, rows={})
        self._owned.add(schema.name)
        self._sequences[schema.name] = Sequence()

    def drop_table(self, name: str) -> None:
        self._table(name)
        del self._tables[name]
        self._owned.discard(name)

    def add_column(self, table: str, column: Column) -> TableSchema:
        """Add a nullable column; existing rows get NULL."""
        data = self._writable(table)
        schema = data.schema.with_column(column)
        data.schema = schema
        data.rows = {
            row_id: {**row, column.name: None} for row_id, row in data.rows.items()
        }
        return schema

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def schema(self, table: str) -> TableSchema:
        return self._table(table).schema

    def tables(self) -> list[str]:
        return list(self._tables.keys())

    def schemas(self) -> list[TableSchema]:
        return [t.schema for t in self._tables.values()]

    # Identifiers

    def next_id(self, table: str) -> RowId:
        """Reserve the next identifier for a table."""
        self._table(table)
        return self._sequences[table].next_value()

    def last_id(self, table: str) -> int:
        """Last identifier handed out for a table (``currval``), 0 if none."""
        self._table(table)
        return self._sequences[table].last_value

    def prepare_insert(
        self, table: str, record: Mapping[str, Any], row_id: RowId | None = None
    ) -> tuple[RowId, dict[str, Any]]:
        """Normalize a record and assign its identifier.

        The identifier is, in order of preference: the primary key value in
        the record, the given ``row_id``, or the next sequence value. A
        caller-supplied identifier advances the sequence past it.

        Returns:
            The identifier and the normalized row, primary key included.
        """
        schema = self.schema(table)
        row = schema.normalize(record)
        pk = schema.primary_key.name

        if row[pk] is None:
            row[pk] = row_id if row_id is not None else self.next_id(table)
        else:
            self._sequences[table].advance_past(row[pk])
        return RowId(row[pk]), row

    # Row access

    def contains(self, table: str, row_id: int) -> bool:
        return row_id in self._table(table).rows

    def get_record(self, table: str, row_id: int) -> dict[str, Any]:
        """Get the stored record for a row.

        Raises:
            NotFound: If the row does not exist.
        """
        try:
            return self._table(table).rows[RowId(row_id)]
        except KeyError:
            raise NotFound(table, row_id) from None

    def records(self, table: str) -> list[tuple[RowId, dict[str, Any]]]:
        """Snapshot of all rows ordered by identifier."""
        return sorted(self._table(table).rows.items())

    def count(self, table: str) -> int:
        return len(self._table(table).rows)

    def put(self, table: str, row_id: RowId, row: dict[str, Any]) -> None:
        """Store a row, replacing any previous version."""
        self._writable(table).rows[row_id] = row

    def remove(self, table: str, row_id: RowId) -> dict[str, Any]:
        data = self._writable(table)
        try:
            return data.rows.pop(row_id)
        except KeyError:
            raise NotFound(table, row_id) from None

    # Contract operations

    def insert(self, table: str, record: Mapping[str, Any]) -> RowId:
        """Insert a record and return its identifier.

        Raises:
            DuplicateKey: If the identifier is already taken.
        """
        row_id, row = self.prepare_insert(table, record)
        if self.contains(table, row_id):
            raise DuplicateKey(f"Key {row_id} already exists in '{table}'", table)
        self.put(table, row_id, row)
        return row_id

    def get(self, table: str, row_id: int) -> Row:
        return Row.from_mapping(self.get_record(table, row_id))

    def update(self, table: str, row_id: int, patch: Mapping[str, Any]) -> dict[str, Any]:
        """Apply a patch to a row and return the new record."""
        old = self.get_record(table, row_id)
        changes = self.schema(table).normalize(patch, partial=True)
        new = {**old, **changes}
        self.put(table, RowId(row_id), new)
        return new

    def delete(self, table: str, row_id: int) -> None:
        self.remove(table, RowId(row_id))

    def scan(self, table: str, predicate: Expression | None = None) -> Iterator[Row]:
        """Lazily yield rows matching a predicate.

        The table state is captured when scan() is called; later writes
        are not observed by the returned iterator.
        """
        snapshot = self.records(table)
        return _iter_rows(snapshot, predicate)


def _iter_rows(
    snapshot: list[tuple[RowId, dict[str, Any]]], predicate: Expression | None
) -> Iterator[Row]:
    for _, record in snapshot:
        if predicate is None or predicate.evaluate(record):
            yield Row.from_mapping(record)
