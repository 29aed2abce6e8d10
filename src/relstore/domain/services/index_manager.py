"""Index Manager - secondary indexes kept in sync with the Row Store.

Indexes are hash maps from a key tuple to the identifiers of the rows
carrying that key. They are derived data: the Row Store is authoritative
and an index can always be rebuilt from it.

Supported index kinds:
    - single-column and multi-column keys
    - UNIQUE: a key may map to at most one row; keys containing NULL
      never conflict (SQL semantics)
    - partial: only rows satisfying the index predicate are indexed, and
      uniqueness is only enforced among those rows

Maintenance is synchronous. Callers run the ``check_*`` method before
writing a row and the matching ``on_*`` method after, within the same
write scope.

Like the RowStore, an IndexManager is copy-on-write: ``fork()`` shares
every index until the fork modifies it.

References:
    - PostgreSQL docs, "Partial Indexes" and "Unique Indexes"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from relstore.domain.entities import Expression
from relstore.domain.entities.expressions import hashable
from relstore.domain.errors import SchemaError, UniqueViolation
from relstore.domain.value_objects import IndexHandle, RowId


@dataclass(frozen=True)
class IndexDefinition:
    """Definition of a secondary index."""

    name: str
    table: str
    columns: tuple[str, ...]
    unique: bool = False
    predicate: Expression | None = None

    @property
    def handle(self) -> IndexHandle:
        return IndexHandle(name=self.name, table=self.table)

    @property
    def is_partial(self) -> bool:
        return self.predicate is not None

    def covers(self, row: dict[str, Any]) -> bool:
        """Whether a row belongs in this index."""
        return self.predicate is None or bool(self.predicate.evaluate(row))

    def key_for(self, row: dict[str, Any]) -> tuple[Any, ...]:
        return tuple(hashable(row.get(c)) for c in self.columns)

    def __str__(self) -> str:
        unique = "UNIQUE " if self.unique else ""
        where = f" WHERE {self.predicate}" if self.predicate is not None else ""
        return f"CREATE {unique}INDEX {self.name} ON {self.table} ({', '.join(self.columns)}){where}"


@dataclass
class IndexMetadata:
    """Metadata for an index."""

    name: str
    table: str
    columns: tuple[str, ...]
    unique: bool
    partial: bool
    num_entries: int
    definition: str


@dataclass
class IndexStats:
    """Statistics for index monitoring."""

    num_indexes: int
    total_entries: int
    lookup_count: int


@dataclass
class _Counters:
    lookups: int = 0


class SecondaryIndex:
    """One hash index: key tuple -> set of row identifiers."""

    def __init__(
        self,
        definition: IndexDefinition,
        entries: dict[tuple[Any, ...], frozenset[RowId]] | None = None,
    ) -> None:
        self.definition = definition
        self._entries: dict[tuple[Any, ...], frozenset[RowId]] = entries or {}

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def num_entries(self) -> int:
        return sum(len(ids) for ids in self._entries.values())

    def copy(self) -> SecondaryIndex:
        return SecondaryIndex(self.definition, dict(self._entries))

    def lookup(self, key: tuple[Any, ...]) -> list[RowId]:
        return sorted(self._entries.get(tuple(hashable(v) for v in key), frozenset()))

    def row_ids(self) -> list[RowId]:
        """All indexed row identifiers, in identifier order."""
        result: set[RowId] = set()
        for ids in self._entries.values():
            result.update(ids)
        return sorted(result)

    def conflicting_row(self, key: tuple[Any, ...], row_id: RowId) -> RowId | None:
        """Another row already holding ``key``, for unique indexes."""
        if not self.definition.unique or any(v is None for v in key):
            return None
        others = self._entries.get(key, frozenset()) - {row_id}
        return min(others) if others else None

    def add(self, key: tuple[Any, ...], row_id: RowId) -> None:
        self._entries[key] = self._entries.get(key, frozenset()) | {row_id}

    def remove(self, key: tuple[Any, ...], row_id: RowId) -> None:
        remaining = self._entries.get(key, frozenset()) - {row_id}
        if remaining:
            self._entries[key] = remaining
        else:
            self._entries.pop(key, None)


class IndexManager:
    """Manager for the secondary indexes of every table.

    Thread Safety:
        Same contract as RowStore: published managers are read-only and
        writes go to forks under the storage engine's write scope.
    """

    def __init__(
        self,
        indexes: dict[str, SecondaryIndex] | None = None,
        counters: _Counters | None = None,
    ) -> None:
        self._indexes: dict[str, SecondaryIndex] = indexes if indexes is not None else {}
        self._counters = counters or _Counters()
        self._owned: set[str] = set()

    def fork(self) -> IndexManager:
        return IndexManager(indexes=dict(self._indexes), counters=self._counters)

    def _writable(self, name: str) -> SecondaryIndex:
        index = self._indexes[name]
        if name not in self._owned:
            index = index.copy()
            self._indexes[name] = index
            self._owned.add(name)
        return index

    def create_index(
        self,
        definition: IndexDefinition,
        rows: Iterable[tuple[RowId, dict[str, Any]]],
    ) -> IndexHandle:
        """Create and populate an index.

        Args:
            definition: The index definition.
            rows: Existing rows of the table.

        Returns:
            Handle of the new index.

        Raises:
            SchemaError: If the name is taken.
            UniqueViolation: If existing rows violate a unique index.
        """
        if definition.name in self._indexes:
            raise SchemaError(f"Index '{definition.name}' already exists")

        index = SecondaryIndex(definition)
        for row_id, row in rows:
            if not definition.covers(row):
                continue
            key = definition.key_for(row)
            other = index.conflicting_row(key, row_id)
            if other is not None:
                raise UniqueViolation(
                    f"Could not create unique index '{definition.name}': "
                    f"key {_format_key(definition, key)} is duplicated",
                    definition.table,
                    definition.name,
                )
            index.add(key, row_id)

        self._indexes[definition.name] = index
        self._owned.add(definition.name)
        return definition.handle

    def drop_index(self, name: str) -> IndexDefinition:
        """Drop an index.

        Raises:
            SchemaError: If the index does not exist.
        """
        index = self.get(name)
        del self._indexes[name]
        self._owned.discard(name)
        return index.definition

    def drop_table_indexes(self, table: str) -> None:
        for index in self.indexes_for(table):
            self.drop_index(index.name)

    def get(self, name: str) -> SecondaryIndex:
        try:
            return self._indexes[name]
        except KeyError:
            raise SchemaError(f"Index '{name}' does not exist") from None

    def has_index(self, name: str) -> bool:
        return name in self._indexes

    def indexes_for(self, table: str) -> list[SecondaryIndex]:
        """Indexes of a table, in creation order."""
        return [idx for idx in self._indexes.values() if idx.definition.table == table]

    def lookup(self, name: str, key: tuple[Any, ...]) -> list[RowId]:
        """Row identifiers for a key; empty when the key is absent."""
        index = self.get(name)
        self._counters.lookups += 1
        return index.lookup(key)

    # Maintenance

    def check_insert(self, table: str, row_id: RowId, row: dict[str, Any]) -> None:
        for index in self.indexes_for(table):
            self._check_unique(index, row_id, row)

    def check_update(
        self, table: str, row_id: RowId, old: dict[str, Any], new: dict[str, Any]
    ) -> None:
        for index in self.indexes_for(table):
            self._check_unique(index, row_id, new)

    def on_insert(self, table: str, row_id: RowId, row: dict[str, Any]) -> None:
        for index in self.indexes_for(table):
            if index.definition.covers(row):
                self._writable(index.name).add(index.definition.key_for(row), row_id)

    def on_update(
        self, table: str, row_id: RowId, old: dict[str, Any], new: dict[str, Any]
    ) -> None:
        for index in self.indexes_for(table):
            definition = index.definition
            old_covered = definition.covers(old)
            new_covered = definition.covers(new)
            old_key = definition.key_for(old)
            new_key = definition.key_for(new)
            if old_covered == new_covered and (not old_covered or old_key == new_key):
                continue
            writable = self._writable(index.name)
            if old_covered:
                writable.remove(old_key, row_id)
            if new_covered:
                writable.add(new_key, row_id)

    def on_delete(self, table: str, row_id: RowId, row: dict[str, Any]) -> None:
        for index in self.indexes_for(table):
            writable = self._writable(index.name)
            writable.remove(index.definition.key_for(row), row_id)

    def _check_unique(self, index: SecondaryIndex, row_id: RowId, row: dict[str, Any]) -> None:
        definition = index.definition
        if not definition.unique or not definition.covers(row):
            return
        key = definition.key_for(row)
        other = index.conflicting_row(key, row_id)
        if other is not None:
            raise UniqueViolation(
                f"Duplicate key value violates unique index '{definition.name}': "
                f"key {_format_key(definition, key)} already exists (row {other})",
                definition.table,
                definition.name,
            )

    # Introspection

    def list_indexes(self, table: str | None = None) -> list[IndexMetadata]:
        """List all indexes, optionally filtered by table."""
        indexes = self._indexes.values()
        if table is not None:
            indexes = [idx for idx in indexes if idx.definition.table == table]
        return [
            IndexMetadata(
                name=idx.name,
                table=idx.definition.table,
                columns=idx.definition.columns,
                unique=idx.definition.unique,
                partial=idx.definition.is_partial,
                num_entries=idx.num_entries,
                definition=str(idx.definition),
            )
            for idx in indexes
        ]

    def get_stats(self) -> IndexStats:
        """Return index manager statistics for monitoring."""
        return IndexStats(
            num_indexes=len(self._indexes),
            total_entries=sum(idx.num_entries for idx in self._indexes.values()),
            lookup_count=self._counters.lookups,
        )


def _format_key(definition: IndexDefinition, key: tuple[Any, ...]) -> str:
    return f"({', '.join(definition.columns)})=({', '.join(repr(v) for v in key)})"
