"""Storage Engine - the write path.

Every write runs inside the single global write scope and against a
draft: a copy-on-write fork of the committed row store and indexes.
When the write succeeds the draft is published with one reference swap;
when it fails the draft is discarded and the committed state is
untouched. Readers grab the committed workspace reference and never
lock.

Mutation protocol (same for autocommit, transaction overlays and
commit replay):
    1. Normalize the record against the table schema
    2. Constraint Layer checks (keys, references, restrict)
    3. Index Manager checks (unique indexes)
    4. Row Store write
    5. Index maintenance
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping

from relstore.domain.entities import Column, Expression, Mutation, Row, TableSchema
from relstore.domain.errors import ConstraintViolation, SchemaError, WriteLockTimeout
from relstore.domain.services.constraint_checker import ConstraintChecker
from relstore.domain.services.index_manager import IndexDefinition, IndexManager
from relstore.domain.services.row_store import RowStore
from relstore.domain.value_objects import IndexHandle, MutationKind, RowId
from relstore.infrastructure.config import EngineConfig
from relstore.infrastructure.logging import get_logger
from relstore.infrastructure.metrics import MetricsRegistry, get_metrics

logger = get_logger(__name__)


@dataclass
class Workspace:
    """A row store together with the indexes over it."""

    store: RowStore
    indexes: IndexManager

    def fork(self) -> Workspace:
        return Workspace(store=self.store.fork(), indexes=self.indexes.fork())


class StorageEngine:
    """Owner of the committed state and the global write scope.

    Usage:
        engine = StorageEngine()
        engine.create_table(schema)
        row_id = engine.insert("Persons", {"FirstName": "Alice"})

        with engine.draft() as ws:
            engine.apply_insert(ws, "Persons", {"FirstName": "Bob"})
            engine.apply_insert(ws, "Persons", {"FirstName": "Carol"})
        # both rows published together

    Thread Safety:
        Writers are serialized by the write scope. ``committed`` may be
        read from any thread at any time.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._metrics = metrics or get_metrics()
        self._checker = ConstraintChecker(self._config.enforce_foreign_keys)
        self._write_lock = threading.RLock()
        self._committed = Workspace(store=RowStore(), indexes=IndexManager())

    @property
    def committed(self) -> Workspace:
        """The latest published workspace. Never modify it."""
        return self._committed

    @property
    def checker(self) -> ConstraintChecker:
        return self._checker

    # Write scope

    @contextmanager
    def write_scope(self) -> Iterator[None]:
        """Hold the global write lock.

        Re-entrant for the owning thread.

        Raises:
            WriteLockTimeout: If the lock is not acquired in time.
        """
        start = time.perf_counter()
        acquired = self._write_lock.acquire(timeout=self._config.write_lock_timeout_seconds)
        self._metrics.write_lock_wait_seconds.observe(time.perf_counter() - start)
        if not acquired:
            raise WriteLockTimeout(
                f"Write scope not acquired within {self._config.write_lock_timeout_seconds}s"
            )
        try:
            yield
        finally:
            self._write_lock.release()

    @contextmanager
    def draft(self) -> Iterator[Workspace]:
        """Fork the committed state and publish it if the block succeeds."""
        with self.write_scope():
            workspace = self._committed.fork()
            yield workspace
            self._committed = workspace

    # Mutation protocol

    def apply_insert(
        self,
        ws: Workspace,
        table: str,
        record: Mapping[str, Any],
        row_id: RowId | None = None,
    ) -> Mutation:
        with self._violations():
            row_id, row = ws.store.prepare_insert(table, record, row_id)
            self._checker.check_insert(ws.store, table, row_id, row)
            ws.indexes.check_insert(table, row_id, row)
        ws.store.put(table, row_id, row)
        ws.indexes.on_insert(table, row_id, row)
        return Mutation(kind=MutationKind.INSERT, table=table, row_id=row_id, values=row)

    def apply_update(
        self, ws: Workspace, table: str, row_id: RowId, patch: Mapping[str, Any]
    ) -> Mutation:
        old = ws.store.get_record(table, row_id)
        changes = ws.store.schema(table).normalize(patch, partial=True)
        new = {**old, **changes}
        with self._violations():
            self._checker.check_update(ws.store, table, row_id, old, new)
            ws.indexes.check_update(table, row_id, old, new)
        ws.store.put(table, row_id, new)
        ws.indexes.on_update(table, row_id, old, new)
        return Mutation(kind=MutationKind.UPDATE, table=table, row_id=row_id, values=changes)

    def apply_delete(self, ws: Workspace, table: str, row_id: RowId) -> Mutation:
        old = ws.store.get_record(table, row_id)
        with self._violations():
            self._checker.check_delete(ws.store, table, row_id)
        ws.store.remove(table, row_id)
        ws.indexes.on_delete(table, row_id, old)
        return Mutation(kind=MutationKind.DELETE, table=table, row_id=row_id)

    def apply(self, ws: Workspace, mutation: Mutation) -> Mutation:
        """Re-apply a recorded mutation to another workspace."""
        if mutation.kind == MutationKind.INSERT:
            return self.apply_insert(ws, mutation.table, mutation.values, mutation.row_id)
        elif mutation.kind == MutationKind.UPDATE:
            return self.apply_update(ws, mutation.table, mutation.row_id, mutation.values)
        return self.apply_delete(ws, mutation.table, mutation.row_id)

    def replay(self, mutations: list[Mutation]) -> None:
        """Apply mutations in order and publish them all at once.

        Raises:
            ConstraintViolation, NotFound, SchemaError: From the first
                failing mutation; nothing is published.
        """
        with self.draft() as ws:
            for mutation in mutations:
                self.apply(ws, mutation)
        for mutation in mutations:
            self._metrics.mutations_total.labels(
                kind=mutation.kind.value, status="success"
            ).inc()

    @contextmanager
    def _violations(self) -> Iterator[None]:
        try:
            yield
        except ConstraintViolation as e:
            logger.warning(
                "constraint_violation",
                kind=e.kind,
                table=e.table,
                error=str(e),
            )
            self._metrics.constraint_violations_total.labels(kind=e.kind).inc()
            raise

    # Autocommit operations

    def _autocommit(self, kind: MutationKind, apply: Callable[[Workspace], Mutation]) -> Mutation:
        try:
            with self.draft() as ws:
                mutation = apply(ws)
        except Exception:
            self._metrics.mutations_total.labels(kind=kind.value, status="error").inc()
            raise
        self._metrics.mutations_total.labels(kind=kind.value, status="success").inc()
        return mutation

    def insert(self, table: str, record: Mapping[str, Any]) -> RowId:
        mutation = self._autocommit(
            MutationKind.INSERT, lambda ws: self.apply_insert(ws, table, record)
        )
        return mutation.row_id

    def update(self, table: str, row_id: int, patch: Mapping[str, Any]) -> None:
        self._autocommit(
            MutationKind.UPDATE, lambda ws: self.apply_update(ws, table, RowId(row_id), patch)
        )

    def delete(self, table: str, row_id: int) -> None:
        self._autocommit(
            MutationKind.DELETE, lambda ws: self.apply_delete(ws, table, RowId(row_id))
        )

    # Reads

    def get(self, table: str, row_id: int) -> Row:
        return self._committed.store.get(table, row_id)

    def scan(self, table: str, predicate: Expression | None = None) -> Iterator[Row]:
        return self._committed.store.scan(table, predicate)

    # Schema

    def create_table(self, schema: TableSchema) -> None:
        with self.draft() as ws:
            self._checker.validate_schema(ws.store, schema)
            ws.store.create_table(schema)
        logger.info("table_created", table=schema.name, columns=schema.column_names)

    def add_column(self, table: str, column: Column) -> TableSchema:
        with self.draft() as ws:
            schema = ws.store.add_column(table, column)
        logger.info("column_added", table=table, column=str(column))
        return schema

    def drop_table(self, table: str) -> None:
        with self.draft() as ws:
            ws.store.schema(table)
            self._checker.check_drop_table(ws.store, table)
            ws.indexes.drop_table_indexes(table)
            ws.store.drop_table(table)
        logger.info("table_dropped", table=table)

    def create_index(self, definition: IndexDefinition) -> IndexHandle:
        """Create and populate an index under the write scope.

        Raises:
            SchemaError: Unknown table or column, or duplicate name.
            UniqueViolation: Existing rows violate a unique index.
        """
        with self.draft() as ws:
            schema = ws.store.schema(definition.table)
            if not definition.columns:
                raise SchemaError(f"Index '{definition.name}' needs at least one column")
            for name in definition.columns:
                schema.column(name)
            with self._violations():
                handle = ws.indexes.create_index(definition, ws.store.records(definition.table))
        logger.info(
            "index_created",
            index=definition.name,
            table=definition.table,
            columns=list(definition.columns),
            unique=definition.unique,
            partial=definition.is_partial,
        )
        return handle

    def drop_index(self, name: str) -> None:
        with self.draft() as ws:
            ws.indexes.drop_index(name)
        logger.info("index_dropped", index=name)
