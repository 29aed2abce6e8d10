"""Database - unified entry point for the relational core.

This module provides the Database class that wires the components
together (storage engine, index manager, constraint layer, view engine,
transaction manager, planner and executor) and the Connection class
that gives each logical session its own transaction slot.

Usage:
    from relstore.application import Database
    from relstore.domain.entities import Column, TableScan, eq
    from relstore.domain.value_objects import ColumnType

    db = Database()
    db.create_table("Persons", [
        Column("PersonID", ColumnType.SERIAL, primary_key=True),
        Column("LastName", ColumnType.VARCHAR, max_length=100),
    ])
    db.create_index("Persons", "LastName", name="idx_lastname")

    person_id = db.insert("Persons", {"LastName": "Müller"})
    rows = db.select(TableScan("Persons").where(eq("LastName", "Müller")))
    print(db.explain("Persons", eq("LastName", "Müller")).render())

    with db.begin() as txn:
        txn.insert("Persons", {"LastName": "Wolf"})

Every data operation on the Database runs on its default connection.
Use connect() for additional sessions, each with at most one active
transaction.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence

from relstore.application.executor import QueryExecutor, QueryPlan
from relstore.application.planner import Planner
from relstore.domain.entities import (
    Column,
    Expression,
    QueryNode,
    Row,
    TableScan,
    TableSchema,
    Transaction,
)
from relstore.domain.errors import SchemaError, TransactionClosed
from relstore.domain.services import (
    IndexDefinition,
    IndexMetadata,
    IndexStats,
    StorageEngine,
    TransactionManager,
    TransactionStats,
    ViewDefinition,
    ViewEngine,
    ViewInfo,
    Workspace,
)
from relstore.domain.value_objects import ConnectionId, IndexHandle, RowId
from relstore.infrastructure.config import Config, get_config
from relstore.infrastructure.logging import get_logger
from relstore.infrastructure.metrics import MetricsRegistry, get_metrics

logger = get_logger(__name__)


@dataclass
class DatabaseStats:
    """Statistics for database monitoring."""

    tables: dict[str, int]
    indexes: IndexStats
    views: int
    materialized_views: int
    connections: int
    transactions: TransactionStats


class Connection:
    """A logical session.

    Operations run inside the connection's active transaction when there
    is one, and autocommit otherwise.
    """

    def __init__(self, database: Database, connection_id: ConnectionId) -> None:
        self._db = database
        self._connection_id = connection_id
        self._closed = False

    @property
    def connection_id(self) -> ConnectionId:
        return self._connection_id

    @property
    def transaction(self) -> Transaction | None:
        """The active transaction, if any."""
        return self._db.transactions.active_transaction(self._connection_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def _workspace(self) -> Workspace:
        txn = self.transaction
        if txn is not None:
            return self._db.transactions.workspace(txn)
        return self._db.storage.committed

    # Transactions

    def begin(self) -> Transaction:
        """Begin a transaction on this connection.

        Raises:
            AlreadyActive: If one is already active.
        """
        return self._db.transactions.begin(self._connection_id)

    def commit(self) -> None:
        """Commit the active transaction.

        Raises:
            TransactionClosed: If there is no active transaction.
            TransactionAborted: If the commit fails.
        """
        txn = self.transaction
        if txn is None:
            raise TransactionClosed(f"No active transaction on connection {self._connection_id}")
        txn.commit()

    def rollback(self) -> None:
        """Roll back the active transaction, if any."""
        txn = self.transaction
        if txn is not None:
            txn.rollback()

    # Data

    def insert(self, table: str, record: Mapping[str, Any]) -> RowId:
        txn = self.transaction
        if txn is not None:
            return txn.insert(table, record)
        return self._db.storage.insert(table, record)

    def update(self, table: str, row_id: int, patch: Mapping[str, Any]) -> None:
        txn = self.transaction
        if txn is not None:
            txn.update(table, row_id, patch)
        else:
            self._db.storage.update(table, row_id, patch)

    def delete(self, table: str, row_id: int) -> None:
        txn = self.transaction
        if txn is not None:
            txn.delete(table, row_id)
        else:
            self._db.storage.delete(table, row_id)

    def get(self, table: str, row_id: int) -> Row:
        """Get a row by identifier.

        Raises:
            NotFound: If the row does not exist.
        """
        return self._workspace().store.get(table, row_id)

    def scan(self, table: str, predicate: Expression | None = None) -> Iterator[Row]:
        """Lazily yield the rows of a table matching a predicate."""
        return self._workspace().store.scan(table, predicate)

    def lookup(self, index: IndexHandle | str, key: Any) -> list[RowId]:
        """Row identifiers an index maps a key to.

        A scalar key is accepted for single-column indexes.
        """
        name = index.name if isinstance(index, IndexHandle) else index
        workspace = self._workspace()
        definition = workspace.indexes.get(name).definition
        values = key if isinstance(key, tuple) else (key,)
        if len(values) != len(definition.columns):
            raise SchemaError(
                f"Index '{name}' has {len(definition.columns)} key columns, got {len(values)}"
            )
        schema = workspace.store.schema(definition.table)
        coerced = tuple(
            schema.column(column).coerce(value)
            for column, value in zip(definition.columns, values)
        )
        self._db.metrics.index_lookups_total.labels(index_name=name).inc()
        return workspace.indexes.lookup(name, coerced)

    def select(self, query: QueryNode) -> list[Row]:
        """Run an ad-hoc logical plan."""
        return self._db.executor.execute(query, self._workspace(), self._db.views)

    def query(self, view: str) -> Iterator[Row]:
        """Read a view. Virtual views see this connection's uncommitted writes."""
        return self._db.views.query(view, self._workspace())

    def explain(
        self,
        query: QueryNode | str,
        predicate: Expression | None = None,
        analyze: bool = False,
    ) -> QueryPlan:
        """Describe how a query would run.

        Args:
            query: A logical plan, or a table or view name to scan.
            predicate: Optional filter applied to the query.
            analyze: Also execute the plan and report actual rows and times.
        """
        if isinstance(query, str):
            query = TableScan(query)
        if predicate is not None:
            query = query.where(predicate)
        return self._db.executor.explain(query, self._workspace(), self._db.views, analyze=analyze)

    def close(self) -> None:
        """Roll back any active transaction and release the connection."""
        if self._closed:
            return
        self.rollback()
        self._closed = True
        self._db._release(self)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Database:
    """Main database object that orchestrates all components.

    Thread Safety:
        Readers never block. Writers (including commit and view refresh)
        are serialized by the storage engine's global write scope.
        Each thread should use its own connection for transactions.
    """

    def __init__(
        self,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the database.

        Args:
            config: Configuration (the global configuration by default).
            metrics: Metrics registry (the global registry by default).
        """
        self._config = config or get_config()
        self.metrics = metrics or get_metrics()

        self.storage = StorageEngine(self._config.engine, self.metrics)
        self.executor = QueryExecutor(Planner(), self.metrics)
        self.views = ViewEngine(self.storage, self.executor, self._config.engine, self.metrics)
        self.transactions = TransactionManager(self.storage, self.metrics)

        self._lock = threading.Lock()
        self._next_connection_id = 1
        self._connections: dict[ConnectionId, Connection] = {}
        self._default = self.connect()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def default_connection(self) -> Connection:
        return self._default

    # Connections

    def connect(self) -> Connection:
        """Open a new logical connection."""
        with self._lock:
            connection = Connection(self, ConnectionId(self._next_connection_id))
            self._next_connection_id += 1
            self._connections[connection.connection_id] = connection
        logger.debug("connection_opened", connection_id=connection.connection_id)
        return connection

    def _release(self, connection: Connection) -> None:
        with self._lock:
            self._connections.pop(connection.connection_id, None)
        logger.debug("connection_closed", connection_id=connection.connection_id)

    # Schema

    def create_table(self, name: str, columns: Iterable[Column]) -> TableSchema:
        """Create a table.

        Raises:
            SchemaError: If the name is taken, the schema is invalid or a
                foreign key target is missing.
        """
        schema = TableSchema(name=name, columns=tuple(columns))
        with self.storage.write_scope():
            if self.views.has_view(name):
                raise SchemaError(f"Relation '{name}' already exists")
            self.storage.create_table(schema)
        return schema

    def add_column(self, table: str, column: Column) -> TableSchema:
        """Add a nullable column; existing rows get NULL."""
        return self.storage.add_column(table, column)

    def drop_table(self, table: str) -> None:
        """Drop a table and its indexes.

        Raises:
            SchemaError: If another table or a view depends on it.
        """
        with self.storage.write_scope():
            self.views.check_drop_relation(table)
            self.storage.drop_table(table)

    def create_index(
        self,
        table: str,
        columns: str | Sequence[str],
        unique: bool = False,
        partial_predicate: Expression | None = None,
        name: str | None = None,
    ) -> IndexHandle:
        """Create a secondary index and populate it from existing rows.

        Args:
            table: Table to index.
            columns: One column name or several.
            unique: Reject a second row with the same non-NULL key.
            partial_predicate: Only index rows satisfying this predicate.
            name: Index name; derived from table and columns if omitted.

        Raises:
            SchemaError: Unknown table or column, or duplicate name.
            UniqueViolation: Existing rows violate a unique index.
        """
        cols = (columns,) if isinstance(columns, str) else tuple(columns)
        if name is None:
            name = f"{table}_{'_'.join(cols)}_{'key' if unique else 'idx'}".lower()
        definition = IndexDefinition(
            name=name, table=table, columns=cols, unique=unique, predicate=partial_predicate
        )
        return self.storage.create_index(definition)

    def drop_index(self, index: IndexHandle | str) -> None:
        self.storage.drop_index(index.name if isinstance(index, IndexHandle) else index)

    def list_tables(self) -> list[str]:
        return self.storage.committed.store.tables()

    def list_indexes(self, table: str | None = None) -> list[IndexMetadata]:
        return self.storage.committed.indexes.list_indexes(table)

    def list_views(self) -> list[ViewInfo]:
        return self.views.list_views()

    def describe(self, table: str) -> TableSchema:
        """Schema of a table.

        Raises:
            SchemaError: If the table does not exist.
        """
        return self.storage.committed.store.schema(table)

    # Views

    def define_view(self, name: str, query: QueryNode) -> ViewDefinition:
        return self.views.define_view(name, query)

    def define_materialized_view(self, name: str, query: QueryNode) -> ViewDefinition:
        return self.views.define_materialized_view(name, query)

    def refresh(self, view: str) -> int:
        """Recompute a materialized view; returns its new row count."""
        return self.views.refresh(view)

    def drop_view(self, view: str) -> None:
        self.views.drop_view(view)

    # Data (default connection)

    def begin(self) -> Transaction:
        return self._default.begin()

    def commit(self) -> None:
        self._default.commit()

    def rollback(self) -> None:
        self._default.rollback()

    def insert(self, table: str, record: Mapping[str, Any]) -> RowId:
        return self._default.insert(table, record)

    def update(self, table: str, row_id: int, patch: Mapping[str, Any]) -> None:
        self._default.update(table, row_id, patch)

    def delete(self, table: str, row_id: int) -> None:
        self._default.delete(table, row_id)

    def get(self, table: str, row_id: int) -> Row:
        return self._default.get(table, row_id)

    def scan(self, table: str, predicate: Expression | None = None) -> Iterator[Row]:
        return self._default.scan(table, predicate)

    def lookup(self, index: IndexHandle | str, key: Any) -> list[RowId]:
        return self._default.lookup(index, key)

    def select(self, query: QueryNode) -> list[Row]:
        return self._default.select(query)

    def query(self, view: str) -> Iterator[Row]:
        return self._default.query(view)

    def explain(
        self,
        query: QueryNode | str,
        predicate: Expression | None = None,
        analyze: bool = False,
    ) -> QueryPlan:
        return self._default.explain(query, predicate, analyze=analyze)

    # Introspection

    def get_stats(self) -> DatabaseStats:
        """Return database statistics for monitoring."""
        committed = self.storage.committed
        views = self.views.list_views()
        with self._lock:
            connections = len(self._connections)
        return DatabaseStats(
            tables={name: committed.store.count(name) for name in committed.store.tables()},
            indexes=committed.indexes.get_stats(),
            views=len(views),
            materialized_views=sum(1 for v in views if v.materialized),
            connections=connections,
            transactions=self.transactions.get_stats(),
        )
