"""View Engine - named virtual and materialized views.

A virtual view stores only its query and is re-evaluated every time it is
read. A materialized view additionally keeps the rows of its last
refresh; reads return that snapshot until the next refresh, however the
base tables change in between.

Refresh recomputes the whole query against the committed state under
the write scope, then swaps the snapshot reference. A failing refresh
leaves the previous snapshot in place.

Query evaluation is delegated to a QueryRunner so that the engine does
not depend on the executor implementation.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterator, Protocol

from relstore.domain.entities import (
    Aggregate,
    Comparison,
    Expression,
    Filter,
    InQuery,
    IsNull,
    Join,
    Logical,
    Project,
    QueryNode,
    Row,
    Sort,
    TableScan,
    Union,
)
from relstore.domain.errors import SchemaError
from relstore.domain.services.storage_engine import StorageEngine, Workspace
from relstore.infrastructure.config import EngineConfig
from relstore.infrastructure.logging import get_logger
from relstore.infrastructure.metrics import MetricsRegistry, get_metrics
from relstore.infrastructure.tracing import trace_span

logger = get_logger(__name__)


class QueryRunner(Protocol):
    """Evaluates logical plans against a workspace."""

    def execute(self, query: QueryNode, workspace: Workspace, views: ViewEngine) -> list[Row]:
        ...


@dataclass(frozen=True)
class ViewDefinition:
    """A named, parameterless query."""

    name: str
    query: QueryNode
    materialized: bool = False

    @property
    def kind(self) -> str:
        return "materialized view" if self.materialized else "view"


@dataclass(frozen=True)
class MaterializedSnapshot:
    """Rows of a materialized view as of its last refresh."""

    rows: tuple[Row, ...]
    refreshed_at: float | None = None

    @property
    def is_populated(self) -> bool:
        return self.refreshed_at is not None


@dataclass
class ViewInfo:
    """Metadata for a view."""

    name: str
    materialized: bool
    dependencies: list[str]
    row_count: int | None
    refreshed_at: float | None


class ViewEngine:
    """Catalog and evaluation of views.

    Thread Safety:
        Definitions and snapshots are replaced, never modified, under the
        storage engine's write scope. Reads take no lock.
    """

    def __init__(
        self,
        storage: StorageEngine,
        runner: QueryRunner,
        config: EngineConfig | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._storage = storage
        self._runner = runner
        self._config = config or EngineConfig()
        self._metrics = metrics or get_metrics()
        self._views: dict[str, ViewDefinition] = {}
        self._snapshots: dict[str, MaterializedSnapshot] = {}

    # Catalog

    def define_view(self, name: str, query: QueryNode) -> ViewDefinition:
        """Define a virtual view.

        Raises:
            SchemaError: If the name is taken or the query references an
                unknown relation.
        """
        return self._define(ViewDefinition(name=name, query=query, materialized=False))

    def define_materialized_view(self, name: str, query: QueryNode) -> ViewDefinition:
        """Define a materialized view.

        The view is empty until its first refresh unless
        ``populate_materialized_on_define`` is set.
        """
        definition = self._define(ViewDefinition(name=name, query=query, materialized=True))
        if self._config.populate_materialized_on_define:
            self.refresh(name)
        return definition

    def _define(self, definition: ViewDefinition) -> ViewDefinition:
        with self._storage.write_scope():
            store = self._storage.committed.store
            if store.has_table(definition.name) or definition.name in self._views:
                raise SchemaError(f"Relation '{definition.name}' already exists")
            for relation in referenced_relations(definition.query):
                if not store.has_table(relation) and relation not in self._views:
                    raise SchemaError(
                        f"View '{definition.name}' references unknown relation '{relation}'"
                    )

            self._views = {**self._views, definition.name: definition}
            if definition.materialized:
                self._snapshots = {**self._snapshots, definition.name: MaterializedSnapshot(rows=())}

        logger.info("view_defined", view=definition.name, kind=definition.kind)
        return definition

    def drop_view(self, name: str) -> None:
        """Drop a view.

        Raises:
            SchemaError: If the view does not exist or another view
                depends on it.
        """
        with self._storage.write_scope():
            self.get(name)
            self.check_drop_relation(name)
            self._views = {k: v for k, v in self._views.items() if k != name}
            self._snapshots = {k: v for k, v in self._snapshots.items() if k != name}
        logger.info("view_dropped", view=name)

    def check_drop_relation(self, name: str) -> None:
        """Refuse to drop a table or view that a view still reads."""
        dependents = self.dependents_of(name)
        if dependents:
            raise SchemaError(
                f"Cannot drop '{name}': view {', '.join(sorted(dependents))} depends on it"
            )

    def get(self, name: str) -> ViewDefinition:
        try:
            return self._views[name]
        except KeyError:
            raise SchemaError(f"View '{name}' does not exist") from None

    def has_view(self, name: str) -> bool:
        return name in self._views

    def dependencies(self, name: str) -> set[str]:
        """Relations read directly by a view."""
        return referenced_relations(self.get(name).query)

    def dependents_of(self, relation: str) -> list[str]:
        """Views that read a relation directly."""
        return [
            view.name
            for view in self._views.values()
            if view.name != relation and relation in referenced_relations(view.query)
        ]

    def list_views(self) -> list[ViewInfo]:
        result = []
        for view in self._views.values():
            snapshot = self._snapshots.get(view.name)
            result.append(
                ViewInfo(
                    name=view.name,
                    materialized=view.materialized,
                    dependencies=sorted(referenced_relations(view.query)),
                    row_count=len(snapshot.rows) if snapshot else None,
                    refreshed_at=snapshot.refreshed_at if snapshot else None,
                )
            )
        return result

    # Reads

    def snapshot(self, name: str) -> MaterializedSnapshot:
        """The current snapshot of a materialized view."""
        view = self.get(name)
        if not view.materialized:
            raise SchemaError(f"'{name}' is not a materialized view")
        return self._snapshots[name]

    def query(self, name: str, workspace: Workspace | None = None) -> Iterator[Row]:
        """Read a view.

        Virtual views are evaluated against ``workspace`` (the committed
        state by default); materialized views return their snapshot.
        """
        view = self.get(name)
        if view.materialized:
            return iter(self._snapshots[name].rows)
        rows = self._runner.execute(view.query, workspace or self._storage.committed, self)
        return iter(rows)

    # Refresh

    def refresh(self, name: str) -> int:
        """Recompute a materialized view and swap in the new snapshot.

        Returns:
            Number of rows in the new snapshot.

        Raises:
            SchemaError: If the view does not exist or is virtual.
            RelStoreError: Whatever the recomputation raised; the
                previous snapshot is kept.
        """
        view = self.get(name)
        if not view.materialized:
            raise SchemaError(f"'{name}' is not a materialized view")

        start = time.perf_counter()
        with trace_span("view.refresh", {"view.name": name}) as span:
            with self._storage.write_scope():
                try:
                    rows = self._runner.execute(view.query, self._storage.committed, self)
                except Exception as e:
                    logger.error("view_refresh_failed", view=name, error=str(e))
                    self._metrics.view_refreshes_total.labels(view=name, status="error").inc()
                    raise
                self._snapshots = {
                    **self._snapshots,
                    name: MaterializedSnapshot(rows=tuple(rows), refreshed_at=time.time()),
                }
            span.set_attribute("view.rows", len(rows))

        elapsed = time.perf_counter() - start
        self._metrics.view_refreshes_total.labels(view=name, status="success").inc()
        self._metrics.view_refresh_seconds.observe(elapsed)
        logger.info("view_refreshed", view=name, rows=len(rows), duration_ms=elapsed * 1000)
        return len(rows)


def referenced_relations(query: QueryNode) -> set[str]:
    """Names of all tables and views a plan reads, subqueries included."""
    if isinstance(query, TableScan):
        return {query.table_name}
    if isinstance(query, Filter):
        return referenced_relations(query.input) | _expression_relations(query.predicate)
    if isinstance(query, Join):
        result = referenced_relations(query.left) | referenced_relations(query.right)
        if query.condition is not None:
            result |= _expression_relations(query.condition)
        return result
    if isinstance(query, Union):
        return referenced_relations(query.left) | referenced_relations(query.right)
    if isinstance(query, (Project, Aggregate, Sort)):
        return referenced_relations(query.input)
    raise TypeError(f"Unsupported plan node: {type(query).__name__}")


def _expression_relations(expr: Expression) -> set[str]:
    if isinstance(expr, InQuery):
        return referenced_relations(expr.query) | _expression_relations(expr.operand)
    if isinstance(expr, Comparison):
        return _expression_relations(expr.left) | _expression_relations(expr.right)
    if isinstance(expr, Logical):
        result: set[str] = set()
        for operand in expr.operands:
            result |= _expression_relations(operand)
        return result
    if isinstance(expr, IsNull):
        return _expression_relations(expr.operand)
    return set()
