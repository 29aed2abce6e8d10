"""Query Executor using Volcano iterator model.

This module implements the physical operators that evaluate logical
plans against a workspace using a pull-based iterator model.

The Volcano model:
    - Each operator is an iterator with open(), next(), close() methods
    - Operators pull rows from their children on demand
    - Enables pipelining without materializing intermediate results

Rows flow between operators as dicts. Scans qualify every column with
their alias ("p.LastName"); projections and aggregates produce bare
names. Every operator also reports its output columns statically, which
the planner uses for pushdown and the executor for naming result rows.

Operators count the rows they produce and the time spent producing
them, which is what EXPLAIN ANALYZE reports.

References:
    - Graefe, "Volcano" (1994)
    - PostgreSQL docs, "Using EXPLAIN"
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator

from relstore.domain.entities import (
    AggregateCall,
    AggregateFunc,
    AllColumns,
    ColumnRef,
    Expression,
    JoinKind,
    JsonField,
    OrderByItem,
    QueryNode,
    Row,
)
from relstore.domain.entities.expressions import hashable
from relstore.domain.entities.query import ProjectionItem
from relstore.domain.errors import InvalidValue, SchemaError
from relstore.domain.value_objects import RowId
from relstore.infrastructure.metrics import MetricsRegistry, get_metrics
from relstore.infrastructure.tracing import trace_span

if TYPE_CHECKING:
    from relstore.application.planner import Planner
    from relstore.domain.services import ViewEngine, Workspace


ColumnKey = tuple[str | None, str]
"""A column flowing between operators: (qualifier, name)."""


def key_of(column: ColumnKey) -> str:
    qualifier, name = column
    return f"{qualifier}.{name}" if qualifier else name


def output_names(columns: list[ColumnKey]) -> list[str]:
    """Result column names: bare where unambiguous, qualified otherwise."""
    counts: dict[str, int] = {}
    for _, name in columns:
        counts[name] = counts.get(name, 0) + 1
    return [name if counts[name] == 1 else key_of((q, name)) for q, name in columns]


def expression_name(expr: Expression) -> str:
    if isinstance(expr, (ColumnRef, JsonField)):
        return expr.output_name
    return str(expr)


# Explain output

@dataclass
class PlanNode:
    """One node of an explained plan."""

    node_type: str
    relation: str | None = None
    alias: str | None = None
    index_name: str | None = None
    index_cond: str | None = None
    filter: str | None = None
    join_filter: str | None = None
    details: list[tuple[str, str]] = field(default_factory=list)
    output: list[str] = field(default_factory=list)
    children: list[PlanNode] = field(default_factory=list)
    actual_rows: int | None = None
    actual_time_ms: float | None = None

    def label(self) -> str:
        text = self.node_type
        if self.index_name:
            text += f" using {self.index_name}"
        if self.relation:
            text += f" on {self.relation}"
            if self.alias and self.alias != self.relation:
                text += f" {self.alias}"
        return text

    def walk(self) -> Iterator[PlanNode]:
        yield self
        for child in self.children:
            yield from child.walk()

    def render_lines(self, column: int = 0, arrow: bool = False) -> list[str]:
        pad = " " * column
        head = f"{pad}->  " if arrow else pad
        text_column = column + 4 if arrow else column
        line = head + self.label()
        if self.actual_rows is not None:
            line += f"  (actual time={self.actual_time_ms:.3f} ms rows={self.actual_rows})"
        lines = [line]

        detail_pad = " " * (text_column + 2)
        attributes = [
            ("Index Cond", self.index_cond),
            ("Join Filter", self.join_filter),
            ("Filter", self.filter),
        ]
        for name, value in [*attributes, *self.details]:
            if value:
                lines.append(f"{detail_pad}{name}: {value}")
        for child in self.children:
            lines.extend(child.render_lines(text_column + 2, arrow=True))
        return lines


@dataclass
class QueryPlan:
    """Result of explain: the physical plan tree, optionally with actuals."""

    root: PlanNode
    columns: list[str]
    analyzed: bool = False
    planning_time_ms: float = 0.0
    execution_time_ms: float | None = None

    def nodes(self) -> list[PlanNode]:
        return list(self.root.walk())

    def find(self, node_type: str) -> list[PlanNode]:
        return [n for n in self.root.walk() if n.node_type == node_type]

    def index_names(self) -> list[str]:
        return [n.index_name for n in self.root.walk() if n.index_name]

    @property
    def uses_index(self) -> bool:
        return bool(self.index_names())

    def render(self) -> str:
        """PostgreSQL-style text plan."""
        lines = self.root.render_lines()
        lines.append(f"Planning Time: {self.planning_time_ms:.3f} ms")
        if self.execution_time_ms is not None:
            lines.append(f"Execution Time: {self.execution_time_ms:.3f} ms")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()


# Execution context

class ExecutionContext:
    """State shared by the operators of one query.

    Evaluates ``IN (subquery)`` lists against the same workspace, once
    per subquery.
    """

    def __init__(
        self,
        workspace: Workspace,
        views: ViewEngine | None,
        executor: QueryExecutor,
    ) -> None:
        self.workspace = workspace
        self.views = views
        self.executor = executor
        self.metrics = executor.metrics
        self._subqueries: dict[int, frozenset[Any]] = {}

    def subquery_values(self, query: QueryNode) -> frozenset[Any]:
        key = id(query)
        if key not in self._subqueries:
            rows = self.executor.execute(query, self.workspace, self.views)
            values = set()
            for row in rows:
                if len(row) != 1:
                    raise SchemaError("Subquery must return exactly one column")
                if row[0] is not None:
                    values.add(hashable(row[0]))
            self._subqueries[key] = frozenset(values)
        return self._subqueries[key]


@dataclass
class OperatorStats:
    """Actual rows and inclusive time of one operator."""

    rows: int = 0
    elapsed_ms: float = 0.0


class Operator(ABC):
    """Base class for executor operators (Volcano model)."""

    def __init__(self, columns: list[ColumnKey]) -> None:
        self.columns = columns
        self.stats = OperatorStats()

    @abstractmethod
    def open(self) -> None:
        """Initialize the operator."""
        pass

    @abstractmethod
    def next(self) -> dict[str, Any] | None:
        """Return the next row or None if exhausted."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        pass

    @property
    def children(self) -> list[Operator]:
        return []

    @abstractmethod
    def describe_node(self) -> PlanNode:
        """This operator's explain node, without children or actuals."""

    def describe(self, analyze: bool = False) -> PlanNode:
        node = self.describe_node()
        node.children = [child.describe(analyze) for child in self.children]
        if analyze:
            node.actual_rows = self.stats.rows
            node.actual_time_ms = round(self.stats.elapsed_ms, 3)
        return node

    def prepare(self) -> None:
        """open() with timing."""
        start = time.perf_counter()
        self.open()
        self.stats.elapsed_ms += (time.perf_counter() - start) * 1000

    def pull(self) -> dict[str, Any] | None:
        """next() with row counting and timing."""
        start = time.perf_counter()
        row = self.next()
        self.stats.elapsed_ms += (time.perf_counter() - start) * 1000
        if row is not None:
            self.stats.rows += 1
        return row

    def __iter__(self) -> Iterator[dict[str, Any]]:
        """Allow iteration over operator results."""
        self.prepare()
        try:
            while True:
                row = self.pull()
                if row is None:
                    break
                yield row
        finally:
            self.close()


def _matches(predicate: Expression | None, row: dict[str, Any], context: ExecutionContext) -> bool:
    return predicate is None or bool(predicate.evaluate(row, context))


class SeqScanOperator(Operator):
    """Sequential scan of a base table with an optional filter."""

    def __init__(
        self,
        context: ExecutionContext,
        table: str,
        alias: str,
        predicate: Expression | None = None,
    ) -> None:
        schema = context.workspace.store.schema(table)
        super().__init__([(alias, name) for name in schema.column_names])
        self._context = context
        self._table = table
        self._alias = alias
        self._predicate = predicate
        self._records: Iterator[tuple[RowId, dict[str, Any]]] = iter(())

    def open(self) -> None:
        self._records = iter(self._context.workspace.store.records(self._table))
        self._context.metrics.scans_total.labels(access_path="seq_scan").inc()

    def next(self) -> dict[str, Any] | None:
        for _, record in self._records:
            row = {f"{self._alias}.{k}": v for k, v in record.items()}
            if _matches(self._predicate, row, self._context):
                return row
        return None

    def close(self) -> None:
        self._records = iter(())

    def describe_node(self) -> PlanNode:
        return PlanNode(
            node_type="Seq Scan",
            relation=self._table,
            alias=self._alias,
            filter=str(self._predicate) if self._predicate is not None else None,
        )


class IndexScanOperator(Operator):
    """Scan through a secondary index.

    With a key, fetches the rows mapped to that key. Without one, reads
    every row of a partial index.
    """

    def __init__(
        self,
        context: ExecutionContext,
        table: str,
        alias: str,
        index_name: str,
        key: tuple[Any, ...] | None,
        index_cond: Expression | None = None,
        predicate: Expression | None = None,
    ) -> None:
        schema = context.workspace.store.schema(table)
        super().__init__([(alias, name) for name in schema.column_names])
        self._context = context
        self._table = table
        self._alias = alias
        self._index_name = index_name
        self._key = key
        self._index_cond = index_cond
        self._predicate = predicate
        self._row_ids: Iterator[RowId] = iter(())

    def open(self) -> None:
        indexes = self._context.workspace.indexes
        if self._key is not None:
            row_ids = indexes.lookup(self._index_name, self._key)
        else:
            row_ids = indexes.get(self._index_name).row_ids()
        self._row_ids = iter(row_ids)
        metrics = self._context.metrics
        metrics.scans_total.labels(access_path="index_scan").inc()
        metrics.index_lookups_total.labels(index_name=self._index_name).inc()

    def next(self) -> dict[str, Any] | None:
        store = self._context.workspace.store
        for row_id in self._row_ids:
            record = store.get_record(self._table, row_id)
            row = {f"{self._alias}.{k}": v for k, v in record.items()}
            if _matches(self._predicate, row, self._context):
                return row
        return None

    def close(self) -> None:
        self._row_ids = iter(())

    def describe_node(self) -> PlanNode:
        return PlanNode(
            node_type="Index Scan",
            relation=self._table,
            alias=self._alias,
            index_name=self._index_name,
            index_cond=str(self._index_cond) if self._index_cond is not None else None,
            filter=str(self._predicate) if self._predicate is not None else None,
        )


class ViewScanOperator(Operator):
    """Read a view under an alias.

    A materialized view is read from its snapshot; a virtual view runs its
    expanded plan (``source``) and re-qualifies the output with the alias.
    """

    def __init__(
        self,
        context: ExecutionContext,
        view: str,
        alias: str,
        source: Operator | None = None,
        snapshot: tuple[Row, ...] | None = None,
        snapshot_columns: list[str] | None = None,
        predicate: Expression | None = None,
    ) -> None:
        if source is not None:
            names = output_names(source.columns)
        else:
            names = list(snapshot_columns or [])
        super().__init__([(alias, name) for name in names])
        self._context = context
        self._view = view
        self._alias = alias
        self._source = source
        self._snapshot = snapshot
        self._names = names
        self._predicate = predicate
        self._rows: Iterator[Row] = iter(())

    @property
    def children(self) -> list[Operator]:
        return [self._source] if self._source is not None else []

    def open(self) -> None:
        if self._source is not None:
            self._source.prepare()
        else:
            self._rows = iter(self._snapshot or ())
            self._context.metrics.scans_total.labels(access_path="seq_scan").inc()

    def _fetch(self) -> dict[str, Any] | None:
        if self._source is not None:
            row = self._source.pull()
            if row is None:
                return None
            values = [row.get(key_of(c)) for c in self._source.columns]
        else:
            snapshot_row = next(self._rows, None)
            if snapshot_row is None:
                return None
            values = [snapshot_row.get(name) for name in self._names]
        return {f"{self._alias}.{name}": v for name, v in zip(self._names, values)}

    def next(self) -> dict[str, Any] | None:
        while True:
            row = self._fetch()
            if row is None or _matches(self._predicate, row, self._context):
                return row

    def close(self) -> None:
        if self._source is not None:
            self._source.close()
        self._rows = iter(())

    def describe_node(self) -> PlanNode:
        return PlanNode(
            node_type="Subquery Scan" if self._source is not None else "Seq Scan",
            relation=self._view,
            alias=self._alias,
            filter=str(self._predicate) if self._predicate is not None else None,
        )


class FilterOperator(Operator):
    """Filter operator that applies a predicate."""

    def __init__(self, context: ExecutionContext, child: Operator, predicate: Expression) -> None:
        super().__init__(child.columns)
        self._context = context
        self._child = child
        self._predicate = predicate

    @property
    def children(self) -> list[Operator]:
        return [self._child]

    def open(self) -> None:
        self._child.prepare()

    def next(self) -> dict[str, Any] | None:
        while True:
            row = self._child.pull()
            if row is None:
                return None
            if _matches(self._predicate, row, self._context):
                return row

    def close(self) -> None:
        self._child.close()

    def describe_node(self) -> PlanNode:
        return PlanNode(node_type="Result", filter=str(self._predicate))


class NestedLoopJoinOperator(Operator):
    """Nested loop join (inner or left outer).

    The right input is materialized once on open. For a left join, a left
    row without any match is emitted once with every right column NULL.
    ``predicate`` filters joined rows after outer-join NULL filling.
    """

    def __init__(
        self,
        context: ExecutionContext,
        left: Operator,
        right: Operator,
        condition: Expression | None,
        kind: JoinKind = JoinKind.INNER,
        predicate: Expression | None = None,
    ) -> None:
        super().__init__(left.columns + right.columns)
        self._context = context
        self._left = left
        self._right = right
        self._condition = condition
        self._kind = kind
        self._predicate = predicate
        self._rows: Iterator[dict[str, Any]] = iter(())

    @property
    def children(self) -> list[Operator]:
        return [self._left, self._right]

    def open(self) -> None:
        self._left.prepare()
        self._right.prepare()
        right_rows = []
        while True:
            row = self._right.pull()
            if row is None:
                break
            right_rows.append(row)
        self._right.close()
        self._rows = self._join(right_rows)

    def _join(self, right_rows: list[dict[str, Any]]) -> Iterator[dict[str, Any]]:
        null_right = {key_of(c): None for c in self._right.columns}
        while True:
            left_row = self._left.pull()
            if left_row is None:
                return
            matched = False
            for right_row in right_rows:
                row = {**left_row, **right_row}
                if _matches(self._condition, row, self._context):
                    matched = True
                    if _matches(self._predicate, row, self._context):
                        yield row
            if not matched and self._kind == JoinKind.LEFT:
                row = {**left_row, **null_right}
                if _matches(self._predicate, row, self._context):
                    yield row

    def next(self) -> dict[str, Any] | None:
        return next(self._rows, None)

    def close(self) -> None:
        self._left.close()
        self._rows = iter(())

    def describe_node(self) -> PlanNode:
        node_type = "Nested Loop Left Join" if self._kind == JoinKind.LEFT else "Nested Loop"
        return PlanNode(
            node_type=node_type,
            join_filter=str(self._condition) if self._condition is not None else None,
            filter=str(self._predicate) if self._predicate is not None else None,
        )


class ProjectOperator(Operator):
    """Project operator that selects specific columns.

    ``*`` and ``alias.*`` expand to bare column names; when two inputs
    share a name the first one wins.
    """

    def __init__(
        self,
        context: ExecutionContext,
        child: Operator,
        items: tuple[ProjectionItem, ...],
    ) -> None:
        outputs: list[tuple[str, Expression | str]] = []
        seen: set[str] = set()
        for item in items:
            if isinstance(item, AllColumns):
                expanded = [c for c in child.columns if item.table is None or c[0] == item.table]
                if item.table is not None and not expanded:
                    raise SchemaError(f"Relation '{item.table}' is not part of the query")
                for column in expanded:
                    if column[1] not in seen:
                        seen.add(column[1])
                        outputs.append((column[1], key_of(column)))
            else:
                name = item.output_name
                if name not in seen:
                    seen.add(name)
                    outputs.append((name, item.expr))

        super().__init__([(None, name) for name, _ in outputs])
        self._context = context
        self._child = child
        self._items = items
        self._outputs = outputs

    @property
    def children(self) -> list[Operator]:
        return [self._child]

    def open(self) -> None:
        self._child.prepare()

    def next(self) -> dict[str, Any] | None:
        row = self._child.pull()
        if row is None:
            return None
        result = {}
        for name, source in self._outputs:
            if isinstance(source, str):
                result[name] = row.get(source)
            else:
                result[name] = source.evaluate(row, self._context)
        return result

    def close(self) -> None:
        self._child.close()

    def describe(self, analyze: bool = False) -> PlanNode:
        # Projection has no node of its own in the explained plan
        node = self._child.describe(analyze)
        if not node.output:
            node.output = [name for name, _ in self._outputs]
        return node

    def describe_node(self) -> PlanNode:
        return self._child.describe_node()


class _Accumulator:
    """Running state of one aggregate call within one group."""

    def __init__(self, call: AggregateCall) -> None:
        self._call = call
        self._count = 0
        self._values: list[Any] = []
        self._seen: set[Any] = set()

    def add(self, row: dict[str, Any], context: ExecutionContext) -> None:
        if self._call.arg is None:
            self._count += 1
            return
        value = self._call.arg.evaluate(row, context)
        if value is None:
            return
        if self._call.distinct:
            key = hashable(value)
            if key in self._seen:
                return
            self._seen.add(key)
        self._count += 1
        self._values.append(value)

    def result(self) -> Any:
        func = self._call.func
        if func == AggregateFunc.COUNT:
            return self._count
        if not self._values:
            return None
        try:
            if func == AggregateFunc.SUM:
                return sum(self._values)
            elif func == AggregateFunc.AVG:
                return sum(self._values) / len(self._values)
            elif func == AggregateFunc.MIN:
                return min(self._values)
            return max(self._values)
        except TypeError as e:
            raise InvalidValue(f"Cannot compute {self._call}: {e}") from e


class HashAggregateOperator(Operator):
    """Group rows by key and compute aggregates.

    COUNT(expr) and the other aggregates ignore NULL inputs; COUNT(*)
    counts rows. Without GROUP BY keys an empty input still produces one
    row. Groups are emitted in first-seen order.
    """

    def __init__(
        self,
        context: ExecutionContext,
        child: Operator,
        keys: tuple[Expression, ...],
        aggregates: tuple[AggregateCall, ...],
    ) -> None:
        names = [expression_name(k) for k in keys] + [a.output_name for a in aggregates]
        super().__init__([(None, name) for name in names])
        self._context = context
        self._child = child
        self._keys = keys
        self._aggregates = aggregates
        self._names = names
        self._results: Iterator[dict[str, Any]] = iter(())

    @property
    def children(self) -> list[Operator]:
        return [self._child]

    def open(self) -> None:
        self._child.prepare()
        groups: dict[tuple[Any, ...], tuple[list[Any], list[_Accumulator]]] = {}
        while True:
            row = self._child.pull()
            if row is None:
                break
            key_values = [k.evaluate(row, self._context) for k in self._keys]
            group_key = tuple(hashable(v) for v in key_values)
            if group_key not in groups:
                groups[group_key] = (key_values, [_Accumulator(a) for a in self._aggregates])
            for accumulator in groups[group_key][1]:
                accumulator.add(row, self._context)

        if not groups and not self._keys:
            groups[()] = ([], [_Accumulator(a) for a in self._aggregates])

        self._results = iter(
            [
                dict(zip(self._names, key_values + [acc.result() for acc in accumulators]))
                for key_values, accumulators in groups.values()
            ]
        )

    def next(self) -> dict[str, Any] | None:
        return next(self._results, None)

    def close(self) -> None:
        self._child.close()
        self._results = iter(())

    def describe_node(self) -> PlanNode:
        details = []
        if self._keys:
            details.append(("Group Key", ", ".join(str(k) for k in self._keys)))
        return PlanNode(
            node_type="Hash Aggregate" if self._keys else "Aggregate",
            details=details,
        )


class UnionOperator(Operator):
    """Positional union of two inputs, duplicate-free unless ALL."""

    def __init__(self, left: Operator, right: Operator, distinct: bool = True) -> None:
        if len(left.columns) != len(right.columns):
            raise SchemaError(
                f"Each UNION query must have the same number of columns "
                f"({len(left.columns)} vs {len(right.columns)})"
            )
        names = output_names(left.columns)
        super().__init__([(None, name) for name in names])
        self._left = left
        self._right = right
        self._distinct = distinct
        self._names = names
        self._seen: set[tuple[Any, ...]] = set()
        self._on_right = False

    @property
    def children(self) -> list[Operator]:
        return [self._left, self._right]

    def open(self) -> None:
        self._left.prepare()
        self._right.prepare()
        self._seen = set()
        self._on_right = False

    def next(self) -> dict[str, Any] | None:
        while True:
            source = self._right if self._on_right else self._left
            row = source.pull()
            if row is None:
                if self._on_right:
                    return None
                self._on_right = True
                continue
            values = [row.get(key_of(c)) for c in source.columns]
            if self._distinct:
                marker = tuple(hashable(v) for v in values)
                if marker in self._seen:
                    continue
                self._seen.add(marker)
            return dict(zip(self._names, values))

    def close(self) -> None:
        self._left.close()
        self._right.close()
        self._seen = set()

    def describe_node(self) -> PlanNode:
        return PlanNode(node_type="Union" if self._distinct else "Append")


class SortOperator(Operator):
    """Sort operator that orders rows. NULLs sort last in both directions."""

    def __init__(self, context: ExecutionContext, child: Operator, keys: tuple[OrderByItem, ...]) -> None:
        super().__init__(child.columns)
        self._context = context
        self._child = child
        self._keys = keys
        self._sorted_rows: Iterator[dict[str, Any]] = iter(())

    @property
    def children(self) -> list[Operator]:
        return [self._child]

    def open(self) -> None:
        self._child.prepare()
        rows = []
        while True:
            row = self._child.pull()
            if row is None:
                break
            rows.append(row)

        # One stable pass per key, least significant first
        for item in reversed(self._keys):
            values = {id(row): item.expr.evaluate(row, self._context) for row in rows}
            try:
                if item.ascending:
                    rows.sort(key=lambda r: (values[id(r)] is None, values[id(r)]))
                else:
                    rows.sort(key=lambda r: (values[id(r)] is not None, values[id(r)]), reverse=True)
            except TypeError as e:
                raise InvalidValue(f"Cannot sort by {item.expr}: {e}") from e
        self._sorted_rows = iter(rows)

    def next(self) -> dict[str, Any] | None:
        return next(self._sorted_rows, None)

    def close(self) -> None:
        self._child.close()
        self._sorted_rows = iter(())

    def describe_node(self) -> PlanNode:
        return PlanNode(
            node_type="Sort",
            details=[("Sort Key", ", ".join(str(k) for k in self._keys))],
        )


class QueryExecutor:
    """Executes logical plans against a workspace.

    The executor asks the planner for a physical operator tree and
    drains it using the Volcano iterator model. It is the QueryRunner the
    view engine uses to evaluate views.
    """

    def __init__(self, planner: Planner, metrics: MetricsRegistry | None = None) -> None:
        self._planner = planner
        self.metrics = metrics or get_metrics()

    def build(
        self, query: QueryNode, workspace: Workspace, views: ViewEngine | None = None
    ) -> Operator:
        context = ExecutionContext(workspace, views, self)
        return self._planner.build(query, context)

    def execute(
        self, query: QueryNode, workspace: Workspace, views: ViewEngine | None = None
    ) -> list[Row]:
        """Execute a logical plan.

        Args:
            query: The logical plan to execute.
            workspace: The state to read (committed or a transaction overlay).
            views: View catalog for resolving view names.

        Returns:
            Result rows, with bare column names where unambiguous.
        """
        root = self.build(query, workspace, views)
        names = output_names(root.columns)
        keys = [key_of(c) for c in root.columns]
        return [Row(columns=list(names), values=[row.get(k) for k in keys]) for row in root]

    def explain(
        self,
        query: QueryNode,
        workspace: Workspace,
        views: ViewEngine | None = None,
        analyze: bool = False,
    ) -> QueryPlan:
        """Plan a query and describe it; with ``analyze`` also run it."""
        start = time.perf_counter()
        root = self.build(query, workspace, views)
        planning_ms = (time.perf_counter() - start) * 1000

        execution_ms = None
        if analyze:
            with trace_span("query.explain_analyze", {"query.analyze": True}) as span:
                start = time.perf_counter()
                produced = sum(1 for _ in root)
                execution_ms = (time.perf_counter() - start) * 1000
                span.set_attribute("query.rows", produced)

        return QueryPlan(
            root=root.describe(analyze),
            columns=output_names(root.columns),
            analyzed=analyze,
            planning_time_ms=planning_ms,
            execution_time_ms=execution_ms,
        )
