"""Query Planner - logical plans to physical operator trees.

The planner is rule based. It does two things beyond a direct
translation of the logical tree:

Predicate pushdown:
    Filter conjuncts travel down to the scans they reference. Below a
    join, a conjunct that only references the left input is pushed left;
    one that only references the right input is pushed right for inner
    joins (pushing it below the nullable side of a left join would change
    the result). Conjuncts that cannot move stay as a filter on the join.

Access path selection:
    A base table scan uses an index when every index column is compared
    for equality with a literal (key lookup), or when the index is
    partial and the scan predicate implies the index predicate (full
    scan of the partial index). A partial index is never used unless its
    predicate is implied. Among applicable indexes a key lookup beats a
    partial scan; then unique beats non-unique, wider keys beat narrower
    ones, and earlier indexes beat later ones. Conjuncts not answered by
    the index remain as a residual filter.

Views are resolved by name: a materialized view is scanned from its
snapshot, a virtual view is expanded inline below a Subquery Scan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from relstore.application.executor import (
    ColumnKey,
    ExecutionContext,
    FilterOperator,
    HashAggregateOperator,
    IndexScanOperator,
    NestedLoopJoinOperator,
    Operator,
    ProjectOperator,
    SeqScanOperator,
    SortOperator,
    UnionOperator,
    ViewScanOperator,
    output_names,
)
from relstore.domain.entities import (
    Aggregate,
    ColumnRef,
    Comparison,
    ComparisonOp,
    Expression,
    Filter,
    InQuery,
    IsNull,
    Join,
    JoinKind,
    JsonField,
    Literal,
    Logical,
    Project,
    QueryNode,
    Sort,
    TableScan,
    Union,
    and_,
)
from relstore.domain.entities.expressions import conjuncts, implies
from relstore.domain.entities.schema import TableSchema
from relstore.domain.errors import InvalidValue, SchemaError
from relstore.domain.services import Workspace


@dataclass
class AccessPath:
    """An index chosen for a table scan."""

    index_name: str
    key: tuple[Any, ...] | None
    index_cond: Expression | None
    residual: Expression | None
    rank: tuple[int, bool, int, int]


class Planner:
    """Rule-based planner producing Volcano operator trees."""

    def build(self, query: QueryNode, context: ExecutionContext) -> Operator:
        """Build the operator tree for a logical plan.

        Raises:
            SchemaError: On unknown relations or columns.
        """
        return self._build(query, [], context)

    def _build(
        self, node: QueryNode, predicates: list[Expression], context: ExecutionContext
    ) -> Operator:
        if isinstance(node, Filter):
            return self._build(node.input, [*predicates, *conjuncts(node.predicate)], context)
        if isinstance(node, TableScan):
            return self._scan(node, predicates, context)
        if isinstance(node, Join):
            return self._join(node, predicates, context)
        if isinstance(node, Sort):
            return SortOperator(context, self._build(node.input, predicates, context), node.keys)

        operator: Operator
        if isinstance(node, Project):
            operator = ProjectOperator(context, self._build(node.input, [], context), node.items)
        elif isinstance(node, Aggregate):
            operator = HashAggregateOperator(
                context, self._build(node.input, [], context), node.keys, node.aggregates
            )
        elif isinstance(node, Union):
            operator = UnionOperator(
                self._build(node.left, [], context),
                self._build(node.right, [], context),
                distinct=node.distinct,
            )
        else:
            raise TypeError(f"Unsupported plan node: {type(node).__name__}")

        if predicates:
            return FilterOperator(context, operator, and_(*predicates))
        return operator

    # Scans

    def _scan(
        self, node: TableScan, predicates: list[Expression], context: ExecutionContext
    ) -> Operator:
        name = node.table_name
        if context.workspace.store.has_table(name):
            return self._table_scan(name, node.name, predicates, context)
        views = context.views
        if views is not None and views.has_view(name):
            return self._view_scan(name, node.name, predicates, context)
        raise SchemaError(f"Relation '{name}' does not exist")

    def _table_scan(
        self, table: str, alias: str, predicates: list[Expression], context: ExecutionContext
    ) -> Operator:
        path = self.choose_access_path(context.workspace, table, alias, predicates)
        if path is None:
            return SeqScanOperator(
                context, table, alias, and_(*predicates) if predicates else None
            )
        return IndexScanOperator(
            context,
            table,
            alias,
            index_name=path.index_name,
            key=path.key,
            index_cond=path.index_cond,
            predicate=path.residual,
        )

    def _view_scan(
        self, view: str, alias: str, predicates: list[Expression], context: ExecutionContext
    ) -> Operator:
        views = context.views
        definition = views.get(view)
        source = self._build(definition.query, [], context)
        predicate = and_(*predicates) if predicates else None
        if definition.materialized:
            return ViewScanOperator(
                context,
                view,
                alias,
                snapshot=views.snapshot(view).rows,
                snapshot_columns=output_names(source.columns),
                predicate=predicate,
            )
        return ViewScanOperator(context, view, alias, source=source, predicate=predicate)

    def choose_access_path(
        self,
        workspace: Workspace,
        table: str,
        alias: str,
        predicates: list[Expression],
    ) -> AccessPath | None:
        """Pick the best applicable index for a scan, or None for a seq scan."""
        schema = workspace.store.schema(table)
        local = [_unqualify(p, alias) for p in predicates]
        best: AccessPath | None = None

        for order, index in enumerate(workspace.indexes.indexes_for(table)):
            definition = index.definition
            index_predicate = None
            if definition.predicate is not None:
                index_predicate = _unqualify(definition.predicate, table)
                if not implies(local, index_predicate):
                    continue

            lookup = _key_lookup(schema, definition.columns, local)
            if lookup is not None:
                key, used = lookup
                rank = (2, definition.unique, len(definition.columns), -order)
            elif index_predicate is not None:
                key, used = None, []
                rank = (1, definition.unique, len(definition.columns), -order)
            else:
                continue

            residual = [
                p
                for i, p in enumerate(predicates)
                if i not in used and local[i] != index_predicate
            ]
            candidate = AccessPath(
                index_name=definition.name,
                key=key,
                index_cond=and_(*[predicates[i] for i in used]) if used else None,
                residual=and_(*residual) if residual else None,
                rank=rank,
            )
            if best is None or candidate.rank > best.rank:
                best = candidate
        return best

    # Joins

    def _join(
        self, node: Join, predicates: list[Expression], context: ExecutionContext
    ) -> Operator:
        left_columns = self._build(node.left, [], context).columns
        right_columns = self._build(node.right, [], context).columns

        left_predicates: list[Expression] = []
        right_predicates: list[Expression] = []
        remaining: list[Expression] = []
        for predicate in predicates:
            side = _side(predicate, left_columns, right_columns)
            if side == "left":
                left_predicates.append(predicate)
            elif side == "right" and node.kind == JoinKind.INNER:
                right_predicates.append(predicate)
            else:
                remaining.append(predicate)

        return NestedLoopJoinOperator(
            context,
            self._build(node.left, left_predicates, context),
            self._build(node.right, right_predicates, context),
            condition=node.condition,
            kind=node.kind,
            predicate=and_(*remaining) if remaining else None,
        )


def _key_lookup(
    schema: TableSchema, columns: tuple[str, ...], predicates: list[Expression]
) -> tuple[tuple[Any, ...], list[int]] | None:
    """Equality conjuncts covering every index column, as a coerced key."""
    key = []
    used = []
    for column in columns:
        match = _equality_on(column, predicates)
        if match is None:
            return None
        position, value = match
        try:
            key.append(schema.column(column).coerce(value))
        except InvalidValue:
            # A literal the column cannot hold matches nothing by index
            return None
        used.append(position)
    return tuple(key), used


def _equality_on(column: str, predicates: list[Expression]) -> tuple[int, Any] | None:
    for position, predicate in enumerate(predicates):
        if not isinstance(predicate, Comparison) or predicate.op != ComparisonOp.EQ:
            continue
        for ref, other in ((predicate.left, predicate.right), (predicate.right, predicate.left)):
            if (
                isinstance(ref, ColumnRef)
                and ref.table is None
                and ref.name == column
                and isinstance(other, Literal)
                and other.value is not None
            ):
                return position, other.value
    return None


def _unqualify(expr: Expression, alias: str) -> Expression:
    """Drop the ``alias.`` qualifier from column references."""
    if isinstance(expr, ColumnRef):
        return ColumnRef(name=expr.name) if expr.table == alias else expr
    if isinstance(expr, Comparison):
        return Comparison(op=expr.op, left=_unqualify(expr.left, alias), right=_unqualify(expr.right, alias))
    if isinstance(expr, Logical):
        return Logical(op=expr.op, operands=tuple(_unqualify(o, alias) for o in expr.operands))
    if isinstance(expr, IsNull):
        return IsNull(operand=_unqualify(expr.operand, alias), negated=expr.negated)
    if isinstance(expr, JsonField):
        column = _unqualify(expr.column, alias)
        return JsonField(column=column, key=expr.key) if isinstance(column, ColumnRef) else expr
    return expr


def _column_refs(expr: Expression) -> list[ColumnRef]:
    if isinstance(expr, ColumnRef):
        return [expr]
    if isinstance(expr, Comparison):
        return _column_refs(expr.left) + _column_refs(expr.right)
    if isinstance(expr, Logical):
        return [ref for o in expr.operands for ref in _column_refs(o)]
    if isinstance(expr, IsNull):
        return _column_refs(expr.operand)
    if isinstance(expr, JsonField):
        return [expr.column]
    if isinstance(expr, InQuery):
        # The subquery is uncorrelated; only the operand reads this row
        return _column_refs(expr.operand)
    return []


def _resolves(ref: ColumnRef, columns: list[ColumnKey]) -> bool:
    if ref.table is not None:
        return (ref.table, ref.name) in columns
    return any(n == ref.name for _, n in columns)


def _side(
    expr: Expression, left: list[ColumnKey], right: list[ColumnKey]
) -> str | None:
    """Which join input a conjunct reads exclusively, if any."""
    refs = _column_refs(expr)
    if not refs:
        return None
    sides = set()
    for ref in refs:
        in_left = _resolves(ref, left)
        in_right = _resolves(ref, right)
        if in_left == in_right:
            return None
        sides.add("left" if in_left else "right")
    return sides.pop() if len(sides) == 1 else None
