"""Logical query plans.

Views, ad-hoc selects and explain all take a tree of these nodes. The
nodes are immutable; the fluent helpers on QueryNode return new trees.

Example (the VitalRecords view):

    persons = TableScan("Persons", "p")
    plan = (
        persons
        .left_join(TableScan("Births", "b"), eq("p.PersonID", col("b.PersonID")))
        .left_join(
            TableScan("Marriages", "m"),
            or_(eq("p.PersonID", col("m.PersonID1")), eq("p.PersonID", col("m.PersonID2"))),
        )
        .select("p.FirstName", "p.LastName", "b.BirthDate", "b.BirthPlace",
                "m.MarriageDate", "m.MarriagePlace")
    )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union as TypingUnion

from relstore.domain.entities.expressions import ColumnRef, Expression, JsonField, col


class JoinKind(Enum):
    """Join types."""

    INNER = "Inner"
    LEFT = "Left"


class AggregateFunc(Enum):
    """Aggregate functions."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


@dataclass(frozen=True)
class SelectItem:
    """An item in a SELECT list."""

    expr: Expression
    alias: str | None = None

    @property
    def output_name(self) -> str:
        if self.alias:
            return self.alias
        if isinstance(self.expr, (ColumnRef, JsonField)):
            return self.expr.output_name
        return str(self.expr)

    def __str__(self) -> str:
        if self.alias:
            return f"{self.expr} AS {self.alias}"
        return str(self.expr)


@dataclass(frozen=True)
class AllColumns:
    """``*`` or ``alias.*`` in a SELECT list."""

    table: str | None = None

    def __str__(self) -> str:
        return f"{self.table}.*" if self.table else "*"


@dataclass(frozen=True)
class AggregateCall:
    """Aggregate function call, e.g. ``COUNT(b.BirthID) AS NumberOfBirths``."""

    func: AggregateFunc
    arg: Expression | None = None  # None for COUNT(*)
    alias: str | None = None
    distinct: bool = False

    @property
    def output_name(self) -> str:
        return self.alias or str(self)

    def __str__(self) -> str:
        if self.arg is None:
            return f"{self.func.value}(*)"
        distinct_str = "DISTINCT " if self.distinct else ""
        return f"{self.func.value}({distinct_str}{self.arg})"


@dataclass(frozen=True)
class OrderByItem:
    """An item in an ORDER BY clause. NULLs sort last."""

    expr: Expression
    ascending: bool = True

    def __str__(self) -> str:
        return f"{self.expr} {'ASC' if self.ascending else 'DESC'}"


ProjectionItem = TypingUnion[SelectItem, AllColumns]


def _projection_item(item: Any) -> ProjectionItem:
    if isinstance(item, (SelectItem, AllColumns)):
        return item
    if isinstance(item, tuple):
        expr, alias = item
        return SelectItem(expr=col(expr) if isinstance(expr, str) else expr, alias=alias)
    if isinstance(item, str):
        if item == "*":
            return AllColumns()
        if item.endswith(".*"):
            return AllColumns(table=item[:-2])
        return SelectItem(expr=col(item))
    if isinstance(item, Expression):
        return SelectItem(expr=item)
    raise TypeError(f"Unsupported select item: {item!r}")


def _order_item(item: Any) -> OrderByItem:
    if isinstance(item, OrderByItem):
        return item
    if isinstance(item, str):
        if item.startswith("-"):
            return OrderByItem(expr=col(item[1:]), ascending=False)
        return OrderByItem(expr=col(item))
    if isinstance(item, Expression):
        return OrderByItem(expr=item)
    raise TypeError(f"Unsupported order item: {item!r}")


class QueryNode(ABC):
    """Base class for logical plan nodes."""

    @abstractmethod
    def __str__(self) -> str:
        pass

    def where(self, predicate: Expression) -> Filter:
        return Filter(input=self, predicate=predicate)

    def join(
        self,
        other: QueryNode,
        on: Expression | None = None,
        kind: JoinKind = JoinKind.INNER,
    ) -> Join:
        return Join(left=self, right=other, condition=on, kind=kind)

    def left_join(self, other: QueryNode, on: Expression) -> Join:
        return Join(left=self, right=other, condition=on, kind=JoinKind.LEFT)

    def select(self, *items: Any) -> Project:
        """Project columns.

        Items may be column strings ("p.FirstName"), "*" / "p.*",
        expressions, (expression, alias) tuples or SelectItem objects.
        """
        return Project(input=self, items=tuple(_projection_item(i) for i in items))

    def group_by(self, keys: tuple[Any, ...] | list[Any], *aggregates: AggregateCall) -> Aggregate:
        group_keys = tuple(col(k) if isinstance(k, str) else k for k in keys)
        return Aggregate(input=self, keys=group_keys, aggregates=tuple(aggregates))

    def union(self, other: QueryNode, distinct: bool = True) -> Union:
        return Union(left=self, right=other, distinct=distinct)

    def order_by(self, *items: Any) -> Sort:
        """Sort rows. A leading "-" on a column string sorts descending."""
        return Sort(input=self, keys=tuple(_order_item(i) for i in items))


@dataclass(frozen=True)
class TableScan(QueryNode):
    """Scan a base table or a view by name."""

    table_name: str
    alias: str | None = None

    @property
    def name(self) -> str:
        return self.alias or self.table_name

    def __str__(self) -> str:
        if self.alias:
            return f"TableScan({self.table_name} AS {self.alias})"
        return f"TableScan({self.table_name})"


@dataclass(frozen=True)
class Filter(QueryNode):
    """Filter rows based on a predicate."""

    input: QueryNode
    predicate: Expression

    def __str__(self) -> str:
        return f"Filter({self.predicate})\n  -> {self.input}"


@dataclass(frozen=True)
class Join(QueryNode):
    """Join two inputs. A None condition is a cross join."""

    left: QueryNode
    right: QueryNode
    condition: Expression | None = None
    kind: JoinKind = JoinKind.INNER

    def __str__(self) -> str:
        return f"{self.kind.value}Join({self.condition})\n  -> {self.left}\n  -> {self.right}"


@dataclass(frozen=True)
class Project(QueryNode):
    """Project (select) specific columns."""

    input: QueryNode
    items: tuple[ProjectionItem, ...]

    def __str__(self) -> str:
        cols = ", ".join(str(item) for item in self.items)
        return f"Project({cols})\n  -> {self.input}"


@dataclass(frozen=True)
class Aggregate(QueryNode):
    """Aggregate rows with GROUP BY."""

    input: QueryNode
    keys: tuple[Expression, ...]
    aggregates: tuple[AggregateCall, ...]

    def __str__(self) -> str:
        groups = ", ".join(str(g) for g in self.keys)
        aggs = ", ".join(str(a) for a in self.aggregates)
        return f"Aggregate(group=[{groups}], agg=[{aggs}])\n  -> {self.input}"


@dataclass(frozen=True)
class Union(QueryNode):
    """Concatenate two inputs positionally, removing duplicates unless ALL."""

    left: QueryNode
    right: QueryNode
    distinct: bool = True

    def __str__(self) -> str:
        kind = "Union" if self.distinct else "UnionAll"
        return f"{kind}\n  -> {self.left}\n  -> {self.right}"


@dataclass(frozen=True)
class Sort(QueryNode):
    """Sort rows by specified expressions."""

    input: QueryNode
    keys: tuple[OrderByItem, ...]

    def __str__(self) -> str:
        cols = ", ".join(str(item) for item in self.keys)
        return f"Sort({cols})\n  -> {self.input}"


def count(arg: Any = None, alias: str | None = None, distinct: bool = False) -> AggregateCall:
    """COUNT(arg) or COUNT(*) when arg is None."""
    expr = col(arg) if isinstance(arg, str) else arg
    return AggregateCall(func=AggregateFunc.COUNT, arg=expr, alias=alias, distinct=distinct)


def aggregate(func: AggregateFunc, arg: Any, alias: str | None = None) -> AggregateCall:
    expr = col(arg) if isinstance(arg, str) else arg
    return AggregateCall(func=func, arg=expr, alias=alias)
