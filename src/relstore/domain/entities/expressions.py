"""Scalar and boolean expressions used by predicates, joins and projections.

Expressions are immutable and structurally comparable, which lets the
planner match a scan predicate against a partial index predicate.

Rows are evaluated as mappings from column name to value. Base table
rows use bare column names; rows flowing out of aliased scans and joins
use qualified names ("p.LastName"). A ColumnRef resolves against both.

NULL semantics follow SQL closely enough for filtering: a comparison
involving None yields None, and filters keep a row only when the
predicate is exactly truthy.

Example:
    >>> pred = and_(eq("LastName", "Müller"), ge("DateOfBirth", "2000-01-01"))
    >>> str(pred)
    "(LastName = 'Müller' AND DateOfBirth >= '2000-01-01')"
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Protocol

from relstore.domain.errors import InvalidValue, SchemaError

if TYPE_CHECKING:
    from relstore.domain.entities.query import QueryNode


class ComparisonOp(Enum):
    """Comparison operators for predicates."""

    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    def flip(self) -> ComparisonOp:
        """Operator to use when the operands are swapped."""
        return {
            ComparisonOp.LT: ComparisonOp.GT,
            ComparisonOp.LE: ComparisonOp.GE,
            ComparisonOp.GT: ComparisonOp.LT,
            ComparisonOp.GE: ComparisonOp.LE,
        }.get(self, self)

    def apply(self, left: Any, right: Any) -> bool:
        if self == ComparisonOp.EQ:
            return left == right
        elif self == ComparisonOp.NE:
            return left != right
        elif self == ComparisonOp.LT:
            return left < right
        elif self == ComparisonOp.LE:
            return left <= right
        elif self == ComparisonOp.GT:
            return left > right
        return left >= right


class LogicalOp(Enum):
    """Logical operators for combining predicates."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class EvaluationContext(Protocol):
    """Services an expression may need beyond the row itself."""

    def subquery_values(self, query: QueryNode) -> frozenset[Any]:
        """Evaluate a single-column subquery into a set of values."""
        ...


class Expression(ABC):
    """Base class for expressions."""

    @abstractmethod
    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        """Evaluate the expression against one row."""

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class ColumnRef(Expression):
    """Reference to a column, optionally qualified with a table alias."""

    name: str
    table: str | None = None

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        if self.table is not None:
            key = f"{self.table}.{self.name}"
            if key in row:
                return row[key]
        if self.name in row:
            return row[self.name]
        if self.table is None:
            suffix = f".{self.name}"
            matches = [k for k in row if k.endswith(suffix)]
            if len(matches) == 1:
                return row[matches[0]]
            if len(matches) > 1:
                raise SchemaError(f"Column reference '{self.name}' is ambiguous")
        raise SchemaError(f"Column '{self}' does not exist")

    @property
    def output_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        if self.table:
            return f"{self.table}.{self.name}"
        return self.name


@dataclass(frozen=True)
class Literal(Expression):
    """A literal value."""

    value: Any

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        return self.value

    def __str__(self) -> str:
        if self.value is None:
            return "NULL"
        if isinstance(self.value, (str, date)):
            return f"'{self.value}'"
        return str(self.value)


@dataclass(frozen=True)
class JsonField(Expression):
    """Key lookup into a JSON attribute map (``column ->> 'key'``).

    Yields None when the document is NULL, is not an object, or lacks
    the key.
    """

    column: ColumnRef
    key: str

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        document = self.column.evaluate(row, context)
        if not isinstance(document, dict):
            return None
        return document.get(self.key)

    @property
    def output_name(self) -> str:
        return self.key

    def __str__(self) -> str:
        return f"({self.column} ->> '{self.key}')"


@dataclass(frozen=True)
class Comparison(Expression):
    """Binary comparison (e.g., col = value)."""

    op: ComparisonOp
    left: Expression
    right: Expression

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        left = self.left.evaluate(row, context)
        right = self.right.evaluate(row, context)
        return compare_values(left, self.op, right)

    def __str__(self) -> str:
        return f"{self.left} {self.op.value} {self.right}"


@dataclass(frozen=True)
class Logical(Expression):
    """Logical expression combining other expressions."""

    op: LogicalOp
    operands: tuple[Expression, ...]

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        if self.op == LogicalOp.NOT:
            value = self.operands[0].evaluate(row, context)
            return None if value is None else not value

        # Kleene logic: a decisive operand wins, otherwise NULL is contagious
        decisive = self.op == LogicalOp.OR
        unknown = False
        for operand in self.operands:
            value = operand.evaluate(row, context)
            if value is None:
                unknown = True
            elif bool(value) is decisive:
                return decisive
        return None if unknown else not decisive

    def __str__(self) -> str:
        if self.op == LogicalOp.NOT:
            return f"NOT ({self.operands[0]})"
        op_str = f" {self.op.value} "
        return f"({op_str.join(str(o) for o in self.operands)})"


@dataclass(frozen=True)
class IsNull(Expression):
    """``expr IS NULL`` / ``expr IS NOT NULL``."""

    operand: Expression
    negated: bool = False

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        is_null = self.operand.evaluate(row, context) is None
        return not is_null if self.negated else is_null

    def __str__(self) -> str:
        return f"{self.operand} IS {'NOT ' if self.negated else ''}NULL"


@dataclass(frozen=True)
class InQuery(Expression):
    """``expr IN (subquery)`` against a single-column subquery."""

    operand: Expression
    query: QueryNode

    def evaluate(self, row: Mapping[str, Any], context: EvaluationContext | None = None) -> Any:
        if context is None:
            raise InvalidValue("IN (subquery) needs an evaluation context")
        value = self.operand.evaluate(row, context)
        if value is None:
            return None
        return value in context.subquery_values(self.query)

    def __str__(self) -> str:
        return f"{self.operand} IN (SubPlan)"


def compare_values(left: Any, op: ComparisonOp, right: Any) -> bool | None:
    """Compare two values with SQL NULL semantics.

    ISO date strings are compared as dates when the other side is a date.

    Raises:
        InvalidValue: If the values are not comparable.
    """
    if left is None or right is None:
        return None
    if isinstance(left, date) and isinstance(right, str):
        right = _parse_date(right)
    elif isinstance(right, date) and isinstance(left, str):
        left = _parse_date(left)
    try:
        return op.apply(left, right)
    except TypeError as e:
        raise InvalidValue(f"Cannot compare {left!r} {op.value} {right!r}") from e


def hashable(value: Any) -> Any:
    """Canonical hashable form of a value; JSON documents become their text."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return value


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidValue(f"Invalid DATE literal {value!r}") from e


# Builders

def col(ref: str) -> ColumnRef:
    """Build a column reference from ``"name"`` or ``"alias.name"``."""
    if "." in ref:
        table, name = ref.split(".", 1)
        return ColumnRef(name=name, table=table)
    return ColumnRef(name=ref)


def lit(value: Any) -> Literal:
    return Literal(value)


def json_field(column: str | ColumnRef, key: str) -> JsonField:
    if isinstance(column, str):
        column = col(column)
    return JsonField(column=column, key=key)


def _operand(value: Any, default_column: bool) -> Expression:
    if isinstance(value, Expression):
        return value
    if default_column and isinstance(value, str):
        return col(value)
    return Literal(value)


def _comparison(op: ComparisonOp, left: Any, right: Any) -> Comparison:
    return Comparison(op=op, left=_operand(left, True), right=_operand(right, False))


def eq(left: Any, right: Any) -> Comparison:
    """``left = right``; a string on the left names a column, on the right it is a literal."""
    return _comparison(ComparisonOp.EQ, left, right)


def ne(left: Any, right: Any) -> Comparison:
    return _comparison(ComparisonOp.NE, left, right)


def lt(left: Any, right: Any) -> Comparison:
    return _comparison(ComparisonOp.LT, left, right)


def le(left: Any, right: Any) -> Comparison:
    return _comparison(ComparisonOp.LE, left, right)


def gt(left: Any, right: Any) -> Comparison:
    return _comparison(ComparisonOp.GT, left, right)


def ge(left: Any, right: Any) -> Comparison:
    return _comparison(ComparisonOp.GE, left, right)


def and_(*operands: Expression) -> Expression:
    if len(operands) == 1:
        return operands[0]
    return Logical(op=LogicalOp.AND, operands=tuple(operands))


def or_(*operands: Expression) -> Expression:
    if len(operands) == 1:
        return operands[0]
    return Logical(op=LogicalOp.OR, operands=tuple(operands))


def not_(operand: Expression) -> Logical:
    return Logical(op=LogicalOp.NOT, operands=(operand,))


def is_null(operand: Any, negated: bool = False) -> IsNull:
    return IsNull(operand=_operand(operand, True), negated=negated)


def in_query(operand: Any, query: QueryNode) -> InQuery:
    return InQuery(operand=_operand(operand, True), query=query)


# Predicate analysis

def conjuncts(expr: Expression | None) -> list[Expression]:
    """Flatten nested ANDs into a list of conjuncts."""
    if expr is None:
        return []
    if isinstance(expr, Logical) and expr.op == LogicalOp.AND:
        result: list[Expression] = []
        for operand in expr.operands:
            result.extend(conjuncts(operand))
        return result
    return [expr]


def column_bound(expr: Expression) -> tuple[str, ComparisonOp, Any] | None:
    """Normalize ``column op literal`` (either side) to (column name, op, value)."""
    if not isinstance(expr, Comparison):
        return None
    if isinstance(expr.left, ColumnRef) and isinstance(expr.right, Literal):
        return expr.left.name, expr.op, expr.right.value
    if isinstance(expr.left, Literal) and isinstance(expr.right, ColumnRef):
        return expr.right.name, expr.op.flip(), expr.left.value
    return None


def implies(premises: list[Expression], conclusion: Expression) -> bool:
    """Check whether a conjunction of premises implies a conclusion.

    Handles structural equality and single-column range bounds, e.g.
    ``DateOfBirth >= '2005-03-01'`` implies ``DateOfBirth >= '2000-01-01'``.
    """
    if conclusion in premises:
        return True
    target = column_bound(conclusion)
    if target is None:
        return False
    for premise in premises:
        bound = column_bound(premise)
        if bound is not None and bound[0] == target[0] and _bound_implies(bound, target):
            return True
    return False


def _bound_implies(
    premise: tuple[str, ComparisonOp, Any], conclusion: tuple[str, ComparisonOp, Any]
) -> bool:
    _, p_op, p_val = premise
    _, c_op, c_val = conclusion
    if p_val is None or c_val is None:
        return False
    try:
        if c_op == ComparisonOp.EQ:
            return p_op == ComparisonOp.EQ and compare_values(p_val, ComparisonOp.EQ, c_val)
        if c_op in (ComparisonOp.GE, ComparisonOp.GT):
            if p_op == ComparisonOp.EQ or p_op == ComparisonOp.GE:
                return bool(compare_values(p_val, c_op, c_val))
            if p_op == ComparisonOp.GT:
                return bool(compare_values(p_val, ComparisonOp.GE, c_val))
            return False
        if c_op in (ComparisonOp.LE, ComparisonOp.LT):
            if p_op == ComparisonOp.EQ or p_op == ComparisonOp.LE:
                return bool(compare_values(p_val, c_op, c_val))
            if p_op == ComparisonOp.LT:
                return bool(compare_values(p_val, ComparisonOp.LE, c_val))
            return False
    except InvalidValue:
        return False
    return False
