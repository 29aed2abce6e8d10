"""Domain entities for the relational core.

Exports:
    Schema:
        - Column, ForeignKey, TableSchema

    Rows:
        - Row: Record returned by reads

    Expressions:
        - ColumnRef, Literal, JsonField, Comparison, Logical, IsNull, InQuery
        - ComparisonOp, LogicalOp
        - Builders: col, lit, json_field, eq, ne, lt, le, gt, ge,
          and_, or_, not_, is_null, in_query

    Query plans:
        - QueryNode, TableScan, Filter, Join, Project, Aggregate, Union, Sort
        - SelectItem, AllColumns, AggregateCall, OrderByItem
        - JoinKind, AggregateFunc, count, aggregate

    Transactions:
        - Mutation: Buffered insert/update/delete
        - Transaction: Transaction handle
"""

from relstore.domain.entities.expressions import (
    ColumnRef,
    Comparison,
    ComparisonOp,
    Expression,
    InQuery,
    IsNull,
    JsonField,
    Literal,
    Logical,
    LogicalOp,
    and_,
    col,
    eq,
    ge,
    gt,
    in_query,
    is_null,
    json_field,
    le,
    lit,
    lt,
    ne,
    not_,
    or_,
)
from relstore.domain.entities.mutation import Mutation
from relstore.domain.entities.query import (
    Aggregate,
    AggregateCall,
    AggregateFunc,
    AllColumns,
    Filter,
    Join,
    JoinKind,
    OrderByItem,
    Project,
    QueryNode,
    SelectItem,
    Sort,
    TableScan,
    Union,
    aggregate,
    count,
)
from relstore.domain.entities.row import Row
from relstore.domain.entities.schema import Column, ForeignKey, TableSchema
from relstore.domain.entities.transaction import Transaction

__all__ = [
    # Schema
    "Column",
    "ForeignKey",
    "TableSchema",
    # Rows
    "Row",
    # Expressions
    "Expression",
    "ColumnRef",
    "Literal",
    "JsonField",
    "Comparison",
    "ComparisonOp",
    "Logical",
    "LogicalOp",
    "IsNull",
    "InQuery",
    "col",
    "lit",
    "json_field",
    "eq",
    "ne",
    "lt",
    "le",
    "gt",
    "ge",
    "and_",
    "or_",
    "not_",
    "is_null",
    "in_query",
    # Query plans
    "QueryNode",
    "TableScan",
    "Filter",
    "Join",
    "JoinKind",
    "Project",
    "Aggregate",
    "AggregateCall",
    "AggregateFunc",
    "Union",
    "Sort",
    "SelectItem",
    "AllColumns",
    "OrderByItem",
    "count",
    "aggregate",
    # Transactions
    "Mutation",
    "Transaction",
]
