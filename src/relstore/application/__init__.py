"""Application layer for the relational core.

The application layer wires the domain services into a usable database
and evaluates logical query plans.

Exports:
    Database:
        - Database: Main entry point for the relational core
        - Connection: Logical session with its own transaction slot
        - DatabaseStats: Monitoring snapshot
    Planner:
        - Planner: Predicate pushdown and access path selection
    Executor:
        - QueryExecutor: Executes logical plans using Volcano iterator model
        - QueryPlan, PlanNode: Explain output
        - Operator: Base class for executor operators
    Workload:
        - vital_records: Persons, births and marriages schema and queries
"""

from relstore.application import vital_records
from relstore.application.database import Connection, Database, DatabaseStats
from relstore.application.executor import (
    FilterOperator,
    HashAggregateOperator,
    IndexScanOperator,
    NestedLoopJoinOperator,
    Operator,
    PlanNode,
    ProjectOperator,
    QueryExecutor,
    QueryPlan,
    SeqScanOperator,
    SortOperator,
    UnionOperator,
    ViewScanOperator,
)
from relstore.application.planner import AccessPath, Planner

__all__ = [
    "Database",
    "Connection",
    "DatabaseStats",
    "Planner",
    "AccessPath",
    "QueryExecutor",
    "QueryPlan",
    "PlanNode",
    "Operator",
    "SeqScanOperator",
    "IndexScanOperator",
    "ViewScanOperator",
    "FilterOperator",
    "NestedLoopJoinOperator",
    "ProjectOperator",
    "HashAggregateOperator",
    "UnionOperator",
    "SortOperator",
    "vital_records",
]
