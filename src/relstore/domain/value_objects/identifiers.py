"""Core identifiers and type-safe primitives for the relational core.

These value objects keep raw integers and strings from being mixed up
between tables, transactions, connections and indexes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NewType


RowId = NewType("RowId", int)
"""Identifier of a row within its table. Monotonically increasing, never reused."""

TransactionId = NewType("TransactionId", int)
"""Unique identifier for a transaction. Monotonically increasing."""

ConnectionId = NewType("ConnectionId", int)
"""Identifier of a logical connection (session)."""

# Special sentinel values
INVALID_ROW_ID = RowId(0)
INVALID_TXN_ID = TransactionId(0)


@dataclass(frozen=True, slots=True)
class IndexHandle:
    """Handle returned by index creation.

    The handle names the index and the table it belongs to. It stays
    valid until the index is dropped; lookups through a dropped handle
    fail with SchemaError.

    Example:
        >>> handle = IndexHandle("idx_lastname", "Persons")
        >>> str(handle)
        'idx_lastname ON Persons'
    """

    name: str
    table: str

    def __str__(self) -> str:
        return f"{self.name} ON {self.table}"
