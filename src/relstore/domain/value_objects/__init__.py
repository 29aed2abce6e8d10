"""Value objects for the relational core domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Identifiers:
        - RowId: Per-table row identifier
        - TransactionId: Type-safe transaction identifier
        - ConnectionId: Logical connection identifier
        - IndexHandle: Name and table of a live index
        - INVALID_ROW_ID, INVALID_TXN_ID: Sentinel values

    Transaction Types:
        - TransactionState: ACTIVE, COMMITTED, ABORTED
        - MutationKind: INSERT, UPDATE, DELETE

    Column Types:
        - ColumnType: Column data types with value coercion
"""

from relstore.domain.value_objects.column_types import ColumnType
from relstore.domain.value_objects.identifiers import (
    INVALID_ROW_ID,
    INVALID_TXN_ID,
    ConnectionId,
    IndexHandle,
    RowId,
    TransactionId,
)
from relstore.domain.value_objects.transaction_types import (
    MutationKind,
    TransactionState,
)

__all__ = [
    # Identifiers
    "RowId",
    "TransactionId",
    "ConnectionId",
    "IndexHandle",
    "INVALID_ROW_ID",
    "INVALID_TXN_ID",
    # Transaction types
    "TransactionState",
    "MutationKind",
    # Column types
    "ColumnType",
]
