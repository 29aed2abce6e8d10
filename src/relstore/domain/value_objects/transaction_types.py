"""Transaction-related types and enumerations."""

from __future__ import annotations

from enum import Enum, auto


class TransactionState(Enum):
    """Transaction lifecycle states.

    State machine:

        begin() ──> ACTIVE
                      │
           ┌──────────┼───────────────┐
           │          │               │
      commit() ok   commit() fails   rollback()
           │          │               │
           v          v               v
       COMMITTED   ABORTED         ABORTED

    COMMITTED and ABORTED are terminal. A handle in a terminal state
    refuses every further operation.
    """

    ACTIVE = auto()
    """Transaction is accepting mutations. None are visible outside it."""

    COMMITTED = auto()
    """All mutations were applied atomically and are visible."""

    ABORTED = auto()
    """All mutations were discarded, as if they never happened."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (COMMITTED or ABORTED)."""
        return self in (TransactionState.COMMITTED, TransactionState.ABORTED)

    def is_active(self) -> bool:
        """Check if transaction can still perform operations."""
        return self == TransactionState.ACTIVE


class MutationKind(Enum):
    """Kinds of row mutations buffered by a transaction."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
