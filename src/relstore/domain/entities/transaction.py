"""Transaction handle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from relstore.domain.entities.mutation import Mutation
from relstore.domain.value_objects import ConnectionId, RowId, TransactionId, TransactionState

if TYPE_CHECKING:
    from relstore.domain.entities.expressions import Expression
    from relstore.domain.entities.row import Row
    from relstore.domain.services.storage_engine import Workspace
    from relstore.domain.services.transaction_manager import TransactionManager


@dataclass(eq=False)
class Transaction:
    """A bounded sequence of mutations applied atomically.

    While ACTIVE, mutations land in a private overlay (``workspace``)
    that only this handle can read. The handle can be used as a context
    manager: a clean exit commits, an exception rolls back.

    Example:
        with db.begin() as txn:
            person_id = txn.insert("Persons", {"FirstName": "Daniel"})
            txn.insert("Births", {"PersonID": person_id, "BirthPlace": "Stuttgart"})
    """

    txn_id: TransactionId
    connection_id: ConnectionId
    workspace: Workspace | None
    manager: TransactionManager = field(repr=False)
    state: TransactionState = TransactionState.ACTIVE
    mutations: list[Mutation] = field(default_factory=list)
    started_at: float = 0.0

    def is_active(self) -> bool:
        """Return True if transaction can still perform operations."""
        return self.state == TransactionState.ACTIVE

    def is_terminal(self) -> bool:
        """Return True if transaction has ended."""
        return self.state.is_terminal()

    def insert(self, table: str, record: Mapping[str, Any]) -> RowId:
        return self.manager.insert(self, table, record)

    def update(self, table: str, row_id: int, patch: Mapping[str, Any]) -> None:
        self.manager.update(self, table, RowId(row_id), patch)

    def delete(self, table: str, row_id: int) -> None:
        self.manager.delete(self, table, RowId(row_id))

    def get(self, table: str, row_id: int) -> Row:
        return self.manager.get(self, table, RowId(row_id))

    def scan(self, table: str, predicate: Expression | None = None) -> Iterator[Row]:
        return self.manager.scan(self, table, predicate)

    def commit(self) -> None:
        self.manager.commit(self)

    def rollback(self) -> None:
        self.manager.rollback(self)

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self.is_active():
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
