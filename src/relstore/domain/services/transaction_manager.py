"""Transaction Manager - overlay-and-validate transactions.

Each transaction works on a private overlay: a copy-on-write fork of
the committed workspace taken at begin. Mutations are validated and
applied to the overlay immediately, so reads through the transaction see
its own writes while everyone else keeps reading the committed state.

Commit replays the buffered mutations, in their original order, against
the committed state as it is at commit time (which may have moved on
since begin). Either every mutation applies and the result is published
with one swap, or nothing is applied and the transaction is aborted.

State machine:
    ACTIVE --commit ok--> COMMITTED
    ACTIVE --commit failure--> ABORTED
    ACTIVE --rollback--> ABORTED

References:
    - Kung & Robinson, "On Optimistic Methods for Concurrency Control" (1981)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping

from relstore.domain.entities import Expression, Mutation, Row, Transaction
from relstore.domain.errors import (
    AlreadyActive,
    ConstraintViolation,
    RelStoreError,
    TransactionAborted,
    TransactionClosed,
)
from relstore.domain.services.storage_engine import StorageEngine, Workspace
from relstore.domain.value_objects import ConnectionId, RowId, TransactionId, TransactionState
from relstore.infrastructure.logging import get_logger, log_context
from relstore.infrastructure.metrics import MetricsRegistry, get_metrics
from relstore.infrastructure.tracing import trace_span

logger = get_logger(__name__)


@dataclass
class TransactionStats:
    """Statistics for transaction monitoring."""

    active_count: int
    committed_total: int
    aborted_total: int
    avg_duration_ms: float


class TransactionManager:
    """Transaction lifecycle for all connections.

    Usage:
        txn = manager.begin(connection_id)
        person_id = manager.insert(txn, "Persons", {"FirstName": "Daniel"})
        manager.commit(txn)

    Thread Safety:
        Lifecycle bookkeeping is guarded by an internal lock; commit runs
        under the storage engine's write scope.
    """

    def __init__(self, storage: StorageEngine, metrics: MetricsRegistry | None = None) -> None:
        """Initialize the transaction manager.

        Args:
            storage: The storage engine owning the committed state.
            metrics: Optional metrics registry.
        """
        self._storage = storage
        self._metrics = metrics or get_metrics()

        self._lock = threading.Lock()
        self._next_txn_id = 1
        self._active: dict[ConnectionId, Transaction] = {}

        # Statistics
        self._committed_total = 0
        self._aborted_total = 0
        self._total_duration_ms = 0.0

    def begin(self, connection_id: ConnectionId) -> Transaction:
        """Begin a transaction on a connection.

        Raises:
            AlreadyActive: If the connection has an active transaction.
        """
        with self._lock:
            current = self._active.get(connection_id)
            if current is not None:
                raise AlreadyActive(
                    f"Connection {connection_id} already has active transaction {current.txn_id}"
                )
            txn = Transaction(
                txn_id=TransactionId(self._next_txn_id),
                connection_id=connection_id,
                workspace=self._storage.committed.fork(),
                manager=self,
                started_at=time.time(),
            )
            self._next_txn_id += 1
            self._active[connection_id] = txn

        self._metrics.transactions_active.inc()
        logger.debug("transaction_started", txn_id=txn.txn_id, connection_id=connection_id)
        return txn

    def active_transaction(self, connection_id: ConnectionId) -> Transaction | None:
        return self._active.get(connection_id)

    # Mutations and reads through the overlay

    def insert(self, txn: Transaction, table: str, record: Mapping[str, Any]) -> RowId:
        mutation = self._mutate(txn, lambda ws: self._storage.apply_insert(ws, table, record))
        return mutation.row_id

    def update(self, txn: Transaction, table: str, row_id: RowId, patch: Mapping[str, Any]) -> None:
        self._mutate(txn, lambda ws: self._storage.apply_update(ws, table, row_id, patch))

    def delete(self, txn: Transaction, table: str, row_id: RowId) -> None:
        self._mutate(txn, lambda ws: self._storage.apply_delete(ws, table, row_id))

    def get(self, txn: Transaction, table: str, row_id: RowId) -> Row:
        return self.workspace(txn).store.get(table, row_id)

    def scan(self, txn: Transaction, table: str, predicate: Expression | None = None) -> Iterator[Row]:
        return self.workspace(txn).store.scan(table, predicate)

    def workspace(self, txn: Transaction) -> Workspace:
        """The overlay of an active transaction.

        Raises:
            TransactionClosed: If the transaction has ended.
        """
        self._check_active(txn)
        return txn.workspace

    def _mutate(self, txn: Transaction, apply: Callable[[Workspace], Mutation]) -> Mutation:
        workspace = self.workspace(txn)
        try:
            mutation = apply(workspace)
        except ConstraintViolation as e:
            self._abort(txn, reason=str(e))
            raise TransactionAborted(f"Transaction {txn.txn_id} aborted: {e}", cause=e) from e
        txn.mutations.append(mutation)
        return mutation

    # Termination

    def commit(self, txn: Transaction) -> None:
        """Commit a transaction.

        Raises:
            TransactionClosed: If the transaction has ended.
            TransactionAborted: If any buffered mutation no longer
                applies; nothing is published.
        """
        self._check_active(txn)

        with log_context(txn_id=txn.txn_id, connection_id=txn.connection_id), trace_span(
            "transaction.commit",
            {"txn.id": txn.txn_id, "txn.mutations": len(txn.mutations)},
        ):
            try:
                self._storage.replay(txn.mutations)
            except RelStoreError as e:
                self._abort(txn, reason=str(e))
                raise TransactionAborted(
                    f"Transaction {txn.txn_id} aborted at commit: {e}", cause=e
                ) from e

        self._finish(txn, TransactionState.COMMITTED)
        logger.info(
            "transaction_committed",
            txn_id=txn.txn_id,
            connection_id=txn.connection_id,
            mutations=len(txn.mutations),
        )

    def rollback(self, txn: Transaction) -> None:
        """Discard an active transaction. No-op on an ended one."""
        if txn.is_terminal():
            return
        self._abort(txn, reason="rollback")

    def _abort(self, txn: Transaction, reason: str) -> None:
        self._finish(txn, TransactionState.ABORTED)
        logger.info(
            "transaction_aborted",
            txn_id=txn.txn_id,
            connection_id=txn.connection_id,
            reason=reason,
        )

    def _finish(self, txn: Transaction, state: TransactionState) -> None:
        txn.state = state
        txn.workspace = None
        duration = (time.time() - txn.started_at) * 1000
        with self._lock:
            if self._active.get(txn.connection_id) is txn:
                del self._active[txn.connection_id]
            if state == TransactionState.COMMITTED:
                self._committed_total += 1
            else:
                self._aborted_total += 1
            self._total_duration_ms += duration

        self._metrics.transactions_active.dec()
        self._metrics.transactions_total.labels(status=state.name.lower()).inc()

    def _check_active(self, txn: Transaction) -> None:
        if not txn.is_active():
            raise TransactionClosed(f"Transaction {txn.txn_id} is {txn.state.name.lower()}")

    def get_stats(self) -> TransactionStats:
        """Return transaction statistics for monitoring."""
        with self._lock:
            finished = self._committed_total + self._aborted_total
            return TransactionStats(
                active_count=len(self._active),
                committed_total=self._committed_total,
                aborted_total=self._aborted_total,
                avg_duration_ms=self._total_duration_ms / finished if finished else 0.0,
            )
