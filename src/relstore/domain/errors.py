"""Error taxonomy for the relational core.

Every error is raised synchronously to the caller of the operation that
triggered it. Outside a transaction an error aborts only the offending
operation; inside a transaction constraint failures abort the whole
transaction and surface as TransactionAborted.
"""

from __future__ import annotations


class RelStoreError(Exception):
    """Base class for all relstore errors."""

    pass


class SchemaError(RelStoreError):
    """Unknown or duplicate table, column, index or view."""

    pass


class InvalidValue(RelStoreError):
    """A value cannot be coerced to its column type."""

    pass


class NotFound(RelStoreError):
    """The requested row does not exist."""

    def __init__(self, table: str, row_id: int) -> None:
        super().__init__(f"Row {row_id} not found in '{table}'")
        self.table = table
        self.row_id = row_id


class WriteLockTimeout(RelStoreError):
    """The global write scope could not be acquired in time."""

    pass


class ConstraintViolation(RelStoreError):
    """Base class for integrity constraint failures."""

    kind = "constraint"

    def __init__(self, message: str, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class DuplicateKey(ConstraintViolation):
    """A primary key value is already taken."""

    kind = "duplicate_key"


class DanglingReference(ConstraintViolation):
    """A foreign key points at a row that does not exist."""

    kind = "dangling_reference"


class ReferentialViolation(ConstraintViolation):
    """A referenced row cannot be deleted while dependents exist."""

    kind = "referential_violation"


class UniqueViolation(ConstraintViolation):
    """A unique index already maps the key to another row."""

    kind = "unique_violation"

    def __init__(self, message: str, table: str | None = None, index_name: str | None = None) -> None:
        super().__init__(message, table)
        self.index_name = index_name


class TransactionError(RelStoreError):
    """Base class for transaction lifecycle errors."""

    pass


class TransactionAborted(TransactionError):
    """The transaction was aborted and none of its effects were applied."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class AlreadyActive(TransactionError):
    """The connection already has an active transaction."""

    pass


class TransactionClosed(TransactionError):
    """The transaction handle is committed or aborted."""

    pass
