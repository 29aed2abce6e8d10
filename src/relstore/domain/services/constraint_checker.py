"""Constraint Layer - primary key, foreign key and delete restrictions.

All checks run against the store a mutation is about to be applied to,
before anything is written, so a failing check leaves that store
untouched.

Policies:
    - Primary keys are unique and immutable.
    - A non-NULL foreign key must reference an existing row.
    - Deleting a referenced row is refused (RESTRICT); nothing cascades.
"""

from __future__ import annotations

from typing import Any

from relstore.domain.entities import TableSchema
from relstore.domain.errors import (
    DanglingReference,
    DuplicateKey,
    ReferentialViolation,
    SchemaError,
)
from relstore.domain.services.row_store import RowStore
from relstore.domain.value_objects import RowId


class ConstraintChecker:
    """Validates mutations against integrity constraints."""

    def __init__(self, enforce_foreign_keys: bool = True) -> None:
        """Initialize the checker.

        Args:
            enforce_foreign_keys: Whether foreign key existence is checked
                on insert and update. Delete restrictions always apply.
        """
        self._enforce_foreign_keys = enforce_foreign_keys

    def validate_schema(self, store: RowStore, schema: TableSchema) -> None:
        """Check that every foreign key targets an existing primary key column.

        Self references are allowed.

        Raises:
            SchemaError: If a referenced table or column is invalid.
        """
        for column in schema.foreign_keys:
            ref = column.references
            if ref.table == schema.name:
                target = schema
            elif store.has_table(ref.table):
                target = store.schema(ref.table)
            else:
                raise SchemaError(
                    f"Column '{schema.name}.{column.name}' references unknown table '{ref.table}'"
                )
            if target.primary_key.name != ref.column:
                raise SchemaError(
                    f"Column '{schema.name}.{column.name}' must reference the primary key "
                    f"of '{ref.table}', not '{ref.column}'"
                )
            if not column.type.is_integer:
                raise SchemaError(f"Foreign key column '{column.name}' must be INTEGER")

    def check_drop_table(self, store: RowStore, table: str) -> None:
        for schema in store.schemas():
            if schema.name == table:
                continue
            for column in schema.foreign_keys:
                if column.references.table == table:
                    raise SchemaError(
                        f"Cannot drop table '{table}': referenced by '{schema.name}.{column.name}'"
                    )

    def check_insert(self, store: RowStore, table: str, row_id: RowId, row: dict[str, Any]) -> None:
        """Check a new row.

        Raises:
            DuplicateKey: If the identifier is taken.
            DanglingReference: If a foreign key target is missing.
        """
        if store.contains(table, row_id):
            pk = store.schema(table).primary_key.name
            raise DuplicateKey(f"Key ({pk})=({row_id}) already exists in '{table}'", table)
        self._check_references(store, table, row, changed=None)

    def check_update(
        self,
        store: RowStore,
        table: str,
        row_id: RowId,
        old: dict[str, Any],
        new: dict[str, Any],
    ) -> None:
        """Check an updated row.

        Raises:
            SchemaError: If the primary key is changed.
            DanglingReference: If a changed foreign key target is missing.
        """
        pk = store.schema(table).primary_key.name
        if new[pk] != old[pk]:
            raise SchemaError(f"Primary key '{table}.{pk}' is immutable")
        changed = {name for name, value in new.items() if old.get(name) != value}
        self._check_references(store, table, new, changed=changed)

    def check_delete(self, store: RowStore, table: str, row_id: RowId) -> None:
        """Refuse to delete a row that other rows still reference.

        Raises:
            ReferentialViolation: If dependents exist.
        """
        for schema in store.schemas():
            for column in schema.foreign_keys:
                if column.references.table != table:
                    continue
                for dependent_id, record in store.records(schema.name):
                    if schema.name == table and dependent_id == row_id:
                        continue
                    if record.get(column.name) == row_id:
                        raise ReferentialViolation(
                            f"Row {row_id} of '{table}' is still referenced by "
                            f"'{schema.name}.{column.name}' (row {dependent_id})",
                            table,
                        )

    def _check_references(
        self,
        store: RowStore,
        table: str,
        row: dict[str, Any],
        changed: set[str] | None,
    ) -> None:
        if not self._enforce_foreign_keys:
            return
        schema = store.schema(table)
        for column in schema.foreign_keys:
            if changed is not None and column.name not in changed:
                continue
            value = row.get(column.name)
            if value is None:
                continue
            ref = column.references
            exists = store.contains(ref.table, value)
            if not exists and ref.table == table:
                # A self reference may point at the row being written
                exists = row[schema.primary_key.name] == value
            if not exists:
                raise DanglingReference(
                    f"Key ({column.name})=({value}) is not present in table '{ref.table}'",
                    table,
                )
