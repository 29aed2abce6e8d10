"""Unit tests for the ConstraintChecker."""

from __future__ import annotations

import pytest

from relstore.domain.entities import Column, ForeignKey, TableSchema
from relstore.domain.errors import (
    DanglingReference,
    DuplicateKey,
    ReferentialViolation,
    SchemaError,
)
from relstore.domain.services import ConstraintChecker, RowStore
from relstore.domain.value_objects import ColumnType, RowId

PERSONS = TableSchema(
    name="Persons",
    columns=(
        Column("PersonID", ColumnType.SERIAL, primary_key=True),
        Column("LastName", ColumnType.VARCHAR, max_length=100),
        Column("ParentID", ColumnType.INTEGER, references=ForeignKey("Persons", "PersonID")),
    ),
)

BIRTHS = TableSchema(
    name="Births",
    columns=(
        Column("BirthID", ColumnType.SERIAL, primary_key=True),
        Column("PersonID", ColumnType.INTEGER, references=ForeignKey("Persons", "PersonID")),
    ),
)


@pytest.mark.unit
class TestConstraintChecker:
    """Tests for key, reference and restrict checks."""

    @pytest.fixture
    def checker(self) -> ConstraintChecker:
        return ConstraintChecker()

    @pytest.fixture
    def store(self, checker: ConstraintChecker) -> RowStore:
        store = RowStore()
        checker.validate_schema(store, PERSONS)
        store.create_table(PERSONS)
        checker.validate_schema(store, BIRTHS)
        store.create_table(BIRTHS)
        store.insert("Persons", {"LastName": "Müller"})
        return store

    def test_schema_with_unknown_target(self, checker: ConstraintChecker) -> None:
        with pytest.raises(SchemaError, match="unknown table"):
            checker.validate_schema(RowStore(), BIRTHS)

    def test_schema_must_reference_primary_key(self, checker: ConstraintChecker, store: RowStore) -> None:
        schema = TableSchema(
            name="Nicknames",
            columns=(
                Column("NicknameID", ColumnType.SERIAL, primary_key=True),
                Column("Name", ColumnType.INTEGER, references=ForeignKey("Persons", "LastName")),
            ),
        )
        with pytest.raises(SchemaError, match="primary key"):
            checker.validate_schema(store, schema)

    def test_insert_with_existing_reference(self, checker: ConstraintChecker, store: RowStore) -> None:
        checker.check_insert(store, "Births", RowId(1), {"BirthID": 1, "PersonID": 1})

    def test_insert_with_null_reference(self, checker: ConstraintChecker, store: RowStore) -> None:
        checker.check_insert(store, "Births", RowId(1), {"BirthID": 1, "PersonID": None})

    def test_insert_dangling_reference(self, checker: ConstraintChecker, store: RowStore) -> None:
        with pytest.raises(DanglingReference) as exc_info:
            checker.check_insert(store, "Births", RowId(1), {"BirthID": 1, "PersonID": 42})
        assert exc_info.value.table == "Births"
        assert exc_info.value.kind == "dangling_reference"

    def test_insert_duplicate_key(self, checker: ConstraintChecker, store: RowStore) -> None:
        with pytest.raises(DuplicateKey):
            checker.check_insert(store, "Persons", RowId(1), {"PersonID": 1, "ParentID": None})

    def test_self_reference_to_new_row(self, checker: ConstraintChecker, store: RowStore) -> None:
        checker.check_insert(store, "Persons", RowId(2), {"PersonID": 2, "ParentID": 2})

    def test_foreign_keys_not_enforced(self, store: RowStore) -> None:
        checker = ConstraintChecker(enforce_foreign_keys=False)
        checker.check_insert(store, "Births", RowId(1), {"BirthID": 1, "PersonID": 42})

    def test_update_primary_key_is_immutable(self, checker: ConstraintChecker, store: RowStore) -> None:
        old = store.get_record("Persons", 1)
        with pytest.raises(SchemaError, match="immutable"):
            checker.check_update(store, "Persons", RowId(1), old, {**old, "PersonID": 5})

    def test_update_checks_only_changed_references(
        self, checker: ConstraintChecker, store: RowStore
    ) -> None:
        old = store.get_record("Persons", 1)
        checker.check_update(store, "Persons", RowId(1), old, {**old, "LastName": "Wolf"})
        with pytest.raises(DanglingReference):
            checker.check_update(store, "Persons", RowId(1), old, {**old, "ParentID": 9})

    def test_delete_referenced_row(self, checker: ConstraintChecker, store: RowStore) -> None:
        store.insert("Births", {"PersonID": 1})
        with pytest.raises(ReferentialViolation, match="still referenced"):
            checker.check_delete(store, "Persons", RowId(1))

    def test_delete_unreferenced_row(self, checker: ConstraintChecker, store: RowStore) -> None:
        checker.check_delete(store, "Persons", RowId(1))

    def test_drop_referenced_table(self, checker: ConstraintChecker, store: RowStore) -> None:
        with pytest.raises(SchemaError, match="referenced by"):
            checker.check_drop_table(store, "Persons")
        checker.check_drop_table(store, "Births")
