"""Unit tests for the Planner: access paths and predicate pushdown."""

from __future__ import annotations

import pytest

from relstore.application import Database
from relstore.domain.entities import Column, TableScan, and_, col, eq, ge, gt, lit, lt
from relstore.domain.value_objects import ColumnType


@pytest.fixture
def indexed_db(people_db: Database) -> Database:
    people_db.insert("Persons", {"FirstName": "Alice", "LastName": "Müller", "DateOfBirth": "1990-01-01"})
    people_db.insert("Persons", {"FirstName": "Eva", "LastName": "Müller", "DateOfBirth": "2005-03-01"})
    people_db.insert("Persons", {"FirstName": "Bob", "LastName": "Schmidt", "DateOfBirth": "2001-05-15"})
    people_db.insert("Pets", {"OwnerID": 1, "Name": "Rex"})
    people_db.create_index("Persons", "LastName", name="idx_lastname")
    people_db.create_index(
        "Persons",
        "DateOfBirth",
        partial_predicate=ge("DateOfBirth", "2000-01-01"),
        name="idx_young",
    )
    return people_db


@pytest.mark.unit
class TestAccessPath:
    """Tests for index selection on single-table scans."""

    def test_equality_on_indexed_column(self, indexed_db: Database) -> None:
        plan = indexed_db.explain("Persons", eq("LastName", "Müller"))

        assert plan.uses_index
        assert plan.index_names() == ["idx_lastname"]
        assert plan.root.node_type == "Index Scan"
        assert plan.root.index_cond == "LastName = 'Müller'"
        assert plan.root.filter is None

    def test_unindexed_column(self, indexed_db: Database) -> None:
        plan = indexed_db.explain("Persons", eq("FirstName", "Alice"))

        assert not plan.uses_index
        assert plan.root.node_type == "Seq Scan"
        assert plan.root.filter == "FirstName = 'Alice'"

    def test_residual_filter(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(
            "Persons", and_(eq("LastName", "Müller"), eq("FirstName", "Eva"))
        )
        assert plan.root.index_cond == "LastName = 'Müller'"
        assert plan.root.filter == "FirstName = 'Eva'"
        assert [r["FirstName"] for r in indexed_db.select(
            TableScan("Persons").where(and_(eq("LastName", "Müller"), eq("FirstName", "Eva")))
        )] == ["Eva"]

    def test_literal_on_the_left(self, indexed_db: Database) -> None:
        plan = indexed_db.explain("Persons", eq(lit("Müller"), col("LastName")))
        assert plan.uses_index

    def test_qualified_column(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(TableScan("Persons", "p").where(eq("p.LastName", "Schmidt")))

        assert plan.index_names() == ["idx_lastname"]
        assert plan.root.label() == "Index Scan using idx_lastname on Persons p"

    def test_partial_index_used_when_implied(self, indexed_db: Database) -> None:
        plan = indexed_db.explain("Persons", ge("DateOfBirth", "2003-01-01"))

        assert plan.index_names() == ["idx_young"]
        assert plan.root.index_cond is None
        assert plan.root.filter == "DateOfBirth >= '2003-01-01'"
        rows = indexed_db.select(TableScan("Persons").where(ge("DateOfBirth", "2003-01-01")))
        assert [r["FirstName"] for r in rows] == ["Eva"]

    def test_partial_index_predicate_not_repeated(self, indexed_db: Database) -> None:
        plan = indexed_db.explain("Persons", ge("DateOfBirth", "2000-01-01"))

        assert plan.index_names() == ["idx_young"]
        assert plan.root.filter is None

    def test_partial_index_not_used_when_not_implied(self, indexed_db: Database) -> None:
        for predicate in (ge("DateOfBirth", "1995-01-01"), lt("DateOfBirth", "2010-01-01")):
            plan = indexed_db.explain("Persons", predicate)
            assert not plan.uses_index

    def test_key_lookup_beats_partial_scan(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(
            "Persons", and_(gt("DateOfBirth", "2004-01-01"), eq("LastName", "Müller"))
        )
        assert plan.index_names() == ["idx_lastname"]
        assert plan.root.filter == "DateOfBirth > '2004-01-01'"

    def test_unique_index_preferred(self, indexed_db: Database) -> None:
        indexed_db.create_index("Persons", "FirstName", name="idx_first")
        indexed_db.create_index("Persons", "FirstName", unique=True, name="idx_first_unique")

        plan = indexed_db.explain("Persons", eq("FirstName", "Bob"))
        assert plan.index_names() == ["idx_first_unique"]

    def test_wider_key_preferred(self, indexed_db: Database) -> None:
        indexed_db.create_index("Persons", ["LastName", "FirstName"], name="idx_full_name")

        plan = indexed_db.explain(
            "Persons", and_(eq("LastName", "Müller"), eq("FirstName", "Eva"))
        )
        assert plan.index_names() == ["idx_full_name"]
        assert plan.root.filter is None

    def test_uncoercible_literal_skips_index(self, indexed_db: Database) -> None:
        indexed_db.add_column("Persons", Column("Age", ColumnType.INTEGER))
        indexed_db.create_index("Persons", "Age", name="idx_age")

        assert indexed_db.explain("Persons", eq("Age", 30)).uses_index
        assert not indexed_db.explain("Persons", eq("Age", "thirty")).uses_index

    def test_null_literal_never_uses_index(self, indexed_db: Database) -> None:
        assert not indexed_db.explain("Persons", eq("LastName", None)).uses_index


@pytest.mark.unit
class TestPushdown:
    """Tests for pushing filters below joins and wrapping projections."""

    def join(self):
        return TableScan("Persons", "p").join(
            TableScan("Pets", "x"), eq("p.PersonID", col("x.OwnerID"))
        )

    def test_right_conjunct_pushed_for_inner_join(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(self.join().where(eq("x.Name", "Rex")))

        assert plan.root.node_type == "Nested Loop"
        assert plan.root.join_filter == "p.PersonID = x.OwnerID"
        assert plan.root.filter is None
        pets = [n for n in plan.nodes() if n.relation == "Pets"][0]
        assert pets.filter == "x.Name = 'Rex'"

    def test_left_conjunct_reaches_index(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(self.join().where(eq("p.LastName", "Müller")))

        persons = [n for n in plan.nodes() if n.relation == "Persons"][0]
        assert persons.node_type == "Index Scan"
        assert persons.index_name == "idx_lastname"

    def test_right_conjunct_stays_above_left_join(self, indexed_db: Database) -> None:
        query = (
            TableScan("Persons", "p")
            .left_join(TableScan("Pets", "x"), eq("p.PersonID", col("x.OwnerID")))
            .where(eq("x.Name", "Rex"))
        )
        plan = indexed_db.explain(query)

        assert plan.root.node_type == "Nested Loop Left Join"
        assert plan.root.filter == "x.Name = 'Rex'"
        pets = [n for n in plan.nodes() if n.relation == "Pets"][0]
        assert pets.filter is None
        assert len(indexed_db.select(query)) == 1

    def test_mixed_conjunct_stays_on_join(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(self.join().where(eq("p.FirstName", col("x.Name"))))
        assert plan.root.filter == "p.FirstName = x.Name"

    def test_filter_over_projection(self, indexed_db: Database) -> None:
        query = TableScan("Persons").select("FirstName", "LastName").where(eq("LastName", "Müller"))
        plan = indexed_db.explain(query)

        assert plan.root.node_type == "Result"
        assert plan.root.children[0].node_type == "Seq Scan"
        assert len(indexed_db.select(query)) == 2

    def test_filter_passes_through_sort(self, indexed_db: Database) -> None:
        plan = indexed_db.explain(
            TableScan("Persons").order_by("FirstName").where(eq("LastName", "Müller"))
        )
        assert plan.root.node_type == "Sort"
        assert plan.root.children[0].index_name == "idx_lastname"
