"""Unit tests for the Query Executor operators."""

from __future__ import annotations

import pytest

from relstore.application import Database, QueryPlan
from relstore.domain.entities import (
    AggregateFunc,
    Column,
    TableScan,
    aggregate,
    col,
    count,
    eq,
    in_query,
    json_field,
)
from relstore.domain.errors import SchemaError
from relstore.domain.value_objects import ColumnType


@pytest.fixture
def pets_db(people_db: Database) -> Database:
    people_db.insert("Persons", {"FirstName": "Alice", "LastName": "Müller", "DateOfBirth": "1990-01-01"})
    people_db.insert("Persons", {"FirstName": "Bob", "LastName": "Schmidt", "DateOfBirth": "1992-05-15"})
    people_db.insert("Persons", {"FirstName": "Carol", "LastName": "Müller"})
    people_db.insert("Pets", {"OwnerID": 1, "Name": "Rex"})
    people_db.insert("Pets", {"OwnerID": 1, "Name": "Tom"})
    people_db.insert("Pets", {"OwnerID": 2, "Name": "Rex"})
    return people_db


def pets_of_persons():
    return TableScan("Persons", "p").join(TableScan("Pets", "x"), eq("p.PersonID", col("x.OwnerID")))


@pytest.mark.unit
class TestScansAndProjection:
    """Tests for scans and projections."""

    def test_select_all_columns(self, pets_db: Database) -> None:
        rows = pets_db.select(TableScan("Persons"))

        assert [r["FirstName"] for r in rows] == ["Alice", "Bob", "Carol"]
        assert rows[0].columns == ["PersonID", "FirstName", "LastName", "DateOfBirth"]

    def test_projection_with_alias(self, pets_db: Database) -> None:
        rows = pets_db.select(TableScan("Persons").select(("LastName", "Family"), "FirstName"))
        assert rows[0].to_dict() == {"Family": "Müller", "FirstName": "Alice"}

    def test_join_columns_bare_when_unambiguous(self, pets_db: Database) -> None:
        rows = pets_db.select(pets_of_persons())

        assert len(rows) == 3
        assert "p.PersonID" not in rows[0].columns
        assert "Name" in rows[0].columns
        assert rows[0]["OwnerID"] == 1

    def test_star_for_one_side(self, pets_db: Database) -> None:
        rows = pets_db.select(pets_of_persons().select("x.*"))
        assert rows[0].columns == ["PetID", "OwnerID", "Name"]

    def test_star_for_unknown_alias(self, pets_db: Database) -> None:
        with pytest.raises(SchemaError):
            pets_db.select(pets_of_persons().select("z.*"))

    def test_json_field_projection(self, pets_db: Database) -> None:
        pets_db.add_column("Persons", Column("Attributes", ColumnType.JSON))
        pets_db.update("Persons", 1, {"Attributes": {"eyeColor": "blue"}})

        rows = pets_db.select(TableScan("Persons").select("FirstName", json_field("Attributes", "eyeColor")))
        assert rows[0].to_dict() == {"FirstName": "Alice", "eyeColor": "blue"}
        assert rows[1]["eyeColor"] is None

    def test_unknown_relation(self, pets_db: Database) -> None:
        with pytest.raises(SchemaError, match="does not exist"):
            pets_db.select(TableScan("Nobody"))


@pytest.mark.unit
class TestJoins:
    """Tests for nested loop joins."""

    def test_left_join_fills_nulls(self, pets_db: Database) -> None:
        query = (
            TableScan("Persons", "p")
            .left_join(TableScan("Pets", "x"), eq("p.PersonID", col("x.OwnerID")))
            .select("p.FirstName", "x.Name")
        )
        rows = [r.to_dict() for r in pets_db.select(query)]

        assert {"FirstName": "Carol", "Name": None} in rows
        assert len(rows) == 4

    def test_cross_join(self, pets_db: Database) -> None:
        rows = pets_db.select(TableScan("Persons", "p").join(TableScan("Pets", "x")))
        assert len(rows) == 9


@pytest.mark.unit
class TestAggregation:
    """Tests for grouping and aggregates."""

    def test_group_by_count(self, pets_db: Database) -> None:
        query = pets_of_persons().group_by(["p.LastName"], count("x.PetID", alias="Pets"))
        rows = [r.to_dict() for r in pets_db.select(query)]

        assert rows == [{"LastName": "Müller", "Pets": 2}, {"LastName": "Schmidt", "Pets": 1}]

    def test_count_ignores_nulls(self, pets_db: Database) -> None:
        query = TableScan("Persons").group_by([], count(alias="All"), count("DateOfBirth", alias="Known"))
        assert pets_db.select(query)[0].to_dict() == {"All": 3, "Known": 2}

    def test_count_distinct(self, pets_db: Database) -> None:
        query = TableScan("Pets").group_by([], count("Name", alias="Names", distinct=True))
        assert pets_db.select(query)[0]["Names"] == 2

    def test_min_max_sum(self, pets_db: Database) -> None:
        query = TableScan("Pets").group_by(
            [],
            aggregate(AggregateFunc.MIN, "PetID", alias="Low"),
            aggregate(AggregateFunc.MAX, "PetID", alias="High"),
            aggregate(AggregateFunc.SUM, "OwnerID", alias="Total"),
            aggregate(AggregateFunc.AVG, "OwnerID", alias="Mean"),
        )
        row = pets_db.select(query)[0]

        assert (row["Low"], row["High"], row["Total"]) == (1, 3, 4)
        assert row["Mean"] == pytest.approx(4 / 3)

    def test_empty_input_without_keys(self, pets_db: Database) -> None:
        query = TableScan("Pets").where(eq("Name", "Nemo")).group_by([], count(alias="N"))
        assert [r.to_dict() for r in pets_db.select(query)] == [{"N": 0}]

    def test_empty_input_with_keys(self, pets_db: Database) -> None:
        query = TableScan("Pets").where(eq("Name", "Nemo")).group_by(["Name"], count(alias="N"))
        assert pets_db.select(query) == []


@pytest.mark.unit
class TestUnionSortSubquery:
    """Tests for union, sort and IN (subquery)."""

    def test_union_removes_duplicates(self, pets_db: Database) -> None:
        names = TableScan("Pets").select("Name")
        first_names = TableScan("Persons").select("FirstName")

        assert len(pets_db.select(names.union(names))) == 2
        assert len(pets_db.select(names.union(names, distinct=False))) == 6
        assert len(pets_db.select(names.union(first_names))) == 5

    def test_union_arity_mismatch(self, pets_db: Database) -> None:
        with pytest.raises(SchemaError, match="same number of columns"):
            pets_db.select(TableScan("Pets").union(TableScan("Persons").select("FirstName")))

    def test_sort_nulls_last(self, pets_db: Database) -> None:
        ascending = pets_db.select(TableScan("Persons").order_by("DateOfBirth"))
        descending = pets_db.select(TableScan("Persons").order_by("-DateOfBirth"))

        assert [r["FirstName"] for r in ascending] == ["Alice", "Bob", "Carol"]
        assert [r["FirstName"] for r in descending] == ["Bob", "Alice", "Carol"]

    def test_sort_multiple_keys(self, pets_db: Database) -> None:
        rows = pets_db.select(TableScan("Persons").order_by("LastName", "-FirstName"))
        assert [r["FirstName"] for r in rows] == ["Carol", "Alice", "Bob"]

    def test_in_subquery(self, pets_db: Database) -> None:
        owners = TableScan("Pets").where(eq("Name", "Rex")).select("OwnerID")
        rows = pets_db.select(TableScan("Persons").where(in_query("PersonID", owners)))

        assert [r["FirstName"] for r in rows] == ["Alice", "Bob"]

    def test_subquery_must_return_one_column(self, pets_db: Database) -> None:
        with pytest.raises(SchemaError, match="exactly one column"):
            pets_db.select(TableScan("Persons").where(in_query("PersonID", TableScan("Pets"))))


@pytest.mark.unit
class TestExplain:
    """Tests for explain output."""

    def test_plan_shape(self, pets_db: Database) -> None:
        plan = pets_db.explain(pets_of_persons().select("p.FirstName", "x.Name"))

        assert isinstance(plan, QueryPlan)
        assert [n.node_type for n in plan.nodes()] == ["Nested Loop", "Seq Scan", "Seq Scan"]
        assert plan.columns == ["FirstName", "Name"]
        assert plan.root.output == ["FirstName", "Name"]
        assert not plan.analyzed
        assert plan.root.actual_rows is None

    def test_analyze_reports_actual_rows(self, pets_db: Database) -> None:
        plan = pets_db.explain(pets_of_persons(), analyze=True)

        assert plan.analyzed
        assert plan.root.actual_rows == 3
        assert plan.find("Seq Scan")[0].actual_rows == 3
        assert plan.find("Seq Scan")[1].actual_rows == 3
        assert plan.execution_time_ms is not None

    def test_aggregate_nodes(self, pets_db: Database) -> None:
        plan = pets_db.explain(TableScan("Pets").group_by(["Name"], count(alias="N")))
        assert plan.root.node_type == "Hash Aggregate"
        assert plan.root.details == [("Group Key", "Name")]

        plan = pets_db.explain(TableScan("Pets").group_by([], count(alias="N")))
        assert plan.root.node_type == "Aggregate"

    def test_render(self, pets_db: Database) -> None:
        text = pets_db.explain(pets_of_persons().where(eq("x.Name", "Rex")), analyze=True).render()
        lines = text.splitlines()

        assert lines[0].startswith("Nested Loop  (actual time=")
        assert "  Join Filter: p.PersonID = x.OwnerID" in lines
        assert any(line.startswith("  ->  Seq Scan on Pets x") for line in lines)
        assert "        Filter: x.Name = 'Rex'" in lines
        assert lines[-2].startswith("Planning Time:")
        assert lines[-1].startswith("Execution Time:")
