"""Vital records workload: persons, births and marriages.

Builds the exercise schema on a Database and provides its queries:

    Persons(PersonID SERIAL PK, FirstName VARCHAR(100), LastName VARCHAR(100),
            DateOfBirth DATE [, Attributes JSON])
    Births(BirthID SERIAL PK, PersonID -> Persons, BirthDate DATE,
           BirthPlace VARCHAR(255))
    Marriages(MarriageID SERIAL PK, PersonID1 -> Persons, PersonID2 -> Persons,
              MarriageDate DATE, MarriagePlace VARCHAR(255))

A person takes part in a marriage through either PersonID1 or
PersonID2; marriages_of() and the VitalRecords join condition both read
the two fields.

Usage:
    db = vital_records.setup()
    rows = vital_records.married_persons_born_in(db, "Berlin")
    print(db.explain(vital_records.persons_marriages_join(), analyze=True).render())
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from relstore.application.database import Database
from relstore.domain.entities import (
    Column,
    ForeignKey,
    QueryNode,
    Row,
    TableScan,
    col,
    count,
    eq,
    ge,
    in_query,
    json_field,
    or_,
)
from relstore.domain.value_objects import ColumnType, IndexHandle, RowId
from relstore.infrastructure.container import get_container
from relstore.infrastructure.logging import get_logger

logger = get_logger(__name__)

PERSONS = "Persons"
BIRTHS = "Births"
MARRIAGES = "Marriages"
VITAL_RECORDS_VIEW = "VitalRecords"
VITAL_STATS_VIEW = "CachedVitalStats"

YOUNG_PERSONS_CUTOFF = "2000-01-01"


@dataclass
class SeedIds:
    """Identifiers of the seeded rows."""

    persons: dict[str, RowId]
    births: list[RowId]
    marriages: list[RowId]


def create_schema(db: Database) -> None:
    """Create the Persons, Births and Marriages tables."""
    db.create_table(PERSONS, [
        Column("PersonID", ColumnType.SERIAL, primary_key=True),
        Column("FirstName", ColumnType.VARCHAR, max_length=100),
        Column("LastName", ColumnType.VARCHAR, max_length=100),
        Column("DateOfBirth", ColumnType.DATE),
    ])
    db.create_table(BIRTHS, [
        Column("BirthID", ColumnType.SERIAL, primary_key=True),
        Column("PersonID", ColumnType.INTEGER, references=ForeignKey(PERSONS, "PersonID")),
        Column("BirthDate", ColumnType.DATE),
        Column("BirthPlace", ColumnType.VARCHAR, max_length=255),
    ])
    db.create_table(MARRIAGES, [
        Column("MarriageID", ColumnType.SERIAL, primary_key=True),
        Column("PersonID1", ColumnType.INTEGER, references=ForeignKey(PERSONS, "PersonID")),
        Column("PersonID2", ColumnType.INTEGER, references=ForeignKey(PERSONS, "PersonID")),
        Column("MarriageDate", ColumnType.DATE),
        Column("MarriagePlace", ColumnType.VARCHAR, max_length=255),
    ])


def seed(db: Database) -> SeedIds:
    """Insert the sample persons, their births and one marriage."""
    people = [
        ("Alice", "Müller", "1990-01-01", "Berlin"),
        ("Bob", "Schmidt", "1992-05-15", "Munich"),
        ("Carol", "Becker", "1995-07-23", "Cologne"),
    ]
    persons: dict[str, RowId] = {}
    births: list[RowId] = []
    for first, last, born, place in people:
        person_id = db.insert(PERSONS, {"FirstName": first, "LastName": last, "DateOfBirth": born})
        persons[first] = person_id
        births.append(
            db.insert(BIRTHS, {"PersonID": person_id, "BirthDate": born, "BirthPlace": place})
        )

    marriage_id = db.insert(MARRIAGES, {
        "PersonID1": persons["Alice"],
        "PersonID2": persons["Bob"],
        "MarriageDate": "2015-08-30",
        "MarriagePlace": "Hamburg",
    })
    return SeedIds(persons=persons, births=births, marriages=[marriage_id])


def create_indexes(db: Database) -> dict[str, IndexHandle]:
    """Create the single-column, multi-column, unique and partial indexes."""
    return {
        "idx_lastname": db.create_index(PERSONS, "LastName", name="idx_lastname"),
        "idx_birthdate_place": db.create_index(
            BIRTHS, ["BirthDate", "BirthPlace"], name="idx_birthdate_place"
        ),
        "idx_marriageid": db.create_index(
            MARRIAGES, "MarriageID", unique=True, name="idx_marriageid"
        ),
        "idx_young_persons": db.create_index(
            PERSONS,
            "DateOfBirth",
            partial_predicate=ge("DateOfBirth", YOUNG_PERSONS_CUTOFF),
            name="idx_young_persons",
        ),
    }


# Queries

def vital_records_query() -> QueryNode:
    """Persons with their births and marriages, keeping persons without either."""
    return (
        TableScan(PERSONS, "p")
        .left_join(TableScan(BIRTHS, "b"), eq("p.PersonID", col("b.PersonID")))
        .left_join(
            TableScan(MARRIAGES, "m"),
            or_(eq("p.PersonID", col("m.PersonID1")), eq("p.PersonID", col("m.PersonID2"))),
        )
        .select(
            "p.FirstName", "p.LastName", "b.BirthDate", "b.BirthPlace",
            "m.MarriageDate", "m.MarriagePlace",
        )
    )


def vital_stats_query() -> QueryNode:
    """Number of births per family name."""
    return (
        TableScan(PERSONS, "p")
        .join(TableScan(BIRTHS, "b"), eq("p.PersonID", col("b.PersonID")))
        .group_by(["p.LastName"], count("b.BirthID", alias="NumberOfBirths"))
    )


def persons_marriages_join() -> QueryNode:
    """Inner join of persons, births and marriages, for EXPLAIN ANALYZE."""
    return (
        TableScan(PERSONS, "p")
        .join(TableScan(BIRTHS, "b"), eq("p.PersonID", col("b.PersonID")))
        .join(
            TableScan(MARRIAGES, "m"),
            or_(eq("p.PersonID", col("m.PersonID1")), eq("p.PersonID", col("m.PersonID2"))),
        )
        .select("p.FirstName", "p.LastName", "b.BirthPlace", "m.MarriagePlace")
    )


def married_person_ids() -> QueryNode:
    spouses1 = TableScan(MARRIAGES).select("PersonID1")
    spouses2 = TableScan(MARRIAGES).select("PersonID2")
    return spouses1.union(spouses2)


def married_persons_born_in_query(place: str) -> QueryNode:
    return (
        TableScan(PERSONS, "p")
        .join(TableScan(BIRTHS, "b"), eq("p.PersonID", col("b.PersonID")))
        .where(eq("b.BirthPlace", place))
        .where(in_query("p.PersonID", married_person_ids()))
        .select("p.*")
    )


def married_persons_born_in(db: Database, place: str) -> list[Row]:
    """Persons born in ``place`` who appear in any marriage."""
    return db.select(married_persons_born_in_query(place))


def marriages_of(db: Database, person_id: int) -> list[Row]:
    """Marriages a person takes part in, through either spouse field."""
    query = TableScan(MARRIAGES).where(
        or_(eq("PersonID1", person_id), eq("PersonID2", person_id))
    )
    return db.select(query)


def persons_with_attribute(db: Database, key: str, value: Any) -> list[Row]:
    """Persons whose Attributes document maps ``key`` to ``value``."""
    return db.select(TableScan(PERSONS).where(eq(json_field("Attributes", key), value)))


def define_views(db: Database) -> None:
    """Define the VitalRecords view and the CachedVitalStats materialized view."""
    db.define_view(VITAL_RECORDS_VIEW, vital_records_query())
    db.define_materialized_view(VITAL_STATS_VIEW, vital_stats_query())


def add_attributes(db: Database, person_id: int, attributes: dict[str, Any]) -> None:
    """Add the JSON Attributes column if missing and set it for one person."""
    if not db.describe(PERSONS).has_column("Attributes"):
        db.add_column(PERSONS, Column("Attributes", ColumnType.JSON))
    db.update(PERSONS, person_id, {"Attributes": attributes})


def register_person_with_birth(
    db: Database,
    first_name: str,
    last_name: str,
    born: date | str,
    place: str,
    commit: bool = True,
) -> tuple[RowId, RowId]:
    """Insert a person and their birth record in one transaction.

    With ``commit=False`` the transaction is rolled back instead, leaving
    both tables unchanged.

    Returns:
        The person and birth identifiers (consumed even on rollback).
    """
    txn = db.begin()
    try:
        person_id = txn.insert(
            PERSONS, {"FirstName": first_name, "LastName": last_name, "DateOfBirth": born}
        )
        birth_id = txn.insert(
            BIRTHS, {"PersonID": person_id, "BirthDate": born, "BirthPlace": place}
        )
    except Exception:
        txn.rollback()
        raise

    if commit:
        txn.commit()
    else:
        txn.rollback()
    logger.info(
        "person_registered" if commit else "person_registration_rolled_back",
        person_id=person_id,
        birth_id=birth_id,
    )
    return person_id, birth_id


def setup(db: Database | None = None) -> Database:
    """Create the schema, seed data, indexes and views on a database."""
    if db is None:
        container = get_container()
        db = Database(container.config, container.metrics)
    create_schema(db)
    seed(db)
    create_indexes(db)
    define_views(db)
    return db
