"""Pytest configuration and fixtures for relstore tests."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from relstore.application import Database, vital_records
from relstore.domain.entities import Column, ForeignKey
from relstore.domain.value_objects import ColumnType
from relstore.infrastructure.config import Config, EngineConfig
from relstore.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration with a short write lock timeout."""
    return Config(engine=EngineConfig(write_lock_timeout_seconds=1.0))


@pytest.fixture
def db(test_config: Config, metrics_registry: MetricsRegistry) -> Database:
    """Provide an empty database."""
    return Database(config=test_config, metrics=metrics_registry)


@pytest.fixture
def people_db(db: Database) -> Database:
    """Provide a database with a Persons table and a Pets table referencing it."""
    db.create_table("Persons", [
        Column("PersonID", ColumnType.SERIAL, primary_key=True),
        Column("FirstName", ColumnType.VARCHAR, max_length=100),
        Column("LastName", ColumnType.VARCHAR, max_length=100),
        Column("DateOfBirth", ColumnType.DATE),
    ])
    db.create_table("Pets", [
        Column("PetID", ColumnType.SERIAL, primary_key=True),
        Column("OwnerID", ColumnType.INTEGER, references=ForeignKey("Persons", "PersonID")),
        Column("Name", ColumnType.VARCHAR, max_length=50),
    ])
    return db


@pytest.fixture
def vital_db(db: Database) -> Database:
    """Provide the seeded vital records database with its indexes and views."""
    return vital_records.setup(db)


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
