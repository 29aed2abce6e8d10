"""Table schemas: columns, primary keys and foreign keys.

A TableSchema is immutable. Schema changes (add_column) produce a new
schema that the row store publishes together with the table data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from relstore.domain.errors import InvalidValue, SchemaError
from relstore.domain.value_objects import ColumnType


@dataclass(frozen=True, slots=True)
class ForeignKey:
    """Reference from a column to the primary key column of another table."""

    table: str
    column: str

    def __str__(self) -> str:
        return f"{self.table}({self.column})"


@dataclass(frozen=True, slots=True)
class Column:
    """A typed column definition.

    Attributes:
        name: Column name, unique within its table.
        type: The column type.
        max_length: Maximum length for VARCHAR columns.
        primary_key: Whether this column is the table's identifier.
        references: Foreign key target, if any.
        nullable: Whether NULL (None) is accepted.
    """

    name: str
    type: ColumnType
    max_length: int | None = None
    primary_key: bool = False
    references: ForeignKey | None = None
    nullable: bool = True

    def coerce(self, value: Any) -> Any:
        """Coerce a value for storage in this column."""
        if value is None and not self.nullable and not self.primary_key:
            raise InvalidValue(f"Column '{self.name}' does not accept NULL")
        try:
            return self.type.coerce(value, self.max_length)
        except InvalidValue as e:
            raise InvalidValue(f"Column '{self.name}': {e}") from e

    def __str__(self) -> str:
        type_str = self.type.value
        if self.max_length is not None:
            type_str = f"{type_str}({self.max_length})"
        parts = [self.name, type_str]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        if self.references is not None:
            parts.append(f"REFERENCES {self.references}")
        if not self.nullable and not self.primary_key:
            parts.append("NOT NULL")
        return " ".join(parts)


@dataclass(frozen=True)
class TableSchema:
    """Schema of one table.

    Exactly one column must be the primary key and it must be an integer
    type; row identifiers are the primary key values.
    """

    name: str
    columns: tuple[Column, ...]
    _by_name: dict[str, Column] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_name: dict[str, Column] = {}
        for column in self.columns:
            if column.name in by_name:
                raise SchemaError(f"Duplicate column '{column.name}' in table '{self.name}'")
            by_name[column.name] = column
        object.__setattr__(self, "_by_name", by_name)

        keys = [c for c in self.columns if c.primary_key]
        if len(keys) != 1:
            raise SchemaError(
                f"Table '{self.name}' must declare exactly one primary key column, got {len(keys)}"
            )
        if not keys[0].type.is_integer:
            raise SchemaError(
                f"Primary key '{keys[0].name}' of table '{self.name}' must be INTEGER or SERIAL"
            )

    @property
    def primary_key(self) -> Column:
        return next(c for c in self.columns if c.primary_key)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def foreign_keys(self) -> list[Column]:
        return [c for c in self.columns if c.references is not None]

    def has_column(self, name: str) -> bool:
        return name in self._by_name

    def column(self, name: str) -> Column:
        """Get a column by name.

        Raises:
            SchemaError: If the column does not exist.
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise SchemaError(f"Column '{name}' does not exist in table '{self.name}'") from None

    def with_column(self, column: Column) -> TableSchema:
        """Return a new schema with an extra trailing column."""
        if column.primary_key:
            raise SchemaError("Cannot add a primary key column to an existing table")
        if column.name in self._by_name:
            raise SchemaError(f"Column '{column.name}' already exists in table '{self.name}'")
        if not column.nullable:
            raise SchemaError(f"Added column '{column.name}' must be nullable")
        return TableSchema(name=self.name, columns=(*self.columns, column))

    def normalize(self, record: Mapping[str, Any], partial: bool = False) -> dict[str, Any]:
        """Validate and coerce a record against this schema.

        Args:
            record: Column name to value mapping.
            partial: If True (update patches) only the given columns are
                returned; otherwise every column is present and missing
                ones are NULL.

        Raises:
            SchemaError: On unknown columns.
            InvalidValue: On values that do not fit their column.
        """
        for name in record:
            if name not in self._by_name:
                raise SchemaError(f"Column '{name}' does not exist in table '{self.name}'")

        if partial:
            return {name: self._by_name[name].coerce(value) for name, value in record.items()}

        return {c.name: c.coerce(record.get(c.name)) for c in self.columns}

    def __str__(self) -> str:
        cols = ", ".join(str(c) for c in self.columns)
        return f"{self.name} ({cols})"
