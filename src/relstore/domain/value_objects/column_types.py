"""Column data types and value coercion.

Values are coerced on every write so that comparisons and index keys
operate on one canonical Python type per column type:

    INTEGER, SERIAL -> int
    FLOAT           -> float
    VARCHAR, TEXT   -> str
    BOOLEAN         -> bool
    DATE            -> datetime.date
    JSON            -> dict | list | str | int | float | bool

None is the absence marker (SQL NULL) and is accepted by every type.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Any

from relstore.domain.errors import InvalidValue


class ColumnType(Enum):
    """Supported column types."""

    INTEGER = "INTEGER"
    SERIAL = "SERIAL"
    FLOAT = "FLOAT"
    VARCHAR = "VARCHAR"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    JSON = "JSON"

    @property
    def is_integer(self) -> bool:
        return self in (ColumnType.INTEGER, ColumnType.SERIAL)

    def coerce(self, value: Any, max_length: int | None = None) -> Any:
        """Coerce a value to this type.

        Args:
            value: The raw value supplied by the caller.
            max_length: Maximum length for VARCHAR columns.

        Returns:
            The canonical Python value.

        Raises:
            InvalidValue: If the value cannot represent this type.
        """
        if value is None:
            return None

        if self.is_integer:
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidValue(f"{self.value} expects an integer, got {value!r}")
            return value

        if self == ColumnType.FLOAT:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidValue(f"FLOAT expects a number, got {value!r}")
            return float(value)

        if self in (ColumnType.VARCHAR, ColumnType.TEXT):
            if not isinstance(value, str):
                raise InvalidValue(f"{self.value} expects a string, got {value!r}")
            if max_length is not None and len(value) > max_length:
                raise InvalidValue(
                    f"Value too long for VARCHAR({max_length}): {len(value)} characters"
                )
            return value

        if self == ColumnType.BOOLEAN:
            if not isinstance(value, bool):
                raise InvalidValue(f"BOOLEAN expects a bool, got {value!r}")
            return value

        if self == ColumnType.DATE:
            return _coerce_date(value)

        if self == ColumnType.JSON:
            return _coerce_json(value)

        raise InvalidValue(f"Unsupported column type {self.value}")


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise InvalidValue(f"Invalid DATE literal {value!r}") from e
    raise InvalidValue(f"DATE expects a date or ISO string, got {value!r}")


def _coerce_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise InvalidValue(f"Invalid JSON document: {e.msg}") from e
    try:
        # Round-trip to reject non-serializable payloads and detach caller references
        return json.loads(json.dumps(value))
    except (TypeError, ValueError) as e:
        raise InvalidValue(f"Value is not JSON serializable: {value!r}") from e
