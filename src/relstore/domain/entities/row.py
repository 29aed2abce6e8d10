"""Row - the record type returned by every read operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass
class Row:
    """A row of data.

    Rows can be accessed by column name or by position. Column names are
    unqualified for base tables and projections; intermediate join rows
    carry qualified names ("p.FirstName").
    """

    columns: list[str]
    values: list[Any]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Row:
        return cls(columns=list(mapping.keys()), values=list(mapping.values()))

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, int):
            return self.values[key]
        try:
            idx = self.columns.index(key)
            return self.values[idx]
        except ValueError as e:
            raise KeyError(f"Column '{key}' not found") from e

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def __contains__(self, key: object) -> bool:
        return key in self.columns

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> dict[str, Any]:
        return dict(zip(self.columns, self.values))

    def __repr__(self) -> str:
        pairs = ", ".join(f"{c}={v!r}" for c, v in zip(self.columns, self.values))
        return f"Row({pairs})"
