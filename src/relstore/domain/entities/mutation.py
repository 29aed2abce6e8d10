"""Buffered row mutations.

A transaction records each mutation it issues so that commit can replay
them, in order, against the committed state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from relstore.domain.value_objects import MutationKind, RowId


@dataclass(frozen=True)
class Mutation:
    """One insert, update or delete.

    Attributes:
        kind: The mutation kind.
        table: Target table.
        row_id: Target row. For inserts this is the identifier reserved
            when the insert was first issued.
        values: Normalized full record (insert) or patch (update);
            empty for delete.
    """

    kind: MutationKind
    table: str
    row_id: RowId
    values: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.kind.value.upper()} {self.table}#{self.row_id}"
