"""Table and Change models: the in-memory spreadsheet and its unit of mutation."""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

CellValue = Union[str, int, float, bool, None]


class ChangeType(str, Enum):
    CELL_UPDATE = "CELL_UPDATE"
    COLUMN_ADD = "COLUMN_ADD"
    COLUMN_RENAME = "COLUMN_RENAME"
    COLUMN_DELETE = "COLUMN_DELETE"
    ROW_DELETE = "ROW_DELETE"


class Change(BaseModel):
    """One atomic value or structural mutation.

    ``row``/``col`` are 0-based data indices (row 0 is the first row below
    the header).  Structural changes carry their extra data in ``params``
    (``{"from", "to"}`` for renames) or ``column_name`` (column adds).
    """

    model_config = ConfigDict(populate_by_name=True)

    row: int
    col: int
    old_value: CellValue = Field(default=None, alias="oldValue")
    new_value: CellValue = Field(default=None, alias="newValue")
    type: ChangeType = ChangeType.CELL_UPDATE
    params: dict[str, Any] | None = None
    column_name: str | None = Field(default=None, alias="columnName")


class Table(BaseModel):
    """Tabular document: headers, data rows, formulas and styles.

    Cell ``(r, c)`` of ``rows`` lives at A1 reference ``<col letter><r + 2>``
    in ``formulas`` and ``cell_styles``: one for 1-based rows, one for the
    header row.
    """

    model_config = ConfigDict(populate_by_name=True)

    headers: list[str] = Field(default_factory=list)
    rows: list[list[CellValue]] = Field(default_factory=list)
    formulas: dict[str, str] = Field(default_factory=dict)
    cell_styles: dict[str, Any] = Field(default_factory=dict, alias="cellStyles")
    pending_changes: list[Change] = Field(default_factory=list, alias="pendingChanges")

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def col_count(self) -> int:
        return len(self.headers)

    def cell(self, row: int, col: int) -> CellValue:
        """Value at (row, col), or None when outside the current bounds."""
        if row < 0 or col < 0 or row >= len(self.rows):
            return None
        values = self.rows[row]
        if col >= len(values):
            return None
        return values[col]

    def column_values(self, col: int) -> list[CellValue]:
        return [self.cell(r, col) for r in range(len(self.rows))]

    def copy_deep(self) -> "Table":
        return self.model_copy(deep=True)

    def to_document(self) -> dict[str, Any]:
        """Serialize with camelCase keys, the shape the browser editor stores."""
        return self.model_dump(mode="json", by_alias=True)
