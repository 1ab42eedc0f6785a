"""A1 reference resolution: column letters, cell refs, ranges, row lists.

Two row conventions coexist and callers pick one explicitly:

- cell targets (``EDIT_CELL``, ``INSERT_FORMULA``) count data rows from 1,
  so ``A1`` is data row 0;
- row targets (``EDIT_ROW``, ``DELETE_ROW``, data generation) use sheet row
  numbers that include the header row, so row ``2`` is data row 0.

Formula and style maps always use the sheet convention: data cell
``(r, c)`` is stored under ``<letter(c)><r + 2>``.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Sequence

from openpyxl.utils import column_index_from_string, get_column_letter

from sheetcore.contracts.common import RefError

HEADER_ROWS = 1
ROW_OFFSET = HEADER_ROWS + 1

_LEADING_LETTERS_RE = re.compile(r"^\s*\$?([A-Za-z]+)")
_COLUMN_RE = re.compile(r"^\$?([A-Za-z]{1,3})$")
_CELL_RE = re.compile(r"^\$?([A-Za-z]{1,3})\$?(\d+)$")
_ROW_RE = re.compile(r"^\$?(\d+)$")
_ROW_SPAN_RE = re.compile(r"^(\d+)\s*[-:]\s*(\d+)$")


class CellAddress(NamedTuple):
    row: int
    col: int


class RangeBounds(NamedTuple):
    """Parsed range.  Rows are 1-based sheet numbers, columns 0-based.

    ``first_row``/``last_row`` are None for whole-column refs (``"G"``);
    ``first_col``/``last_col`` are None for row-only spans (``"3:5"``).
    """

    first_row: int | None
    last_row: int | None
    first_col: int | None
    last_col: int | None

    @property
    def whole_column(self) -> bool:
        return self.first_row is None and self.first_col is not None

    @property
    def rows_only(self) -> bool:
        return self.first_col is None


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------
def column_index(token: str) -> int | None:
    """0-based index of the leading column letters of a column, cell or range.

    Returns None when the token has no leading letters or they fall outside
    the sheet's column space.
    """
    if not isinstance(token, str):
        return None
    m = _LEADING_LETTERS_RE.match(token)
    if not m:
        return None
    try:
        return column_index_from_string(m.group(1).upper()) - 1
    except ValueError:
        return None


def column_letter(index: int) -> str:
    """Uppercase letters for a 0-based column index."""
    if index < 0:
        raise RefError(f"Column index must be >= 0, got {index}")
    try:
        return get_column_letter(index + 1)
    except ValueError as e:
        raise RefError(str(e)) from e


def cell_ref(row: int, col: int) -> str:
    """A1 key of data cell (row, col) in the formula/style maps."""
    return f"{column_letter(col)}{row + ROW_OFFSET}"


def excel_row(data_row: int) -> int:
    return data_row + ROW_OFFSET


def data_row(sheet_row: int) -> int:
    return sheet_row - ROW_OFFSET


def split_cell_key(key: str) -> CellAddress | None:
    """Inverse of ``cell_ref``: ``"B5"`` -> ``(3, 1)``."""
    m = _CELL_RE.match(key.strip())
    if not m:
        return None
    col = column_index(m.group(1))
    if col is None:
        return None
    return CellAddress(row=data_row(int(m.group(2))), col=col)


def resolve_column(
    headers: Sequence[str],
    token: str | int | None,
    *,
    bounded: bool = True,
    a1_first: bool = False,
) -> int | None:
    """Resolve a header name, column letter, cell/range ref or index to a column.

    By default header names win over letters (exact, then case-insensitive),
    so a header literally named ``"B"`` or ``"Age"`` resolves to its own
    position.  With ``a1_first`` an A1-shaped token (``"A"``, ``"B7"``,
    ``"C2:C9"``) means its column letter whenever that column exists; header
    names are the fallback.  With ``bounded`` the result must be an existing
    column.
    """
    if token is None or isinstance(token, bool):
        return None
    if isinstance(token, int):
        idx = token
    else:
        name = token.strip()
        if not name:
            return None
        a1 = bool(_COLUMN_RE.match(name) or _CELL_RE.match(name) or ":" in name)
        if a1_first and a1:
            idx = column_index(name)
            if idx is not None and 0 <= idx < len(headers):
                return idx
        for i, header in enumerate(headers):
            if header == name:
                return i
        folded = name.casefold()
        for i, header in enumerate(headers):
            if str(header).casefold() == folded:
                return i
        if not a1:
            return None
        idx = column_index(name)
        if idx is None:
            return None
    if idx < 0 or (bounded and idx >= len(headers)):
        return None
    return idx


# ---------------------------------------------------------------------------
# Cells and ranges
# ---------------------------------------------------------------------------
def parse_cell_ref(ref: str) -> CellAddress | None:
    """Cell target ``"A1"`` -> data ``(row=0, col=0)``; None if not a cell ref."""
    if not isinstance(ref, str):
        return None
    m = _CELL_RE.match(ref.strip())
    if not m:
        return None
    number = int(m.group(2))
    col = column_index(m.group(1))
    if number < 1 or col is None:
        return None
    return CellAddress(row=number - 1, col=col)


def parse_range(ref: str) -> RangeBounds | None:
    """Parse ``"A1:B10"``, ``"A1"``, ``"G"``, ``"A:C"``, ``"G2:G13"`` or ``"3:5"``."""
    if not isinstance(ref, str) or not ref.strip():
        return None
    parts = [p.strip() for p in ref.strip().split(":")]
    if len(parts) > 2 or not all(parts):
        return None
    start, end = parts[0], parts[-1]

    if _ROW_RE.match(start) and _ROW_RE.match(end):
        a, b = int(start.lstrip("$")), int(end.lstrip("$"))
        return RangeBounds(min(a, b), max(a, b), None, None)

    if _COLUMN_RE.match(start) and _COLUMN_RE.match(end):
        a, b = column_index(start), column_index(end)
        if a is None or b is None:
            return None
        return RangeBounds(None, None, min(a, b), max(a, b))

    m1, m2 = _CELL_RE.match(start), _CELL_RE.match(end)
    if not (m1 and m2):
        return None
    c1, c2 = column_index(m1.group(1)), column_index(m2.group(1))
    if c1 is None or c2 is None:
        return None
    r1, r2 = int(m1.group(2)), int(m2.group(2))
    return RangeBounds(min(r1, r2), max(r1, r2), min(c1, c2), max(c1, c2))


def cell_target_rows(bounds: RangeBounds) -> range:
    """Data rows addressed by a cell-style range (``C1:C3`` -> rows 0..2)."""
    if bounds.first_row is None or bounds.last_row is None:
        raise RefError("Range has no row bounds")
    return range(max(bounds.first_row - 1, 0), bounds.last_row)


def parse_row_refs(ref: str | int) -> list[int]:
    """Row-target refs -> data row indices.

    Accepts ``"2"``, ``"2,4,6"``, ``"3-5"``, ``"3:5"`` and cell refs such as
    ``"A3"`` with arbitrary whitespace.  Sheet row ``n`` is data row
    ``n - 2``; rows landing above the first data row are discarded.
    Duplicates are dropped, order is preserved.
    """
    if isinstance(ref, bool):
        raise RefError(f"Invalid row ref: {ref!r}")
    if isinstance(ref, int):
        tokens = [str(ref)]
    else:
        tokens = [t.strip() for t in str(ref).split(",")]

    sheet_rows: list[int] = []
    for token in tokens:
        if not token:
            continue
        span = _ROW_SPAN_RE.match(token)
        if span:
            a, b = int(span.group(1)), int(span.group(2))
            sheet_rows.extend(range(min(a, b), max(a, b) + 1))
            continue
        if _ROW_RE.match(token):
            sheet_rows.append(int(token.lstrip("$")))
            continue
        cell = _CELL_RE.match(token)
        if cell:
            sheet_rows.append(int(cell.group(2)))
            continue
        raise RefError(f"Invalid row ref: {token!r}")

    seen: set[int] = set()
    result: list[int] = []
    for n in sheet_rows:
        idx = data_row(n)
        if idx < 0 or idx in seen:
            continue
        seen.add(idx)
        result.append(idx)
    return result
