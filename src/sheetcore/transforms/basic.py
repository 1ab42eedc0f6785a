"""Row-level transforms: sort, filter, de-duplicate, drop empty or listed rows.

Transforms that remove rows go through the applier's row-delete path, so
formulas pointing at removed rows become ``#REF!`` exactly as they would
for a DELETE_ROW intent.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from sheetcore.contracts.common import TransformError
from sheetcore.contracts.table import CellValue, Change, Table
from sheetcore.engine.applier import delete_rows as _delete_table_rows
from sheetcore.engine.applier import row_delete_changes
from sheetcore.transforms.common import (
    TransformResult,
    excel_rows,
    is_empty,
    is_number,
    move_rows,
    require_column,
    resolve_columns,
)

SORT_DIRECTIONS = ("asc", "desc")


# ---------------------------------------------------------------------------
# Sort
# ---------------------------------------------------------------------------
def _sort_key(value: CellValue) -> tuple:
    if is_number(value):
        return (0, value, "")
    return (1, 0, str(value).lower())


def sort_data(table: Table, column: str | int, direction: str = "asc") -> TransformResult:
    """Stable sort by one column.

    Numbers sort before text, text compares case-insensitively, and empty
    (None) cells always go last.  Formula and style keys follow their rows.
    """
    direction = (direction or "asc").lower()
    if direction not in SORT_DIRECTIONS:
        raise TransformError(f"Sort direction must be one of {SORT_DIRECTIONS}, got {direction!r}")
    col = require_column(table, column)

    present = [i for i in range(len(table.rows)) if table.cell(i, col) is not None]
    missing = [i for i in range(len(table.rows)) if table.cell(i, col) is None]
    present.sort(key=lambda i: _sort_key(table.cell(i, col)), reverse=direction == "desc")
    order = present + missing

    rows = [list(table.rows[i]) for i in order]
    position = {old: new for new, old in enumerate(order)}
    width = len(table.headers)

    changes: list[Change] = []
    moved = 0
    for new, old in enumerate(order):
        if new == old:
            continue
        moved += 1
        for c in range(width):
            before, after = table.cell(new, c), table.cell(old, c)
            if before != after:
                changes.append(Change(row=new, col=c, old_value=before, new_value=after))

    result = table.model_copy(update={
        "rows": rows,
        "formulas": move_rows(table.formulas, position),
        "cell_styles": move_rows(table.cell_styles, position),
        "pending_changes": [],
    })
    return TransformResult(
        table=result,
        changes=changes,
        description=f"Sorted {len(rows)} row(s) by {table.headers[col]} ({direction})",
        affected=moved,
    )


# ---------------------------------------------------------------------------
# Row removal
# ---------------------------------------------------------------------------
def _as_number(value: CellValue) -> float | None:
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _text(value: CellValue) -> str:
    return "" if value is None else str(value).casefold()


def _equals(cell: CellValue, wanted: CellValue) -> bool:
    a, b = _as_number(cell), _as_number(wanted)
    if a is not None and b is not None:
        return a == b
    return _text(cell) == _text(wanted)


def _ordered(compare: Callable[[float, float], bool]) -> Callable[[CellValue, CellValue], bool]:
    def _check(cell: CellValue, wanted: CellValue) -> bool:
        if cell is None:
            return False
        a, b = _as_number(cell), _as_number(wanted)
        if a is not None and b is not None:
            return compare(a, b)
        return compare(_text(cell), _text(wanted))

    return _check


FILTER_OPERATORS: dict[str, Callable[[CellValue, CellValue], bool]] = {
    "=": _equals,
    "==": _equals,
    "!=": lambda cell, wanted: not _equals(cell, wanted),
    "<>": lambda cell, wanted: not _equals(cell, wanted),
    ">": _ordered(lambda a, b: a > b),
    "<": _ordered(lambda a, b: a < b),
    ">=": _ordered(lambda a, b: a >= b),
    "<=": _ordered(lambda a, b: a <= b),
    "contains": lambda cell, wanted: _text(wanted) in _text(cell),
    "not_contains": lambda cell, wanted: _text(wanted) not in _text(cell),
    "starts_with": lambda cell, wanted: _text(cell).startswith(_text(wanted)),
    "ends_with": lambda cell, wanted: _text(cell).endswith(_text(wanted)),
    "empty": lambda cell, wanted: is_empty(cell),
    "not_empty": lambda cell, wanted: not is_empty(cell),
}


def _remove(table: Table, indices: Sequence[int], description: str) -> TransformResult:
    return TransformResult(
        table=_delete_table_rows(table, indices),
        changes=row_delete_changes(table, indices),
        description=description,
        affected=len(indices),
        removed_rows=excel_rows(indices),
    )


def filter_data(
    table: Table, column: str | int, operator: str = "=", value: CellValue = None
) -> TransformResult:
    """Keep rows whose ``column`` satisfies ``operator value``; drop the rest."""
    check = FILTER_OPERATORS.get((operator or "=").strip().lower())
    if check is None:
        raise TransformError(
            f"Unknown filter operator {operator!r}. Supported: {', '.join(FILTER_OPERATORS)}"
        )
    col = require_column(table, column)
    removed = [i for i in range(len(table.rows)) if not check(table.cell(i, col), value)]
    return _remove(
        table, removed,
        f"Filtered {table.headers[col]} {operator} {value!r}: removed {len(removed)} row(s)",
    )


def empty_row_indices(table: Table) -> list[int]:
    return [i for i, row in enumerate(table.rows) if all(is_empty(v) for v in row)]


def duplicate_row_indices(
    table: Table, columns: Sequence[int], skip: Iterable[int] = ()
) -> list[int]:
    """Indices of rows whose key over ``columns`` was already seen above."""
    columns = list(columns)
    if not columns:
        return []
    skipped = set(skip)
    seen: set[tuple[str, ...]] = set()
    dupes: list[int] = []
    for i in range(len(table.rows)):
        if i in skipped:
            continue
        key = tuple("" if table.cell(i, c) is None else str(table.cell(i, c)) for c in columns)
        if key in seen:
            dupes.append(i)
        else:
            seen.add(key)
    return dupes


def remove_duplicates(
    table: Table, columns: Sequence[str | int] | None = None
) -> TransformResult:
    """Drop rows repeating an earlier row, keyed on ``columns`` (all by default)."""
    cols = resolve_columns(table, columns)
    removed = duplicate_row_indices(table, cols)
    return _remove(table, removed, f"Removed {len(removed)} duplicate row(s)")


def remove_empty_rows(table: Table) -> TransformResult:
    """Drop rows where every cell is None or blank text."""
    removed = empty_row_indices(table)
    return _remove(table, removed, f"Removed {len(removed)} empty row(s)")


def delete_rows(table: Table, indices: Iterable[int]) -> TransformResult:
    """Drop the given data rows; out-of-range indices are ignored."""
    valid = sorted({i for i in indices if 0 <= i < len(table.rows)})
    return _remove(table, valid, f"Deleted {len(valid)} row(s)")
