"""Shared result type and column helpers for bulk transforms."""

from __future__ import annotations

from typing import Any, Iterable, NamedTuple, Sequence

from sheetcore.contracts.common import TransformError
from sheetcore.contracts.table import CellValue, Change, Table
from sheetcore.engine.applier import apply_changes
from sheetcore.engine.refs import cell_ref, excel_row, resolve_column, split_cell_key


class TransformResult(NamedTuple):
    """New table plus the changes that describe it.

    ``affected`` counts cells for value transforms and rows for transforms
    that remove rows.
    """

    table: Table
    changes: list[Change]
    description: str
    affected: int
    removed_rows: tuple[int, ...] = ()  # sheet row numbers, header is row 1


def require_column(table: Table, token: str | int | None) -> int:
    col = resolve_column(table.headers, token)
    if col is None:
        raise TransformError(f"Column not found: {token!r}")
    return col


def resolve_columns(table: Table, tokens: Sequence[str | int] | None) -> list[int]:
    """Resolve a column subset; None or empty means every column."""
    if not tokens:
        return list(range(len(table.headers)))
    cols: list[int] = []
    for token in tokens:
        col = require_column(table, token)
        if col not in cols:
            cols.append(col)
    return cols


def is_empty(value: CellValue) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def is_number(value: CellValue) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def excel_rows(indices: Iterable[int]) -> tuple[int, ...]:
    """Data row indices -> 1-based sheet rows (header is row 1)."""
    return tuple(excel_row(i) for i in indices)


def move_rows(mapping: dict[str, Any], position: dict[int, int]) -> dict[str, Any]:
    """Re-key an A1-keyed map after rows were reordered (``old -> new`` index)."""
    out: dict[str, Any] = {}
    for key, value in mapping.items():
        addr = split_cell_key(key)
        if addr is None or addr.row not in position:
            out[key] = value
            continue
        out[cell_ref(position[addr.row], addr.col)] = value
    return out


def from_changes(
    table: Table, changes: list[Change], description: str, affected: int | None = None
) -> TransformResult:
    """Run ``changes`` through the applier and wrap the outcome."""
    outcome = apply_changes(table, changes)
    return TransformResult(
        table=outcome.table,
        changes=changes,
        description=description,
        affected=len(changes) if affected is None else affected,
    )
