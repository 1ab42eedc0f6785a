"""Cell-value transforms: find/replace, trim, case changes, fill down."""

from __future__ import annotations

import re
from typing import Sequence

from sheetcore.contracts.common import TransformError
from sheetcore.contracts.table import CellValue, Change, Table
from sheetcore.engine.formulas import is_formula, shift_rows
from sheetcore.engine.refs import excel_row
from sheetcore.transforms.common import (
    TransformResult,
    from_changes,
    require_column,
    resolve_columns,
)

CASE_KINDS = ("uppercase", "lowercase", "titlecase", "capitalize")
FILL_TYPES = ("value", "formula")


# ---------------------------------------------------------------------------
# Find / replace
# ---------------------------------------------------------------------------
def _replacer(
    find: str, replace: str, *, match_case: bool, match_whole_cell: bool, use_regex: bool
):
    flags = 0 if match_case else re.IGNORECASE
    if use_regex:
        try:
            pattern = re.compile(find, flags)
        except re.error as e:
            raise TransformError(f"Invalid regular expression {find!r}: {e}") from e
        return lambda text: pattern.sub(replace, text)
    if match_whole_cell:
        if match_case:
            return lambda text: replace if text == find else text
        folded = find.casefold()
        return lambda text: replace if text.casefold() == folded else text
    pattern = re.compile(re.escape(find), flags)
    return lambda text: pattern.sub(lambda m: replace, text)


def find_replace(
    table: Table,
    find: str,
    replace: str = "",
    *,
    match_case: bool = False,
    match_whole_cell: bool = False,
    use_regex: bool = False,
    columns: Sequence[str | int] | None = None,
) -> TransformResult:
    """Replace text in every non-empty cell of ``columns`` (all by default).

    Non-text cells are matched on their string form; a replaced number
    becomes text.
    """
    if not find:
        raise TransformError("Find text must not be empty")
    apply = _replacer(
        find, replace or "",
        match_case=match_case, match_whole_cell=match_whole_cell, use_regex=use_regex,
    )
    changes: list[Change] = []
    for col in resolve_columns(table, columns):
        for row in range(len(table.rows)):
            value = table.cell(row, col)
            if value is None:
                continue
            text = str(value)
            try:
                new = apply(text)
            except re.error as e:
                raise TransformError(f"Invalid replacement {replace!r}: {e}") from e
            if new != text:
                changes.append(Change(row=row, col=col, old_value=value, new_value=new))
    return from_changes(table, changes, f"Replaced {find!r} in {len(changes)} cell(s)")


# ---------------------------------------------------------------------------
# Trim / case
# ---------------------------------------------------------------------------
def trim_cells(table: Table, columns: Sequence[str | int] | None = None) -> TransformResult:
    changes: list[Change] = []
    for col in resolve_columns(table, columns):
        for row in range(len(table.rows)):
            value = table.cell(row, col)
            if isinstance(value, str) and value.strip() != value:
                changes.append(Change(row=row, col=col, old_value=value, new_value=value.strip()))
    return from_changes(table, changes, f"Trimmed {len(changes)} cell(s)")


def change_case(text: str, kind: str) -> str:
    """Apply a case transform; title case works per space-delimited word."""
    kind = kind.lower()
    if kind == "uppercase":
        return text.upper()
    if kind == "lowercase":
        return text.lower()
    if kind in ("titlecase", "capitalize"):
        return " ".join(w[:1].upper() + w[1:].lower() for w in text.split(" "))
    raise TransformError(f"Unknown text transform {kind!r}. Supported: {', '.join(CASE_KINDS)}")


def case_changes(table: Table, col: int, kind: str) -> list[Change]:
    """CELL_UPDATEs for the text cells of ``col`` that ``kind`` actually changes."""
    changes: list[Change] = []
    for row in range(len(table.rows)):
        value = table.cell(row, col)
        if not isinstance(value, str):
            continue
        new = change_case(value, kind)
        if new != value:
            changes.append(Change(row=row, col=col, old_value=value, new_value=new))
    return changes


def transform_text(table: Table, column: str | int, kind: str) -> TransformResult:
    col = require_column(table, column)
    changes = case_changes(table, col, kind)
    return from_changes(
        table, changes, f"Applied {kind.lower()} to {len(changes)} cell(s) in {table.headers[col]}"
    )


# ---------------------------------------------------------------------------
# Fill down
# ---------------------------------------------------------------------------
def fill_source_row(table: Table, col: int, start: int = 0) -> int | None:
    """First row at or below ``start`` whose cell is neither None nor ``""``."""
    for row in range(max(start, 0), len(table.rows)):
        value = table.cell(row, col)
        if value is not None and value != "":
            return row
    return None


def fill_down_changes(
    table: Table, col: int, fill_type: str = "value", source: int | None = None
) -> list[Change]:
    """One change per row below the source cell.

    In ``formula`` mode a formula source is re-pointed at each destination
    row: tokens naming the source row shift by the row offset, everything
    else (``$`` rows, other rows) stays.
    """
    if fill_type not in FILL_TYPES:
        raise TransformError(f"Fill type must be one of {FILL_TYPES}, got {fill_type!r}")
    src = fill_source_row(table, col) if source is None else source
    if src is None:
        return []
    value = table.cell(src, col)
    src_sheet_row = excel_row(src)
    changes: list[Change] = []
    for row in range(src + 1, len(table.rows)):
        new = value
        if fill_type == "formula" and is_formula(value):
            new = shift_rows(value, row - src, only_row=src_sheet_row)
        changes.append(Change(row=row, col=col, old_value=table.cell(row, col), new_value=new))
    return changes


def fill_down(table: Table, column: str | int, fill_type: str = "value") -> TransformResult:
    col = require_column(table, column)
    changes = [c for c in fill_down_changes(table, col, fill_type) if c.old_value != c.new_value]
    return from_changes(table, changes, f"Filled {len(changes)} cell(s) down {table.headers[col]}")
