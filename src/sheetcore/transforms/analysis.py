"""Read-only analysis (statistics, grouping, search) and the cleansing pass."""

from __future__ import annotations

import statistics
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field

from sheetcore.contracts.common import TransformError
from sheetcore.contracts.table import CellValue, Table
from sheetcore.engine.applier import delete_rows, row_delete_changes
from sheetcore.transforms.basic import duplicate_row_indices, empty_row_indices
from sheetcore.transforms.common import (
    TransformResult,
    excel_rows,
    is_number,
    require_column,
    resolve_columns,
)
from sheetcore.transforms.text import trim_cells

AGGREGATIONS = ("sum", "average", "count", "min", "max")


class ColumnStatistics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sum: float = 0
    average: float = 0
    count: int = 0
    min: float = 0
    max: float = 0
    median: float = 0
    std_dev: float = Field(default=0, alias="stdDev")


class CellMatch(BaseModel):
    row: int
    col: int
    value: CellValue = None


class CleansingReport(BaseModel):
    """Counts of problems ``cleanse_data`` and friends would address.

    ``inconsistent_formats`` counts columns holding both numbers and text.
    """

    empty_rows: int = 0
    duplicate_rows: int = 0
    padded_cells: int = 0
    inconsistent_formats: int = 0
    missing_values: int = 0
    issues: list[str] = Field(default_factory=list)


def _numbers(table: Table, col: int) -> list[float]:
    return [v for v in table.column_values(col) if is_number(v)]


def calculate_statistics(table: Table, column: str | int) -> ColumnStatistics:
    """Summary statistics over the numeric cells of one column.

    Text, booleans and empty cells are ignored; a column with no numbers
    reports zeros.  ``std_dev`` is the population standard deviation.
    """
    values = _numbers(table, require_column(table, column))
    if not values:
        return ColumnStatistics()
    total = sum(values)
    return ColumnStatistics(
        sum=total,
        average=total / len(values),
        count=len(values),
        min=min(values),
        max=max(values),
        median=statistics.median(values),
        std_dev=statistics.pstdev(values),
    )


def _aggregate(values: list[float], aggregation: str) -> float:
    if aggregation == "sum":
        return sum(values)
    if aggregation == "average":
        return sum(values) / len(values)
    if aggregation == "count":
        return len(values)
    if aggregation == "min":
        return min(values)
    return max(values)


def create_group_summary(
    table: Table, group_by: str | int, aggregate: str | int, aggregation: str = "sum"
) -> Table:
    """New two-column table: one row per group, in order of first appearance.

    Only numeric cells of ``aggregate`` contribute; groups without any are
    left out.
    """
    aggregation = aggregation.lower()
    if aggregation == "avg":
        aggregation = "average"
    if aggregation not in AGGREGATIONS:
        raise TransformError(
            f"Unknown aggregation {aggregation!r}. Supported: {', '.join(AGGREGATIONS)}"
        )
    group_col = require_column(table, group_by)
    agg_col = require_column(table, aggregate)

    groups: dict[str, list[float]] = {}
    for r in range(len(table.rows)):
        value = table.cell(r, agg_col)
        if not is_number(value):
            continue
        key = table.cell(r, group_col)
        groups.setdefault("" if key is None else str(key), []).append(value)

    return Table(
        headers=[table.headers[group_col], f"{aggregation}({table.headers[agg_col]})"],
        rows=[[key, _aggregate(values, aggregation)] for key, values in groups.items()],
    )


def find_cells(
    table: Table,
    search: str | int | float,
    *,
    match_case: bool = False,
    match_whole_cell: bool = False,
    columns: Sequence[str | int] | None = None,
) -> list[CellMatch]:
    """Cells matching ``search``; numbers match numbers by value."""
    needle = str(search) if match_case else str(search).casefold()
    matches: list[CellMatch] = []
    cols = resolve_columns(table, columns)
    for r in range(len(table.rows)):
        for c in cols:
            value = table.cell(r, c)
            if value is None:
                continue
            if is_number(search) and is_number(value):
                hit = value == search
            else:
                text = str(value) if match_case else str(value).casefold()
                hit = text == needle if match_whole_cell else needle in text
            if hit:
                matches.append(CellMatch(row=r, col=c, value=value))
    return matches


def analyze_data_for_cleansing(table: Table) -> CleansingReport:
    empties = 0
    dupes = 0
    missing = 0
    padded = 0
    seen: set[tuple[str, ...]] = set()
    for row in table.rows:
        blank = [v is None or v == "" for v in row]
        if all(blank):
            empties += 1
        missing += sum(blank)
        padded += sum(1 for v in row if isinstance(v, str) and v.strip() != v)
        key = tuple("" if v is None else str(v) for v in row)
        if key in seen:
            dupes += 1
        seen.add(key)

    mixed = 0
    for col in range(len(table.headers)):
        values = [v for v in table.column_values(col) if v is not None and v != ""]
        numbers = sum(1 for v in values if is_number(v))
        if 0 < numbers < len(values):
            mixed += 1

    issues = []
    if empties:
        issues.append(f"Found {empties} empty row(s).")
    if padded:
        issues.append(f"Found {padded} cell(s) with leading/trailing spaces.")
    if dupes:
        issues.append(f"Found {dupes} duplicate row(s).")
    if mixed:
        issues.append(f"Found {mixed} column(s) mixing numbers and text.")
    return CleansingReport(
        empty_rows=empties,
        duplicate_rows=dupes,
        padded_cells=padded,
        inconsistent_formats=mixed,
        missing_values=missing,
        issues=issues,
    )


def cleanse_data(table: Table) -> TransformResult:
    """Trim text, then drop empty rows and exact duplicates in one batch.

    Row indices in the returned changes refer to the input table, so the
    batch replays through the applier.
    """
    trimmed = trim_cells(table)
    empty = empty_row_indices(trimmed.table)
    dupes = duplicate_row_indices(
        trimmed.table, range(len(trimmed.table.headers)), skip=empty
    )
    removed = sorted(set(empty) | set(dupes))
    return TransformResult(
        table=delete_rows(trimmed.table, removed),
        changes=trimmed.changes + row_delete_changes(trimmed.table, removed),
        description=(
            f"Trimmed {len(trimmed.changes)} cell(s); removed {len(empty)} empty "
            f"and {len(dupes)} duplicate row(s)"
        ),
        affected=len(trimmed.changes) + len(removed),
        removed_rows=excel_rows(removed),
    )
