"""Table diff logic: compare two table files (JSON or workbook)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sheetcore.contracts.table import Table
from sheetcore.engine.context import collect_formulas
from sheetcore.engine.refs import cell_ref
from sheetcore.io.fileops import fingerprint
from sheetcore.io.tables import load_table


def _change_type(before: Any, after: Any) -> str:
    if before is None:
        return "added"
    if after is None:
        return "removed"
    return "modified"


def diff_tables(a: Table, b: Table, *, include_formulas: bool = False) -> dict[str, Any]:
    """Structured diff of two tables.

    Cells are matched by position (A1 key, header row is 1); headers are
    compared as names.  Rows beyond the shorter table count as added or
    removed.
    """
    names_a = set(a.headers)
    names_b = set(b.headers)
    headers_added = [h for h in b.headers if h not in names_a]
    headers_removed = [h for h in a.headers if h not in names_b]

    cell_changes: list[dict[str, Any]] = []
    height = max(len(a.rows), len(b.rows))
    width = max(len(a.headers), len(b.headers))
    for r in range(height):
        for c in range(width):
            before = a.cell(r, c)
            after = b.cell(r, c)
            if before != after:
                cell_changes.append({
                    "ref": cell_ref(r, c),
                    "change_type": _change_type(before, after),
                    "before": before,
                    "after": after,
                })

    result: dict[str, Any] = {
        "headers_added": headers_added,
        "headers_removed": headers_removed,
        "row_count_a": len(a.rows),
        "row_count_b": len(b.rows),
        "cell_changes": cell_changes,
        "total_changes": len(cell_changes) + len(headers_added) + len(headers_removed),
    }

    if include_formulas:
        formulas_a = collect_formulas(a)
        formulas_b = collect_formulas(b)
        formula_changes = [
            {
                "ref": key,
                "change_type": "formula_modified",
                "before": formulas_a.get(key),
                "after": formulas_b.get(key),
            }
            for key in sorted(set(formulas_a) | set(formulas_b))
            if formulas_a.get(key) != formulas_b.get(key)
        ]
        result["formula_changes"] = formula_changes
        result["total_changes"] += len(formula_changes)
    return result


def diff_files(
    path_a: str | Path,
    path_b: str | Path,
    *,
    sheet: str | None = None,
    include_formulas: bool = False,
) -> dict[str, Any]:
    """Compare two table files and return the structured diff with fingerprints."""
    fp_a = fingerprint(path_a)
    fp_b = fingerprint(path_b)
    result = diff_tables(
        load_table(path_a, sheet=sheet),
        load_table(path_b, sheet=sheet),
        include_formulas=include_formulas,
    )
    return {
        "file_a": str(path_a),
        "file_b": str(path_b),
        "fingerprint_a": fp_a,
        "fingerprint_b": fp_b,
        "identical": fp_a == fp_b,
        **result,
    }
