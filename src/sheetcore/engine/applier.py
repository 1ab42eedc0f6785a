"""Change applier: pure reducer from (table, changes) to a new table.

Changes are grouped by type and applied in a fixed category order:

    COLUMN_ADD -> COLUMN_RENAME -> COLUMN_DELETE -> CELL_UPDATE -> ROW_DELETE

so a batch may add a column and fill it in one go, and row deletes always
see final cell values.  Within a category, input order is kept.  The input
table is never mutated.
"""

from __future__ import annotations

from bisect import bisect_left
from typing import Any, Iterable, NamedTuple, Sequence

from sheetcore.contracts.table import CellValue, Change, ChangeType, Table
from sheetcore.engine.formulas import is_formula, rewrite_after_row_delete
from sheetcore.engine.refs import cell_ref, column_letter, excel_row, split_cell_key

NO_CHANGES = "No changes to apply."

APPLY_ORDER: tuple[ChangeType, ...] = (
    ChangeType.COLUMN_ADD,
    ChangeType.COLUMN_RENAME,
    ChangeType.COLUMN_DELETE,
    ChangeType.CELL_UPDATE,
    ChangeType.ROW_DELETE,
)


class ApplyOutcome(NamedTuple):
    table: Table
    description: str


class _Workspace:
    """Private mutable copy of a table's containers for one apply pass."""

    def __init__(self, table: Table) -> None:
        self.headers: list[str] = list(table.headers)
        self.rows: list[list[CellValue]] = [list(r) for r in table.rows]
        self.formulas: dict[str, str] = dict(table.formulas)
        self.styles: dict[str, Any] = dict(table.cell_styles)

    def build(self, source: Table) -> Table:
        return source.model_copy(
            update={
                "headers": self.headers,
                "rows": self.rows,
                "formulas": self.formulas,
                "cell_styles": self.styles,
                "pending_changes": [],
            }
        )

    # -- keyed maps --------------------------------------------------------
    def rekey(self, remap) -> None:
        """Move formula/style keys through ``remap(row, col) -> (row, col) | None``."""
        self.formulas = _rekey_map(self.formulas, remap)
        self.styles = _rekey_map(self.styles, remap)


def _rekey_map(mapping: dict[str, Any], remap) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in mapping.items():
        addr = split_cell_key(key)
        if addr is None or addr.row < 0:
            out[key] = value
            continue
        moved = remap(addr.row, addr.col)
        if moved is not None:
            out[cell_ref(*moved)] = value
    return out


# ---------------------------------------------------------------------------
# Per-category handlers
# ---------------------------------------------------------------------------
def _apply_column_adds(ws: _Workspace, changes: Sequence[Change]) -> str:
    names: list[str] = []
    for change in changes:
        pos = min(max(change.col, 0), len(ws.headers))
        name = change.column_name
        if name is None:
            name = str(change.new_value) if change.new_value is not None else f"Column {pos + 1}"
        width = len(ws.headers)
        ws.headers.insert(pos, name)
        for row in ws.rows:
            if len(row) < width:
                row.extend([None] * (width - len(row)))
            row.insert(pos, None)
        ws.rekey(lambda r, c, p=pos: (r, c + 1 if c >= p else c))
        names.append(name)
    return f"Added column(s): {', '.join(names)}"


def _apply_renames(ws: _Workspace, changes: Sequence[Change]) -> str:
    parts: list[str] = []
    for change in changes:
        params = change.params or {}
        old = params.get("from")
        new = params.get("to")
        if old is None or new is None:
            continue
        # First header carrying the old name, whatever column the change names.
        if old in ws.headers:
            ws.headers[ws.headers.index(old)] = new
        parts.append(f'Renamed column "{old}" to "{new}"')
    return "; ".join(parts)


def _apply_column_deletes(ws: _Workspace, changes: Sequence[Change]) -> str:
    targets = sorted({c.col for c in changes if 0 <= c.col < len(ws.headers)})
    if not targets:
        return "Deleted column(s): none"
    letters = [column_letter(c) for c in targets]
    drop = set(targets)
    ws.headers = [h for i, h in enumerate(ws.headers) if i not in drop]
    ws.rows = [[v for i, v in enumerate(row) if i not in drop] for row in ws.rows]

    def _remap(r: int, c: int):
        if c in drop:
            return None
        return (r, c - bisect_left(targets, c))

    ws.rekey(_remap)
    return f"Deleted column(s): {', '.join(letters)}"


def _apply_cell_updates(ws: _Workspace, changes: Sequence[Change]) -> str:
    count = 0
    for change in changes:
        if change.row < 0 or change.col < 0:
            continue
        while len(ws.rows) <= change.row:
            ws.rows.append([None] * len(ws.headers))
        row = ws.rows[change.row]
        if len(row) <= change.col:
            row.extend([None] * (change.col + 1 - len(row)))
        row[change.col] = change.new_value
        key = cell_ref(change.row, change.col)
        if is_formula(change.new_value):
            ws.formulas[key] = change.new_value
        elif change.params and change.params.get("clear_formula"):
            ws.formulas.pop(key, None)
        count += 1
    return f"Updated {count} cell(s)"


def _delete_rows(ws: _Workspace, indices: Iterable[int]) -> int:
    drop = sorted({i for i in indices if 0 <= i < len(ws.rows)})
    if not drop:
        return 0
    dropped = set(drop)
    deleted_sheet_rows = [excel_row(i) for i in drop]

    kept: list[list[CellValue]] = []
    for i, row in enumerate(ws.rows):
        if i in dropped:
            continue
        kept.append([
            rewrite_after_row_delete(v, deleted_sheet_rows) if is_formula(v) else v
            for v in row
        ])
    ws.rows = kept

    def _remap(r: int, c: int):
        if r in dropped:
            return None
        return (r - bisect_left(drop, r), c)

    ws.rekey(_remap)
    ws.formulas = {
        k: rewrite_after_row_delete(f, deleted_sheet_rows) for k, f in ws.formulas.items()
    }
    return len(drop)


def _apply_row_deletes(ws: _Workspace, changes: Sequence[Change]) -> str:
    count = _delete_rows(ws, (c.row for c in changes))
    return f"Deleted {count} row(s)"


_HANDLERS = {
    ChangeType.COLUMN_ADD: _apply_column_adds,
    ChangeType.COLUMN_RENAME: _apply_renames,
    ChangeType.COLUMN_DELETE: _apply_column_deletes,
    ChangeType.CELL_UPDATE: _apply_cell_updates,
    ChangeType.ROW_DELETE: _apply_row_deletes,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def apply_changes(table: Table, changes: Sequence[Change]) -> ApplyOutcome:
    """Apply ``changes`` to a copy of ``table``.

    Returns the new table (``pending_changes`` cleared) and a ``"; "``-joined
    summary with one entry per change category present.
    """
    if not changes:
        return ApplyOutcome(table.model_copy(deep=True, update={"pending_changes": []}), NO_CHANGES)

    groups: dict[ChangeType, list[Change]] = {}
    for change in changes:
        groups.setdefault(ChangeType(change.type), []).append(change)

    ws = _Workspace(table)
    descriptions: list[str] = []
    for change_type in APPLY_ORDER:
        group = groups.get(change_type)
        if group:
            text = _HANDLERS[change_type](ws, group)
            if text:
                descriptions.append(text)

    return ApplyOutcome(ws.build(table), "; ".join(descriptions))


def delete_rows(table: Table, indices: Iterable[int]) -> Table:
    """Remove data rows and rewrite every formula the way ROW_DELETE does."""
    ws = _Workspace(table)
    _delete_rows(ws, indices)
    return ws.build(table)


def row_delete_changes(table: Table, indices: Iterable[int]) -> list[Change]:
    """ROW_DELETE changes for ``indices``: one per column, old values captured."""
    changes: list[Change] = []
    width = max(len(table.headers), 1)
    for r in indices:
        if not 0 <= r < len(table.rows):
            continue
        for c in range(width):
            changes.append(Change(
                row=r, col=c, old_value=table.cell(r, c), new_value=None,
                type=ChangeType.ROW_DELETE,
            ))
    return changes
