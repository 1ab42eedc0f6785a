"""TableContext: a table file on disk, its fingerprint and its undo history."""

from __future__ import annotations

from pathlib import Path

import orjson

from sheetcore.contracts.common import TableFormatError, Target
from sheetcore.contracts.responses import TableSummary
from sheetcore.contracts.table import Table
from sheetcore.engine.formulas import has_broken_ref, is_formula
from sheetcore.engine.history import MAX_HISTORY, UndoHistory
from sheetcore.engine.refs import cell_ref, split_cell_key
from sheetcore.io.fileops import atomic_write, fingerprint, fingerprint_bytes
from sheetcore.io.tables import load_table, save_table

HISTORY_SUFFIX = ".history.json"


def collect_formulas(table: Table) -> dict[str, str]:
    """Every formula in the table by A1 key: the map plus formula cells in rows."""
    found = dict(table.formulas)
    for r, row in enumerate(table.rows):
        for c, value in enumerate(row):
            if is_formula(value):
                found.setdefault(cell_ref(r, c), value)
    return found


def table_issues(table: Table) -> dict[str, int]:
    """Counts of structural problems; only non-zero entries are reported."""
    width = len(table.headers)
    folded = [h.casefold() for h in table.headers]
    orphan = 0
    for key in table.formulas:
        addr = split_cell_key(key)
        if addr is None or addr.row < 0 or addr.col >= width or addr.row >= len(table.rows):
            orphan += 1
    issues = {
        "broken_formulas": sum(1 for f in collect_formulas(table).values() if has_broken_ref(f)),
        "ragged_rows": sum(1 for row in table.rows if len(row) != width),
        "duplicate_headers": len(folded) - len(set(folded)),
        "empty_headers": sum(1 for h in table.headers if not h.strip()),
        "orphan_formula_keys": orphan,
    }
    return {k: v for k, v in issues.items() if v}


class TableContext:
    """Loads a table (JSON or workbook) and keeps its history sidecar.

    The sidecar ``<file>.history.json`` holds the undo stack between CLI
    invocations.  Callers hold a ``TableLock`` around load-modify-save.
    """

    def __init__(
        self, path: str | Path, *, sheet: str | None = None, history_limit: int = MAX_HISTORY
    ) -> None:
        self.path = Path(path).resolve()
        if not self.path.exists():
            raise FileNotFoundError(f"Table not found: {self.path}")
        self.sheet = sheet
        self.history_limit = history_limit
        self.fp = fingerprint(self.path)
        self.table: Table = load_table(self.path, sheet=sheet)
        self._history: UndoHistory | None = None

    @property
    def history_path(self) -> Path:
        return self.path.parent / (self.path.name + HISTORY_SUFFIX)

    @property
    def history(self) -> UndoHistory:
        if self._history is None:
            self._history = self._load_history()
        return self._history

    def _load_history(self) -> UndoHistory:
        if not self.history_path.exists():
            return UndoHistory(self.history_limit)
        try:
            data = orjson.loads(self.history_path.read_bytes())
            return UndoHistory.from_dict(data, max_history=self.history_limit)
        except (orjson.JSONDecodeError, ValueError, TypeError) as e:
            raise TableFormatError(f"Cannot read history {self.history_path}: {e}") from e

    def target(self, **overrides: str | None) -> Target:
        t = Target(file=str(self.path))
        for k, v in overrides.items():
            if v is not None:
                setattr(t, k, v)
        return t

    # -- state transitions -------------------------------------------------
    def commit(self, new_table: Table, description: str) -> int:
        """Record ``self.table -> new_table`` in history; returns the history index."""
        self.history.push_state(self.table, new_table, description)
        self.table = new_table
        return self.history.index

    def undo(self) -> Table | None:
        previous = self.history.undo()
        if previous is not None:
            self.table = previous
        return previous

    def redo(self) -> Table | None:
        following = self.history.redo()
        if following is not None:
            self.table = following
        return following

    # -- persistence -------------------------------------------------------
    def save(self, path: str | Path | None = None) -> str:
        """Write the table (and, for its own file, the history); returns the new fingerprint."""
        destination = Path(path).resolve() if path else self.path
        data = save_table(self.table, destination, sheet=self.sheet, keep_sheets=True)
        if destination == self.path:
            self.save_history()
            self.fp = fingerprint_bytes(data)
        return fingerprint_bytes(data)

    def save_history(self) -> None:
        if self._history is None:
            return
        atomic_write(self.history_path, orjson.dumps(self._history.to_dict()))

    def summary(self) -> TableSummary:
        formulas = collect_formulas(self.table)
        return TableSummary(
            path=str(self.path),
            fingerprint=self.fp,
            headers=list(self.table.headers),
            row_count=self.table.row_count,
            col_count=self.table.col_count,
            formula_count=len(formulas),
            broken_formula_count=sum(1 for f in formulas.values() if has_broken_ref(f)),
            styled_cell_count=len(self.table.cell_styles),
            issues=table_issues(self.table),
        )
