"""Bounded linear undo/redo history of table snapshots."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from sheetcore.contracts.responses import HistoryStatus
from sheetcore.contracts.table import Table

MAX_HISTORY = 50


class HistoryEntry(BaseModel):
    before: Table
    after: Table
    description: str = ""


class UndoHistory:
    """Snapshot stack with a cursor.

    ``index`` points at the most recently applied entry (``-1`` when
    nothing can be undone).  Pushing after an undo discards the redo tail.
    Every snapshot going in or out is a deep copy, so callers can keep
    mutating their own tables.
    """

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self.entries: list[HistoryEntry] = []
        self.index = -1

    def __len__(self) -> int:
        return len(self.entries)

    # -- mutation ----------------------------------------------------------
    def push_state(self, before: Table, after: Table, description: str = "") -> None:
        del self.entries[self.index + 1:]
        self.entries.append(HistoryEntry(
            before=before.copy_deep(), after=after.copy_deep(), description=description,
        ))
        overflow = len(self.entries) - self.max_history
        if overflow > 0:
            del self.entries[:overflow]
        self.index = len(self.entries) - 1

    def undo(self) -> Table | None:
        if not self.can_undo():
            return None
        entry = self.entries[self.index]
        self.index -= 1
        return entry.before.copy_deep()

    def redo(self) -> Table | None:
        if not self.can_redo():
            return None
        self.index += 1
        return self.entries[self.index].after.copy_deep()

    def clear(self) -> None:
        self.entries = []
        self.index = -1

    # -- queries -----------------------------------------------------------
    def can_undo(self) -> bool:
        return self.index >= 0

    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1

    def current_description(self) -> str | None:
        """Description of the entry ``undo`` would revert."""
        return self.entries[self.index].description if self.can_undo() else None

    def next_description(self) -> str | None:
        """Description of the entry ``redo`` would re-apply."""
        return self.entries[self.index + 1].description if self.can_redo() else None

    def status(self) -> HistoryStatus:
        return HistoryStatus(
            length=len(self.entries),
            index=self.index,
            can_undo=self.can_undo(),
            can_redo=self.can_redo(),
            undo_description=self.current_description(),
            redo_description=self.next_description(),
        )

    # -- persistence -------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        return {
            "max_history": self.max_history,
            "index": self.index,
            "entries": [e.model_dump(mode="json", by_alias=True) for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], max_history: int | None = None) -> "UndoHistory":
        history = cls(max_history or data.get("max_history") or MAX_HISTORY)
        history.entries = [HistoryEntry.model_validate(e) for e in data.get("entries", [])]
        overflow = len(history.entries) - history.max_history
        index = int(data.get("index", len(history.entries) - 1))
        if overflow > 0:
            del history.entries[:overflow]
            index -= overflow
        history.index = min(max(index, -1), len(history.entries) - 1)
        return history
