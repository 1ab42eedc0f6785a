"""Command-specific result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class TableSummary(BaseModel):
    """Metadata returned by ``table inspect``."""

    path: str
    fingerprint: str
    headers: list[str] = Field(default_factory=list)
    row_count: int = 0
    col_count: int = 0
    formula_count: int = 0
    broken_formula_count: int = 0
    styled_cell_count: int = 0
    issues: dict[str, int] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Result of a validation command."""

    valid: bool = True
    checks: list[dict[str, Any]] = Field(default_factory=list)


class ApplyResult(BaseModel):
    """Result of an ``intent apply`` or ``transform`` command."""

    applied: bool = False
    dry_run: bool = False
    description: str = ""
    backup_path: str | None = None
    changes_applied: int = 0
    fingerprint_before: str = ""
    fingerprint_after: str | None = None
    history_index: int | None = None


class HistoryStatus(BaseModel):
    """Undo/redo position returned by ``history`` commands."""

    length: int = 0
    index: int = -1
    can_undo: bool = False
    can_redo: bool = False
    undo_description: str | None = None
    redo_description: str | None = None


class DryRunSummary(BaseModel):
    """Summary of changes projected during a dry-run."""

    total_changes: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_column: dict[str, int] = Field(default_factory=dict)
    rows_touched: int = 0
