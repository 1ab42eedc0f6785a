"""Policy engine: load ``sheetcore-policy.yaml`` and check change batches."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import yaml

from sheetcore.contracts.common import SheetcoreError
from sheetcore.contracts.table import Change, ChangeType, Table
from sheetcore.engine.history import MAX_HISTORY
from sheetcore.engine.refs import RangeBounds, excel_row, parse_range, resolve_column
from sheetcore.io.fileops import read_text_safe

POLICY_FILENAME = "sheetcore-policy.yaml"

_STRUCTURAL = (ChangeType.COLUMN_RENAME, ChangeType.COLUMN_DELETE)


class Policy:
    """A loaded policy file.  Every key is optional."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.protected_columns: list[str] = [str(c) for c in data.get("protected_columns") or []]
        self.protected_ranges: list[str] = [str(r) for r in data.get("protected_ranges") or []]
        self.mutation_thresholds: dict[str, int] = dict(data.get("mutation_thresholds") or {})
        self.allowed_intents: list[str] = [str(i).upper() for i in data.get("allowed_intents") or []]
        self.history_limit: int = int(data.get("history_limit") or MAX_HISTORY)
        self.events: bool = bool(data.get("events", False))

    @classmethod
    def load(cls, path: str | Path) -> "Policy":
        try:
            data = yaml.safe_load(read_text_safe(path)) or {}
        except yaml.YAMLError as e:
            raise SheetcoreError(f"Invalid policy file {path}: {e}", code="ERR_VALIDATION_POLICY") from e
        if not isinstance(data, dict):
            raise SheetcoreError(
                f"Policy file {path} must contain a mapping", code="ERR_VALIDATION_POLICY"
            )
        return cls(data)

    @classmethod
    def load_from_dir(cls, directory: str | Path) -> "Policy | None":
        path = Path(directory) / POLICY_FILENAME
        if path.exists():
            return cls.load(path)
        return None

    @classmethod
    def discover(cls, table_path: str | Path | None, explicit: str | Path | None = None) -> "Policy | None":
        """An explicit ``--policy`` file, else one next to the table, else None."""
        if explicit:
            return cls.load(explicit)
        if table_path is None:
            return None
        return cls.load_from_dir(Path(table_path).resolve().parent)


def _violation(kind: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"type": kind, "severity": "error", "message": message, **extra}


def check_intent_policy(policy: Policy, intent_type: str) -> list[dict[str, Any]]:
    if policy.allowed_intents and intent_type.upper() not in policy.allowed_intents:
        return [_violation(
            "intent_not_allowed",
            f"Intent {intent_type} is not in allowed_intents",
            intent=intent_type,
        )]
    return []


def _in_range(bounds: RangeBounds, row: int, col: int) -> bool:
    if bounds.first_row is not None and not bounds.first_row <= excel_row(row) <= bounds.last_row:
        return False
    if bounds.first_col is not None and not bounds.first_col <= col <= bounds.last_col:
        return False
    return True


def check_changes_policy(
    policy: Policy, table: Table, changes: Sequence[Change]
) -> list[dict[str, Any]]:
    """Violations a change batch would cause against ``table``.

    Protected ranges use sheet addresses (header is row 1); column adds
    are never blocked.
    """
    violations: list[dict[str, Any]] = []

    protected_cols: dict[int, str] = {}
    for token in policy.protected_columns:
        col = resolve_column(table.headers, token)
        if col is not None:
            protected_cols[col] = table.headers[col]
    ranges = [(r, parse_range(r)) for r in policy.protected_ranges]

    hit_columns: set[int] = set()
    hit_ranges: set[str] = set()
    cells = 0
    rows: set[int] = set()
    for change in changes:
        kind = ChangeType(change.type)
        if kind == ChangeType.COLUMN_ADD:
            continue
        if change.col in protected_cols:
            hit_columns.add(change.col)
        if kind in _STRUCTURAL:
            continue
        rows.add(change.row)
        if kind == ChangeType.CELL_UPDATE:
            cells += 1
        for text, bounds in ranges:
            if bounds is not None and text not in hit_ranges and _in_range(bounds, change.row, change.col):
                hit_ranges.add(text)

    for col in sorted(hit_columns):
        violations.append(_violation(
            "protected_column",
            f"Changes touch protected column '{protected_cols[col]}'",
            column=protected_cols[col],
        ))
    for text in policy.protected_ranges:
        if text in hit_ranges:
            violations.append(_violation(
                "protected_range", f"Changes touch protected range '{text}'", ref=text,
            ))

    max_cells = policy.mutation_thresholds.get("max_cells")
    max_rows = policy.mutation_thresholds.get("max_rows")
    if max_cells and cells > max_cells:
        violations.append(_violation(
            "mutation_threshold",
            f"Changes update {cells} cells, exceeding threshold of {max_cells}",
        ))
    if max_rows and len(rows) > max_rows:
        violations.append(_violation(
            "mutation_threshold",
            f"Changes touch {len(rows)} rows, exceeding threshold of {max_rows}",
        ))
    return violations


def has_blocking(violations: Sequence[dict[str, Any]]) -> bool:
    return any(v.get("severity") == "error" for v in violations)


class PolicyViolationError(SheetcoreError):
    """A change batch was refused by policy; ``violations`` lists why."""

    def __init__(self, violations: Sequence[dict[str, Any]]) -> None:
        self.violations = list(violations)
        messages = "; ".join(v["message"] for v in self.violations)
        super().__init__(f"Refused by policy: {messages}", code="ERR_POLICY_PROTECTED")


def enforce(
    policy: Policy | None,
    table: Table,
    changes: Sequence[Change],
    *,
    intent_type: str | None = None,
) -> None:
    """Raise PolicyViolationError when any blocking violation applies."""
    if policy is None:
        return
    violations = check_intent_policy(policy, intent_type) if intent_type else []
    violations += check_changes_policy(policy, table, changes)
    if has_blocking(violations):
        raise PolicyViolationError(violations)
