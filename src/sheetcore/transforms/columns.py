"""Column transforms: add, delete, rename, copy, split and merge.

Each one is expressed as a change batch and run through the applier, so
the returned ``changes`` replay to the same table.
"""

from __future__ import annotations

from typing import Sequence

from sheetcore.contracts.common import TransformError
from sheetcore.contracts.table import CellValue, Change, ChangeType, Table
from sheetcore.engine.refs import column_letter
from sheetcore.transforms.common import (
    TransformResult,
    from_changes,
    require_column,
    resolve_columns,
)


def _column_add(col: int, name: str) -> Change:
    return Change(
        row=0, col=col, old_value=None, new_value=name,
        type=ChangeType.COLUMN_ADD, column_name=name,
    )


def _position(table: Table, position: int | None) -> int:
    if position is None:
        return len(table.headers)
    return min(max(position, 0), len(table.headers))


def add_column(
    table: Table, name: str, position: int | None = None, default_value: CellValue = None
) -> TransformResult:
    if not name or not name.strip():
        raise TransformError("Column name must not be empty")
    pos = _position(table, position)
    changes = [_column_add(pos, name)]
    if default_value is not None:
        changes.extend(
            Change(row=r, col=pos, old_value=None, new_value=default_value)
            for r in range(len(table.rows))
        )
    return from_changes(table, changes, f"Added column {name}", affected=1)


def delete_column(table: Table, column: str | int) -> TransformResult:
    col = require_column(table, column)
    change = Change(
        row=0, col=col, old_value=table.headers[col], new_value=None,
        type=ChangeType.COLUMN_DELETE,
    )
    return from_changes(
        table, [change], f"Deleted column {table.headers[col]} ({column_letter(col)})", affected=1
    )


def rename_column(table: Table, column: str | int, new_name: str) -> TransformResult:
    if not new_name or not new_name.strip():
        raise TransformError("New column name must not be empty")
    col = require_column(table, column)
    old = table.headers[col]
    change = Change(
        row=0, col=col, old_value=old, new_value=new_name,
        type=ChangeType.COLUMN_RENAME, params={"from": old, "to": new_name},
    )
    return from_changes(table, [change], f'Renamed column "{old}" to "{new_name}"', affected=1)


def copy_column(
    table: Table, source: str | int, new_name: str | None = None, position: int | None = None
) -> TransformResult:
    col = require_column(table, source)
    name = new_name or f"{table.headers[col]} (copy)"
    pos = _position(table, position)
    changes = [_column_add(pos, name)]
    changes.extend(
        Change(row=r, col=pos, old_value=None, new_value=table.cell(r, col))
        for r in range(len(table.rows))
        if table.cell(r, col) is not None
    )
    return from_changes(table, changes, f"Copied {table.headers[col]} to {name}", affected=1)


def split_column(
    table: Table,
    column: str | int,
    delimiter: str = ",",
    new_column_names: Sequence[str] | None = None,
    max_parts: int | None = None,
) -> TransformResult:
    """Split text cells on ``delimiter`` into new columns right of the source.

    The source column is kept.  Parts are whitespace-stripped; missing or
    empty parts become None.  Without ``new_column_names`` the new columns
    are named ``"<header> 1"``, ``"<header> 2"``, ...
    """
    if not delimiter:
        raise TransformError("Delimiter must not be empty")
    col = require_column(table, column)
    maxsplit = max_parts - 1 if max_parts and max_parts > 0 else -1

    parts_by_row: list[list[str]] = []
    for r in range(len(table.rows)):
        value = table.cell(r, col)
        parts = [p.strip() for p in value.split(delimiter, maxsplit)] if isinstance(value, str) else []
        parts_by_row.append(parts)

    if new_column_names:
        names = list(new_column_names)
    else:
        width = max((len(p) for p in parts_by_row), default=0)
        if max_parts:
            width = min(width, max_parts)
        names = [f"{table.headers[col]} {i + 1}" for i in range(max(width, 1))]

    changes = [_column_add(col + 1 + i, name) for i, name in enumerate(names)]
    for r, parts in enumerate(parts_by_row):
        for i in range(len(names)):
            if i < len(parts) and parts[i]:
                changes.append(Change(row=r, col=col + 1 + i, old_value=None, new_value=parts[i]))
    return from_changes(
        table, changes,
        f"Split {table.headers[col]} into {', '.join(names)}",
        affected=len(table.rows),
    )


def merge_columns(
    table: Table,
    columns: Sequence[str | int],
    separator: str = " ",
    new_column_name: str | None = None,
) -> TransformResult:
    """Join ``columns`` into the leftmost one and delete the others.

    None cells are skipped; the remaining values are joined as text.
    """
    if not columns or len(columns) < 2:
        raise TransformError("Merge needs at least two columns")
    cols = resolve_columns(table, columns)
    if len(cols) < 2:
        raise TransformError("Merge needs at least two distinct columns")
    first = min(cols)

    changes: list[Change] = []
    old_name = table.headers[first]
    if new_column_name and new_column_name != old_name:
        changes.append(Change(
            row=0, col=first, old_value=old_name, new_value=new_column_name,
            type=ChangeType.COLUMN_RENAME, params={"from": old_name, "to": new_column_name},
        ))
    for r in range(len(table.rows)):
        joined = separator.join(str(table.cell(r, c)) for c in cols if table.cell(r, c) is not None)
        changes.append(Change(row=r, col=first, old_value=table.cell(r, first), new_value=joined))
    for c in sorted(cols):
        if c != first:
            changes.append(Change(
                row=0, col=c, old_value=table.headers[c], new_value=None,
                type=ChangeType.COLUMN_DELETE,
            ))
    merged = ", ".join(table.headers[c] for c in cols)
    return from_changes(
        table, changes,
        f"Merged {merged} into {new_column_name or old_name}",
        affected=len(table.rows),
    )
