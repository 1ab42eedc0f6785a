"""Table documents on disk: JSON (orjson) and ``.xlsx`` sheets (openpyxl).

A JSON document mirrors the ``Table`` model with camelCase keys.  For a
workbook, the first row of the sheet is the header row and every formula
cell is recorded in ``formulas`` under its sheet address.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Any

import openpyxl
import orjson
from openpyxl.workbook import Workbook
from pydantic import ValidationError

from sheetcore.contracts.common import TableFormatError
from sheetcore.contracts.table import CellValue, Table
from sheetcore.engine.formulas import is_formula
from sheetcore.engine.refs import cell_ref
from sheetcore.io.fileops import atomic_write

XLSX_SUFFIXES = frozenset({".xlsx", ".xlsm"})
DEFAULT_SHEET = "Sheet1"


def is_workbook(path: str | Path) -> bool:
    return Path(path).suffix.lower() in XLSX_SUFFIXES


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------
def table_from_bytes(data: bytes, source: str = "<bytes>") -> Table:
    try:
        doc = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise TableFormatError(f"Cannot parse table document {source}: {e}") from e
    return table_from_document(doc, source)


def table_from_document(doc: Any, source: str = "<document>") -> Table:
    if not isinstance(doc, dict):
        raise TableFormatError(f"Table document {source} must be a JSON object")
    try:
        return Table.model_validate(doc)
    except ValidationError as e:
        raise TableFormatError(
            f"Invalid table document {source}: {e.errors(include_url=False)}"
        ) from e


def table_to_bytes(table: Table) -> bytes:
    return orjson.dumps(table.to_document(), option=orjson.OPT_INDENT_2)


# ---------------------------------------------------------------------------
# Workbooks
# ---------------------------------------------------------------------------
def _plain(value: Any) -> CellValue:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def read_xlsx(path: str | Path, *, sheet: str | None = None) -> Table:
    """Read one worksheet as a table (the active sheet by default)."""
    try:
        wb = openpyxl.load_workbook(str(path), data_only=False)
    except Exception as e:
        raise TableFormatError(f"Cannot open workbook {path}: {e}") from e
    try:
        if sheet is not None and sheet not in wb.sheetnames:
            raise TableFormatError(f"Sheet not found: {sheet}")
        ws = wb[sheet] if sheet is not None else wb.active
        grid = [list(values) for values in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    while grid and all(v is None for v in grid[-1]):
        grid.pop()
    if not grid:
        return Table()

    header_row = grid[0]
    width = len(header_row)
    while width and header_row[width - 1] is None:
        width -= 1
    headers = [
        str(h) if h is not None else f"Column {i + 1}"
        for i, h in enumerate(header_row[:width])
    ]

    rows: list[list[CellValue]] = []
    formulas: dict[str, str] = {}
    for r, values in enumerate(grid[1:]):
        row = [_plain(v) for v in values[:width]]
        row.extend([None] * (width - len(row)))
        for c, value in enumerate(row):
            if is_formula(value):
                formulas[cell_ref(r, c)] = value
        rows.append(row)
    return Table(headers=headers, rows=rows, formulas=formulas)


def _fill_sheet(ws, table: Table) -> None:
    ws.append(list(table.headers))
    width = len(table.headers)
    for r, values in enumerate(table.rows):
        out: list[CellValue] = []
        for c in range(max(width, len(values))):
            value = values[c] if c < len(values) else None
            if value is None:
                value = table.formulas.get(cell_ref(r, c))
            out.append(value)
        ws.append(out)


def xlsx_bytes(table: Table, *, sheet: str | None = None, base: str | Path | None = None) -> bytes:
    """Render a table as a workbook.

    Without ``base`` the result holds a single sheet.  With ``base`` the
    existing workbook is kept and only ``sheet`` (its active sheet by
    default) is rewritten in place.  A cell takes its row value when
    present, otherwise the formula stored for its address.
    """
    if base is None:
        wb = Workbook()
        ws = wb.active
        ws.title = sheet or DEFAULT_SHEET
    else:
        try:
            wb = openpyxl.load_workbook(str(base))
        except Exception as e:
            raise TableFormatError(f"Cannot open workbook {base}: {e}") from e
        title = sheet or wb.active.title
        if title in wb.sheetnames:
            old = wb[title]
            index = wb.sheetnames.index(title)
            was_active = wb.active is old
            wb.remove(old)
            ws = wb.create_sheet(title, index)
            if was_active:
                wb.active = index
        else:
            ws = wb.create_sheet(title)
    _fill_sheet(ws, table)
    buf = BytesIO()
    wb.save(buf)
    wb.close()
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Load / save by suffix
# ---------------------------------------------------------------------------
def load_table(path: str | Path, *, sheet: str | None = None) -> Table:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Table not found: {path}")
    if is_workbook(path):
        return read_xlsx(path, sheet=sheet)
    return table_from_bytes(path.read_bytes(), str(path))


def save_table(
    table: Table, path: str | Path, *, sheet: str | None = None, keep_sheets: bool = False
) -> bytes:
    """Write atomically, picking the format from the suffix; returns the bytes.

    With ``keep_sheets`` an existing workbook keeps its other sheets.
    """
    if is_workbook(path):
        base = path if keep_sheets and Path(path).exists() else None
        data = xlsx_bytes(table, sheet=sheet, base=base)
    else:
        data = table_to_bytes(table)
    atomic_write(path, data)
    return data
