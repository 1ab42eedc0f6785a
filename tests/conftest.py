"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import Workbook

from sheetcore.contracts.table import Table
from sheetcore.io.tables import table_to_bytes


def _table(headers, rows, formulas=None, styles=None) -> Table:
    return Table(
        headers=list(headers),
        rows=[list(r) for r in rows],
        formulas=dict(formulas or {}),
        cell_styles=dict(styles or {}),
    )


def _write(path: Path, table: Table) -> Path:
    path.write_bytes(table_to_bytes(table))
    return path


@pytest.fixture()
def people() -> Table:
    """Three people, no formulas."""
    return _table(
        ["Name", "Age", "City"],
        [
            ["Alice", 30, "Jakarta"],
            ["Bob", 25, "Bandung"],
            ["Charlie", 35, "Surabaya"],
        ],
    )


@pytest.fixture()
def sales() -> Table:
    """Regional sales with a Margin formula column and one styled cell."""
    rows = [
        ["North", "Widget", 1000, 600],
        ["South", "Widget", 1500, 900],
        ["East", "Gadget", 2000, 1100],
        ["West", "Gadget", 800, 500],
    ]
    formulas = {}
    for r, row in enumerate(rows):
        sheet_row = r + 2
        formula = f"=C{sheet_row}-D{sheet_row}"
        row.append(formula)
        formulas[f"E{sheet_row}"] = formula
    return _table(
        ["Region", "Product", "Sales", "Cost", "Margin"],
        rows,
        formulas,
        styles={"C2": {"bold": True}},
    )


@pytest.fixture()
def people_file(tmp_path: Path, people: Table) -> Path:
    return _write(tmp_path / "people.json", people)


@pytest.fixture()
def sales_file(tmp_path: Path, sales: Table) -> Path:
    return _write(tmp_path / "sales.json", sales)


@pytest.fixture()
def sales_workbook(tmp_path: Path) -> Path:
    """Workbook with a data sheet (formulas in column E) and a notes sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Revenue"
    ws.append(["Region", "Product", "Sales", "Cost", "Margin"])
    ws.append(["North", "Widget", 1000, 600, "=C2-D2"])
    ws.append(["South", "Widget", 1500, 900, "=C3-D3"])
    ws.append(["East", "Gadget", 2000, 1100, "=C4-D4"])

    notes = wb.create_sheet("Notes")
    notes.append(["Key", "Value"])
    notes.append(["owner", "finance"])

    path = tmp_path / "sales.xlsx"
    wb.save(str(path))
    wb.close()
    return path
