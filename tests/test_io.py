"""Tests for table documents on disk and the file operations beneath them."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import openpyxl
import orjson
import pytest

from sheetcore.contracts.common import TableFormatError
from sheetcore.contracts.table import Table
from sheetcore.io.fileops import (
    atomic_write,
    backup,
    fingerprint,
    fingerprint_bytes,
    read_text_safe,
)
from sheetcore.io.tables import (
    is_workbook,
    load_table,
    read_xlsx,
    save_table,
    table_from_bytes,
    table_from_document,
    table_to_bytes,
    xlsx_bytes,
)


# ---------------------------------------------------------------------------
# JSON documents
# ---------------------------------------------------------------------------
def test_json_round_trip(sales: Table):
    loaded = table_from_bytes(table_to_bytes(sales))
    assert loaded == sales


def test_document_uses_camel_case(sales: Table):
    doc = orjson.loads(table_to_bytes(sales))
    assert set(doc) == {"headers", "rows", "formulas", "cellStyles", "pendingChanges"}


def test_document_accepts_snake_case():
    table = table_from_document({"headers": ["A"], "rows": [[1]], "cell_styles": {"A2": {"bold": True}}})
    assert table.cell_styles == {"A2": {"bold": True}}


@pytest.mark.parametrize("data", [b"{broken", b"[1, 2]", b'{"rows": "nope"}'])
def test_invalid_documents(data):
    with pytest.raises(TableFormatError):
        table_from_bytes(data)


def test_is_workbook():
    assert is_workbook("a.xlsx") and is_workbook("B.XLSM")
    assert not is_workbook("a.json")


def test_load_missing(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_table(tmp_path / "missing.json")


# ---------------------------------------------------------------------------
# Workbooks
# ---------------------------------------------------------------------------
def test_read_xlsx(sales_workbook: Path):
    table = read_xlsx(sales_workbook)
    assert table.row_count == 3
    assert table.rows[0] == ["North", "Widget", 1000, 600, "=C2-D2"]
    assert table.formulas["E4"] == "=C4-D4"


def test_read_xlsx_unknown_sheet(sales_workbook: Path):
    with pytest.raises(TableFormatError, match="Sheet not found"):
        read_xlsx(sales_workbook, sheet="Missing")


def test_read_xlsx_not_a_workbook(tmp_path: Path):
    bogus = tmp_path / "bogus.xlsx"
    bogus.write_text("not a zip")
    with pytest.raises(TableFormatError):
        read_xlsx(bogus)


def test_read_xlsx_pads_and_names_headers(tmp_path: Path):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["A", None, "C"])
    ws.append([1])
    ws.append([None, None, None])
    path = tmp_path / "ragged.xlsx"
    wb.save(str(path))
    wb.close()

    table = read_xlsx(path)
    assert table.headers == ["A", "Column 2", "C"]
    assert table.rows == [[1, None, None]]


def test_xlsx_bytes_writes_formulas_from_map():
    table = Table(headers=["A", "B"], rows=[[2, None]], formulas={"B2": "=A2*3"})
    wb = openpyxl.load_workbook(BytesIO(xlsx_bytes(table, sheet="Data")))
    try:
        ws = wb["Data"]
        assert [c.value for c in ws[1]] == ["A", "B"]
        assert ws["B2"].value == "=A2*3"
    finally:
        wb.close()


def test_save_table_picks_format(tmp_path: Path, sales: Table):
    data = save_table(sales, tmp_path / "out.xlsx")
    assert data[:2] == b"PK"
    back = load_table(tmp_path / "out.xlsx")
    assert back.headers == sales.headers
    assert back.formulas == sales.formulas

    save_table(sales, tmp_path / "out.json")
    assert load_table(tmp_path / "out.json") == sales


def test_save_table_replaces_workbook_unless_asked(sales_workbook: Path, people: Table):
    save_table(people, sales_workbook, sheet="People")
    wb = openpyxl.load_workbook(str(sales_workbook))
    assert wb.sheetnames == ["People"]
    wb.close()


def test_save_table_keep_sheets_adds_new_sheet(sales_workbook: Path, people: Table):
    save_table(people, sales_workbook, sheet="People", keep_sheets=True)
    wb = openpyxl.load_workbook(str(sales_workbook))
    try:
        assert wb.sheetnames == ["Revenue", "Notes", "People"]
    finally:
        wb.close()
    assert read_xlsx(sales_workbook, sheet="People").rows == people.rows


# ---------------------------------------------------------------------------
# File operations
# ---------------------------------------------------------------------------
def test_fingerprint_matches_bytes(people_file: Path):
    assert fingerprint(people_file) == fingerprint_bytes(people_file.read_bytes())
    assert fingerprint(people_file).startswith("sha256:")


def test_backup_copies_file(people_file: Path):
    copy = Path(backup(people_file))
    assert copy.exists()
    assert copy.name.startswith("people.") and copy.name.endswith(".bak.json")
    assert copy.read_bytes() == people_file.read_bytes()


def test_atomic_write_leaves_no_temp_files(tmp_path: Path):
    target = tmp_path / "t.json"
    atomic_write(target, b"one")
    atomic_write(target, b"two")
    assert target.read_bytes() == b"two"
    assert [p.name for p in tmp_path.iterdir()] == ["t.json"]


def test_read_text_safe_strips_bom(tmp_path: Path):
    path = tmp_path / "bom.yaml"
    path.write_bytes("\ufeffsteps: []".encode("utf-8"))
    assert read_text_safe(path) == "steps: []"
