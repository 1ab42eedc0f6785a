"""Tests for table diffing."""

from __future__ import annotations

import shutil
from pathlib import Path

from sheetcore.contracts.table import Table
from sheetcore.diff.differ import diff_files, diff_tables
from sheetcore.engine.applier import apply_changes, row_delete_changes
from sheetcore.io.tables import save_table


def test_identical_tables(people: Table):
    result = diff_tables(people, people.copy_deep())
    assert result["total_changes"] == 0
    assert result["cell_changes"] == []


def test_modified_added_removed_cells(people: Table):
    other = people.copy_deep()
    other.rows[0][1] = 31
    other.rows[2][2] = None
    other.rows.append(["Dewi", 28, "Medan"])
    result = diff_tables(people, other)
    kinds = {c["ref"]: c["change_type"] for c in result["cell_changes"]}
    assert kinds == {"B2": "modified", "C4": "removed", "A5": "added", "B5": "added", "C5": "added"}
    assert (result["row_count_a"], result["row_count_b"]) == (3, 4)


def test_header_changes(people: Table):
    other = people.copy_deep()
    other.headers[2] = "Town"
    result = diff_tables(people, other)
    assert result["headers_added"] == ["Town"]
    assert result["headers_removed"] == ["City"]
    assert result["total_changes"] == 2


def test_formula_changes(sales: Table):
    after = sales.copy_deep()
    after.rows[1][4] = "=C3*2"
    after.formulas["E3"] = "=C3*2"
    after.rows[3][4] = 300
    del after.formulas["E5"]
    plain = diff_tables(sales, after)
    assert "formula_changes" not in plain
    result = diff_tables(sales, after, include_formulas=True)
    assert result["formula_changes"] == [
        {"ref": "E3", "change_type": "formula_modified", "before": "=C3-D3", "after": "=C3*2"},
        {"ref": "E5", "change_type": "formula_modified", "before": "=C5-D5", "after": None},
    ]
    assert result["total_changes"] == 4


def test_row_delete_shows_as_shifted_cells(sales: Table):
    after = apply_changes(sales, row_delete_changes(sales, [3])).table
    result = diff_tables(sales, after, include_formulas=True)
    assert {c["change_type"] for c in result["cell_changes"]} == {"removed"}
    assert [c["ref"] for c in result["formula_changes"]] == ["E5"]


def test_diff_files(tmp_path: Path, people_file: Path, people: Table):
    same = tmp_path / "same.json"
    shutil.copy(people_file, same)
    assert diff_files(people_file, same)["identical"] is True

    changed = people.copy_deep()
    changed.rows[1][0] = "Robert"
    other = tmp_path / "other.json"
    save_table(changed, other)
    result = diff_files(people_file, other)
    assert result["identical"] is False
    assert result["fingerprint_a"] != result["fingerprint_b"]
    assert result["cell_changes"] == [
        {"ref": "A3", "change_type": "modified", "before": "Bob", "after": "Robert"},
    ]


def test_diff_json_against_workbook(tmp_path: Path, people: Table, people_file: Path):
    workbook = tmp_path / "people.xlsx"
    save_table(people, workbook)
    result = diff_files(people_file, workbook)
    assert result["identical"] is False
    assert result["total_changes"] == 0
