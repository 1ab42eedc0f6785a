"""Tests for formula reference rewriting."""

from __future__ import annotations

from sheetcore.engine.formulas import (
    find_refs,
    has_broken_ref,
    is_formula,
    rewrite_after_row_delete,
    shift_rows,
)


def test_is_formula():
    assert is_formula("=A2+1")
    assert not is_formula("A2+1")
    assert not is_formula(42)
    assert not is_formula(None)


def test_find_refs_skips_strings_and_functions():
    assert find_refs('=IF(A2="B2",LOG10(C3),D$4)') == ["A2", "C3", "D$4"]
    assert find_refs("=SHEET2+A1") == ["A1"]
    assert find_refs("=a2+sum(b3:b4)+log10(c5)") == ["a2", "b3", "b4"]


# ---------------------------------------------------------------------------
# shift_rows
# ---------------------------------------------------------------------------
def test_shift_relative_rows():
    assert shift_rows("=A2+B2", 3) == "=A5+B5"
    assert shift_rows("=SUM(A2:A10)", 1) == "=SUM(A3:A11)"


def test_shift_keeps_anchored_rows():
    assert shift_rows("=$A$2+B2", 1) == "=$A$2+B3"
    assert shift_rows("=$A2+A$2", 1) == "=$A3+A$2"


def test_shift_only_row():
    assert shift_rows("=A2*$B$1+C5", 2, only_row=2) == "=A4*$B$1+C5"


def test_shift_leaves_string_literals():
    assert shift_rows('=IF(A2="B2",1,0)', 1) == '=IF(A3="B2",1,0)'


def test_shift_clamps_at_first_row():
    assert shift_rows("=A2", -5) == "=A1"


def test_shift_zero_is_identity():
    assert shift_rows("=A2+B$3", 0) == "=A2+B$3"


# ---------------------------------------------------------------------------
# rewrite_after_row_delete
# ---------------------------------------------------------------------------
def test_rows_below_move_up():
    assert rewrite_after_row_delete("=A4+B4", [3]) == "=A3+B3"
    assert rewrite_after_row_delete("=A10", [3, 5]) == "=A8"


def test_deleted_row_becomes_ref_error():
    rewritten = rewrite_after_row_delete("=A3+B4", [3])
    assert rewritten == "=#REF!+B3"
    assert has_broken_ref(rewritten)


def test_rows_above_are_untouched():
    assert rewrite_after_row_delete("=A2*2", [5]) == "=A2*2"


def test_anchored_rows_still_move():
    assert rewrite_after_row_delete("=$A$6", [3]) == "=$A$5"


def test_range_end_shrinks():
    assert rewrite_after_row_delete("=SUM(A2:A10)", [5]) == "=SUM(A2:A9)"


def test_nothing_deleted():
    assert rewrite_after_row_delete("=A4", []) == "=A4"


def test_lowercase_refs_are_rewritten():
    assert rewrite_after_row_delete("=a4+b4", [3]) == "=A3+B3"
    assert rewrite_after_row_delete("=a3*2", [3]) == "=#REF!*2"
    assert shift_rows("=a2+$b$2", 2) == "=A4+$b$2"
    assert shift_rows("=a2+c7", 1, only_row=2) == "=A3+c7"
