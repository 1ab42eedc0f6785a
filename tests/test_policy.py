"""Tests for the policy file and the checks it applies to change batches."""

from __future__ import annotations

from pathlib import Path

import pytest

from sheetcore.contracts.common import SheetcoreError
from sheetcore.contracts.table import Change, ChangeType, Table
from sheetcore.engine.history import MAX_HISTORY
from sheetcore.validation.policy import (
    POLICY_FILENAME,
    Policy,
    PolicyViolationError,
    check_changes_policy,
    check_intent_policy,
    enforce,
)


def _cell(row, col):
    return Change(row=row, col=col, new_value="x")


def _types(violations):
    return [v["type"] for v in violations]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------
def test_defaults():
    policy = Policy({})
    assert policy.protected_columns == []
    assert policy.allowed_intents == []
    assert policy.history_limit == MAX_HISTORY
    assert policy.events is False


def test_load_yaml(tmp_path: Path):
    path = tmp_path / "p.yaml"
    path.write_text(
        "protected_columns: [Name]\n"
        "protected_ranges: ['A2:C3']\n"
        "mutation_thresholds: {max_cells: 5}\n"
        "allowed_intents: [edit_cell]\n"
        "history_limit: 7\n"
        "events: true\n"
    )
    policy = Policy.load(path)
    assert policy.protected_columns == ["Name"]
    assert policy.protected_ranges == ["A2:C3"]
    assert policy.mutation_thresholds == {"max_cells": 5}
    assert policy.allowed_intents == ["EDIT_CELL"]
    assert policy.history_limit == 7
    assert policy.events is True


@pytest.mark.parametrize("text", ["- a\n- b\n", "protected_columns: [\n"])
def test_load_rejects_bad_files(tmp_path: Path, text):
    path = tmp_path / "p.yaml"
    path.write_text(text)
    with pytest.raises(SheetcoreError) as excinfo:
        Policy.load(path)
    assert excinfo.value.code == "ERR_VALIDATION_POLICY"


def test_empty_file_is_empty_policy(tmp_path: Path):
    path = tmp_path / "p.yaml"
    path.write_text("")
    assert Policy.load(path).protected_columns == []


def test_discover(tmp_path: Path, people_file: Path):
    assert Policy.discover(people_file) is None
    assert Policy.discover(None) is None
    (tmp_path / POLICY_FILENAME).write_text("protected_columns: [Age]\n")
    assert Policy.discover(people_file).protected_columns == ["Age"]

    explicit = tmp_path / "other.yaml"
    explicit.write_text("protected_columns: [City]\n")
    assert Policy.discover(people_file, explicit).protected_columns == ["City"]


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------
def test_allowed_intents():
    policy = Policy({"allowed_intents": ["EDIT_CELL"]})
    assert check_intent_policy(policy, "edit_cell") == []
    assert _types(check_intent_policy(policy, "SORT_DATA")) == ["intent_not_allowed"]
    assert check_intent_policy(Policy({}), "SORT_DATA") == []


def test_protected_column_by_header_or_letter(people: Table):
    for token in ("Age", "B"):
        policy = Policy({"protected_columns": [token]})
        violations = check_changes_policy(policy, people, [_cell(0, 1)])
        assert _types(violations) == ["protected_column"]
        assert violations[0]["column"] == "Age"
    assert check_changes_policy(Policy({"protected_columns": ["Age"]}), people, [_cell(0, 0)]) == []


def test_unknown_protected_column_is_ignored(people: Table):
    assert check_changes_policy(Policy({"protected_columns": ["Salary"]}), people, [_cell(0, 0)]) == []


def test_structural_changes(people: Table):
    policy = Policy({"protected_columns": ["City"], "protected_ranges": ["A2:C4"]})
    add = Change(row=0, col=2, type=ChangeType.COLUMN_ADD, column_name="New")
    assert check_changes_policy(policy, people, [add]) == []
    rename = Change(row=0, col=2, type=ChangeType.COLUMN_RENAME, params={"from": "City", "to": "Town"})
    assert _types(check_changes_policy(policy, people, [rename])) == ["protected_column"]


def test_protected_ranges(people: Table):
    policy = Policy({"protected_ranges": ["A2:B2", "C:C", "4:4", "not a range"]})
    assert _types(check_changes_policy(policy, people, [_cell(0, 0)])) == ["protected_range"]
    assert check_changes_policy(policy, people, [_cell(1, 0)]) == []
    hits = check_changes_policy(policy, people, [_cell(1, 2), _cell(2, 0), _cell(2, 1)])
    assert [v["ref"] for v in hits] == ["C:C", "4:4"]


def test_row_delete_hits_range(people: Table):
    policy = Policy({"protected_ranges": ["3:3"]})
    delete = Change(row=1, col=0, type=ChangeType.ROW_DELETE, old_value="Bob")
    assert _types(check_changes_policy(policy, people, [delete])) == ["protected_range"]


def test_thresholds(people: Table):
    policy = Policy({"mutation_thresholds": {"max_cells": 2, "max_rows": 1}})
    within = check_changes_policy(policy, people, [_cell(0, 0), _cell(0, 1)])
    assert within == []
    over = check_changes_policy(policy, people, [_cell(0, 0), _cell(1, 0), _cell(2, 0)])
    assert [v["message"] for v in over] == [
        "Changes update 3 cells, exceeding threshold of 2",
        "Changes touch 3 rows, exceeding threshold of 1",
    ]


def test_enforce(people: Table):
    enforce(None, people, [_cell(0, 0)])
    policy = Policy({"protected_columns": ["Name"], "allowed_intents": ["EDIT_CELL"]})
    enforce(policy, people, [_cell(0, 1)], intent_type="EDIT_CELL")
    with pytest.raises(PolicyViolationError) as excinfo:
        enforce(policy, people, [_cell(0, 0)], intent_type="FILL_DOWN")
    err = excinfo.value
    assert err.code == "ERR_POLICY_PROTECTED"
    assert _types(err.violations) == ["intent_not_allowed", "protected_column"]
    assert str(err).startswith("Refused by policy: ")
