"""Tests for the pydantic contracts: tables, changes, intents, envelopes."""

from __future__ import annotations

import pytest

from sheetcore.contracts import (
    INTENT_TYPES,
    Change,
    ChangeType,
    IntentError,
    ResponseEnvelope,
    Table,
    parse_intent,
)


def test_change_aliases():
    change = Change.model_validate({"row": 1, "col": 2, "oldValue": "a", "newValue": "b"})
    assert (change.old_value, change.new_value) == ("a", "b")
    assert change.type == ChangeType.CELL_UPDATE
    dumped = change.model_dump(by_alias=True)
    assert dumped["oldValue"] == "a" and dumped["columnName"] is None


def test_change_accepts_snake_case():
    change = Change(row=0, col=0, new_value=3, type="COLUMN_ADD", column_name="X")
    assert change.type is ChangeType.COLUMN_ADD
    assert change.column_name == "X"


def test_table_cell_bounds(people: Table):
    assert people.cell(0, 0) == "Alice"
    assert people.cell(0, 9) is None
    assert people.cell(9, 0) is None
    assert people.cell(-1, 0) is None
    assert people.column_values(1) == [30, 25, 35]
    assert (people.row_count, people.col_count) == (3, 3)


def test_copy_deep_is_independent(sales: Table):
    copy = sales.copy_deep()
    copy.rows[0][0] = "Changed"
    copy.formulas["E2"] = "=0"
    assert sales.rows[0][0] == "North"
    assert sales.formulas["E2"] == "=C2-D2"


def test_to_document_camel_case(sales: Table):
    doc = sales.to_document()
    assert doc["cellStyles"] == {"C2": {"bold": True}}
    assert doc["pendingChanges"] == []


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------
def test_intent_types_cover_all_kinds():
    assert len(INTENT_TYPES) == 26
    assert {"EDIT_CELL", "FILL_DOWN", "GENERATE_DATA", "MERGE_COLUMNS", "CLARIFY"} <= INTENT_TYPES


def test_parse_intent_dispatches_on_type():
    intent = parse_intent({"type": "EDIT_CELL", "target": {"ref": "B2"}, "params": {"value": 5}})
    assert intent.type == "EDIT_CELL"
    assert intent.params.value == 5
    assert intent.resolved_target().ref == "B2"


def test_parse_intent_folds_flat_keys():
    intent = parse_intent({"type": "INSERT_FORMULA", "target": {"ref": "C1"}, "formula": "=A1+B1"})
    assert intent.params.formula == "=A1+B1"


def test_explicit_params_win_over_flat_keys():
    intent = parse_intent({"type": "EDIT_CELL", "value": 1, "params": {"value": 2}})
    assert intent.params.value == 2


def test_target_inside_params():
    intent = parse_intent({"type": "DELETE_ROW", "params": {"target": {"ref": 3}}})
    assert intent.target is None
    assert intent.resolved_target().ref == "3"


def test_camel_case_params():
    intent = parse_intent({"type": "FIND_REPLACE", "params": {"findValue": "a", "replaceValue": "b", "matchCase": True}})
    assert intent.params.find == "a"
    assert intent.params.replace == "b"
    assert intent.params.match_case is True


@pytest.mark.parametrize("data, message", [
    ("EDIT_CELL", "JSON object"),
    ({"params": {}}, "Unknown intent type"),
    ({"type": "TELEPORT"}, "Unknown intent type"),
    ({"type": ["EDIT_CELL"]}, "Unknown intent type"),
    ({"type": {"kind": "EDIT_CELL"}}, "Unknown intent type"),
    ({"type": "FILL_DOWN", "params": {"fillType": "sideways"}}, "Invalid FILL_DOWN intent"),
])
def test_parse_intent_errors(data, message):
    with pytest.raises(IntentError, match=message):
        parse_intent(data)


def test_parse_intent_passes_models_through():
    intent = parse_intent({"type": "INFO", "description": "hello"})
    assert parse_intent(intent) is intent


def test_response_envelope_defaults():
    env = ResponseEnvelope()
    assert env.ok is True
    assert env.changes == [] and env.errors == []
    assert env.metrics.duration_ms == 0
