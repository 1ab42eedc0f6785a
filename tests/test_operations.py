"""Tests for policy-checked intent and transform mutations."""

from __future__ import annotations

import pytest

from sheetcore.contracts.common import IntentError, SheetcoreError, TransformError
from sheetcore.contracts.table import Table
from sheetcore.engine.operations import intent_mutation, transform_mutation
from sheetcore.validation.policy import Policy, PolicyViolationError


def test_intent_mutation_applies(people: Table):
    mutation = intent_mutation(people, {"type": "EDIT_CELL", "target": {"ref": "A1"}, "params": {"value": "Zed"}})
    assert mutation.table.rows[0][0] == "Zed"
    assert len(mutation.changes) == 1
    assert mutation.description == "Updated 1 cell(s)"
    assert people.rows[0][0] == "Alice"


def test_informational_intent_returns_table_unchanged(people: Table):
    mutation = intent_mutation(people, {"type": "INFO", "description": "Three rows."})
    assert mutation.table is people
    assert mutation.changes == []
    assert mutation.description == "Three rows."


def test_unresolvable_intent_raises_no_changes(people: Table):
    with pytest.raises(SheetcoreError) as excinfo:
        intent_mutation(people, {"type": "SORT_DATA", "params": {}})
    assert excinfo.value.code == "ERR_NO_CHANGES"


def test_malformed_intent_raises(people: Table):
    with pytest.raises(IntentError):
        intent_mutation(people, {"type": "NOT_A_KIND"})


def test_intent_mutation_policy(people: Table):
    policy = Policy({"protected_columns": ["Age"]})
    with pytest.raises(PolicyViolationError):
        intent_mutation(people, {"type": "EDIT_CELL", "target": {"ref": "B1"}, "params": {"value": 1}}, policy=policy)
    ok = intent_mutation(people, {"type": "EDIT_CELL", "target": {"ref": "C1"}, "params": {"value": "Bogor"}}, policy=policy)
    assert ok.table.rows[0][2] == "Bogor"


def test_table_level_intent_keeps_formula_keys(sales: Table):
    mutation = intent_mutation(sales, {"type": "SORT_DATA", "params": {"column": "Sales", "direction": "desc"}})
    assert mutation.table.rows[0][0] == "East"
    assert mutation.table.formulas["E2"] == "=C4-D4"


def test_transform_mutation(people: Table):
    mutation = transform_mutation(people, "sort", {"column": "Age"})
    assert [r[0] for r in mutation.table.rows] == ["Bob", "Alice", "Charlie"]
    assert mutation.changes


def test_transform_mutation_rejects_read_ops(people: Table):
    with pytest.raises(TransformError, match="does not modify"):
        transform_mutation(people, "stats", {"column": "Age"})


def test_transform_mutation_policy(people: Table):
    policy = Policy({"mutation_thresholds": {"max_rows": 1}})
    with pytest.raises(PolicyViolationError):
        transform_mutation(people, "case", {"column": "City", "kind": "uppercase"}, policy=policy)
