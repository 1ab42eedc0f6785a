"""Intent and transform mutations with policy checks, shared by every surface."""

from __future__ import annotations

from typing import Any, NamedTuple

from sheetcore.contracts.common import SheetcoreError, TransformError
from sheetcore.contracts.intents import parse_intent
from sheetcore.contracts.table import Change, Table
from sheetcore.engine.interpreter import apply_intent, generate_changes
from sheetcore.transforms.ops import is_mutating, run_transform
from sheetcore.validation.policy import Policy, enforce
from sheetcore.validation.validators import INFORMATIONAL_INTENTS


class Mutation(NamedTuple):
    table: Table
    changes: list[Change]
    description: str


def intent_mutation(table: Table, data: Any, *, policy: Policy | None = None) -> Mutation:
    """Interpret ``data`` against ``table`` and apply it.

    Informational intents come back with no changes.  Anything else that
    resolves to nothing raises ``ERR_NO_CHANGES``.
    """
    intent = parse_intent(data)
    changes = generate_changes(table, intent)
    if not changes:
        if intent.type in INFORMATIONAL_INTENTS:
            return Mutation(table, [], intent.description or intent.type)
        raise SheetcoreError(
            f"{intent.type} intent resolves to no changes (check target and params)",
            code="ERR_NO_CHANGES",
        )
    enforce(policy, table, changes, intent_type=intent.type)
    outcome = apply_intent(table, intent)
    return Mutation(outcome.table, changes, outcome.description)


def transform_mutation(
    table: Table, op: str, args: dict[str, Any] | None = None, *, policy: Policy | None = None
) -> Mutation:
    if not is_mutating(op):
        raise TransformError(f"Transform '{op}' does not modify the table")
    result = run_transform(table, op, args)
    enforce(policy, table, result.changes)
    return Mutation(result.table, list(result.changes), result.description)
