"""Validation for intents and tables, plus formula lint."""

from __future__ import annotations

import re
from typing import Any

from sheetcore.contracts.common import IntentError
from sheetcore.contracts.intents import parse_intent
from sheetcore.contracts.responses import ValidationResult
from sheetcore.contracts.table import Table
from sheetcore.engine.context import collect_formulas, table_issues
from sheetcore.engine.formulas import BROKEN_REF, find_refs
from sheetcore.engine.interpreter import generate_changes
from sheetcore.engine.refs import split_cell_key
from sheetcore.validation.policy import Policy, check_changes_policy, check_intent_policy

INFORMATIONAL_INTENTS = frozenset({"INFO", "CLARIFY"})

_VOLATILE_FUNCS = re.compile(r"\b(OFFSET|INDIRECT|NOW|TODAY|RAND|RANDBETWEEN)\b", re.IGNORECASE)


def validate_intent(
    table: Table, data: Any, *, policy: Policy | None = None
) -> ValidationResult:
    """Check that an intent parses, resolves to changes and passes policy."""
    checks: list[dict[str, Any]] = []
    try:
        intent = parse_intent(data)
    except IntentError as e:
        checks.append({"type": "intent_schema", "passed": False, "message": str(e)})
        return ValidationResult(valid=False, checks=checks)
    checks.append({"type": "intent_schema", "passed": True, "message": f"{intent.type} intent is well-formed"})

    changes = generate_changes(table, intent)
    if intent.type in INFORMATIONAL_INTENTS:
        checks.append({
            "type": "intent_resolves",
            "passed": True,
            "message": f"{intent.type} is informational and makes no changes",
        })
    else:
        checks.append({
            "type": "intent_resolves",
            "passed": bool(changes),
            "changes": len(changes),
            "message": (
                f"Intent resolves to {len(changes)} change(s)" if changes
                else "Intent resolves to no changes (missing or invalid target or params)"
            ),
        })

    if policy is not None:
        violations = check_intent_policy(policy, intent.type) + check_changes_policy(policy, table, changes)
        for v in violations:
            checks.append({**v, "type": "policy", "rule": v["type"], "passed": v["severity"] != "error"})
        if not violations:
            checks.append({"type": "policy", "passed": True, "message": "No policy violations"})

    valid = all(c.get("passed", True) for c in checks)
    return ValidationResult(valid=valid, checks=checks)


def lint_formulas(table: Table) -> list[dict[str, Any]]:
    """Heuristic formula findings: broken refs, volatile calls, refs outside the table, self refs."""
    findings: list[dict[str, Any]] = []
    width = len(table.headers)
    for key, formula in sorted(collect_formulas(table).items()):
        if BROKEN_REF in formula:
            findings.append({
                "ref": key, "category": "broken_ref", "severity": "error",
                "message": "Contains #REF! error reference", "formula": formula,
            })
        m = _VOLATILE_FUNCS.search(formula)
        if m:
            findings.append({
                "ref": key, "category": "volatile_function", "severity": "warning",
                "message": f"Uses volatile function {m.group(0).upper()}", "formula": formula,
            })
        for token in find_refs(formula):
            plain = token.replace("$", "").upper()
            if plain == key:
                findings.append({
                    "ref": key, "category": "self_reference", "severity": "warning",
                    "message": "Formula refers to its own cell", "formula": formula,
                })
                continue
            addr = split_cell_key(plain)
            if addr is not None and (addr.col >= width or addr.row >= len(table.rows)):
                findings.append({
                    "ref": key, "category": "out_of_range", "severity": "warning",
                    "message": f"Reference {token} is outside the table", "formula": formula,
                })
    return findings


def validate_table(table: Table) -> ValidationResult:
    """Structural hygiene checks on a table document."""
    checks: list[dict[str, Any]] = []
    for issue, count in table_issues(table).items():
        checks.append({
            "type": "table_hygiene",
            "category": issue,
            "passed": issue != "broken_formulas",
            "severity": "error" if issue == "broken_formulas" else "warning",
            "count": count,
            "message": f"{count} {issue.replace('_', ' ')}",
        })
    if not checks:
        checks.append({"type": "table_hygiene", "passed": True, "message": "No issues detected."})
    valid = all(c.get("passed", True) for c in checks)
    return ValidationResult(valid=valid, checks=checks)
