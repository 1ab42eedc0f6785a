"""Workflow engine for ``sheetcore run``: executes YAML workflow specs."""

from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path
from typing import Any

import orjson
import yaml
from pydantic import ValidationError

from sheetcore.contracts.common import SheetcoreError
from sheetcore.contracts.workflow import WorkflowSpec
from sheetcore.engine.context import TableContext
from sheetcore.engine.dispatcher import error_code_for
from sheetcore.engine.history import MAX_HISTORY
from sheetcore.engine.operations import intent_mutation, transform_mutation
from sheetcore.io.fileops import TableLock, backup, read_text_safe
from sheetcore.observe.events import EventEmitter
from sheetcore.transforms.ops import MUTATING_OPS, TRANSFORM_OPS, is_mutating, run_transform
from sheetcore.validation.policy import Policy
from sheetcore.validation.validators import lint_formulas, validate_intent, validate_table

TRANSFORM_PREFIX = "transform."

# All supported step commands for ``sheetcore run`` workflows.
WORKFLOW_COMMANDS: frozenset[str] = frozenset({
    "table.inspect", "table.validate", "formula.lint",
    "intent.apply", "validate.intent",
    "history.undo", "history.redo", "history.status",
    "diff.compare",
}) | frozenset(TRANSFORM_PREFIX + op for op in TRANSFORM_OPS)

_MUTATING_STEPS = frozenset({"intent.apply", "history.undo", "history.redo"}) | frozenset(
    TRANSFORM_PREFIX + op for op in MUTATING_OPS
)

_ALLOWED_KEYS = frozenset({"schema_version", "name", "target", "defaults", "steps"})


def is_mutating_step(run: str) -> bool:
    return run in _MUTATING_STEPS


class WorkflowValidationError(SheetcoreError):
    """Workflow file failed structural validation; ``details`` lists the issues."""

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message, code="ERR_WORKFLOW_INVALID")
        self.details = details or [message]


def _read_yaml(path: str | Path) -> Any:
    try:
        return yaml.safe_load(read_text_safe(path))
    except yaml.YAMLError as e:
        raise WorkflowValidationError(f"Invalid workflow YAML: {e}") from e


def _structure_issues(data: Any) -> list[str]:
    if not isinstance(data, dict):
        return ["Workflow YAML must be a mapping/object."]
    issues: list[str] = []
    unknown_keys = sorted(set(data) - _ALLOWED_KEYS)
    if unknown_keys:
        issues.append(f"Unknown workflow keys: {', '.join(unknown_keys)}")
    steps = data.get("steps")
    if not isinstance(steps, list):
        issues.append("Workflow must define 'steps' as an array.")
    elif not steps:
        issues.append("Workflow must contain at least one step.")
    else:
        seen: set[str] = set()
        for i, step in enumerate(steps):
            if not isinstance(step, dict):
                issues.append(f"Step {i} must be a mapping.")
                continue
            step_id = step.get("id")
            if step_id in seen:
                issues.append(f"Duplicate step id: '{step_id}'")
            seen.add(step_id)
    return issues


def load_workflow(path: str | Path) -> WorkflowSpec:
    """Load a workflow spec from a YAML file."""
    data = _read_yaml(path)
    issues = _structure_issues(data)
    if issues:
        raise WorkflowValidationError(issues[0], issues)
    try:
        return WorkflowSpec(**data)
    except ValidationError as e:
        details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise WorkflowValidationError("Workflow failed schema validation", details) from e


def validate_workflow(path: str | Path) -> dict[str, Any]:
    """Check a workflow file without running it: ``{valid, checks}``."""
    checks: list[dict[str, Any]] = []
    try:
        spec = load_workflow(path)
    except WorkflowValidationError as e:
        checks.extend({"type": "workflow_structure", "passed": False, "message": d} for d in e.details)
        return {"valid": False, "checks": checks}
    except OSError as e:
        checks.append({"type": "workflow_file", "passed": False, "message": str(e)})
        return {"valid": False, "checks": checks}

    checks.append({"type": "workflow_structure", "passed": True, "message": "Workflow structure is valid"})
    has_target = bool(spec.target.file)
    checks.append({
        "type": "workflow_target",
        "passed": True,
        "message": "Target file set" if has_target else "No target.file; pass --file to run",
    })
    return {
        "valid": True,
        "name": spec.name,
        "mutating": spec.mutating,
        "steps": [{"id": s.id, "run": s.run} for s in spec.steps],
        "checks": checks,
    }


def _intent_arg(args: dict[str, Any]) -> Any:
    if "intent" in args:
        return args["intent"]
    if "intent_file" in args:
        return orjson.loads(read_text_safe(args["intent_file"]))
    raise SheetcoreError("Step needs 'intent' or 'intent_file'", code="ERR_INVALID_ARGUMENT")


def _run_step(
    ctx: TableContext, run: str, args: dict[str, Any], policy: Policy | None
) -> tuple[Any, bool, bool]:
    """Execute one step; returns (result, ok, mutated)."""
    if run == "table.inspect":
        return ctx.summary().model_dump(), True, False

    if run == "table.validate":
        vr = validate_table(ctx.table)
        return vr.model_dump(), vr.valid, False

    if run == "formula.lint":
        findings = lint_formulas(ctx.table)
        return {"findings": findings, "count": len(findings)}, True, False

    if run == "validate.intent":
        vr = validate_intent(ctx.table, _intent_arg(args), policy=policy)
        return vr.model_dump(), vr.valid, False

    if run == "intent.apply":
        mutation = intent_mutation(ctx.table, _intent_arg(args), policy=policy)
        if not mutation.changes:
            return {"applied": False, "description": mutation.description}, True, False
        index = ctx.commit(mutation.table, mutation.description)
        return {
            "applied": True,
            "description": mutation.description,
            "changes_applied": len(mutation.changes),
            "history_index": index,
        }, True, True

    if run.startswith(TRANSFORM_PREFIX):
        op = run[len(TRANSFORM_PREFIX):]
        if not is_mutating(op):
            return run_transform(ctx.table, op, args), True, False
        mutation = transform_mutation(ctx.table, op, args, policy=policy)
        if not mutation.changes:
            return {"applied": False, "description": mutation.description}, True, False
        index = ctx.commit(mutation.table, mutation.description)
        return {
            "applied": True,
            "description": mutation.description,
            "changes_applied": len(mutation.changes),
            "history_index": index,
        }, True, True

    if run in ("history.undo", "history.redo"):
        description = (
            ctx.history.current_description() if run == "history.undo"
            else ctx.history.next_description()
        )
        restored = ctx.undo() if run == "history.undo" else ctx.redo()
        if restored is None:
            raise SheetcoreError(
                "Nothing to undo" if run == "history.undo" else "Nothing to redo",
                code="ERR_HISTORY_EMPTY",
            )
        return {"description": description, **ctx.history.status().model_dump()}, True, True

    if run == "history.status":
        return ctx.history.status().model_dump(), True, False

    if run == "diff.compare":
        from sheetcore.diff.differ import diff_files

        if not args.get("file_b"):
            raise SheetcoreError("diff.compare needs 'file_b'", code="ERR_INVALID_ARGUMENT")
        result = diff_files(
            args.get("file_a") or ctx.path,
            args["file_b"],
            include_formulas=bool(args.get("include_formulas", False)),
        )
        return result, True, False

    raise SheetcoreError(f"Unknown step command: {run}", code="ERR_WORKFLOW_INVALID")


def execute_workflow(
    workflow: WorkflowSpec,
    table_path: str | Path,
    *,
    policy: Policy | None = None,
    emitter: EventEmitter | None = None,
) -> dict[str, Any]:
    """Execute a workflow against a table file. Returns combined results.

    Mutating steps share one in-memory table and history; the file is
    written once at the end unless ``defaults.dry_run`` is set, after a
    ``.bak`` copy when ``defaults.backup`` is.
    """
    emitter = emitter or EventEmitter()
    defaults = workflow.defaults
    writes = workflow.mutating and not defaults.dry_run
    history_limit = defaults.history_limit or (policy.history_limit if policy else MAX_HISTORY)

    results: list[dict[str, Any]] = []
    saved = False
    backup_path = None
    with TableLock(table_path) if writes else nullcontext():
        ctx = TableContext(table_path, sheet=workflow.target.sheet, history_limit=history_limit)
        mutated = False
        emitter.emit("workflow_start", {"workflow": workflow.name, "steps": len(workflow.steps)})

        for step in workflow.steps:
            step_result: dict[str, Any] = {"step_id": step.id, "run": step.run}
            if step.description:
                step_result["description"] = step.description
            emitter.emit("step_start", {"step_id": step.id, "run": step.run})
            try:
                result, ok, step_mutated = _run_step(ctx, step.run, step.args, policy)
                step_result["result"] = result
                step_result["ok"] = ok
                mutated = mutated or step_mutated
            except Exception as e:
                step_result["ok"] = False
                step_result["error"] = str(e)
                step_result["code"] = error_code_for(e)
            emitter.emit("step_end", {"step_id": step.id, "ok": step_result["ok"]})
            results.append(step_result)
            if not step_result["ok"] and defaults.stop_on_error:
                break

        if writes and mutated:
            if defaults.backup:
                backup_path = backup(ctx.path)
            ctx.save()
            saved = True

    all_ok = all(r.get("ok", False) for r in results) and len(results) == len(workflow.steps)
    emitter.emit("workflow_end", {"workflow": workflow.name, "ok": all_ok})
    return {
        "workflow": workflow.name,
        "steps_total": len(workflow.steps),
        "steps_run": len(results),
        "steps_passed": sum(1 for r in results if r.get("ok")),
        "ok": all_ok,
        "saved": saved,
        "backup_path": backup_path,
        "fingerprint": ctx.fp,
        "steps": results,
    }
