"""Typer CLI application: top-level commands and subcommand groups."""

from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path
from typing import Annotated, Any, Callable, Optional

import click
import orjson
import portalocker
import typer
import typer.core

import sheetcore
from sheetcore.contracts.common import (
    ErrorDetail,
    FingerprintConflictError,
    SheetcoreError,
    TableFormatError,
    Target,
)
from sheetcore.contracts.responses import ApplyResult
from sheetcore.engine.dispatcher import (
    error_code_for,
    error_envelope,
    exit_code_for,
    print_response,
    success_envelope,
    summarize_changes,
)
from sheetcore.engine.history import MAX_HISTORY
from sheetcore.engine.operations import Mutation
from sheetcore.io.fileops import TableLock, read_text_safe
from sheetcore.observe.events import EventEmitter, Timer, TraceRecorder
from sheetcore.validation.policy import Policy, PolicyViolationError


def _patch_typer_errors() -> None:
    """Patch TyperGroup.invoke to emit JSON envelopes for CLI usage errors."""
    _orig_invoke = typer.core.TyperGroup.invoke

    def _json_invoke(self, ctx):
        try:
            return _orig_invoke(self, ctx)
        except click.exceptions.UsageError as e:
            env = error_envelope("unknown", "ERR_USAGE", str(e.format_message()))
            print_response(env)
            raise SystemExit(exit_code_for(env)) from e

    typer.core.TyperGroup.invoke = _json_invoke


_patch_typer_errors()

# ---------------------------------------------------------------------------
# App & subcommand groups
# ---------------------------------------------------------------------------

_MAIN_HELP = """\
Agent-first CLI for interpreting and applying edit intents to tabular documents.

**Recommended workflow:**  inspect → interpret → validate → apply (dry-run) → apply

1. `sheetcore table inspect -f data.json`: headers, row count, formulas, issues, fingerprint
2. `sheetcore intent interpret -f data.json --intent '{"type":"SORT_DATA","params":{"column":"Age"}}'`
3. `sheetcore validate intent -f data.json --intent-file edit.json`
4. `sheetcore intent apply -f data.json --intent-file edit.json --dry-run`
5. `sheetcore intent apply -f data.json --intent-file edit.json --backup`
6. `sheetcore history undo -f data.json`: revert the last applied edit

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "changes": [...], "errors": [...], "metrics": {"duration_ms": N}}`

**Tables** are JSON documents (`headers`, `rows`, `formulas`, `cellStyles`) or `.xlsx` sheets
whose first row is the header.

**Exit codes:** 0=success, 10=validation, 20=protection, 30=formula, 40=conflict, 50=io, 70=unsupported, 90=internal
"""

_TABLE_EPILOG = """\
**Examples:**

`sheetcore table inspect -f data.json`

`sheetcore table import --xlsx sales.xlsx --out sales.json --sheet Q1`

`sheetcore table export -f sales.json --xlsx sales.xlsx`

`sheetcore table lock-status -f data.json`: check if another process holds the lock
"""

_INTENT_EPILOG = """\
**Examples:**

`sheetcore intent interpret -f data.json --intent '{"type":"EDIT_CELL","target":{"ref":"B3"},"params":{"value":42}}'`

`sheetcore intent apply -f data.json --intent-file fill.json --dry-run`

Cell refs count data rows from 1 (`A1` is the first row under the header).
Row refs (`EDIT_ROW`, `DELETE_ROW`) use sheet numbering: row `2` is the first data row.
"""

_TRANSFORM_HELP = """\
Run a bulk transform. Mutating: sort, filter, dedupe, remove-empty, find-replace, trim,
case, fill-down, split, merge, cleanse. Read-only: stats, group-summary, find, analyze.

Example: `sheetcore transform sort -f data.json --column Age --direction desc`

Example: `sheetcore transform group-summary -f data.json --group-by Region --aggregate Sales --aggregation avg`
"""

_FORMULA_EPILOG = """\
**Examples:**

`sheetcore formula rewrite --formula "=A2+B2" --shift 3`

`sheetcore formula rewrite --formula "=SUM(A2:A10)" --deleted-rows 3,5`

`sheetcore formula lint -f data.json --severity error`
"""

app = typer.Typer(
    name="sheetcore",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)

table_app = typer.Typer(
    name="table", help="Inspect, import, export and validate table documents.",
    epilog=_TABLE_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
intent_app = typer.Typer(
    name="intent", help="Interpret and apply edit intents.",
    epilog=_INTENT_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
history_app = typer.Typer(
    name="history", help="Undo/redo history kept beside the table file.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
formula_app = typer.Typer(
    name="formula", help="Rewrite and lint formula references.",
    epilog=_FORMULA_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
validate_app = typer.Typer(
    name="validate", help="Validate intents, tables and workflows.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
diff_app = typer.Typer(
    name="diff", help="Compare two table files cell by cell.",
    rich_markup_mode="markdown",
)

app.add_typer(table_app)
app.add_typer(intent_app)
app.add_typer(history_app)
app.add_typer(formula_app)
app.add_typer(validate_app)
app.add_typer(diff_app)


class _State:
    """Process-wide options set by the root callback."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.events = EventEmitter()
        self.trace: TraceRecorder | None = None
        self.trace_path: str | None = None
        self.policy_path: str | None = None


_state = _State()


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
    events: Annotated[
        bool, typer.Option("--events", help="Emit NDJSON lifecycle events to stderr.")
    ] = False,
    trace: Annotated[
        Optional[str], typer.Option("--trace", help="Write a JSON trace of this command to a file.")
    ] = None,
    policy: Annotated[
        Optional[str], typer.Option("--policy", help="Policy file (default: sheetcore-policy.yaml next to the table).")
    ] = None,
) -> None:
    if version:
        typer.echo(sheetcore.__version__)
        raise typer.Exit()
    _state.reset()
    _state.events.enabled = events
    _state.policy_path = policy
    if trace:
        _state.trace = TraceRecorder()
        _state.trace_path = trace
        _state.trace.record("command", {"command": ctx.invoked_subcommand})
    _state.events.emit("command_start", {"command": ctx.invoked_subcommand})


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Path to a table document (.json) or workbook (.xlsx)")]
JsonFlag = Annotated[bool, typer.Option("--json", help="JSON output (always on; all output is JSON)")]
SheetOpt = Annotated[Optional[str], typer.Option("--sheet", "-s", help="Worksheet name for .xlsx tables (default: active sheet)")]
IntentOpt = Annotated[Optional[str], typer.Option("--intent", help="Inline intent JSON object")]
IntentFileOpt = Annotated[Optional[str], typer.Option("--intent-file", help="Path to a JSON file holding the intent")]
DryRunOpt = Annotated[bool, typer.Option("--dry-run", help="Preview changes without writing to disk")]
BackupOpt = Annotated[bool, typer.Option("--backup/--no-backup", help="Create a timestamped .bak copy before writing")]
ExpectFpOpt = Annotated[Optional[str], typer.Option("--expect-fingerprint", help="Fail with exit 40 unless the file still has this fingerprint")]

_HANDLED = (ValueError, OSError, TableFormatError, portalocker.LockException)

_LOCK_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _emit(envelope, code=None):
    _state.events.emit("command_end", {
        "command": envelope.command,
        "ok": envelope.ok,
        "duration_ms": envelope.metrics.duration_ms,
    })
    if _state.trace is not None and _state.trace_path:
        _state.trace.record("response", {
            "command": envelope.command,
            "ok": envelope.ok,
            "errors": [e.code for e in envelope.errors],
        })
        _state.trace.save(_state.trace_path)
    print_response(envelope)
    raise typer.Exit(code if code is not None else exit_code_for(envelope))


def _error_details(exc: BaseException) -> dict[str, Any] | None:
    if isinstance(exc, PolicyViolationError):
        return {"violations": exc.violations}
    if isinstance(exc, FingerprintConflictError):
        return {"expected": exc.expected, "actual": exc.actual}
    issues = getattr(exc, "details", None)
    if isinstance(issues, list):
        return {"issues": issues}
    return None


def _fail(command: str, exc: BaseException, target: Target | None = None) -> None:
    env = error_envelope(
        command, error_code_for(exc), str(exc), target=target, details=_error_details(exc),
    )
    _emit(env)


def _policy_for(file: str | None) -> Policy | None:
    policy = Policy.discover(file, _state.policy_path)
    if policy is not None and policy.events:
        _state.events.enabled = True
    return policy


def _load_ctx(file: str, *, sheet: str | None = None, policy: Policy | None = None):
    from sheetcore.engine.context import TableContext

    limit = policy.history_limit if policy else MAX_HISTORY
    return TableContext(file, sheet=sheet, history_limit=limit)


def _read_intent(intent: str | None, intent_file: str | None) -> Any:
    if bool(intent) == bool(intent_file):
        raise SheetcoreError(
            "Provide exactly one of --intent or --intent-file", code="ERR_INVALID_ARGUMENT"
        )
    text = intent if intent else read_text_safe(intent_file)
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise SheetcoreError(f"Cannot parse intent JSON: {e}", code="ERR_INTENT_INVALID") from e


def _mutate(
    command: str,
    file: str,
    sheet: str | None,
    plan: Callable[[Any, Policy | None], Mutation],
    *,
    dry_run: bool,
    do_backup: bool,
    expect_fingerprint: str | None,
) -> None:
    """Load, plan, check and (unless dry-run) commit and save one mutation."""
    from sheetcore.io.fileops import backup as make_backup

    target = Target(file=file)
    with Timer() as t:
        try:
            policy = _policy_for(file)
            with nullcontext() if dry_run else TableLock(file, timeout=_LOCK_TIMEOUT):
                ctx = _load_ctx(file, sheet=sheet, policy=policy)
                fp_before = ctx.fp
                if expect_fingerprint and expect_fingerprint != fp_before:
                    raise FingerprintConflictError(expect_fingerprint, fp_before)
                mutation = plan(ctx, policy)
                backup_path = fp_after = index = None
                if mutation.changes and not dry_run:
                    if do_backup:
                        backup_path = make_backup(ctx.path)
                    index = ctx.commit(mutation.table, mutation.description)
                    fp_after = ctx.save()
        except _HANDLED as e:
            _fail(command, e, target)
            return

    if _state.trace is not None:
        _state.trace.record("changes", {"count": len(mutation.changes), "description": mutation.description})
    result = ApplyResult(
        applied=bool(mutation.changes) and not dry_run,
        dry_run=dry_run,
        description=mutation.description,
        backup_path=backup_path,
        changes_applied=len(mutation.changes),
        fingerprint_before=fp_before,
        fingerprint_after=fp_after,
        history_index=index,
    ).model_dump()
    if dry_run:
        result["dry_run_summary"] = summarize_changes(mutation.changes, ctx.table.headers).model_dump()

    env = success_envelope(
        command, result, target=target, changes=mutation.changes, duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore version
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print the sheetcore CLI version.

    Example: `sheetcore version`
    """
    env = success_envelope("version", {"version": sheetcore.__version__})
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore table ...
# ---------------------------------------------------------------------------
@table_app.command("inspect")
def table_inspect(
    file: FilePath,
    sheet: SheetOpt = None,
    json_out: JsonFlag = True,
):
    """Inspect a table: headers, row/column counts, formulas, issues, fingerprint.

    Start here when working with an unfamiliar table. The fingerprint can be
    passed back as `--expect-fingerprint` to detect concurrent edits.

    Example: `sheetcore table inspect -f data.json`
    """
    with Timer() as t:
        try:
            ctx = _load_ctx(file, sheet=sheet)
            summary = ctx.summary()
        except _HANDLED as e:
            _fail("table.inspect", e, Target(file=file))
            return

    env = success_envelope(
        "table.inspect", summary.model_dump(), target=ctx.target(), duration_ms=t.elapsed_ms,
    )
    _emit(env)


@table_app.command("import")
def table_import(
    xlsx: Annotated[str, typer.Option("--xlsx", help="Source workbook (.xlsx/.xlsm)")],
    out: Annotated[str, typer.Option("--out", help="Destination table document (.json)")],
    sheet: SheetOpt = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing destination")] = False,
    json_out: JsonFlag = True,
):
    """Import a worksheet into a JSON table document.

    The first row becomes the header row; formula cells are kept in `formulas`.

    Example: `sheetcore table import --xlsx sales.xlsx --out sales.json --sheet Q1`
    """
    from sheetcore.io.fileops import fingerprint_bytes
    from sheetcore.io.tables import read_xlsx, save_table

    with Timer() as t:
        try:
            if Path(out).exists() and not force:
                raise FileExistsError(f"Destination exists: {out} (pass --force to overwrite)")
            table = read_xlsx(xlsx, sheet=sheet)
            data = save_table(table, out)
        except _HANDLED as e:
            _fail("table.import", e, Target(file=out))
            return

    result = {
        "source": xlsx,
        "path": out,
        "headers": table.headers,
        "row_count": table.row_count,
        "formula_count": len(table.formulas),
        "fingerprint": fingerprint_bytes(data),
    }
    env = success_envelope("table.import", result, target=Target(file=out), duration_ms=t.elapsed_ms)
    _emit(env)


@table_app.command("export")
def table_export(
    file: FilePath,
    xlsx: Annotated[str, typer.Option("--xlsx", help="Destination workbook (.xlsx)")],
    sheet_name: Annotated[str, typer.Option("--sheet-name", help="Worksheet title in the new workbook")] = "Sheet1",
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing destination")] = False,
    json_out: JsonFlag = True,
):
    """Export a table document to a single-sheet workbook.

    Example: `sheetcore table export -f sales.json --xlsx sales.xlsx`
    """
    from sheetcore.io.fileops import fingerprint_bytes
    from sheetcore.io.tables import is_workbook, load_table, save_table

    with Timer() as t:
        try:
            if not is_workbook(xlsx):
                raise SheetcoreError(f"Destination must be .xlsx or .xlsm: {xlsx}", code="ERR_INVALID_ARGUMENT")
            if Path(xlsx).exists() and not force:
                raise FileExistsError(f"Destination exists: {xlsx} (pass --force to overwrite)")
            table = load_table(file)
            data = save_table(table, xlsx, sheet=sheet_name)
        except _HANDLED as e:
            _fail("table.export", e, Target(file=file))
            return

    result = {"path": xlsx, "sheet": sheet_name, "row_count": table.row_count, "fingerprint": fingerprint_bytes(data)}
    env = success_envelope("table.export", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


@table_app.command("lock-status")
def table_lock_status(
    file: FilePath,
    json_out: JsonFlag = True,
):
    """Check if a table file is locked by another process.

    Example: `sheetcore table lock-status -f data.json`
    """
    from sheetcore.io.fileops import check_lock

    with Timer() as t:
        result = check_lock(file)

    env = success_envelope("table.lock_status", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore intent ...
# ---------------------------------------------------------------------------
@intent_app.command("interpret")
def intent_interpret(
    file: FilePath,
    intent: IntentOpt = None,
    intent_file: IntentFileOpt = None,
    sheet: SheetOpt = None,
    json_out: JsonFlag = True,
):
    """Translate an intent into atomic changes without applying them.

    Returns the ordered change list in `changes` and a per-type/per-column
    summary in `result`. Intents that cannot be interpreted yield no changes.

    Example: `sheetcore intent interpret -f data.json --intent '{"type":"FILL_DOWN","target":{"ref":"C"}}'`
    """
    from sheetcore.contracts.intents import parse_intent
    from sheetcore.engine.interpreter import generate_changes

    target = Target(file=file)
    with Timer() as t:
        try:
            parsed = parse_intent(_read_intent(intent, intent_file))
            ctx = _load_ctx(file, sheet=sheet)
            changes = generate_changes(ctx.table, parsed)
        except _HANDLED as e:
            _fail("intent.interpret", e, target)
            return

    result = {
        "intent_type": parsed.type,
        "description": parsed.description,
        "summary": summarize_changes(changes, ctx.table.headers).model_dump(),
    }
    env = success_envelope("intent.interpret", result, target=target, changes=changes, duration_ms=t.elapsed_ms)
    _emit(env)


@intent_app.command("apply")
def intent_apply(
    file: FilePath,
    intent: IntentOpt = None,
    intent_file: IntentFileOpt = None,
    sheet: SheetOpt = None,
    dry_run: DryRunOpt = False,
    do_backup: BackupOpt = False,
    expect_fingerprint: ExpectFpOpt = None,
    json_out: JsonFlag = True,
):
    """Interpret an intent and apply it. Mutating.

    The edit is recorded in the undo history (`<file>.history.json`) and
    checked against the policy file when one is present.

    Example (preview): `sheetcore intent apply -f data.json --intent-file edit.json --dry-run`

    Example (apply): `sheetcore intent apply -f data.json --intent-file edit.json --backup`

    See also: `sheetcore history undo` to revert.
    """
    from sheetcore.engine.operations import intent_mutation

    try:
        data = _read_intent(intent, intent_file)
    except _HANDLED as e:
        _fail("intent.apply", e, Target(file=file))
        return

    _mutate(
        "intent.apply", file, sheet,
        lambda ctx, policy: intent_mutation(ctx.table, data, policy=policy),
        dry_run=dry_run, do_backup=do_backup, expect_fingerprint=expect_fingerprint,
    )


# ---------------------------------------------------------------------------
# sheetcore transform <op>
# ---------------------------------------------------------------------------
@app.command("transform", help=_TRANSFORM_HELP)
def transform_cmd(
    op: Annotated[str, typer.Argument(help="Transform name, e.g. sort, filter, dedupe, stats")],
    file: FilePath,
    column: Annotated[Optional[str], typer.Option("--column", "-c", help="Column header, letter or index")] = None,
    columns: Annotated[Optional[str], typer.Option("--columns", help="Comma-separated columns (default: all)")] = None,
    direction: Annotated[Optional[str], typer.Option("--direction", help="sort: asc or desc")] = None,
    operator: Annotated[Optional[str], typer.Option("--operator", help="filter: =, !=, >, <, >=, <=, contains, empty, ...")] = None,
    value: Annotated[Optional[str], typer.Option("--value", help="filter: value to compare with")] = None,
    find: Annotated[Optional[str], typer.Option("--find", help="find-replace: text or pattern to find")] = None,
    replace: Annotated[Optional[str], typer.Option("--replace", help="find-replace: replacement text")] = None,
    match_case: Annotated[bool, typer.Option("--match-case", help="Case-sensitive matching")] = False,
    whole_cell: Annotated[bool, typer.Option("--whole-cell", help="Match the entire cell only")] = False,
    regex: Annotated[bool, typer.Option("--regex", help="find-replace: treat --find as a regular expression")] = False,
    kind: Annotated[Optional[str], typer.Option("--kind", help="case: uppercase, lowercase, titlecase")] = None,
    fill_type: Annotated[Optional[str], typer.Option("--fill-type", help="fill-down: value or formula")] = None,
    delimiter: Annotated[Optional[str], typer.Option("--delimiter", help="split: delimiter (default ',')")] = None,
    names: Annotated[Optional[str], typer.Option("--names", help="split: comma-separated names for the new columns")] = None,
    max_parts: Annotated[Optional[int], typer.Option("--max-parts", help="split: maximum number of parts")] = None,
    separator: Annotated[Optional[str], typer.Option("--separator", help="merge: separator (default ' ')")] = None,
    new_name: Annotated[Optional[str], typer.Option("--new-name", help="merge: name of the merged column")] = None,
    group_by: Annotated[Optional[str], typer.Option("--group-by", help="group-summary: grouping column")] = None,
    aggregate: Annotated[Optional[str], typer.Option("--aggregate", help="group-summary: column to aggregate")] = None,
    aggregation: Annotated[Optional[str], typer.Option("--aggregation", help="group-summary: sum, avg, count, min, max")] = None,
    search: Annotated[Optional[str], typer.Option("--search", help="find: text to search for")] = None,
    args_json: Annotated[Optional[str], typer.Option("--args", help="Extra arguments as a JSON object")] = None,
    sheet: SheetOpt = None,
    dry_run: DryRunOpt = False,
    do_backup: BackupOpt = False,
    expect_fingerprint: ExpectFpOpt = None,
    json_out: JsonFlag = True,
):
    from sheetcore.transforms.ops import is_mutating, run_transform

    command = f"transform.{op}"
    target = Target(file=file, column=column)
    try:
        args: dict[str, Any] = orjson.loads(args_json) if args_json else {}
        if not isinstance(args, dict):
            raise SheetcoreError("--args must be a JSON object", code="ERR_INVALID_ARGUMENT")
    except orjson.JSONDecodeError as e:
        _fail(command, SheetcoreError(f"Cannot parse --args: {e}", code="ERR_INVALID_ARGUMENT"), target)
        return
    except SheetcoreError as e:
        _fail(command, e, target)
        return

    options = {
        "column": column, "columns": columns, "direction": direction,
        "operator": operator, "value": value, "find": find, "replace": replace,
        "kind": kind, "fill_type": fill_type, "delimiter": delimiter,
        "new_column_names": names, "max_parts": max_parts, "separator": separator,
        "new_column_name": new_name, "group_by": group_by, "aggregate": aggregate,
        "aggregation": aggregation, "search": search,
    }
    args.update({k: v for k, v in options.items() if v is not None})
    for flag, on in (("match_case", match_case), ("match_whole_cell", whole_cell), ("use_regex", regex)):
        if on:
            args[flag] = True

    if is_mutating(op):
        from sheetcore.engine.operations import transform_mutation

        _mutate(
            command, file, sheet,
            lambda ctx, policy: transform_mutation(ctx.table, op, args, policy=policy),
            dry_run=dry_run, do_backup=do_backup, expect_fingerprint=expect_fingerprint,
        )
        return

    with Timer() as t:
        try:
            ctx = _load_ctx(file, sheet=sheet)
            result = run_transform(ctx.table, op, args)
        except _HANDLED as e:
            _fail(command, e, target)
            return

    env = success_envelope(command, result, target=target, duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore history ...
# ---------------------------------------------------------------------------
@history_app.command("status")
def history_status(
    file: FilePath,
    json_out: JsonFlag = True,
):
    """Show the undo/redo position and the descriptions of the adjacent edits.

    Example: `sheetcore history status -f data.json`
    """
    with Timer() as t:
        try:
            ctx = _load_ctx(file, policy=_policy_for(file))
            status = ctx.history.status()
        except _HANDLED as e:
            _fail("history.status", e, Target(file=file))
            return

    env = success_envelope("history.status", status.model_dump(), target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


def _history_move(command: str, file: str, *, undo: bool) -> None:
    target = Target(file=file)
    with Timer() as t:
        try:
            policy = _policy_for(file)
            with TableLock(file, timeout=_LOCK_TIMEOUT):
                ctx = _load_ctx(file, policy=policy)
                description = (
                    ctx.history.current_description() if undo else ctx.history.next_description()
                )
                restored = ctx.undo() if undo else ctx.redo()
                if restored is None:
                    raise SheetcoreError(
                        "Nothing to undo" if undo else "Nothing to redo", code="ERR_HISTORY_EMPTY",
                    )
                fp_after = ctx.save()
        except _HANDLED as e:
            _fail(command, e, target)
            return

    result = {"description": description, "fingerprint_after": fp_after, **ctx.history.status().model_dump()}
    env = success_envelope(command, result, target=target, duration_ms=t.elapsed_ms)
    _emit(env)


@history_app.command("undo")
def history_undo(
    file: FilePath,
    json_out: JsonFlag = True,
):
    """Revert the most recent applied edit. Mutating.

    Example: `sheetcore history undo -f data.json`
    """
    _history_move("history.undo", file, undo=True)


@history_app.command("redo")
def history_redo(
    file: FilePath,
    json_out: JsonFlag = True,
):
    """Re-apply the most recently undone edit. Mutating.

    Example: `sheetcore history redo -f data.json`
    """
    _history_move("history.redo", file, undo=False)


# ---------------------------------------------------------------------------
# sheetcore formula ...
# ---------------------------------------------------------------------------
@formula_app.command("rewrite")
def formula_rewrite(
    formula: Annotated[str, typer.Option("--formula", help="Formula text, e.g. '=A2*B2'")],
    shift: Annotated[Optional[int], typer.Option("--shift", help="Add N to every relative row number")] = None,
    only_row: Annotated[Optional[int], typer.Option("--only-row", help="With --shift, move only refs to this sheet row")] = None,
    deleted_rows: Annotated[Optional[str], typer.Option("--deleted-rows", help="Comma-separated sheet rows that were deleted")] = None,
    json_out: JsonFlag = True,
):
    """Rewrite the row references of a formula. No file needed.

    `--shift` moves relative rows (fill-down semantics with `--only-row`);
    `--deleted-rows` re-points references after rows were removed, turning
    references to removed rows into `#REF!`.

    Example: `sheetcore formula rewrite --formula "=SUM(B2:B9)" --deleted-rows 4`
    """
    from sheetcore.engine.formulas import has_broken_ref, rewrite_after_row_delete, shift_rows

    with Timer() as t:
        try:
            if (shift is None) == (deleted_rows is None):
                raise SheetcoreError(
                    "Provide exactly one of --shift or --deleted-rows", code="ERR_INVALID_ARGUMENT"
                )
            if shift is not None:
                rewritten = shift_rows(formula, shift, only_row=only_row)
            else:
                rows = [int(r) for r in deleted_rows.split(",") if r.strip()]
                rewritten = rewrite_after_row_delete(formula, rows)
        except _HANDLED as e:
            _fail("formula.rewrite", e)
            return

    result = {"formula": formula, "rewritten": rewritten, "broken": has_broken_ref(rewritten)}
    env = success_envelope("formula.rewrite", result, duration_ms=t.elapsed_ms)
    _emit(env)


@formula_app.command("lint")
def formula_lint_cmd(
    file: FilePath,
    sheet: SheetOpt = None,
    severity: Annotated[Optional[str], typer.Option("--severity", help="Minimum severity filter: warning or error")] = None,
    category: Annotated[Optional[str], typer.Option("--category", help="Comma-separated category filter (e.g. 'volatile_function,broken_ref')")] = None,
    summary: Annotated[bool, typer.Option("--summary", help="Return grouped counts instead of individual findings")] = False,
    json_out: JsonFlag = True,
):
    """Lint formulas for broken refs, volatile functions, out-of-table and self references.

    Example: `sheetcore formula lint -f data.json`

    Example: `sheetcore formula lint -f data.json --category broken_ref --summary`
    """
    from sheetcore.validation.validators import lint_formulas

    with Timer() as t:
        try:
            ctx = _load_ctx(file, sheet=sheet)
            findings = lint_formulas(ctx.table)
        except _HANDLED as e:
            _fail("formula.lint", e, Target(file=file))
            return

    severity_rank = {"info": 0, "warning": 1, "error": 2}
    if severity:
        min_rank = severity_rank.get(severity, 0)
        findings = [f for f in findings if severity_rank.get(f.get("severity", "info"), 0) >= min_rank]

    if category:
        cats = {c.strip() for c in category.split(",") if c.strip()}
        findings = [f for f in findings if f.get("category") in cats]

    by_category: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    for f in findings:
        by_category[f["category"]] = by_category.get(f["category"], 0) + 1
        by_severity[f["severity"]] = by_severity.get(f["severity"], 0) + 1

    summary_data = {"total": len(findings), "by_category": by_category, "by_severity": by_severity}
    result = {"findings": [] if summary else findings, "count": len(findings), "summary": summary_data}
    env = success_envelope("formula.lint", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore validate ...
# ---------------------------------------------------------------------------
def _validation_envelope(command: str, result, target: Target, duration_ms: int, message: str):
    env = success_envelope(command, result.model_dump(), target=target, duration_ms=duration_ms)
    if not result.valid:
        failed_checks = [c for c in result.checks if not c.get("passed", True)]
        code = "ERR_VALIDATION_FAILED"
        if any(c.get("type") == "policy" for c in failed_checks):
            code = "ERR_POLICY_PROTECTED"
        env.ok = False
        env.errors = [ErrorDetail(code=code, message=message, details={"checks": failed_checks})]
    return env


@validate_app.command("intent")
def validate_intent_cmd(
    file: FilePath,
    intent: IntentOpt = None,
    intent_file: IntentFileOpt = None,
    sheet: SheetOpt = None,
    json_out: JsonFlag = True,
):
    """Check an intent: schema, whether it resolves to changes, and policy.

    Example: `sheetcore validate intent -f data.json --intent-file edit.json`

    See also: `sheetcore intent apply --dry-run` for a preview of the changes.
    """
    from sheetcore.validation.validators import validate_intent

    target = Target(file=file)
    with Timer() as t:
        try:
            data = _read_intent(intent, intent_file)
            policy = _policy_for(file)
            ctx = _load_ctx(file, sheet=sheet, policy=policy)
            result = validate_intent(ctx.table, data, policy=policy)
        except _HANDLED as e:
            _fail("validate.intent", e, target)
            return

    _emit(_validation_envelope("validate.intent", result, target, t.elapsed_ms, "Intent validation failed"))


@validate_app.command("table")
def validate_table_cmd(
    file: FilePath,
    sheet: SheetOpt = None,
    json_out: JsonFlag = True,
):
    """Validate table health: broken formulas, ragged rows, duplicate or empty headers.

    Example: `sheetcore validate table -f data.json`
    """
    from sheetcore.validation.validators import validate_table

    target = Target(file=file)
    with Timer() as t:
        try:
            ctx = _load_ctx(file, sheet=sheet)
            result = validate_table(ctx.table)
        except _HANDLED as e:
            _fail("validate.table", e, target)
            return

    _emit(_validation_envelope("validate.table", result, target, t.elapsed_ms, "Table validation failed"))


@validate_app.command("workflow")
def validate_workflow_cmd(
    workflow_file: Annotated[str, typer.Option("--workflow", "-w", help="Path to YAML workflow file to validate")],
    json_out: JsonFlag = True,
):
    """Validate a workflow YAML file: no table required.

    Checks YAML syntax, top-level keys, step IDs and step commands.

    Example: `sheetcore validate workflow -w pipeline.yaml`

    See also: `sheetcore run` to execute a workflow.
    """
    from sheetcore.engine.workflow import validate_workflow

    with Timer() as t:
        result = validate_workflow(workflow_file)

    env = success_envelope("validate.workflow", result, duration_ms=t.elapsed_ms)
    if not result.get("valid", True):
        env.ok = False
        failed = [c for c in result.get("checks", []) if not c.get("passed")]
        env.errors = [
            ErrorDetail(
                code="ERR_WORKFLOW_INVALID",
                message="Workflow validation failed",
                details={"checks": failed},
            )
        ]
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore diff compare
# ---------------------------------------------------------------------------
@diff_app.command("compare")
def diff_compare_cmd(
    file_a: Annotated[str, typer.Option("--file-a", help="First (original/before) table path")],
    file_b: Annotated[str, typer.Option("--file-b", help="Second (modified/after) table path")],
    sheet: SheetOpt = None,
    include_formulas: Annotated[bool, typer.Option("--include-formulas", help="Include formula text changes")] = False,
    json_out: JsonFlag = True,
):
    """Compare two table files cell by cell.

    Returns header additions/removals, cell-level value changes and a
    fingerprint comparison. JSON and workbook tables can be mixed.

    Example: `sheetcore diff compare --file-a before.json --file-b after.json --include-formulas`
    """
    from sheetcore.diff.differ import diff_files

    with Timer() as t:
        try:
            result = diff_files(file_a, file_b, sheet=sheet, include_formulas=include_formulas)
        except _HANDLED as e:
            _fail("diff.compare", e)
            return

    env = success_envelope("diff.compare", result, duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore run
# ---------------------------------------------------------------------------
@app.command("run")
def run_cmd(
    workflow_file: Annotated[str, typer.Option("--workflow", "-w", help="Path to YAML workflow file defining steps to execute")],
    file: Annotated[Optional[str], typer.Option("--file", "-f", help="Override the target table (instead of workflow's target.file)")] = None,
    json_out: JsonFlag = True,
):
    """Execute a multi-step YAML workflow.

    Steps share one in-memory table and history; the file is written once
    at the end (never with `defaults.dry_run: true`).

    Step commands: table.inspect, table.validate, formula.lint, intent.apply,
    validate.intent, transform.<op>, history.undo, history.redo, history.status,
    diff.compare

    Example YAML workflow::

        schema_version: "1.0"
        name: tidy
        target: { file: data.json }
        steps:
          - { id: clean, run: transform.cleanse }
          - { id: sort, run: transform.sort, args: { column: Name } }
          - { id: total, run: intent.apply, args: { intent: { type: STATISTICS, target: { ref: C } } } }

    Example: `sheetcore run --workflow tidy.yaml -f data.json`
    """
    from sheetcore.engine.workflow import WorkflowValidationError, execute_workflow, load_workflow

    with Timer() as t:
        try:
            workflow = load_workflow(workflow_file)
        except WorkflowValidationError as e:
            _fail("run", e)
            return
        except OSError as e:
            env = error_envelope("run", "ERR_WORKFLOW_INVALID", f"Cannot read workflow: {e}")
            _emit(env)
            return

        table_path = file or workflow.target.file
        if not table_path:
            env = error_envelope("run", "ERR_INVALID_ARGUMENT", "Provide --file or set target.file in workflow")
            _emit(env)
            return

        try:
            result = execute_workflow(
                workflow, table_path, policy=_policy_for(table_path), emitter=_state.events,
            )
        except _HANDLED as e:
            _fail("run", e, Target(file=table_path))
            return

    env = success_envelope("run", result, target=Target(file=table_path), duration_ms=t.elapsed_ms)
    if not result.get("ok"):
        env.ok = False
        for step in result.get("steps", []):
            if not step.get("ok"):
                env.errors.append(ErrorDetail(
                    code="ERR_WORKFLOW_STEP_FAILED",
                    message=f"Step '{step['step_id']}' ({step['run']}): {step.get('error', 'failed')}",
                    details={"code": step.get("code")} if step.get("code") else None,
                ))
        if not env.errors:
            env.errors.append(ErrorDetail(
                code="ERR_WORKFLOW_STEP_FAILED", message="Workflow stopped before all steps ran",
            ))
    _emit(env)


# ---------------------------------------------------------------------------
# sheetcore serve --stdio
# ---------------------------------------------------------------------------
@app.command("serve")
def serve_cmd(
    stdio: Annotated[bool, typer.Option("--stdio", help="Use stdin/stdout for JSON request/response (for agent tool integration)")] = True,
):
    """Start the stdio server for agent tool integration.

    Reads JSON commands from stdin and writes JSON responses to stdout.
    Each line is a JSON object: `{"id": "1", "command": "intent.apply", "args": {"file": "data.json", "intent": {...}}}`

    Example: `sheetcore serve --stdio`
    """
    from sheetcore.server.stdio import StdioServer

    server = StdioServer()
    server.run()


# ---------------------------------------------------------------------------
# Entrypoint (for `python -m sheetcore`)
# ---------------------------------------------------------------------------
def main() -> None:
    try:
        app()
    except SystemExit:
        raise
    except Exception as exc:
        # Machine consumers never see raw tracebacks.
        env = error_envelope("unknown", "ERR_INTERNAL", str(exc))
        print_response(env)
        raise SystemExit(90) from exc


if __name__ == "__main__":
    main()
