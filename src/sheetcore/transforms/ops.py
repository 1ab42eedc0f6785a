"""Named transform operations shared by the CLI, stdio server and workflows.

Arguments arrive as plain dicts (CLI options, JSON ``args``, YAML step
``args``).  Mutating operations return a ``TransformResult``; read-only
ones return JSON-ready data.
"""

from __future__ import annotations

from typing import Any, Callable

from sheetcore.contracts.common import TransformError
from sheetcore.contracts.table import Table
from sheetcore.transforms import analysis, basic, columns, text
from sheetcore.transforms.common import TransformResult

_MISSING = object()


def _arg(args: dict[str, Any], name: str, default: Any = _MISSING) -> Any:
    value = args.get(name)
    if value is None:
        if default is _MISSING:
            raise TransformError(f"Missing required argument '{name}'")
        return default
    return value


def _column_list(args: dict[str, Any], name: str = "columns") -> list[str | int] | None:
    value = args.get(name)
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return list(value)


# ---------------------------------------------------------------------------
# Mutating operations
# ---------------------------------------------------------------------------
def _sort(table: Table, args: dict[str, Any]) -> TransformResult:
    return basic.sort_data(table, _arg(args, "column"), _arg(args, "direction", "asc"))


def _filter(table: Table, args: dict[str, Any]) -> TransformResult:
    return basic.filter_data(
        table, _arg(args, "column"), _arg(args, "operator", "="), args.get("value")
    )


def _dedupe(table: Table, args: dict[str, Any]) -> TransformResult:
    return basic.remove_duplicates(table, _column_list(args))


def _remove_empty(table: Table, args: dict[str, Any]) -> TransformResult:
    return basic.remove_empty_rows(table)


def _find_replace(table: Table, args: dict[str, Any]) -> TransformResult:
    return text.find_replace(
        table,
        _arg(args, "find"),
        _arg(args, "replace", ""),
        match_case=bool(args.get("match_case", False)),
        match_whole_cell=bool(args.get("match_whole_cell", False)),
        use_regex=bool(args.get("use_regex", False)),
        columns=_column_list(args),
    )


def _trim(table: Table, args: dict[str, Any]) -> TransformResult:
    return text.trim_cells(table, _column_list(args))


def _case(table: Table, args: dict[str, Any]) -> TransformResult:
    return text.transform_text(table, _arg(args, "column"), _arg(args, "kind", "uppercase"))


def _fill_down(table: Table, args: dict[str, Any]) -> TransformResult:
    return text.fill_down(table, _arg(args, "column"), _arg(args, "fill_type", "value"))


def _split(table: Table, args: dict[str, Any]) -> TransformResult:
    max_parts = args.get("max_parts")
    return columns.split_column(
        table,
        _arg(args, "column"),
        _arg(args, "delimiter", ","),
        _column_list(args, "new_column_names"),
        int(max_parts) if max_parts is not None else None,
    )


def _merge(table: Table, args: dict[str, Any]) -> TransformResult:
    cols = _column_list(args)
    if not cols:
        raise TransformError("Missing required argument 'columns'")
    return columns.merge_columns(
        table, cols, _arg(args, "separator", " "), args.get("new_column_name")
    )


def _cleanse(table: Table, args: dict[str, Any]) -> TransformResult:
    return analysis.cleanse_data(table)


MUTATING_OPS: dict[str, Callable[[Table, dict[str, Any]], TransformResult]] = {
    "sort": _sort,
    "filter": _filter,
    "dedupe": _dedupe,
    "remove-empty": _remove_empty,
    "find-replace": _find_replace,
    "trim": _trim,
    "case": _case,
    "fill-down": _fill_down,
    "split": _split,
    "merge": _merge,
    "cleanse": _cleanse,
}


# ---------------------------------------------------------------------------
# Read-only operations
# ---------------------------------------------------------------------------
def _stats(table: Table, args: dict[str, Any]) -> Any:
    stats = analysis.calculate_statistics(table, _arg(args, "column"))
    return stats.model_dump(by_alias=True)


def _group_summary(table: Table, args: dict[str, Any]) -> Any:
    summary = analysis.create_group_summary(
        table, _arg(args, "group_by"), _arg(args, "aggregate"), _arg(args, "aggregation", "sum")
    )
    return {"headers": summary.headers, "rows": summary.rows}


def _find(table: Table, args: dict[str, Any]) -> Any:
    matches = analysis.find_cells(
        table,
        _arg(args, "search"),
        match_case=bool(args.get("match_case", False)),
        match_whole_cell=bool(args.get("match_whole_cell", False)),
        columns=_column_list(args),
    )
    return [m.model_dump() for m in matches]


def _analyze(table: Table, args: dict[str, Any]) -> Any:
    return analysis.analyze_data_for_cleansing(table).model_dump()


READ_OPS: dict[str, Callable[[Table, dict[str, Any]], Any]] = {
    "stats": _stats,
    "group-summary": _group_summary,
    "find": _find,
    "analyze": _analyze,
}

TRANSFORM_OPS: tuple[str, ...] = tuple(MUTATING_OPS) + tuple(READ_OPS)


def is_mutating(op: str) -> bool:
    return op in MUTATING_OPS


def run_transform(table: Table, op: str, args: dict[str, Any] | None = None) -> Any:
    """Run ``op``; a ``TransformResult`` for mutating ops, plain data otherwise."""
    args = args or {}
    handler = MUTATING_OPS.get(op) or READ_OPS.get(op)
    if handler is None:
        raise TransformError(
            f"Unknown transform '{op}'. Supported: {', '.join(TRANSFORM_OPS)}"
        )
    return handler(table, args)
