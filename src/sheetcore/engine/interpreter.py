"""Action interpreter: turn an edit intent into atomic changes.

``generate_changes`` never raises for a bad intent.  Unknown kinds,
malformed params and unresolvable references all yield ``[]``, so callers
can treat "nothing to do" and "could not understand" alike.  Table-level
kinds (sort, filter, split, ...) are resolved through
``sheetcore.transforms`` and report the changes the transform made.
"""

from __future__ import annotations

import re
from typing import Any, Callable, List, Optional, Sequence

from sheetcore.contracts import intents as it
from sheetcore.contracts.intents import IntentTarget, parse_intent
from sheetcore.contracts.table import CellValue, Change, ChangeType, Table
from sheetcore.engine.applier import NO_CHANGES, ApplyOutcome, apply_changes, row_delete_changes
from sheetcore.engine.formulas import is_formula
from sheetcore.engine.generators import (
    generator_for_header,
    generator_for_pattern,
    parse_fill_target,
)
from sheetcore.engine.refs import (
    CellAddress,
    cell_ref,
    cell_target_rows,
    column_letter,
    data_row,
    excel_row,
    parse_cell_ref,
    parse_range,
    parse_row_refs,
    resolve_column,
)
from sheetcore.transforms import analysis, basic, columns, text
from sheetcore.transforms.common import TransformResult

STAT_FUNCTIONS = {
    "sum": "SUM",
    "avg": "AVERAGE",
    "average": "AVERAGE",
    "count": "COUNT",
    "min": "MIN",
    "max": "MAX",
}


# ---------------------------------------------------------------------------
# Target helpers
# ---------------------------------------------------------------------------
def match_header(headers: Sequence[str], key: str) -> int | None:
    """Header lookup: exact, then case-insensitive, then substring either way.

    The first header in column order wins at every stage.
    """
    for i, header in enumerate(headers):
        if header == key:
            return i
    folded = key.strip().casefold()
    if not folded:
        return None
    for i, header in enumerate(headers):
        if str(header).casefold() == folded:
            return i
    for i, header in enumerate(headers):
        h = str(header).casefold()
        if h and (folded in h or h in folded):
            return i
    return None


def _cell_address(target: IntentTarget | None) -> CellAddress | None:
    if target is None:
        return None
    if target.row is not None and target.col is not None:
        if target.row < 0 or target.col < 0:
            return None
        return CellAddress(target.row, target.col)
    if target.ref:
        return parse_cell_ref(target.ref)
    return None


def _target_column(table: Table, target: IntentTarget | None) -> int | None:
    """Column addressed by a letter, cell, range or header name."""
    if target is None:
        return None
    if target.ref:
        return resolve_column(table.headers, target.ref, a1_first=True)
    if target.col is not None:
        return resolve_column(table.headers, target.col)
    return None


def _target_cells(table: Table, target: IntentTarget | None) -> list[CellAddress]:
    """Cells covered by a cell, range or whole-column target (cell convention)."""
    addr = _cell_address(target)
    if addr is not None:
        return [addr]
    if target is None or not target.ref:
        return []
    bounds = parse_range(target.ref)
    if bounds is None:
        col = resolve_column(table.headers, target.ref)
        if col is None:
            return []
        return [CellAddress(r, col) for r in range(len(table.rows))]
    if bounds.rows_only:
        return []
    if bounds.whole_column:
        rows: range = range(len(table.rows))
    else:
        rows = cell_target_rows(bounds)
    return [
        CellAddress(r, c)
        for r in rows
        for c in range(bounds.first_col, bounds.last_col + 1)
    ]


def _update(table: Table, row: int, col: int, value: CellValue, **extra) -> Change:
    return Change(row=row, col=col, old_value=table.cell(row, col), new_value=value, **extra)


def _columns(table: Table, tokens: Sequence[str | int] | None) -> list[int]:
    """Resolve a column list, silently dropping entries that do not resolve."""
    cols: list[int] = []
    for token in tokens or ():
        col = resolve_column(table.headers, token)
        if col is not None and col not in cols:
            cols.append(col)
    return cols


# ---------------------------------------------------------------------------
# Cell-level kinds
# ---------------------------------------------------------------------------
def _edit_cell(table: Table, intent: it.EditCellIntent) -> list[Change]:
    addr = _cell_address(intent.resolved_target())
    if addr is None or "value" not in intent.params.model_fields_set:
        return []
    return [_update(table, addr.row, addr.col, intent.params.value)]


def _edit_row(table: Table, intent: it.EditRowIntent) -> list[Change]:
    target = intent.resolved_target()
    row_data = intent.params.row_data
    if target is None or not row_data:
        return []
    if target.ref:
        rows = parse_row_refs(target.ref)
    elif target.row is not None and target.row >= 0:
        rows = [target.row]
    else:
        rows = []

    changes: list[Change] = []
    for row in rows:
        for key, value in row_data.items():
            col = match_header(table.headers, key)
            if col is not None:
                changes.append(_update(table, row, col, value))
    return changes


def _edit_column(table: Table, intent: it.EditColumnIntent) -> list[Change]:
    col = _target_column(table, intent.resolved_target())
    values = list(intent.params.values or [])
    if col is None or not values:
        return []
    header = table.headers[col]
    first = values[0]
    if isinstance(first, str) and (first == header or first.casefold() == header.casefold()):
        values = values[1:]
    count = min(len(values), len(table.rows))
    return [_update(table, r, col, values[r]) for r in range(count)]


def _insert_formula(table: Table, intent: it.InsertFormulaIntent) -> list[Change]:
    formula = intent.params.formula
    if not formula:
        return []
    return [
        _update(table, addr.row, addr.col, formula.replace("{row}", str(excel_row(addr.row))))
        for addr in _target_cells(table, intent.resolved_target())
    ]


def _remove_formula(table: Table, intent: it.RemoveFormulaIntent) -> list[Change]:
    target = intent.resolved_target()
    if target is None:
        cells = [
            CellAddress(r, c)
            for r in range(len(table.rows))
            for c in range(len(table.headers))
        ]
    else:
        cells = _target_cells(table, target)
    keep = intent.params.keep_value
    changes: list[Change] = []
    for addr in cells:
        value = table.cell(addr.row, addr.col)
        if is_formula(value) or cell_ref(addr.row, addr.col) in table.formulas:
            changes.append(_update(table, addr.row, addr.col, keep, params={"clear_formula": True}))
    return changes


def _fill_down(table: Table, intent: it.FillDownIntent) -> list[Change]:
    target = intent.resolved_target()
    col = _target_column(table, target)
    if col is None:
        return []
    start = 0
    addr = _cell_address(target)
    if addr is not None:
        start = addr.row
    source = text.fill_source_row(table, col, start)
    if source is None:
        return []
    return text.fill_down_changes(table, col, intent.params.fill_type, source=source)


def _statistics(table: Table, intent: it.StatisticsIntent) -> list[Change]:
    stat = intent.params.stat_type.strip().lower()
    function = STAT_FUNCTIONS.get(stat)
    if function is None:
        return []
    if intent.params.columns:
        cols = _columns(table, intent.params.columns)
    else:
        cols = [
            c for c in range(len(table.headers))
            if any(
                isinstance(v, (int, float)) and not isinstance(v, bool)
                for v in table.column_values(c)
            )
        ]
    label_row = len(table.rows)
    last = excel_row(label_row)
    changes = [
        Change(
            row=label_row, col=c, old_value=None,
            new_value=f"={function}({column_letter(c)}2:{column_letter(c)}{last})",
        )
        for c in cols
    ]
    changes.append(Change(row=label_row, col=0, old_value=None, new_value=stat.upper()))
    return changes


def _data_transform(table: Table, intent: it.DataTransformIntent) -> list[Change]:
    col = _target_column(table, intent.resolved_target())
    kind = intent.params.transform_type
    if col is None or not kind:
        return []
    return text.case_changes(table, col, kind)


def _generate_from_patterns(table: Table, intent: it.GenerateDataIntent) -> list[Change]:
    target = intent.resolved_target()
    if target is None or not target.ref:
        return []
    bounds = parse_range(target.ref)
    if bounds is None or bounds.first_row is None:
        return []
    rows = range(max(data_row(bounds.first_row), 0), data_row(bounds.last_row) + 1)

    generators = []
    for key, spec in intent.params.patterns.items():
        col = resolve_column(table.headers, key, bounded=False)
        if col is None:
            continue
        try:
            generators.append((col, generator_for_pattern(spec, seed_key=key)))
        except ValueError:
            continue
    return [
        _update(table, row, col, gen(row, offset))
        for offset, row in enumerate(rows)
        for col, gen in generators
    ]


def _generate_data(table: Table, intent: it.GenerateDataIntent) -> list[Change]:
    if intent.params.patterns:
        return _generate_from_patterns(table, intent)
    if not table.headers:
        return []
    fill = parse_fill_target(intent.description, len(table.rows))
    if fill is None:
        return []
    generators = [
        generator_for_header(header, table.column_values(c), seed_key=header)
        for c, header in enumerate(table.headers)
    ]
    return [
        Change(row=row, col=c, old_value=table.cell(row, c), new_value=gen(row, offset))
        for offset, row in enumerate(range(fill.start, fill.end))
        for c, gen in enumerate(generators)
    ]


def _find_replace(table: Table, intent: it.FindReplaceIntent) -> list[Change]:
    p = intent.params
    if not p.find:
        return []
    return text.find_replace(
        table, p.find, p.replace,
        match_case=p.match_case, match_whole_cell=p.match_whole_cell,
        use_regex=p.use_regex, columns=p.columns,
    ).changes


def _destination(
    table: Table, intent, default_name: str | None = None
) -> tuple[int, list[Change]]:
    """Destination column for derived values; adds a column when it is new."""
    target = intent.resolved_target()
    col = _target_column(table, target)
    if col is not None:
        return col, []
    col = len(table.headers)
    name = getattr(intent.params, "new_column_name", None) or default_name
    if (
        not name
        and target is not None
        and target.ref
        and resolve_column(table.headers, target.ref, bounded=False) is None
    ):
        name = target.ref
    name = name or f"Column {col + 1}"
    add = Change(
        row=0, col=col, old_value=None, new_value=name,
        type=ChangeType.COLUMN_ADD, column_name=name,
    )
    return col, [add]


def _concatenate(table: Table, intent: it.ConcatenateIntent) -> list[Change]:
    sources = _columns(table, intent.params.columns)
    if len(sources) < 2:
        return []
    col, changes = _destination(table, intent)
    sep = intent.params.separator
    for r in range(len(table.rows)):
        parts = [table.cell(r, c) for c in sources]
        joined = sep.join(str(v) for v in parts if v is not None and v != "")
        changes.append(_update(table, r, col, joined))
    return changes


def _generate_id(table: Table, intent: it.GenerateIdIntent) -> list[Change]:
    col, changes = _destination(table, intent)
    p = intent.params
    for r in range(len(table.rows)):
        changes.append(_update(table, r, col, f"{p.prefix}{str(p.start + r).zfill(p.width)}"))
    return changes


# ---------------------------------------------------------------------------
# Structural kinds
# ---------------------------------------------------------------------------
_ADD_COLUMN_RES = (
    re.compile(r"\badd\s+(?:a\s+|an\s+|new\s+)*columns?\s+(?:called\s+|named\s+)?(.+)", re.IGNORECASE),
    re.compile(r"\badd\s+(?:a\s+|an\s+|new\s+)*(.+?)\s+columns?\b", re.IGNORECASE),
    re.compile(r"\btambah(?:kan)?\s+kolom\s+(?:baru\s+)?(?:bernama\s+)?(.+)", re.IGNORECASE),
    re.compile(r"\btambah(?:kan)?\s+(.+?)\s+kolom\b", re.IGNORECASE),
)
_NAME_SPLIT_RE = re.compile(r"\s*(?:,|&|\band\b|\bdan\b)\s*", re.IGNORECASE)
_TRAILING_RE = re.compile(
    r"\s+(?:with|at|to|in|after|before|dengan|di|ke|setelah|sebelum)\b.*$", re.IGNORECASE
)


def parse_column_names(description: str) -> list[str]:
    """Column names from "Add City and Country columns" style phrases."""
    for pattern in _ADD_COLUMN_RES:
        m = pattern.search(description or "")
        if not m:
            continue
        body = _TRAILING_RE.sub("", m.group(1)).strip(" .'\"")
        names = [n.strip(" '\"") for n in _NAME_SPLIT_RE.split(body)]
        names = [n for n in names if n]
        if names:
            return names
    return []


def _add_column(table: Table, intent: it.AddColumnIntent) -> list[Change]:
    p = intent.params
    names = [p.new_column_name] if p.new_column_name else parse_column_names(intent.description)
    existing = {h.casefold() for h in table.headers}
    names = [n for n in names if n.casefold() not in existing]
    if not names:
        return []
    base = len(table.headers)
    changes = [
        Change(
            row=0, col=base + i, old_value=None, new_value=name,
            type=ChangeType.COLUMN_ADD, column_name=name,
        )
        for i, name in enumerate(names)
    ]
    if p.values and len(names) == 1:
        changes.extend(
            Change(row=r, col=base, old_value=None, new_value=v)
            for r, v in enumerate(p.values)
        )
    elif p.default_value is not None:
        changes.extend(
            Change(row=r, col=base + i, old_value=None, new_value=p.default_value)
            for i in range(len(names))
            for r in range(len(table.rows))
        )
    return changes


def _delete_column(table: Table, intent: it.DeleteColumnIntent) -> list[Change]:
    p = intent.params
    tokens: list[str | int] = []
    if p.column_name:
        tokens.append(p.column_name)
    tokens.extend(p.columns or [])
    target = intent.resolved_target()
    if not tokens and target is not None:
        tokens.append(target.ref if target.ref else target.col)
    return [
        Change(
            row=0, col=c, old_value=table.headers[c], new_value=None,
            type=ChangeType.COLUMN_DELETE,
        )
        for c in _columns(table, tokens)
    ]


def _rename_column(table: Table, intent: it.RenameColumnIntent) -> list[Change]:
    p = intent.params
    new = p.rename_to or p.new_name
    target = intent.resolved_target()
    col = resolve_column(table.headers, p.rename_from) if p.rename_from else None
    if col is None:
        col = _target_column(table, target)
    if col is None or not new:
        return []
    old = table.headers[col]
    return [Change(
        row=0, col=col, old_value=old, new_value=new,
        type=ChangeType.COLUMN_RENAME, params={"from": old, "to": new},
    )]


def _delete_row(table: Table, intent: it.DeleteRowIntent) -> list[Change]:
    target = intent.resolved_target()
    if intent.params.rows:
        rows = list(dict.fromkeys(intent.params.rows))
    elif target is not None and target.ref:
        rows = parse_row_refs(target.ref)
    elif target is not None and target.row is not None:
        rows = [target.row]
    else:
        return []
    return row_delete_changes(table, rows)


def _copy_column(table: Table, intent: it.CopyColumnIntent) -> list[Change]:
    source = resolve_column(table.headers, intent.params.source)
    if source is None:
        return []
    col, changes = _destination(table, intent, default_name=f"{table.headers[source]} (copy)")
    if col == source:
        return []
    for r in range(len(table.rows)):
        changes.append(_update(table, r, col, table.cell(r, source)))
    return changes


# ---------------------------------------------------------------------------
# Table-level kinds (bulk transforms)
# ---------------------------------------------------------------------------
def _column_param(intent) -> str | int | None:
    """``params.column``, falling back to the target ref."""
    if intent.params.column is not None:
        return intent.params.column
    target = intent.resolved_target()
    return target.ref if target is not None else None


def _sort_result(table: Table, intent: it.SortDataIntent) -> TransformResult | None:
    column = _column_param(intent)
    if column is None:
        return None
    return basic.sort_data(table, column, intent.params.direction)


def _filter_result(table: Table, intent: it.FilterDataIntent) -> TransformResult | None:
    column = _column_param(intent)
    if column is None:
        return None
    return basic.filter_data(table, column, intent.params.operator, intent.params.value)


def _dedupe_result(table: Table, intent: it.RemoveDuplicatesIntent) -> TransformResult:
    return basic.remove_duplicates(table, intent.params.columns)


def _empty_rows_result(table: Table, intent: it.RemoveEmptyRowsIntent) -> TransformResult:
    return basic.remove_empty_rows(table)


def _cleansing_result(table: Table, intent: it.DataCleansingIntent) -> TransformResult:
    return analysis.cleanse_data(table)


def _split_result(table: Table, intent: it.SplitColumnIntent) -> TransformResult | None:
    p = intent.params
    column = _column_param(intent)
    if column is None:
        return None
    return columns.split_column(table, column, p.delimiter, p.new_column_names, p.max_parts)


def _merge_result(table: Table, intent: it.MergeColumnsIntent) -> TransformResult | None:
    p = intent.params
    if not p.columns:
        return None
    return columns.merge_columns(table, p.columns, p.separator, p.new_column_name)


TransformHandler = Callable[[Table, Any], Optional[TransformResult]]

_TRANSFORMS: dict[type, TransformHandler] = {
    it.SortDataIntent: _sort_result,
    it.FilterDataIntent: _filter_result,
    it.RemoveDuplicatesIntent: _dedupe_result,
    it.RemoveEmptyRowsIntent: _empty_rows_result,
    it.DataCleansingIntent: _cleansing_result,
    it.SplitColumnIntent: _split_result,
    it.MergeColumnsIntent: _merge_result,
}


def _transform_changes(table: Table, intent) -> list[Change]:
    result = _TRANSFORMS[type(intent)](table, intent)
    return [] if result is None else result.changes


def _nothing(table: Table, intent) -> list[Change]:
    return []


ChangeHandler = Callable[[Table, Any], List[Change]]

_HANDLERS: dict[type, ChangeHandler] = {
    it.EditCellIntent: _edit_cell,
    it.EditRowIntent: _edit_row,
    it.EditColumnIntent: _edit_column,
    it.InsertFormulaIntent: _insert_formula,
    it.RemoveFormulaIntent: _remove_formula,
    it.FillDownIntent: _fill_down,
    it.StatisticsIntent: _statistics,
    it.DataTransformIntent: _data_transform,
    it.GenerateDataIntent: _generate_data,
    it.FindReplaceIntent: _find_replace,
    it.ConcatenateIntent: _concatenate,
    it.GenerateIdIntent: _generate_id,
    it.AddColumnIntent: _add_column,
    it.DeleteColumnIntent: _delete_column,
    it.RenameColumnIntent: _rename_column,
    it.DeleteRowIntent: _delete_row,
    it.CopyColumnIntent: _copy_column,
    it.InfoIntent: _nothing,
    it.ClarifyIntent: _nothing,
}
for _kind in _TRANSFORMS:
    _HANDLERS[_kind] = _transform_changes

_missing = [cls.__name__ for cls in it.INTENT_VARIANTS if cls not in _HANDLERS]
if _missing:
    raise RuntimeError(f"No interpreter handler for: {', '.join(_missing)}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def generate_changes(table: Table, intent) -> list[Change]:
    """Ordered atomic changes for ``intent`` (a raw dict or a parsed variant).

    Returns ``[]`` for anything that cannot be interpreted.
    """
    try:
        parsed = parse_intent(intent)
        return _HANDLERS[type(parsed)](table, parsed)
    except ValueError:
        return []


def apply_intent(table: Table, intent) -> ApplyOutcome:
    """Interpret and apply in one step.

    Table-level kinds use the transform's own result table (formula and
    style keys follow sorted rows, which a replay of cell updates would
    not do); every other kind goes through ``apply_changes``.
    """
    try:
        parsed = parse_intent(intent)
    except ValueError:
        return apply_changes(table, [])
    transform = _TRANSFORMS.get(type(parsed))
    if transform is None:
        return apply_changes(table, generate_changes(table, parsed))
    try:
        result = transform(table, parsed)
    except ValueError:
        result = None
    if result is None or not result.changes:
        return apply_changes(table, [])
    return ApplyOutcome(result.table, result.description or NO_CHANGES)
