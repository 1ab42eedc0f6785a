"""Formula reference rewriting for fills and structural edits.

Formulas are plain strings here; nothing is evaluated.  Only A1 tokens
outside double-quoted string literals are touched.
"""

from __future__ import annotations

import re
from bisect import bisect_left
from typing import Any, Callable, Collection

BROKEN_REF = "#REF!"

# Not preceded by a letter/digit/underscore (so SHEET2 or _A1 are not refs)
# and not followed by one or by "(" (so LOG10( is a function call).
_CELL_REF_RE = re.compile(
    r"(?<![A-Za-z0-9_])(\$?)([A-Za-z]{1,3})(\$?)(\d+)(?![A-Za-z0-9_(])"
)


def is_formula(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("=")


def has_broken_ref(formula: str) -> bool:
    return BROKEN_REF in formula


def _rewrite_outside_strings(formula: str, repl: Callable[[re.Match], str]) -> str:
    # Odd-indexed segments are inside quotes.
    parts = formula.split('"')
    for i in range(0, len(parts), 2):
        parts[i] = _CELL_REF_RE.sub(repl, parts[i])
    return '"'.join(parts)


def find_refs(formula: str) -> list[str]:
    """A1 tokens referenced by a formula, in order of appearance."""
    found: list[str] = []
    parts = formula.split('"')
    for i in range(0, len(parts), 2):
        found.extend(m.group(0) for m in _CELL_REF_RE.finditer(parts[i]))
    return found


def shift_rows(formula: str, delta: int, *, only_row: int | None = None) -> str:
    """Add ``delta`` to every relative row number in ``formula``.

    - ``$``-anchored rows are absolute and never move.
    - With ``only_row``, only tokens pointing at that sheet row move; this is
      the fill-down rule, where the source row's references follow the
      destination row and everything else stays put.
    """
    if delta == 0:
        return formula

    def _shift(m: re.Match) -> str:
        col_abs, letters, row_abs, row_num = m.groups()
        number = int(row_num)
        if row_abs == "$" or (only_row is not None and number != only_row):
            return m.group(0)
        return f"{col_abs}{letters.upper()}{row_abs}{max(number + delta, 1)}"

    return _rewrite_outside_strings(formula, _shift)


def rewrite_after_row_delete(formula: str, deleted_rows: Collection[int]) -> str:
    """Rewrite references after the given sheet rows were physically removed.

    A token pointing at a removed row becomes ``#REF!`` (the whole token,
    column letters included).  A token pointing below removed rows moves up
    by the number of removed rows strictly above it.  ``$`` anchors do not
    protect rows here: the referenced cell itself moved.
    """
    if not deleted_rows:
        return formula
    ordered = sorted(set(deleted_rows))
    removed = set(ordered)

    def _rewrite(m: re.Match) -> str:
        col_abs, letters, row_abs, row_num = m.groups()
        number = int(row_num)
        if number in removed:
            return BROKEN_REF
        above = bisect_left(ordered, number)
        if above == 0:
            return m.group(0)
        return f"{col_abs}{letters.upper()}{row_abs}{number - above}"

    return _rewrite_outside_strings(formula, _rewrite)
