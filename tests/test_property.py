"""Property-based tests using Hypothesis for change/apply semantics.

These tests verify invariants that must hold for *any* valid input, not just
specific examples. They exercise:
- Interpreter value updates record the cell value they replace
- Applying the inverse of a change batch restores the table
- The applier never mutates its input
- Relative row shifts are reversible; anchored rows never move
- Row deletion rewrites references to removed rows as #REF!
- Undo/redo walks the snapshot stack symmetrically
- Row refs never produce indices above the first data row
- Column letters and indices are inverse
- Sorting is a permutation of the rows
"""

from __future__ import annotations

from collections import Counter

from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from sheetcore.contracts.table import Change, ChangeType, Table
from sheetcore.engine.applier import apply_changes
from sheetcore.engine.formulas import BROKEN_REF, rewrite_after_row_delete, shift_rows
from sheetcore.engine.history import UndoHistory
from sheetcore.engine.interpreter import generate_changes
from sheetcore.engine.refs import column_index, column_letter, parse_row_refs
from sheetcore.transforms.basic import sort_data


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
plain_text = st.text(alphabet="abcdefghijklmnopqrstuvwxyz XYZ", min_size=0, max_size=8)
cell_values = st.one_of(st.none(), st.integers(min_value=-10_000, max_value=10_000), plain_text)


@st.composite
def tables(draw, min_rows: int = 1, max_rows: int = 6) -> Table:
    width = draw(st.integers(min_value=1, max_value=4))
    height = draw(st.integers(min_value=min_rows, max_value=max_rows))
    rows = [
        [draw(cell_values) for _ in range(width)]
        for _ in range(height)
    ]
    return Table(headers=[f"H{i}" for i in range(width)], rows=rows)


@st.composite
def tables_with_updates(draw):
    table = draw(tables())
    coords = st.tuples(
        st.integers(min_value=0, max_value=len(table.rows) - 1),
        st.integers(min_value=0, max_value=len(table.headers) - 1),
    )
    targets = draw(st.lists(coords, min_size=1, max_size=6, unique=True))
    changes = [
        Change(row=r, col=c, old_value=table.cell(r, c), new_value=draw(cell_values))
        for r, c in targets
    ]
    return table, changes


@st.composite
def tables_with_intents(draw):
    table = draw(tables())
    row = draw(st.integers(min_value=0, max_value=len(table.rows) + 1))
    col = draw(st.integers(min_value=0, max_value=len(table.headers) - 1))
    letter = column_letter(col)
    kind = draw(st.sampled_from(["EDIT_CELL", "EDIT_ROW", "EDIT_COLUMN", "FILL_DOWN", "DATA_TRANSFORM"]))
    if kind == "EDIT_CELL":
        intent = {"type": kind, "target": {"ref": f"{letter}{row + 1}"}, "params": {"value": draw(cell_values)}}
    elif kind == "EDIT_ROW":
        row_data = {table.headers[col]: draw(cell_values)}
        intent = {"type": kind, "target": {"ref": str(row + 2)}, "params": {"rowData": row_data}}
    elif kind == "EDIT_COLUMN":
        values = draw(st.lists(cell_values, min_size=1, max_size=8))
        intent = {"type": kind, "target": {"ref": letter}, "params": {"values": values}}
    elif kind == "FILL_DOWN":
        intent = {"type": kind, "target": {"ref": f"{letter}{row + 1}"}}
    else:
        transform = draw(st.sampled_from(["uppercase", "lowercase", "titlecase", "capitalize"]))
        intent = {"type": kind, "target": {"ref": letter}, "params": {"transformType": transform}}
    return table, intent


sheet_rows = st.integers(min_value=1, max_value=500)


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------
class TestInterpreterProperties:
    @given(data=tables_with_intents())
    @settings(max_examples=120, suppress_health_check=[HealthCheck.too_slow])
    def test_old_value_matches_table(self, data):
        table, intent = data
        for change in generate_changes(table, intent):
            if change.type == ChangeType.CELL_UPDATE:
                assert change.old_value == table.cell(change.row, change.col)


# ---------------------------------------------------------------------------
# Applier
# ---------------------------------------------------------------------------
class TestApplierProperties:
    @given(data=tables_with_updates())
    @settings(max_examples=80, suppress_health_check=[HealthCheck.too_slow])
    def test_inverse_batch_restores_rows(self, data):
        table, changes = data
        after = apply_changes(table, changes).table
        inverse = [
            Change(row=c.row, col=c.col, old_value=c.new_value, new_value=c.old_value)
            for c in changes
        ]
        restored = apply_changes(after, inverse).table
        assert restored.rows == table.rows

    @given(data=tables_with_updates())
    @settings(max_examples=50)
    def test_input_never_mutated(self, data):
        table, changes = data
        before = table.model_dump()
        apply_changes(table, changes)
        assert table.model_dump() == before

    @given(data=tables_with_updates())
    @settings(max_examples=50)
    def test_new_values_land(self, data):
        table, changes = data
        after = apply_changes(table, changes).table
        for change in changes:
            assert after.cell(change.row, change.col) == change.new_value


# ---------------------------------------------------------------------------
# Formula rewriting
# ---------------------------------------------------------------------------
class TestFormulaProperties:
    @given(a=sheet_rows, b=sheet_rows, delta=st.integers(min_value=0, max_value=200))
    def test_shift_round_trip(self, a, b, delta):
        formula = f"=A{a}+SUM(B{b}:C{b})"
        assert shift_rows(shift_rows(formula, delta), -delta) == formula

    @given(row=sheet_rows, delta=st.integers(min_value=-200, max_value=200))
    def test_anchored_rows_never_move(self, row, delta):
        formula = f"=$A${row}*2"
        assert shift_rows(formula, delta) == formula

    @given(row=sheet_rows, delta=st.integers(min_value=-1000, max_value=0))
    def test_shift_never_below_first_row(self, row, delta):
        shifted = shift_rows(f"=A{row}", delta)
        assert int(shifted[2:]) >= 1

    @given(ref=st.integers(min_value=2, max_value=60), deleted=st.integers(min_value=2, max_value=60))
    def test_row_delete_rewrite(self, ref, deleted):
        rewritten = rewrite_after_row_delete(f"=A{ref}", [deleted])
        if ref == deleted:
            assert rewritten == f"={BROKEN_REF}"
        elif ref > deleted:
            assert rewritten == f"=A{ref - 1}"
        else:
            assert rewritten == f"=A{ref}"

    @given(ref=st.integers(min_value=2, max_value=60),
           deleted=st.sets(st.integers(min_value=2, max_value=60), min_size=1, max_size=8))
    def test_surviving_refs_move_up_by_rows_removed_above(self, ref, deleted):
        assume(ref not in deleted)
        rewritten = rewrite_after_row_delete(f"=B{ref}", deleted)
        assert rewritten == f"=B{ref - sum(1 for d in deleted if d < ref)}"


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
class TestHistoryProperties:
    @given(steps=st.integers(min_value=1, max_value=12), back=st.integers(min_value=0, max_value=12))
    def test_undo_then_redo_returns_to_latest(self, steps, back):
        assume(back <= steps)
        states = [Table(headers=["N"], rows=[[i]]) for i in range(steps + 1)]
        history = UndoHistory(max_history=20)
        for before, after in zip(states, states[1:]):
            history.push_state(before, after, f"step {after.rows[0][0]}")

        current = states[-1]
        for _ in range(back):
            current = history.undo()
        assert current.rows == states[steps - back].rows

        for _ in range(back):
            current = history.redo()
        assert current.rows == states[-1].rows
        assert history.can_redo() is False

    @given(pushes=st.integers(min_value=1, max_value=30), limit=st.integers(min_value=1, max_value=10))
    def test_history_is_bounded(self, pushes, limit):
        history = UndoHistory(max_history=limit)
        table = Table(headers=["N"], rows=[[0]])
        for _ in range(pushes):
            history.push_state(table, table)
        assert len(history) == min(pushes, limit)


# ---------------------------------------------------------------------------
# Refs
# ---------------------------------------------------------------------------
class TestRefProperties:
    @given(rows=st.lists(st.integers(min_value=0, max_value=300), min_size=1, max_size=10))
    def test_row_refs_are_non_negative_and_unique(self, rows):
        indices = parse_row_refs(",".join(str(r) for r in rows))
        assert all(i >= 0 for i in indices)
        assert len(indices) == len(set(indices))
        assert set(indices) == {r - 2 for r in rows if r >= 2}

    @given(a=st.integers(min_value=2, max_value=200), b=st.integers(min_value=2, max_value=200))
    def test_row_span_either_direction(self, a, b):
        assert parse_row_refs(f"{a}-{b}") == parse_row_refs(f"{b}:{a}")

    @given(index=st.integers(min_value=0, max_value=18_277))
    def test_column_letter_round_trip(self, index):
        letters = column_letter(index)
        assert letters.isupper()
        assert column_index(letters) == index
        assert column_index(f"{letters}12") == index


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------
class TestSortProperties:
    @given(table=tables(max_rows=10), direction=st.sampled_from(["asc", "desc"]))
    @settings(max_examples=60)
    def test_sort_is_permutation(self, table, direction):
        result = sort_data(table, 0, direction)
        as_key = lambda rows: Counter(repr(r) for r in rows)  # noqa: E731
        assert as_key(result.table.rows) == as_key(table.rows)

    @given(table=tables(max_rows=10))
    @settings(max_examples=60)
    def test_empty_cells_sort_last(self, table):
        rows = sort_data(table, 0, "desc").table.rows
        firsts = [r[0] for r in rows]
        seen_empty = False
        for value in firsts:
            if value is None:
                seen_empty = True
            else:
                assert not seen_empty
