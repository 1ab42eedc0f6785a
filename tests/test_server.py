"""Tests for the stdio server: per-file sessions over JSON lines."""

from __future__ import annotations

import json
from io import StringIO
from pathlib import Path

from sheetcore.engine.context import TableContext
from sheetcore.server.stdio import StdioServer


def _req(server: StdioServer, command: str, **args):
    return server.handle_request({"id": command, "command": command, "args": args})


def test_table_get_and_inspect(sales_file: Path):
    server = StdioServer()
    doc = _req(server, "table.get", file=str(sales_file))
    assert doc["ok"] is True
    assert doc["result"]["cellStyles"] == {"C2": {"bold": True}}
    summary = _req(server, "table.inspect", file=str(sales_file))["result"]
    assert summary["formula_count"] == 4


def test_interpret_does_not_mutate(people_file: Path):
    server = StdioServer()
    intent = {"type": "EDIT_CELL", "target": {"ref": "A1"}, "params": {"value": "Zed"}}
    resp = _req(server, "intent.interpret", file=str(people_file), intent=intent)
    assert resp["result"]["changes"][0]["oldValue"] == "Alice"
    assert resp["result"]["summary"]["total_changes"] == 1
    assert _req(server, "table.get", file=str(people_file))["result"]["rows"][0][0] == "Alice"


def test_apply_undo_redo_save(people_file: Path):
    server = StdioServer()
    f = str(people_file)
    intent = {"type": "DELETE_ROW", "target": {"ref": "2"}}
    applied = _req(server, "intent.apply", file=f, intent=intent)["result"]
    assert applied["applied"] is True
    assert applied["changes"][0]["type"] == "ROW_DELETE"

    status = _req(server, "history.status", file=f)["result"]
    assert status["can_undo"] is True and status["unsaved_changes"] is True

    undone = _req(server, "history.undo", file=f)["result"]
    assert undone["restored"] is True and undone["can_redo"] is True
    assert _req(server, "history.redo", file=f)["result"]["restored"] is True

    saved = _req(server, "save", file=f)["result"]
    assert saved["saved"] is True
    assert _req(server, "history.status", file=f)["result"]["unsaved_changes"] is False
    assert [r[0] for r in TableContext(people_file).table.rows] == ["Bob", "Charlie"]


def test_undo_on_empty_history(people_file: Path):
    server = StdioServer()
    result = _req(server, "history.undo", file=str(people_file))["result"]
    assert result["restored"] is False


def test_transform_commands(people_file: Path):
    server = StdioServer()
    f = str(people_file)
    stats = _req(server, "transform", file=f, op="stats", args={"column": "Age"})
    assert stats["result"]["sum"] == 90
    sorted_ = _req(server, "transform", file=f, op="sort", args={"column": "Name", "direction": "desc"})
    assert sorted_["result"]["applied"] is True
    assert _req(server, "table.get", file=f)["result"]["rows"][0][0] == "Charlie"


def test_save_to_other_path_keeps_session_dirty(people_file: Path, tmp_path: Path):
    server = StdioServer()
    f = str(people_file)
    _req(server, "transform", file=f, op="case", args={"column": "Name", "kind": "lowercase"})
    _req(server, "save", file=f, path=str(tmp_path / "copy.json"))
    assert _req(server, "history.status", file=f)["result"]["unsaved_changes"] is True
    assert TableContext(tmp_path / "copy.json").table.rows[0][0] == "alice"


def test_policy_next_to_table_is_applied(people_file: Path, tmp_path: Path):
    (tmp_path / "sheetcore-policy.yaml").write_text("protected_columns: [Name]\n")
    server = StdioServer()
    intent = {"type": "EDIT_CELL", "target": {"ref": "A1"}, "params": {"value": "Zed"}}
    resp = _req(server, "intent.apply", file=str(people_file), intent=intent)
    assert resp["ok"] is False
    assert resp["code"] == "ERR_POLICY_PROTECTED"


def test_errors(people_file: Path, tmp_path: Path):
    server = StdioServer()
    assert _req(server, "table.get")["code"] == "ERR_INVALID_ARGUMENT"
    assert _req(server, "table.get", file=str(tmp_path / "nope.json"))["code"] == "ERR_TABLE_NOT_FOUND"
    unknown = _req(server, "table.explode", file=str(people_file))
    assert unknown["ok"] is False and "Unknown command" in unknown["error"]
    no_changes = _req(server, "intent.apply", file=str(people_file), intent={"type": "EDIT_CELL"})
    assert no_changes["code"] == "ERR_NO_CHANGES"


def test_close(people_file: Path, sales_file: Path):
    server = StdioServer()
    _req(server, "table.get", file=str(people_file))
    _req(server, "table.get", file=str(sales_file))
    assert _req(server, "close", file=str(people_file))["result"] == {"closed": 1}
    assert _req(server, "close")["result"] == {"closed": 1}


def test_run_loop(people_file: Path):
    lines = "\n".join([
        json.dumps({"id": 1, "command": "table.inspect", "args": {"file": str(people_file)}}),
        "",
        "not json",
        "[1, 2]",
        json.dumps({"id": 2, "command": "close", "args": {}}),
    ]) + "\n"
    out = StringIO()
    StdioServer(stdin=StringIO(lines), stdout=out).run()
    responses = [json.loads(line) for line in out.getvalue().splitlines()]
    assert [r["ok"] for r in responses] == [True, False, False, True]
    assert responses[0]["result"]["row_count"] == 3
    assert responses[1]["code"] == responses[2]["code"] == "ERR_USAGE"
    assert responses[3]["result"] == {"closed": 1}
