"""stdio server mode: JSON line-delimited protocol over stdin/stdout."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, TextIO

from sheetcore.engine.context import TableContext
from sheetcore.engine.dispatcher import error_code_for, summarize_changes
from sheetcore.engine.history import MAX_HISTORY
from sheetcore.engine.interpreter import generate_changes
from sheetcore.engine.operations import intent_mutation, transform_mutation
from sheetcore.transforms.ops import is_mutating, run_transform
from sheetcore.validation.policy import Policy


class _Session:
    def __init__(self, ctx: TableContext, policy: Policy | None) -> None:
        self.ctx = ctx
        self.policy = policy
        self.dirty = False


class StdioServer:
    """Simple JSON-RPC-like server over stdin/stdout.

    One session (table, history, policy) per file, held in memory until
    ``save`` writes it back or ``close`` drops it.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._sessions: dict[str, _Session] = {}
        self._stdin = stdin
        self._stdout = stdout

    def _session(self, file: str) -> _Session:
        key = str(Path(file).resolve())
        if key not in self._sessions:
            policy = Policy.discover(file)
            ctx = TableContext(file, history_limit=policy.history_limit if policy else MAX_HISTORY)
            self._sessions[key] = _Session(ctx, policy)
        return self._sessions[key]

    def _close(self, file: str | None) -> int:
        if file:
            return 1 if self._sessions.pop(str(Path(file).resolve()), None) else 0
        count = len(self._sessions)
        self._sessions.clear()
        return count

    def _commit(self, session: _Session, mutation) -> dict[str, Any]:
        if not mutation.changes:
            return {"applied": False, "description": mutation.description}
        index = session.ctx.commit(mutation.table, mutation.description)
        session.dirty = True
        return {
            "applied": True,
            "description": mutation.description,
            "changes": [c.model_dump(mode="json", by_alias=True) for c in mutation.changes],
            "history_index": index,
        }

    def _dispatch(self, command: str, args: dict[str, Any]) -> Any:
        if command == "close":
            return {"closed": self._close(args.get("file"))}

        file = args.get("file", "")
        if not file:
            raise ValueError("Missing 'file' in args")
        session = self._session(file)
        ctx = session.ctx

        if command == "table.get":
            return ctx.table.to_document()

        elif command == "table.inspect":
            return ctx.summary().model_dump()

        elif command == "intent.interpret":
            changes = generate_changes(ctx.table, args.get("intent"))
            return {
                "changes": [c.model_dump(mode="json", by_alias=True) for c in changes],
                "summary": summarize_changes(changes, ctx.table.headers).model_dump(),
            }

        elif command == "intent.apply":
            mutation = intent_mutation(ctx.table, args.get("intent"), policy=session.policy)
            return self._commit(session, mutation)

        elif command == "transform":
            op = args.get("op", "")
            op_args = args.get("args") or {}
            if not is_mutating(op):
                return run_transform(ctx.table, op, op_args)
            return self._commit(session, transform_mutation(ctx.table, op, op_args, policy=session.policy))

        elif command in ("history.undo", "history.redo"):
            restored = ctx.undo() if command == "history.undo" else ctx.redo()
            if restored is not None:
                session.dirty = True
            return {"restored": restored is not None, **ctx.history.status().model_dump()}

        elif command == "history.status":
            return {**ctx.history.status().model_dump(), "unsaved_changes": session.dirty}

        elif command == "save":
            fp = ctx.save(args.get("path"))
            if not args.get("path"):
                session.dirty = False
            return {"saved": True, "fingerprint": fp}

        raise ValueError(f"Unknown command: {command}")

    def handle_request(self, request: dict[str, Any]) -> dict[str, Any]:
        req_id = request.get("id", "")
        command = request.get("command", "")
        args = request.get("args") or {}
        try:
            return {"id": req_id, "ok": True, "result": self._dispatch(command, args)}
        except Exception as e:
            return {"id": req_id, "ok": False, "code": error_code_for(e), "error": str(e)}

    def _write(self, response: dict[str, Any]) -> None:
        stdout = self._stdout or sys.stdout
        stdout.write(json.dumps(response, default=str) + "\n")
        stdout.flush()

    def run(self) -> None:
        """Main server loop: read JSON lines from stdin, write responses to stdout."""
        for line in self._stdin or sys.stdin:
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except json.JSONDecodeError as e:
                self._write({"ok": False, "code": "ERR_USAGE", "error": f"Invalid JSON: {e}"})
                continue
            if not isinstance(request, dict):
                self._write({"ok": False, "code": "ERR_USAGE", "error": "Request must be a JSON object"})
                continue
            self._write(self.handle_request(request))

        self._close(None)
