"""Response envelope helpers, exit codes and change summaries."""

from __future__ import annotations

import sys
from typing import Any, Sequence

import orjson
import portalocker

from sheetcore.contracts.common import (
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    SheetcoreError,
    TableFormatError,
    Target,
)
from sheetcore.contracts.responses import DryRunSummary
from sheetcore.contracts.table import Change, ChangeType
from sheetcore.engine.refs import column_letter

EXIT_CODES = {
    "success": 0,
    "validation": 10,
    "protection": 20,
    "formula": 30,
    "conflict": 40,
    "io": 50,
    "unsupported": 70,
    "internal": 90,
}

VALIDATION_CODE_MARKERS = (
    "VALIDATION",
    "USAGE",
    "INVALID_ARGUMENT",
    "INTENT_INVALID",
    "REF_INVALID",
    "TRANSFORM_INVALID",
    "WORKFLOW_INVALID",
    "HISTORY_EMPTY",
    "NO_CHANGES",
)

IO_CODE_MARKERS = ("ERR_IO", "LOCK", "NOT_FOUND", "CORRUPT", "FILE_EXISTS")


def success_envelope(
    command: str,
    result: Any,
    *,
    target: Target | None = None,
    changes: list[Change] | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=True,
        command=command,
        target=target or Target(),
        result=result,
        changes=changes or [],
        warnings=warnings or [],
        metrics=Metrics(duration_ms=duration_ms),
    )


def error_envelope(
    command: str,
    code: str,
    message: str,
    *,
    target: Target | None = None,
    details: dict | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=False,
        command=command,
        target=target or Target(),
        errors=[ErrorDetail(code=code, message=message, details=details)],
        metrics=Metrics(duration_ms=duration_ms),
    )


def error_code_for(exc: BaseException) -> str:
    """Envelope error code for an exception raised by the core or the OS."""
    if isinstance(exc, SheetcoreError):
        return exc.code
    if isinstance(exc, portalocker.LockException):
        return "ERR_LOCK_HELD"
    if isinstance(exc, TableFormatError):
        return "ERR_TABLE_CORRUPT"
    if isinstance(exc, FileNotFoundError):
        return "ERR_TABLE_NOT_FOUND"
    if isinstance(exc, FileExistsError):
        return "ERR_FILE_EXISTS"
    if isinstance(exc, OSError):
        return "ERR_IO"
    if isinstance(exc, ValueError):
        return "ERR_INVALID_ARGUMENT"
    return "ERR_INTERNAL"


def summarize_changes(changes: Sequence[Change], headers: Sequence[str] = ()) -> DryRunSummary:
    """Counts by change type and by column header (letter when unnamed)."""
    by_type: dict[str, int] = {}
    by_column: dict[str, int] = {}
    rows: set[int] = set()
    for change in changes:
        kind = ChangeType(change.type).value
        by_type[kind] = by_type.get(kind, 0) + 1
        if 0 <= change.col < len(headers):
            column = headers[change.col]
        elif change.col >= 0:
            column = change.column_name or column_letter(change.col)
        else:
            continue
        by_column[column] = by_column.get(column, 0) + 1
        if kind in (ChangeType.CELL_UPDATE.value, ChangeType.ROW_DELETE.value):
            rows.add(change.row)
    return DryRunSummary(
        total_changes=len(changes),
        by_type=by_type,
        by_column=by_column,
        rows_touched=len(rows),
    )


def output_json(envelope: ResponseEnvelope) -> str:
    """Serialize an envelope with orjson (2-space indent)."""
    data = envelope.model_dump(mode="json")
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode()


def print_response(envelope: ResponseEnvelope) -> None:
    sys.stdout.write(output_json(envelope) + "\n")


def exit_code_for(envelope: ResponseEnvelope) -> int:
    """Map the first error code onto the process exit code."""
    if envelope.ok:
        return EXIT_CODES["success"]
    if not envelope.errors:
        return EXIT_CODES["internal"]
    code = envelope.errors[0].code.upper()
    if "PROTECTED" in code or "POLICY" in code:
        return EXIT_CODES["protection"]
    if "FORMULA" in code:
        return EXIT_CODES["formula"]
    if "FINGERPRINT" in code or "CONFLICT" in code:
        return EXIT_CODES["conflict"]
    if "UNSUPPORTED" in code:
        return EXIT_CODES["unsupported"]
    if any(marker in code for marker in VALIDATION_CODE_MARKERS):
        return EXIT_CODES["validation"]
    if any(marker in code for marker in IO_CODE_MARKERS):
        return EXIT_CODES["io"]
    return EXIT_CODES["internal"]
