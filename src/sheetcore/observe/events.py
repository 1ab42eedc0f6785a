"""Timing, NDJSON lifecycle events and trace files."""

from __future__ import annotations

import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Timer:
    """Context manager that records ``elapsed_ms``."""

    def __init__(self) -> None:
        self.start: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)


class EventEmitter:
    """Writes one JSON object per line (``event``, ``timestamp``, ``data``).

    Disabled emitters are no-ops, so call sites never need to check.
    Events go to stderr unless another stream is given.
    """

    def __init__(self, enabled: bool = False, stream: TextIO | None = None) -> None:
        self.enabled = enabled
        self._stream = stream

    def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        stream = self._stream or sys.stderr
        stream.write(json.dumps({"event": event, "timestamp": _now(), "data": data or {}}, default=str) + "\n")
        stream.flush()


class TraceRecorder:
    """Collects timestamped entries for one command and saves them as JSON."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []
        self._start = time.perf_counter()

    def _elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)

    def record(self, category: str, data: dict[str, Any]) -> None:
        self.entries.append({"category": category, "timestamp_ms": self._elapsed_ms(), **data})

    def save(self, path: str | Path) -> str:
        trace_path = Path(path)
        trace_path.write_text(json.dumps({
            "trace_version": "1.0",
            "generated_at": _now(),
            "total_duration_ms": self._elapsed_ms(),
            "entries": self.entries,
        }, indent=2, default=str))
        return str(trace_path)
