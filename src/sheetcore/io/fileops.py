"""File operations: fingerprints, backups, atomic writes and the table lock."""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from io import TextIOWrapper
from pathlib import Path

import portalocker

LOCK_SUFFIX = ".sheetcore.lock"


def fingerprint(path: str | Path) -> str:
    """SHA-256 of a file's bytes, prefixed ``sha256:``."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return f"sha256:{digest.hexdigest()}"


def fingerprint_bytes(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def backup(path: str | Path) -> str:
    """Copy ``path`` to ``<stem>.<utc timestamp>.bak<suffix>``; returns the copy."""
    path = Path(path)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    target = path.parent / f"{path.stem}.{stamp}.bak{path.suffix}"
    shutil.copy2(path, target)
    return str(target)


def atomic_write(target: str | Path, data: bytes) -> None:
    """Write ``data`` next to ``target`` and move it into place."""
    target = Path(target)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, suffix=target.suffix, prefix=".sheetcore_tmp_")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        shutil.move(tmp_path, target)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def lock_path_for(path: str | Path) -> Path:
    path = Path(path).resolve()
    return path.parent / (path.name + LOCK_SUFFIX)


class TableLock:
    """Exclusive ``<file>.sheetcore.lock`` sidecar lock.

    Held for a whole read-modify-write cycle of a table file (and its
    history sidecar).  ``timeout`` is in seconds; ``0`` fails immediately
    when another process holds the lock.  A crashed holder leaves only a
    stale, unlocked sidecar behind.
    """

    def __init__(self, table_path: str | Path, *, timeout: float = 0) -> None:
        self.table_path = Path(table_path).resolve()
        self.timeout = timeout
        self.lock_path = lock_path_for(self.table_path)
        self._handle: TextIOWrapper | None = None

    def _try_lock(self) -> None:
        assert self._handle is not None
        portalocker.lock(self._handle, portalocker.LOCK_EX | portalocker.LOCK_NB)

    def _acquire(self) -> None:
        if self.timeout <= 0:
            self._try_lock()
            return
        deadline = time.monotonic() + self.timeout
        interval = min(0.1, max(0.01, self.timeout / 20))
        while True:
            try:
                self._try_lock()
                return
            except portalocker.LockException:
                if time.monotonic() >= deadline:
                    raise
                time.sleep(interval)

    def __enter__(self) -> "TableLock":
        self._handle = open(self.lock_path, "a+")  # noqa: SIM115
        try:
            self._acquire()
        except portalocker.LockException:
            self._handle.close()
            self._handle = None
            raise
        self._handle.seek(0)
        self._handle.truncate()
        self._handle.write(f"pid={os.getpid()}\ntime={datetime.now(timezone.utc).isoformat()}\n")
        self._handle.flush()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self._handle is None:
            return
        try:
            portalocker.unlock(self._handle)
        finally:
            self._handle.close()
            self._handle = None


def check_lock(path: str | Path) -> dict:
    """Report the sidecar lock state: ``{exists, locked, lock_file, holder?}``."""
    path = Path(path).resolve()
    sidecar = lock_path_for(path)
    status = {"exists": path.exists(), "locked": False, "lock_file": str(sidecar)}
    if not sidecar.exists():
        return status
    try:
        with open(sidecar, "a+") as handle:
            portalocker.lock(handle, portalocker.LOCK_EX | portalocker.LOCK_NB)
            portalocker.unlock(handle)
        return status
    except portalocker.LockException:
        holder: dict[str, str] = {}
        try:
            for line in sidecar.read_text().splitlines():
                key, sep, value = line.partition("=")
                if sep:
                    holder[key.strip()] = value.strip()
        except OSError:
            pass
        return {**status, "locked": True, "holder": holder}
    except OSError:
        return {**status, "check_error": True}


def read_text_safe(path: str | Path) -> str:
    """Read UTF-8 text, dropping a leading BOM if present."""
    return Path(path).read_text(encoding="utf-8-sig")
