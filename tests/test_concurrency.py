"""Tests for the table sidecar lock and cross-process exclusion."""

from __future__ import annotations

import multiprocessing
import os
import time
from pathlib import Path

import portalocker
import pytest

from sheetcore.io.fileops import LOCK_SUFFIX, TableLock, check_lock


# ---------------------------------------------------------------------------
# TableLock
# ---------------------------------------------------------------------------


class TestTableLock:
    """Basic TableLock behaviour."""

    def test_creates_sidecar_with_holder(self, people_file: Path):
        with TableLock(people_file) as lock:
            assert lock.lock_path.exists()
            content = lock.lock_path.read_text()
        assert f"pid={os.getpid()}" in content
        assert "time=" in content

    def test_lock_path(self, people_file: Path):
        lock = TableLock(people_file)
        assert lock.lock_path == (people_file.parent / (people_file.name + LOCK_SUFFIX)).resolve()

    def test_reacquire_after_release(self, people_file: Path):
        with TableLock(people_file):
            pass
        with TableLock(people_file, timeout=0):
            pass

    def test_second_holder_fails_immediately(self, people_file: Path):
        with TableLock(people_file):
            with pytest.raises(portalocker.LockException):
                with TableLock(people_file, timeout=0):
                    pass

    def test_second_holder_times_out(self, people_file: Path):
        with TableLock(people_file):
            start = time.monotonic()
            with pytest.raises(portalocker.LockException):
                with TableLock(people_file, timeout=0.3):
                    pass
            assert time.monotonic() - start >= 0.25


# ---------------------------------------------------------------------------
# check_lock()
# ---------------------------------------------------------------------------


class TestCheckLock:
    def test_no_sidecar(self, people_file: Path):
        status = check_lock(people_file)
        assert status["exists"] is True
        assert status["locked"] is False
        assert status["lock_file"].endswith(LOCK_SUFFIX)

    def test_stale_sidecar(self, people_file: Path):
        with TableLock(people_file):
            pass
        assert check_lock(people_file)["locked"] is False

    def test_held_lock_reports_holder(self, people_file: Path):
        with TableLock(people_file):
            status = check_lock(people_file)
        assert status["locked"] is True
        assert status["holder"]["pid"] == str(os.getpid())

    def test_missing_table(self, tmp_path: Path):
        assert check_lock(tmp_path / "ghost.json")["exists"] is False


# ---------------------------------------------------------------------------
# Multiprocessing
# ---------------------------------------------------------------------------


def _hold_lock(table_path: str, ready_path: str, done_path: str):
    """Acquire, signal ready, wait for the done flag, release."""
    with TableLock(Path(table_path), timeout=0):
        Path(ready_path).write_text("ready")
        for _ in range(100):
            if Path(done_path).exists():
                break
            time.sleep(0.1)


def _short_hold(table_path: str, ready_path: str):
    with TableLock(Path(table_path), timeout=0):
        Path(ready_path).write_text("ready")
        time.sleep(0.5)


def _try_lock(table_path: str, timeout: float, result_path: str):
    out = Path(result_path)
    try:
        with TableLock(Path(table_path), timeout=timeout):
            out.write_text("acquired")
    except portalocker.LockException:
        out.write_text("blocked")


def _wait_for(flag: Path) -> None:
    for _ in range(50):
        if flag.exists():
            return
        time.sleep(0.1)


class TestConcurrentAccess:
    """Cross-process exclusion."""

    def test_second_process_is_blocked(self, people_file: Path, tmp_path: Path):
        ready, done, result = tmp_path / "ready", tmp_path / "done", tmp_path / "result"
        holder = multiprocessing.Process(target=_hold_lock, args=(str(people_file), str(ready), str(done)))
        holder.start()
        try:
            _wait_for(ready)
            assert ready.exists(), "holder never acquired the lock"
            contender = multiprocessing.Process(target=_try_lock, args=(str(people_file), 0, str(result)))
            contender.start()
            contender.join(timeout=10)
            assert result.read_text() == "blocked"
        finally:
            done.write_text("done")
            holder.join(timeout=10)

    def test_waiter_succeeds_after_release(self, people_file: Path, tmp_path: Path):
        ready, result = tmp_path / "ready", tmp_path / "result"
        holder = multiprocessing.Process(target=_short_hold, args=(str(people_file), str(ready)))
        holder.start()
        try:
            _wait_for(ready)
            assert ready.exists()
            contender = multiprocessing.Process(target=_try_lock, args=(str(people_file), 5, str(result)))
            contender.start()
            contender.join(timeout=10)
            assert result.read_text() == "acquired"
        finally:
            holder.join(timeout=10)
