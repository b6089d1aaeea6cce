"""Tests for marker-file lock backends and process liveness probing."""

from __future__ import annotations

import errno
import multiprocessing
import os
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

import psutil
import pytest

import cronjob_runner.core.locks.backends as backends_module
from cronjob_runner.core.locks.backends import (
    AcquireStatus,
    FcntlFileLockBackend,
    PidFileLockBackend,
    parse_marker_pid,
    read_marker,
)
from cronjob_runner.core.locks.liveness import ProcessState, probe_process

BACKENDS = [
    pytest.param(FcntlFileLockBackend, id="fcntl"),
    pytest.param(PidFileLockBackend, id="pidfile"),
]


def _noop() -> None:
    pass


def _dead_pid() -> int:
    """Return the pid of a child that has exited and been reaped."""
    proc = multiprocessing.Process(target=_noop)
    proc.start()
    proc.join(timeout=10)
    return proc.pid


def _make_backend(backend_cls):
    if backend_cls is FcntlFileLockBackend and not FcntlFileLockBackend.is_supported():
        pytest.skip("fcntl not available on this platform")
    return backend_cls()


class TestProbeProcess:
    """Liveness classification of recorded lock owners"""

    def test_own_process_is_alive(self):
        assert probe_process(os.getpid()) is ProcessState.ALIVE

    def test_reaped_child_is_dead(self):
        assert probe_process(_dead_pid()) is ProcessState.DEAD

    @pytest.mark.parametrize("pid", [0, -1, True])
    def test_non_positive_pid_is_dead(self, pid):
        assert probe_process(pid) is ProcessState.DEAD

    def test_permission_denied_is_unknown(self):
        with patch("os.kill", side_effect=PermissionError(errno.EPERM, "Operation not permitted")):
            assert probe_process(12345) is ProcessState.UNKNOWN

    def test_eperm_oserror_is_unknown(self):
        with patch("os.kill", side_effect=OSError(errno.EPERM, "Operation not permitted")):
            assert probe_process(12345) is ProcessState.UNKNOWN

    def test_esrch_oserror_is_dead(self):
        with patch("os.kill", side_effect=OSError(errno.ESRCH, "No such process")):
            assert probe_process(12345) is ProcessState.DEAD

    def test_unexpected_oserror_propagates(self):
        with patch("os.kill", side_effect=OSError(errno.EIO, "I/O error")):
            with pytest.raises(OSError, match="I/O error"):
                probe_process(12345)

    def test_zombie_is_dead(self):
        zombie = Mock()
        zombie.status.return_value = psutil.STATUS_ZOMBIE
        with patch("os.kill"), patch("psutil.Process", return_value=zombie):
            assert probe_process(12345) is ProcessState.DEAD

    def test_process_vanishing_during_status_check_is_dead(self):
        with patch("os.kill"), patch("psutil.Process", side_effect=psutil.NoSuchProcess(12345)):
            assert probe_process(12345) is ProcessState.DEAD

    def test_status_access_denied_is_alive(self):
        with patch("os.kill"), patch("psutil.Process", side_effect=psutil.AccessDenied(12345)):
            assert probe_process(12345) is ProcessState.ALIVE


class TestMarkerParsing:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("1234\n", 1234),
            ("  42  ", 42),
            ("", None),
            ("0\n", None),
            ("-5\n", None),
            ("not-a-pid", None),
            ("12 34", None),
            (None, None),
        ],
    )
    def test_parse_marker_pid(self, raw, expected):
        assert parse_marker_pid(raw) == expected

    def test_read_missing_marker_returns_none(self, tmp_path):
        assert read_marker(tmp_path / "missing.lock") is None


@pytest.mark.parametrize("backend_cls", BACKENDS)
class TestBackendOutcomes:
    """Each backend reports the same outcome for the same marker state"""

    def test_fresh_acquire_writes_own_pid(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"

        result = backend.acquire_result(marker)

        assert result.status is AcquireStatus.ACQUIRED
        assert result.handle is not None
        assert result.owner_pid == os.getpid()
        assert marker.read_text(encoding="utf-8") == f"{os.getpid()}\n"

        backend.release(result.handle)
        assert not marker.exists()

    def test_creates_missing_lock_directory(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "nested" / "dir" / "job.lock"

        result = backend.acquire_result(marker)

        assert result.status is AcquireStatus.ACQUIRED
        backend.release(result.handle)

    def test_live_owner_is_contended(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        marker.write_text(f"{os.getpid()}\n", encoding="utf-8")

        result = backend.acquire_result(marker)

        assert result.status is AcquireStatus.CONTENDED
        assert result.owner_pid == os.getpid()
        assert result.handle is None
        assert marker.read_text(encoding="utf-8") == f"{os.getpid()}\n"

    def test_dead_owner_is_reclaimed(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        dead_pid = _dead_pid()
        marker.write_text(f"{dead_pid}\n", encoding="utf-8")

        result = backend.acquire_result(marker)

        assert result.status is AcquireStatus.RECLAIMED
        assert result.reclaimed_pid == dead_pid
        assert marker.read_text(encoding="utf-8") == f"{os.getpid()}\n"
        backend.release(result.handle)

    def test_garbage_marker_is_reclaimed(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        marker.write_text("definitely not a pid\n", encoding="utf-8")

        result = backend.acquire_result(marker)

        assert result.status is AcquireStatus.RECLAIMED
        assert result.reclaimed_pid is None
        assert marker.read_text(encoding="utf-8") == f"{os.getpid()}\n"
        backend.release(result.handle)

    def test_persistently_empty_marker_is_reclaimed_within_retry_window(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        marker.write_text("", encoding="utf-8")

        start = time.monotonic()
        result = backend.acquire_result(marker)
        elapsed = time.monotonic() - start

        assert result.status is AcquireStatus.RECLAIMED
        # Recovery is bounded by the unreadable-retry window.
        assert elapsed < 2.0
        backend.release(result.handle)

    def test_waits_for_marker_being_written(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        marker.write_text("", encoding="utf-8")

        def _delayed_write() -> None:
            time.sleep(backend.unreadable_retry_sleep_seconds * 2)
            marker.write_text(f"{os.getpid()}\n", encoding="utf-8")

        writer = threading.Thread(target=_delayed_write, daemon=True)
        writer.start()
        try:
            result = backend.acquire_result(marker)
        finally:
            writer.join(timeout=2)

        # The marker became readable and names a live process.
        assert result.status is AcquireStatus.CONTENDED
        assert result.owner_pid == os.getpid()

    def test_unverifiable_owner_is_ambiguous_and_marker_kept(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        marker.write_text("4242\n", encoding="utf-8")

        with patch.object(backends_module, "probe_process", return_value=ProcessState.UNKNOWN):
            result = backend.acquire_result(marker)

        assert result.status is AcquireStatus.AMBIGUOUS
        assert result.owner_pid == 4242
        assert result.reason
        assert marker.read_text(encoding="utf-8") == "4242\n"

    def test_release_is_idempotent(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        result = backend.acquire_result(marker)

        backend.release(result.handle)
        backend.release(result.handle)

        assert result.handle.closed is True
        assert not marker.exists()

    def test_release_tolerates_missing_marker(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        result = backend.acquire_result(marker)
        marker.unlink()

        backend.release(result.handle)

        assert not marker.exists()

    def test_release_keeps_marker_rewritten_by_another_owner(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"
        result = backend.acquire_result(marker)
        marker.write_text("999999\n", encoding="utf-8")

        backend.release(result.handle)

        assert marker.read_text(encoding="utf-8") == "999999\n"

    def test_reacquire_after_release(self, backend_cls, tmp_path):
        backend = _make_backend(backend_cls)
        marker = tmp_path / "job.lock"

        first = backend.acquire_result(marker)
        backend.release(first.handle)
        second = backend.acquire_result(marker)

        assert second.status is AcquireStatus.ACQUIRED
        backend.release(second.handle)


def test_pidfile_backend_gives_up_when_marker_keeps_changing(tmp_path, monkeypatch):
    backend = PidFileLockBackend()
    marker = tmp_path / "job.lock"
    marker.write_text("111\n", encoding="utf-8")

    monkeypatch.setattr(backends_module, "probe_process", lambda pid: ProcessState.DEAD)
    # Another process rewrites the marker between our read and our unlink.
    monkeypatch.setattr(PidFileLockBackend, "_unlink_if_unchanged", staticmethod(lambda path, expected: False))

    result = backend.acquire_result(marker)

    assert result.status is AcquireStatus.CONTENDED
    assert result.owner_pid == 111
    assert result.reason
    assert marker.read_text(encoding="utf-8") == "111\n"


def test_pidfile_unlink_if_unchanged_refuses_changed_marker(tmp_path):
    marker = tmp_path / "job.lock"
    marker.write_text("222\n", encoding="utf-8")

    assert PidFileLockBackend._unlink_if_unchanged(marker, "111\n") is False
    assert marker.exists()
    assert PidFileLockBackend._unlink_if_unchanged(marker, "222\n") is True
    assert not marker.exists()


def test_fcntl_unsupported_reports_backend_unavailable_and_cleans_up(monkeypatch, tmp_path):
    if backends_module.fcntl is None:
        pytest.skip("fcntl not available on this platform")

    def _unsupported_flock(fd: int, operation: int) -> None:
        del fd, operation
        raise OSError(errno.EOPNOTSUPP, "flock unsupported")

    monkeypatch.setattr(backends_module.fcntl, "flock", _unsupported_flock)
    marker = tmp_path / "job.lock"

    result = FcntlFileLockBackend().acquire_result(marker)

    assert result.status is AcquireStatus.BACKEND_UNAVAILABLE
    assert result.error is not None
    # The marker was created by this attempt, so it is removed again.
    assert not marker.exists()


def test_fcntl_unsupported_keeps_preexisting_marker(monkeypatch, tmp_path):
    if backends_module.fcntl is None:
        pytest.skip("fcntl not available on this platform")

    def _unsupported_flock(fd: int, operation: int) -> None:
        del fd, operation
        raise OSError(errno.ENOTSUP, "flock unsupported")

    monkeypatch.setattr(backends_module.fcntl, "flock", _unsupported_flock)
    marker = tmp_path / "job.lock"
    marker.write_text("4242\n", encoding="utf-8")

    result = FcntlFileLockBackend().acquire_result(marker)

    assert result.status is AcquireStatus.BACKEND_UNAVAILABLE
    assert marker.read_text(encoding="utf-8") == "4242\n"


def test_fcntl_held_flock_is_contended_even_with_garbage_marker(tmp_path):
    if backends_module.fcntl is None:
        pytest.skip("fcntl not available on this platform")

    marker = tmp_path / "job.lock"
    marker.write_text("garbage\n", encoding="utf-8")
    fd = os.open(str(marker), os.O_RDWR)
    try:
        # Separate open file descriptions conflict under flock, even in one process.
        backends_module.fcntl.flock(fd, backends_module.fcntl.LOCK_EX)
        backend = FcntlFileLockBackend()
        backend.unreadable_retry_attempts = 1

        result = backend.acquire_result(marker)
    finally:
        os.close(fd)

    assert result.status is AcquireStatus.CONTENDED
    assert result.owner_pid is None
    assert Path(marker).read_text(encoding="utf-8") == "garbage\n"


def test_fcntl_marker_released_between_opens_is_created_fresh(monkeypatch, tmp_path):
    if backends_module.fcntl is None:
        pytest.skip("fcntl not available on this platform")

    marker = tmp_path / "job.lock"
    marker.write_text(f"{os.getpid()}\n", encoding="utf-8")
    real_open = os.open

    def _open_after_owner_released(path, flags, *args, **kwargs):
        if path == str(marker) and not flags & os.O_EXCL and marker.exists():
            # The owner releases right after our exclusive create was refused.
            marker.unlink()
        return real_open(path, flags, *args, **kwargs)

    monkeypatch.setattr(os, "open", _open_after_owner_released)
    backend = FcntlFileLockBackend()

    result = backend.acquire_result(marker)

    # A file this process created is a fresh acquire, not a reclaimed corrupt marker.
    assert result.status is AcquireStatus.ACQUIRED
    assert result.reclaimed_pid is None
    assert marker.read_text(encoding="utf-8") == f"{os.getpid()}\n"
    backend.release(result.handle)


def test_fcntl_unwritable_lock_directory_raises(monkeypatch, tmp_path):
    if backends_module.fcntl is None:
        pytest.skip("fcntl not available on this platform")

    marker = tmp_path / "job.lock"
    real_open = os.open

    def _read_only_dir_open(path, flags, *args, **kwargs):
        if path == str(marker):
            raise PermissionError(errno.EACCES, "Permission denied", path)
        return real_open(path, flags, *args, **kwargs)

    monkeypatch.setattr(os, "open", _read_only_dir_open)

    with pytest.raises(PermissionError):
        FcntlFileLockBackend().acquire_result(marker)
    assert not marker.exists()
