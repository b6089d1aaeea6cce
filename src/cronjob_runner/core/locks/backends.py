"""Marker-file lock backend implementations.

Design principles:
- The marker file holds the owner's decimal pid and nothing else, so it
  stays readable by `cat` and by other tooling that follows the same
  convention.
- A marker is only ever reclaimed when its owner is provably dead or the
  contents cannot name an owner. Unverifiable owners are reported, never
  reclaimed.
- Backends report outcomes as an AcquireResult; policy (logging, raising)
  belongs to the manager.
"""

from __future__ import annotations

import contextlib
import errno
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from cronjob_runner.core.constants import LOCK_ACQUIRE_ATTEMPTS, LOCK_FILE_MODE
from cronjob_runner.core.locks.liveness import ProcessState, probe_process

try:
    import fcntl
except ImportError:  # pragma: no cover - exercised on non-POSIX only
    fcntl = None

_FLOCK_UNSUPPORTED_ERRNOS = {
    err_no
    for err_no in (
        getattr(errno, "ENOTSUP", None),
        getattr(errno, "EOPNOTSUPP", None),
        getattr(errno, "ENOSYS", None),
    )
    if err_no is not None
}


class LockBackendUnavailableError(OSError):
    """Raised when a backend exists but is unusable for the target lock path."""


class AcquireStatus(Enum):
    ACQUIRED = "acquired"  # No previous marker
    RECLAIMED = "reclaimed"  # Previous marker named a dead or unreadable owner
    CONTENDED = "contended"  # Previous marker names a live owner
    AMBIGUOUS = "ambiguous"  # Owner liveness could not be determined
    BACKEND_UNAVAILABLE = "backend_unavailable"


@dataclass
class MarkerHandle:
    """Backend-specific state for a held marker."""

    marker_path: Path
    owner_pid: int
    fd: int | None = None
    closed: bool = False


@dataclass
class AcquireResult:
    status: AcquireStatus
    handle: MarkerHandle | None = None
    owner_pid: int | None = None
    reclaimed_pid: int | None = None
    reason: str | None = None
    error: OSError | None = None


class LockBackend(Protocol):
    """Backend abstraction for marker acquisition and release."""

    name: str

    def acquire_result(self, marker_path: Path) -> AcquireResult:
        """Try acquiring the marker without blocking."""

    def release(self, handle: MarkerHandle) -> None:
        """Release marker held by handle. Must be idempotent."""


def parse_marker_pid(raw: str | None) -> int | None:
    """Return the pid recorded in marker contents, or None if it names no one."""
    if raw is None:
        return None
    text = raw.strip()
    if not text.isdigit():
        return None
    pid = int(text)
    return pid if pid > 0 else None


def read_marker(marker_path: Path) -> str | None:
    """Read marker contents. Returns None when the marker does not exist.

    An unreadable marker is reported as empty contents so that it is judged
    the same way as a corrupt one.
    """
    try:
        return marker_path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except IsADirectoryError:
        raise
    except OSError:
        return ""


def _write_all(fd: int, payload: bytes) -> None:
    """Write complete payload to fd, handling short writes."""
    total_written = 0
    while total_written < len(payload):
        written = os.write(fd, payload[total_written:])
        if written <= 0:
            raise OSError("short write while persisting lock marker")
        total_written += written


def _write_pid_fd(fd: int, pid: int) -> None:
    os.lseek(fd, 0, os.SEEK_SET)
    os.ftruncate(fd, 0)
    _write_all(fd, f"{pid}\n".encode("ascii"))
    os.fsync(fd)


def _read_fd(fd: int) -> str:
    os.lseek(fd, 0, os.SEEK_SET)
    chunks = []
    while True:
        chunk = os.read(fd, 4096)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8", errors="replace")


class _MarkerReader:
    """Shared logic for judging an existing marker."""

    unreadable_retry_attempts = 10
    unreadable_retry_sleep_seconds = 0.05

    def _read_with_retries(self, marker_path: Path) -> str | None:
        """Re-read a marker that does not yet name an owner.

        A competing process may have created the file and not yet written
        its pid, so empty or partial contents are given a short grace
        period before being judged corrupt.
        """
        raw = read_marker(marker_path)
        for _ in range(self.unreadable_retry_attempts):
            if raw is None or parse_marker_pid(raw) is not None:
                return raw
            time.sleep(self.unreadable_retry_sleep_seconds)
            raw = read_marker(marker_path)
        return raw

    @staticmethod
    def _judge_owner(pid: int | None) -> AcquireResult | None:
        """Return a refusal result for a live/unknown owner, None if reclaimable."""
        if pid is None:
            return None
        state = probe_process(pid)
        if state is ProcessState.ALIVE:
            return AcquireResult(status=AcquireStatus.CONTENDED, owner_pid=pid)
        if state is ProcessState.UNKNOWN:
            return AcquireResult(
                status=AcquireStatus.AMBIGUOUS,
                owner_pid=pid,
                reason="permission denied while checking process",
            )
        return None

    @staticmethod
    def _unlink_if_unchanged(marker_path: Path, expected: str) -> bool:
        if read_marker(marker_path) != expected:
            return False
        try:
            marker_path.unlink()
        except FileNotFoundError:
            return False
        return True


class PidFileLockBackend(_MarkerReader):
    """Portable backend: the marker's existence is the lock.

    Creation uses O_CREAT | O_EXCL so two processes can never both create a
    fresh marker. A stale marker is re-read immediately before it is
    unlinked; if its contents changed, another process reclaimed it first
    and the new owner is judged on the next pass. A narrow window between
    that re-read and the unlink remains, which the fcntl backend does not
    have.
    """

    name = "pidfile"
    acquire_attempts = LOCK_ACQUIRE_ATTEMPTS

    def acquire_result(self, marker_path: Path) -> AcquireResult:
        marker_path.parent.mkdir(parents=True, exist_ok=True)
        reclaimed = False
        reclaimed_pid: int | None = None
        last_pid: int | None = None

        for _ in range(self.acquire_attempts):
            try:
                fd = os.open(str(marker_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, LOCK_FILE_MODE)
            except FileExistsError:
                raw = self._read_with_retries(marker_path)
                if raw is None:
                    # Owner released between our create and read.
                    continue
                pid = parse_marker_pid(raw)
                last_pid = pid
                refusal = self._judge_owner(pid)
                if refusal is not None:
                    return refusal
                if self._unlink_if_unchanged(marker_path, raw):
                    reclaimed = True
                    reclaimed_pid = pid
                continue

            pid = os.getpid()
            try:
                _write_pid_fd(fd, pid)
            except OSError:
                with contextlib.suppress(OSError):
                    os.close(fd)
                with contextlib.suppress(FileNotFoundError):
                    marker_path.unlink()
                raise
            os.close(fd)
            return AcquireResult(
                status=AcquireStatus.RECLAIMED if reclaimed else AcquireStatus.ACQUIRED,
                handle=MarkerHandle(marker_path=marker_path, owner_pid=pid),
                owner_pid=pid,
                reclaimed_pid=reclaimed_pid,
            )

        return AcquireResult(
            status=AcquireStatus.CONTENDED,
            owner_pid=last_pid,
            reason="marker kept changing while reclaiming",
        )

    def release(self, handle: MarkerHandle) -> None:
        if handle.closed:
            return
        try:
            if parse_marker_pid(read_marker(handle.marker_path)) == handle.owner_pid:
                with contextlib.suppress(FileNotFoundError):
                    handle.marker_path.unlink()
        finally:
            handle.closed = True


class FcntlFileLockBackend(_MarkerReader):
    """POSIX advisory locking backend backed by `fcntl.flock`.

    The kernel drops the flock when the owner dies, so ownership needs no
    stale detection between processes using this backend. The pid is still
    written into the marker and still checked, which keeps the outcome
    identical to the pidfile backend and lets both backends coexist on one
    marker path.
    """

    name = "fcntl"
    acquire_attempts = LOCK_ACQUIRE_ATTEMPTS

    @staticmethod
    def is_supported() -> bool:
        return fcntl is not None

    @staticmethod
    def _open_lock_file(marker_path: Path) -> tuple[int | None, bool]:
        """Open the marker, reporting whether this call created it.

        Returns (None, False) when an existing marker vanished before it
        could be reopened; the caller should try again.
        """
        try:
            return os.open(str(marker_path), os.O_CREAT | os.O_EXCL | os.O_RDWR, LOCK_FILE_MODE), True
        except FileExistsError:
            pass
        try:
            return os.open(str(marker_path), os.O_RDWR), False
        except FileNotFoundError:
            return None, False

    @staticmethod
    def _unlock_and_close(fd: int) -> None:
        with contextlib.suppress(OSError):
            assert fcntl is not None  # For type checkers.
            fcntl.flock(fd, fcntl.LOCK_UN)
        with contextlib.suppress(OSError):
            os.close(fd)

    def acquire_result(self, marker_path: Path) -> AcquireResult:
        marker_path.parent.mkdir(parents=True, exist_ok=True)
        last_pid: int | None = None
        reclaimed = False
        reclaimed_pid: int | None = None

        for _ in range(self.acquire_attempts):
            try:
                fd, created = self._open_lock_file(marker_path)
            except PermissionError:
                # An existing marker we cannot open for locking is judged by
                # its contents alone; unreadable contents name no owner.
                raw = self._read_with_retries(marker_path)
                if raw is None:
                    # No marker at all: the lock directory itself is not writable.
                    raise
                pid = parse_marker_pid(raw)
                last_pid = pid
                refusal = self._judge_owner(pid)
                if refusal is not None:
                    return refusal
                if self._unlink_if_unchanged(marker_path, raw):
                    reclaimed = True
                    reclaimed_pid = pid
                continue
            if fd is None:
                continue

            try:
                assert fcntl is not None  # For type checkers.
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                pid = parse_marker_pid(self._read_with_retries(marker_path))
                return AcquireResult(status=AcquireStatus.CONTENDED, owner_pid=pid)
            except OSError as e:
                os.close(fd)
                if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                    pid = parse_marker_pid(read_marker(marker_path))
                    return AcquireResult(status=AcquireStatus.CONTENDED, owner_pid=pid)
                if e.errno in _FLOCK_UNSUPPORTED_ERRNOS:
                    if created:
                        with contextlib.suppress(FileNotFoundError):
                            marker_path.unlink()
                    return AcquireResult(
                        status=AcquireStatus.BACKEND_UNAVAILABLE,
                        error=LockBackendUnavailableError(f"flock is unsupported for lock path '{marker_path}'"),
                    )
                raise

            # The previous owner may have unlinked the marker between our
            # open and flock; a lock on an orphaned inode protects nothing.
            try:
                same_file = os.path.samestat(os.fstat(fd), os.stat(marker_path))
            except FileNotFoundError:
                same_file = False
            if not same_file:
                self._unlock_and_close(fd)
                continue

            if not created:
                raw = _read_fd(fd)
                if parse_marker_pid(raw) is None and raw.strip() == "":
                    # Possibly a pidfile-backend peer that has not written yet.
                    retried = self._read_with_retries(marker_path)
                    raw = retried if retried is not None else raw
                pid = parse_marker_pid(raw)
                last_pid = pid
                refusal = self._judge_owner(pid)
                if refusal is not None:
                    self._unlock_and_close(fd)
                    return refusal
                # A clean release unlinks the marker, so any leftover file is stale.
                reclaimed = True
                reclaimed_pid = pid

            own_pid = os.getpid()
            try:
                _write_pid_fd(fd, own_pid)
            except OSError:
                self._unlock_and_close(fd)
                raise
            return AcquireResult(
                status=AcquireStatus.RECLAIMED if reclaimed else AcquireStatus.ACQUIRED,
                handle=MarkerHandle(marker_path=marker_path, owner_pid=own_pid, fd=fd),
                owner_pid=own_pid,
                reclaimed_pid=reclaimed_pid,
            )

        return AcquireResult(
            status=AcquireStatus.CONTENDED,
            owner_pid=last_pid,
            reason="marker kept being replaced while locking",
        )

    def release(self, handle: MarkerHandle) -> None:
        if handle.closed:
            return
        try:
            if handle.fd is not None:
                try:
                    still_ours = os.path.samestat(os.fstat(handle.fd), os.stat(handle.marker_path))
                except OSError:
                    still_ours = False
                # Unlink while still holding the flock so a waiter that opened
                # this inode sees it orphaned and retries on a fresh file.
                if still_ours and parse_marker_pid(_read_fd(handle.fd)) == handle.owner_pid:
                    with contextlib.suppress(FileNotFoundError):
                        handle.marker_path.unlink()
        finally:
            if handle.fd is not None:
                self._unlock_and_close(handle.fd)
            handle.closed = True
