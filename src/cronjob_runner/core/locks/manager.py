"""Instance lock orchestrating backend selection and lifecycle."""

from __future__ import annotations

import atexit
import contextlib
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

from cronjob_runner.core.constants import ENV_LOCK_BACKEND, ENV_LOCK_DIR, LOCK_FILE_SUFFIX
from cronjob_runner.core.exceptions import AlreadyRunningError, AmbiguousLivenessError
from cronjob_runner.core.locks.backends import (
    AcquireResult,
    AcquireStatus,
    FcntlFileLockBackend,
    LockBackend,
    LockBackendUnavailableError,
    MarkerHandle,
    PidFileLockBackend,
    parse_marker_pid,
    read_marker,
)

# Markers held by this process, keyed by resolved marker path.
_held_markers: dict[Path, LockHandle] = {}
_pending_markers: set[Path] = set()
_registry_lock = threading.Lock()
_atexit_registered = False


@dataclass
class LockHandle:
    """Ownership of one job's marker file.

    Attributes:
        job_name: Job the marker belongs to
        marker_path: Marker file location
        owner_pid: PID written into the marker
        backend: Name of the backend that holds the marker
        reclaimed_pid: Owner of the stale marker that was replaced, if any
        reclaimed: Whether a stale or corrupt marker was replaced
    """

    job_name: str
    marker_path: Path
    owner_pid: int
    backend: str
    reclaimed_pid: int | None = None
    reclaimed: bool = False
    released: bool = False
    _backend: LockBackend | None = field(default=None, repr=False, compare=False)
    _marker: MarkerHandle | None = field(default=None, repr=False, compare=False)


def default_lock_dir() -> Path:
    """Lock directory from CRONJOB_LOCK_DIR, else the system temp dir."""
    override = os.environ.get(ENV_LOCK_DIR)
    return Path(override) if override else Path(tempfile.gettempdir())


def marker_path_for(job_name: str, lock_dir: Path | str | None = None) -> Path:
    """Return the marker path for a job; one path per job name."""
    directory = Path(lock_dir) if lock_dir is not None else default_lock_dir()
    # Sanitize job name for filename (keep only safe chars)
    safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", job_name.strip()) or "_"
    return directory / f"{safe_name}{LOCK_FILE_SUFFIX}"


def create_lock_backend(
    backend_name: str | None = None,
    *,
    logger: logging.Logger | None = None,
) -> LockBackend:
    """Create lock backend from explicit value or environment override."""
    log = logger or logging.getLogger(__name__)
    requested = (backend_name or os.environ.get(ENV_LOCK_BACKEND, "auto")).strip().lower()

    if requested == "auto":
        if FcntlFileLockBackend.is_supported():
            return FcntlFileLockBackend()
        return PidFileLockBackend()

    if requested == "fcntl":
        if FcntlFileLockBackend.is_supported():
            return FcntlFileLockBackend()
        log.warning("Requested fcntl backend is unavailable; falling back to pidfile backend")
        return PidFileLockBackend()

    if requested == "pidfile":
        return PidFileLockBackend()

    log.warning("Unknown lock backend '%s'; falling back to auto selection", requested)
    return create_lock_backend("auto", logger=log)


def _registry_key(marker_path: Path) -> Path:
    return Path(os.path.abspath(marker_path))


def _release_all_at_exit() -> None:
    with _registry_lock:
        handles = list(_held_markers.values())
    for handle in handles:
        release_instance_lock(handle)


def _forget_inherited_markers() -> None:
    """Drop the parent's markers from a forked child's registry.

    The child must never unlink or unlock them; the parent still owns them.
    """
    with _registry_lock:
        _held_markers.clear()
        _pending_markers.clear()


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_forget_inherited_markers)


def _ensure_atexit_registered() -> None:
    global _atexit_registered
    if not _atexit_registered:
        atexit.register(_release_all_at_exit)
        _atexit_registered = True


class InstanceLock:
    """Single-instance lock for a named job on the local host.

    Usage:
        with InstanceLock("nightly-backup") as lock:
            run_backup()

    Entering raises AlreadyRunningError when a live process owns the job,
    and AmbiguousLivenessError when the recorded owner cannot be checked.
    A marker left by a dead process (or holding garbage) is reclaimed with
    a warning. Leaving the block always releases the marker; an atexit hook
    releases anything still held when the interpreter shuts down.

    Args:
        job_name: Job identifier; derives the marker file name
        lock_dir: Directory for marker files (default: CRONJOB_LOCK_DIR or temp dir)
        backend_name: Backend override ("auto", "fcntl", "pidfile")
        logger: Logger for stale-reclaim warnings and contention errors
    """

    def __init__(
        self,
        job_name: str,
        *,
        lock_dir: Path | str | None = None,
        backend_name: str | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.job_name = job_name
        self.marker_path = marker_path_for(job_name, lock_dir)
        self.logger = logger or logging.getLogger(__name__)
        self.backend = create_lock_backend(backend_name, logger=self.logger)
        self._handle: LockHandle | None = None

    @property
    def handle(self) -> LockHandle | None:
        return self._handle

    @property
    def acquired(self) -> bool:
        return self._handle is not None and not self._handle.released

    def __enter__(self) -> InstanceLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def acquire(self) -> LockHandle:
        """Acquire the job marker without blocking.

        Raises:
            AlreadyRunningError: Marker owned by a live process (including this one)
            AmbiguousLivenessError: Owner's liveness could not be determined
            OSError: Marker could not be written or a stale one removed
        """
        key = _registry_key(self.marker_path)
        with _registry_lock:
            if key in _held_markers or key in _pending_markers:
                self.logger.error(f"Job '{self.job_name}' is already running in this process (PID {os.getpid()})")
                raise AlreadyRunningError(self.job_name, os.getpid())
            _pending_markers.add(key)

        try:
            result = self._acquire_with_fallback()
            handle = self._handle_result(result)
        finally:
            with _registry_lock:
                _pending_markers.discard(key)

        with _registry_lock:
            _held_markers[key] = handle
        _ensure_atexit_registered()
        self._handle = handle
        return handle

    def release(self) -> None:
        """Release the marker if held. Safe to call any number of times."""
        handle = self._handle
        if handle is None:
            return
        release_instance_lock(handle, logger=self.logger)

    def read_owner(self) -> int | None:
        """Return the pid recorded in the marker, for diagnostics."""
        return parse_marker_pid(read_marker(self.marker_path))

    def _acquire_with_fallback(self) -> AcquireResult:
        result = self.backend.acquire_result(self.marker_path)
        if result.status == AcquireStatus.BACKEND_UNAVAILABLE and isinstance(self.backend, FcntlFileLockBackend):
            self.logger.warning(
                "fcntl backend unavailable for '%s'; falling back to pidfile backend",
                self.marker_path,
            )
            self.backend = PidFileLockBackend()
            result = self.backend.acquire_result(self.marker_path)

        if result.status == AcquireStatus.BACKEND_UNAVAILABLE:
            if result.error is not None:
                raise result.error
            raise LockBackendUnavailableError(f"lock backend unavailable for '{self.marker_path}'")
        return result

    def _handle_result(self, result: AcquireResult) -> LockHandle:
        if result.status == AcquireStatus.CONTENDED:
            pid = result.owner_pid
            self.logger.error(
                f"Job '{self.job_name}' is already running with PID {pid if pid is not None else 'unknown'}"
            )
            raise AlreadyRunningError(self.job_name, pid)

        if result.status == AcquireStatus.AMBIGUOUS:
            self.logger.error(
                f"Cannot determine whether PID {result.owner_pid} holding '{self.marker_path}' is alive "
                f"({result.reason}); leaving lock in place"
            )
            raise AmbiguousLivenessError(self.job_name, result.owner_pid, reason=result.reason)

        marker = result.handle
        assert marker is not None  # ACQUIRED and RECLAIMED always carry a handle.

        reclaimed = result.status == AcquireStatus.RECLAIMED
        if reclaimed:
            if result.reclaimed_pid is not None:
                self.logger.warning(
                    f"Stale lock file found for job '{self.job_name}' (PID {result.reclaimed_pid} is not running); "
                    "removed it"
                )
            else:
                self.logger.warning(
                    f"Unreadable or corrupt lock file found for job '{self.job_name}' at {self.marker_path}; removed it"
                )
        else:
            self.logger.debug(f"Acquired lock {self.marker_path} (PID {marker.owner_pid})")

        return LockHandle(
            job_name=self.job_name,
            marker_path=self.marker_path,
            owner_pid=marker.owner_pid,
            backend=self.backend.name,
            reclaimed_pid=result.reclaimed_pid,
            reclaimed=reclaimed,
            _backend=self.backend,
            _marker=marker,
        )


def acquire_instance_lock(
    job_name: str,
    *,
    lock_dir: Path | str | None = None,
    backend_name: str | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> LockHandle:
    """Acquire the marker for `job_name` and return its handle.

    Pair every successful call with release_instance_lock(), preferably in
    a finally block, or use InstanceLock as a context manager.
    """
    return InstanceLock(job_name, lock_dir=lock_dir, backend_name=backend_name, logger=logger).acquire()


def release_instance_lock(
    handle: LockHandle,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> None:
    """Release a marker handle. Idempotent; a marker already gone is not an error.

    A handle copied into a forked child is only dropped there: the marker
    and its flock stay with the process whose pid it records.
    """
    log = logger or logging.getLogger(__name__)
    key = _registry_key(handle.marker_path)
    with _registry_lock:
        if handle.released:
            return
        handle.released = True
        if _held_markers.get(key) is handle:
            del _held_markers[key]

    if handle.owner_pid != os.getpid():
        marker = handle._marker
        if marker is not None and marker.fd is not None and not marker.closed:
            # Closing our copy of the descriptor leaves the parent's flock intact.
            with contextlib.suppress(OSError):
                os.close(marker.fd)
            marker.closed = True
        log.debug(f"Not releasing lock {handle.marker_path} owned by PID {handle.owner_pid}")
        return

    if handle._backend is not None and handle._marker is not None:
        handle._backend.release(handle._marker)
    log.debug(f"Released lock {handle.marker_path}")


def read_lock_owner(job_name: str, lock_dir: Path | str | None = None) -> int | None:
    """Return the pid recorded for `job_name`, or None if no valid marker exists."""
    return parse_marker_pid(read_marker(marker_path_for(job_name, lock_dir)))
