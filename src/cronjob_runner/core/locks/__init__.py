"""Locking subsystem for single-instance job execution.

This package centralizes marker acquisition/release behavior behind
backend abstractions so the job runner can use a stable API.
"""

from cronjob_runner.core.locks.backends import (
    AcquireResult,
    AcquireStatus,
    FcntlFileLockBackend,
    LockBackendUnavailableError,
    PidFileLockBackend,
)
from cronjob_runner.core.locks.liveness import ProcessState, probe_process
from cronjob_runner.core.locks.manager import (
    InstanceLock,
    LockHandle,
    acquire_instance_lock,
    create_lock_backend,
    marker_path_for,
    read_lock_owner,
    release_instance_lock,
)

__all__ = [
    "AcquireResult",
    "AcquireStatus",
    "FcntlFileLockBackend",
    "InstanceLock",
    "LockBackendUnavailableError",
    "LockHandle",
    "PidFileLockBackend",
    "ProcessState",
    "acquire_instance_lock",
    "create_lock_backend",
    "marker_path_for",
    "probe_process",
    "read_lock_owner",
    "release_instance_lock",
]
