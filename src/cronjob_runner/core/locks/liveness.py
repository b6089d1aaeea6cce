"""Process liveness probing for lock owners."""

from __future__ import annotations

import errno
import os
from enum import Enum

import psutil


class ProcessState(Enum):
    """Result of asking whether a recorded lock owner is still running."""

    ALIVE = "alive"
    DEAD = "dead"
    UNKNOWN = "unknown"  # Exists or not, we are not allowed to find out


def probe_process(pid: int) -> ProcessState:
    """Return the liveness state of `pid` on this host.

    `ProcessLookupError` means the process is gone. `PermissionError` means
    a process with that pid exists under another user, but since pids are
    recycled it cannot be confirmed to be the lock owner, so the answer is
    UNKNOWN rather than ALIVE or DEAD. Zombies count as dead: they will
    never release anything.
    """
    if isinstance(pid, bool) or pid <= 0:
        return ProcessState.DEAD
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks
    except ProcessLookupError:
        return ProcessState.DEAD
    except PermissionError:
        return ProcessState.UNKNOWN
    except OverflowError:
        return ProcessState.DEAD
    except OSError as e:
        if e.errno == errno.ESRCH:
            return ProcessState.DEAD
        if e.errno == errno.EPERM:
            return ProcessState.UNKNOWN
        raise

    if _is_zombie(pid):
        return ProcessState.DEAD
    return ProcessState.ALIVE


def _is_zombie(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.Error:
        return False
