"""
cronjob_runner - Supervisor for scheduled (cron) jobs

Runs a job with a PID-verified single-instance lock, a retried health
check, resource monitoring, log retention and failure notifications.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__all__ = [
    "AlreadyRunningError",
    "AmbiguousLivenessError",
    "InstanceLock",
    "JobConfig",
    "JobRunner",
    "RetriesExhaustedError",
    "__version__",
    "main",
    "run_with_retry",
]

_EXPORTS = {
    "AlreadyRunningError": "cronjob_runner.core.exceptions",
    "AmbiguousLivenessError": "cronjob_runner.core.exceptions",
    "InstanceLock": "cronjob_runner.core.locks",
    "JobConfig": "cronjob_runner.core.config",
    "JobRunner": "cronjob_runner.supervisor",
    "RetriesExhaustedError": "cronjob_runner.core.exceptions",
    "__version__": "cronjob_runner.core.version",
    "main": "cronjob_runner.cli.main",
    "run_with_retry": "cronjob_runner.supervisor",
}

if TYPE_CHECKING:
    from cronjob_runner.cli.main import main
    from cronjob_runner.core.config import JobConfig
    from cronjob_runner.core.exceptions import AlreadyRunningError, AmbiguousLivenessError, RetriesExhaustedError
    from cronjob_runner.core.locks import InstanceLock
    from cronjob_runner.core.version import __version__
    from cronjob_runner.supervisor import JobRunner, run_with_retry


def __getattr__(name: str) -> Any:
    if name in _EXPORTS:
        import importlib

        return getattr(importlib.import_module(_EXPORTS[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
