"""Job runner: one supervised execution of a scheduled job.

Order of operations:
    1. Purge rotated logs past retention
    2. Validate prerequisites (commands, environment variables)
    3. Acquire the single-instance lock
    4. Health check, retried with a fixed delay
    5. Resource check (warnings only)
    6. Task
    7. Always: release lock, log duration, notify on failure, resource check
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable
from typing import Any

from cronjob_runner.checks.health import HealthCheck
from cronjob_runner.checks.prerequisites import validate_prerequisites
from cronjob_runner.checks.resources import ResourceMonitor
from cronjob_runner.core.config import JobConfig
from cronjob_runner.core.constants import EXIT_FAILURE, EXIT_SIGNAL_BASE, EXIT_SUCCESS
from cronjob_runner.core.exceptions import (
    AlreadyRunningError,
    AmbiguousLivenessError,
    PrerequisiteError,
    RetriesExhaustedError,
)
from cronjob_runner.core.locks.manager import InstanceLock
from cronjob_runner.core.logging import flush_logging_handlers, log_file_path, purge_old_logs, resolve_log_dir, with_log_context
from cronjob_runner.notify import Notifier, create_notifier
from cronjob_runner.supervisor.messages import NotificationMessages
from cronjob_runner.supervisor.retry import run_with_retry

# A task returns None/True/0 for success, False for failure, or an exit code.
Task = Callable[[], Any]

_HANDLED_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None), signal.SIGINT) if sig is not None
)


def _exit_code_from_result(result: Any) -> int:
    if result is None or result is True:
        return EXIT_SUCCESS
    if result is False:
        return EXIT_FAILURE
    if isinstance(result, int):
        return result
    return EXIT_SUCCESS


def _raise_system_exit(signum: int, frame: object) -> None:
    raise SystemExit(EXIT_SIGNAL_BASE + signum)


class JobRunner:
    """Run a task under lock, health check, monitoring and notification.

    Args:
        config: Job configuration
        task: Zero-argument payload callable
        notifier: Failure notifier (default: chosen from config.notification)
        health_check: Health check (default: built from config.health)
        resource_monitor: Resource monitor (default: built from config.resources)
        logger: Base logger; records carry a `job` context field
        sleep: Sleep used between health-check attempts (injectable for tests)
        clock: Monotonic clock used for the duration log line
        handle_signals: Translate SIGTERM/SIGHUP/SIGINT into SystemExit so
            cleanup runs (main thread only)
    """

    def __init__(
        self,
        config: JobConfig,
        task: Task,
        *,
        notifier: Notifier | None = None,
        health_check: HealthCheck | None = None,
        resource_monitor: ResourceMonitor | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: Callable[[float], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
        handle_signals: bool = True,
    ):
        config.validate()
        self.config = config
        self.task = task
        self.logger = with_log_context(logger or logging.getLogger("cronjob_runner"), job=config.job_name)
        self.notifier = notifier or create_notifier(config.notification, logger=self.logger)
        self.health_check = health_check or HealthCheck(config.health, logger=self.logger)
        self.resource_monitor = resource_monitor or ResourceMonitor(config.resources, logger=self.logger)
        self.lock = InstanceLock(
            config.job_name,
            lock_dir=config.lock.lock_dir,
            backend_name=config.lock.backend,
            logger=self.logger,
        )
        self._sleep = sleep
        self._clock = clock
        self._handle_signals = handle_signals
        self._failure_notified = False

    @property
    def log_file(self) -> str:
        return str(log_file_path(self.config.log, self.config.job_name))

    def run(self) -> int:
        """Execute the job once and return the process exit code."""
        name = self.config.job_name
        start = self._clock()
        self._failure_notified = False
        previous_handlers = self._install_signal_handlers()
        exit_code = EXIT_FAILURE

        self.logger.info(f"Starting {name}")
        try:
            exit_code = self._execute()
        except SystemExit as e:
            exit_code = e.code if isinstance(e.code, int) else EXIT_FAILURE
            self.logger.error(f"Job interrupted (exit code {exit_code})")
        except Exception:
            self.logger.exception("Job failed with an unexpected error")
            exit_code = EXIT_FAILURE
        finally:
            self.lock.release()
            self._restore_signal_handlers(previous_handlers)

        duration = self._clock() - start
        self.logger.info(f"Job execution time: {duration:.0f} seconds")

        if exit_code != EXIT_SUCCESS:
            self.logger.error(f"Job failed with exit code {exit_code}")
            if not self._failure_notified:
                self._notify(*NotificationMessages.job_failed(name, exit_code, self.log_file))
        else:
            self.logger.info("Job completed successfully")

        self.resource_monitor.check()
        flush_logging_handlers()
        return exit_code

    def _execute(self) -> int:
        config = self.config
        purge_old_logs(resolve_log_dir(config.log), config.job_name, config.log.retention_days, logger=self.logger)

        try:
            validate_prerequisites(
                config.required_commands,
                config.required_env_vars,
                logger=self.logger,
            )
        except PrerequisiteError as e:
            self._notify(*NotificationMessages.prerequisite_missing(config.job_name, e, self.log_file))
            self._failure_notified = True
            return EXIT_FAILURE

        try:
            self.lock.acquire()
        except AlreadyRunningError as e:
            self._notify(*NotificationMessages.already_running(e, self.log_file))
            self._failure_notified = True
            return EXIT_FAILURE
        except AmbiguousLivenessError as e:
            self._notify(*NotificationMessages.ambiguous_owner(e, str(self.lock.marker_path), self.log_file))
            self._failure_notified = True
            return EXIT_FAILURE

        if config.health.enabled:
            try:
                run_with_retry(
                    self.health_check.ensure_healthy,
                    config.retry.max_attempts,
                    config.retry.delay,
                    operation_name="Health check",
                    logger=self.logger,
                    sleep=self._sleep,
                )
            except RetriesExhaustedError as e:
                self.logger.error(f"Health check failed after {e.attempts} attempts")
                self._notify(*NotificationMessages.health_check_failed(config.job_name, e, self.log_file))
                self._failure_notified = True
                return EXIT_FAILURE

        self.resource_monitor.check()

        try:
            exit_code = _exit_code_from_result(self.task())
        except Exception:
            self.logger.exception("Task raised an exception")
            return EXIT_FAILURE

        if exit_code == EXIT_SUCCESS:
            self.logger.info("Main task completed")
        return exit_code

    def _notify(self, subject: str, body: str) -> None:
        try:
            self.notifier.notify(subject, body)
        except Exception as e:
            # Notifiers should not raise; a broken one must not change the exit code.
            self.logger.error(f"Notifier {getattr(self.notifier, 'name', self.notifier)!r} raised: {e}")

    def _install_signal_handlers(self) -> dict[int, Any]:
        if not self._handle_signals or threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for sig in _HANDLED_SIGNALS:
            previous[sig] = signal.getsignal(sig)
            signal.signal(sig, _raise_system_exit)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict[int, Any]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
