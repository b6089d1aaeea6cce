"""Notification subjects and bodies with actionable suggestions."""

from __future__ import annotations

import socket

from cronjob_runner.core.constants import (
    BANNER_WIDTH,
    SUBJECT_AMBIGUOUS_LOCK,
    SUBJECT_CONCURRENT,
    SUBJECT_FAILED,
    SUBJECT_HEALTH_CHECK,
    SUBJECT_MISSING_ENV_VAR,
    SUBJECT_PREREQUISITE,
)
from cronjob_runner.core.exceptions import (
    AlreadyRunningError,
    AmbiguousLivenessError,
    PrerequisiteError,
    RetriesExhaustedError,
)


class NotificationMessages:
    """Builds (subject, body) pairs for each failure condition."""

    @staticmethod
    def subject(job_name: str, event: str) -> str:
        return f"{job_name} - {event}"

    @staticmethod
    def _render(title: str, job_name: str, reason: str, suggestions: list[str], log_file: str | None) -> str:
        output = [
            "=" * BANNER_WIDTH,
            title,
            "=" * BANNER_WIDTH,
            f"Job:  {job_name}",
            f"Host: {socket.gethostname()}",
            "",
            "What happened:",
            f"  {reason}",
            "",
            "What to check:",
        ]
        for i, suggestion in enumerate(suggestions, 1):
            output.append(f"  {i}. {suggestion}")
        if log_file:
            output.extend(["", f"Log file: {log_file}"])
        return "\n".join(output)

    @classmethod
    def already_running(cls, error: AlreadyRunningError, log_file: str | None = None) -> tuple[str, str]:
        pid = error.pid if error.pid is not None else "unknown"
        body = cls._render(
            "Concurrent Execution",
            error.job_name,
            f"Job is already running with PID {pid}. This run was skipped.",
            [
                "Confirm whether the previous run is expected to still be running",
                "If it is hung, inspect it with: ps -fp <PID>",
                "If runs regularly overlap, lengthen the cron interval",
            ],
            log_file,
        )
        return cls.subject(error.job_name, SUBJECT_CONCURRENT), body

    @classmethod
    def ambiguous_owner(cls, error: AmbiguousLivenessError, marker_path: str, log_file: str | None = None) -> tuple[str, str]:
        body = cls._render(
            "Ambiguous Lock Owner",
            error.job_name,
            f"Lock file {marker_path} names PID {error.pid}, whose liveness could not be verified "
            f"({error.reason or 'unknown reason'}). The lock was left in place and this run was skipped.",
            [
                "Check whether PID is a previous run under another user: ps -fp <PID>",
                f"If no run is active, remove {marker_path} manually",
                "Run the job under a single consistent user",
            ],
            log_file,
        )
        return cls.subject(error.job_name, SUBJECT_AMBIGUOUS_LOCK), body

    @classmethod
    def health_check_failed(cls, job_name: str, error: RetriesExhaustedError, log_file: str | None = None) -> tuple[str, str]:
        body = cls._render(
            "Health Check Failed",
            job_name,
            f"The job failed its health check after {error.attempts} attempt(s): {error.last_error or 'no details'}",
            [
                "Verify the required services are running (systemctl status <unit>)",
                "Verify the required ports are listening (ss -ltn)",
                "Check free disk space (df -h)",
            ],
            log_file,
        )
        return cls.subject(job_name, SUBJECT_HEALTH_CHECK), body

    @classmethod
    def prerequisite_missing(cls, job_name: str, error: PrerequisiteError, log_file: str | None = None) -> tuple[str, str]:
        if error.kind == "command":
            event = SUBJECT_PREREQUISITE
            reason = f"Required command(s) not found: {', '.join(error.missing)}"
            suggestions = ["Install the missing package(s)", "Check PATH in the crontab environment"]
        else:
            event = SUBJECT_MISSING_ENV_VAR
            reason = f"Required environment variable(s) not set: {', '.join(error.missing)}"
            suggestions = [
                "Set the variable(s) in the crontab or a .env file in the job's working directory",
                "Remember cron does not load your login shell profile",
            ]
        body = cls._render(event, job_name, reason, suggestions, log_file)
        return cls.subject(job_name, event), body

    @classmethod
    def job_failed(cls, job_name: str, exit_code: int, log_file: str | None = None) -> tuple[str, str]:
        body = cls._render(
            "Script Failed",
            job_name,
            f"Job failed with exit code {exit_code}.",
            ["Check the logs for details", "Re-run the job manually to reproduce the failure"],
            log_file,
        )
        return cls.subject(job_name, SUBJECT_FAILED), body
