"""Custom exceptions for cronjob_runner.

All exception classes carry enough context (job name, pid, attempt count)
for the job runner to log and notify without re-deriving state.
"""


class CronJobError(Exception):
    """Base exception for all cronjob_runner errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(CronJobError):
    """Exception raised for invalid configuration values.

    Examples:
        - Non-positive attempt count
        - Negative retry delay
        - Empty job name
    """

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        self.field = field
        super().__init__(message, details)


class PrerequisiteError(CronJobError):
    """Exception raised when required commands or environment variables are missing.

    Attributes:
        kind: "command" or "env_var"
        missing: Names that could not be found
    """

    def __init__(self, kind: str, missing: list[str]):
        self.kind = kind
        self.missing = list(missing)
        label = "command" if kind == "command" else "environment variable"
        if len(self.missing) > 1:
            label += "s"
        super().__init__(f"Required {label} not found", ", ".join(self.missing))


class HealthCheckError(CronJobError):
    """Exception raised when one or more health sub-checks fail.

    Attributes:
        failures: One human-readable line per failed sub-check
    """

    def __init__(self, failures: list[str]):
        self.failures = list(failures)
        super().__init__("Health check failed", "; ".join(self.failures) or None)


class AlreadyRunningError(CronJobError):
    """Exception raised when another live process already holds the job lock.

    This is a control signal, not a bug: the caller must abort the run
    without executing the payload and must not retry.

    Attributes:
        job_name: Job whose lock is held
        pid: PID recorded in the marker file (None if it could not be read)
    """

    def __init__(self, job_name: str, pid: int | None):
        self.job_name = job_name
        self.pid = pid
        super().__init__(f"Job '{job_name}' is already running", f"PID {pid}" if pid is not None else None)


class AmbiguousLivenessError(CronJobError):
    """Exception raised when the lock owner's liveness cannot be determined.

    Typically the recorded process exists under another user and signalling
    it is not permitted. The marker is left in place.

    Attributes:
        job_name: Job whose lock could not be verified
        pid: PID recorded in the marker file
    """

    def __init__(self, job_name: str, pid: int | None, reason: str | None = None):
        self.job_name = job_name
        self.pid = pid
        self.reason = reason
        details = f"PID {pid}"
        if reason:
            details = f"{details} ({reason})"
        super().__init__(f"Cannot verify whether the owner of job '{job_name}' is alive", details)


class RetriesExhaustedError(CronJobError):
    """Exception raised when a supervised operation never succeeded.

    Attributes:
        operation: Human-readable operation name
        attempts: Number of attempts made
        last_error: Exception raised by the final attempt, if any
    """

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        details = f"last error: {last_error}" if last_error is not None else None
        super().__init__(f"{operation} failed after {attempts} attempt(s)", details)
