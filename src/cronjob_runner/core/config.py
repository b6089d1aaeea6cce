"""Configuration dataclasses for cronjob_runner.

These dataclasses replace the global shell variables of a cron script
template with one explicit configuration object per job. They can be
created from command-line arguments or used directly in code.
"""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, field

from cronjob_runner.core.exceptions import ConfigurationError

LOCK_BACKEND_CHOICES = ("auto", "fcntl", "pidfile")
LOG_FORMAT_CHOICES = ("text", "json")
NOTIFY_TRANSPORT_CHOICES = ("auto", "smtp", "mail", "log")


@dataclass
class RetryConfig:
    """Configuration for the health-check retry loop.

    Attributes:
        max_attempts: Total attempts including the first one (default: 3)
        delay: Fixed delay in seconds between attempts (default: 60.0)
    """

    max_attempts: int = 3
    delay: float = 60.0

    def to_dict(self) -> dict[str, float]:
        return {"max_attempts": self.max_attempts, "delay": self.delay}


@dataclass
class LockConfig:
    """Configuration for single-instance locking.

    Attributes:
        lock_dir: Directory for marker files (default: system temp dir)
        backend: Lock backend name: auto, fcntl or pidfile (default: auto)
    """

    lock_dir: str | None = None
    backend: str = "auto"


@dataclass
class LogConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level string (default: "INFO")
        log_dir: Directory for the job log file (default: ./logs)
        log_format: "text" or "json" (default: "text")
        max_bytes: Size at which the log file is rotated (default: 10MB)
        backup_count: Number of rotated files kept by the handler (default: 5)
        retention_days: Rotated files older than this are deleted (default: 30)
        syslog: Also send records to the local syslog socket (default: True)
    """

    level: str = "INFO"
    log_dir: str | None = None
    log_format: str = "text"
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    retention_days: int = 30
    syslog: bool = True


@dataclass
class ResourceThresholds:
    """Usage percentages above which a resource warning is logged."""

    cpu_percent: float = 80.0
    memory_percent: float = 90.0
    disk_percent: float = 90.0
    disk_path: str = "/"


@dataclass
class HealthCheckConfig:
    """Configuration for the pre-run health check.

    Attributes:
        enabled: Run the health check before the task (default: True)
        services: systemd units that must be active
        ports: TCP ports that must be accepting connections on `host`
        host: Host used for port checks (default: localhost)
        disk_percent: Maximum disk usage on `disk_path` (default: 90)
        disk_path: Filesystem checked for disk usage (default: /)
        timeout: Per-check timeout in seconds (default: 2.0)
    """

    enabled: bool = True
    services: list[str] = field(default_factory=list)
    ports: list[int] = field(default_factory=list)
    host: str = "localhost"
    disk_percent: float = 90.0
    disk_path: str = "/"
    timeout: float = 2.0


@dataclass
class NotificationConfig:
    """Configuration for failure notifications.

    Attributes:
        recipients: Email addresses notified on failure
        sender: From address (default: <user>@<hostname>)
        smtp_host: SMTP relay; when unset the `mail` command is used
        smtp_port: SMTP port (default: 25)
        smtp_user: Optional SMTP login user
        smtp_password: Optional SMTP login password
        use_tls: Issue STARTTLS before login (default: False)
        transport: auto, smtp, mail or log (default: auto)
    """

    recipients: list[str] = field(default_factory=list)
    sender: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 25
    smtp_user: str | None = None
    smtp_password: str | None = None
    use_tls: bool = False
    transport: str = "auto"


@dataclass
class JobConfig:
    """Master configuration for one supervised job run.

    Attributes:
        job_name: Logical job name; derives the lock and log file names
        command: External command executed as the job payload (CLI only)
        required_env_vars: Environment variables that must be non-empty
        required_commands: Executables that must be on PATH
        quiet: Suppress console logging below WARNING
    """

    job_name: str
    command: list[str] = field(default_factory=list)
    required_env_vars: list[str] = field(default_factory=list)
    required_commands: list[str] = field(default_factory=list)
    retry: RetryConfig = field(default_factory=RetryConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    log: LogConfig = field(default_factory=LogConfig)
    resources: ResourceThresholds = field(default_factory=ResourceThresholds)
    health: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    quiet: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for values the runner cannot work with."""
        if not self.job_name or not self.job_name.strip():
            raise ConfigurationError("Job name must not be empty", field="job_name")
        if self.retry.max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be at least 1", field="max_attempts", details=str(self.retry.max_attempts)
            )
        if not math.isfinite(self.retry.delay) or self.retry.delay < 0:
            raise ConfigurationError(
                "retry delay must be a finite number of seconds >= 0", field="delay", details=str(self.retry.delay)
            )
        if self.lock.backend not in LOCK_BACKEND_CHOICES:
            raise ConfigurationError(
                f"Unknown lock backend '{self.lock.backend}'",
                field="lock_backend",
                details=f"choose one of {', '.join(LOCK_BACKEND_CHOICES)}",
            )
        if self.log.log_format not in LOG_FORMAT_CHOICES:
            raise ConfigurationError(f"Unknown log format '{self.log.log_format}'", field="log_format")
        if self.log.retention_days < 0:
            raise ConfigurationError("log retention must not be negative", field="retention_days")
        if self.notification.transport not in NOTIFY_TRANSPORT_CHOICES:
            raise ConfigurationError(
                f"Unknown notification transport '{self.notification.transport}'", field="notify_transport"
            )
        for port in self.health.ports:
            if not 0 < port < 65536:
                raise ConfigurationError("Port out of range", field="check_port", details=str(port))

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> JobConfig:
        """Create configuration from parsed command-line arguments."""
        log_max_mb = getattr(args, "log_max_mb", 10)
        return cls(
            job_name=args.job_name,
            command=list(getattr(args, "command", None) or []),
            required_env_vars=list(getattr(args, "require_env", None) or []),
            required_commands=list(getattr(args, "require_command", None) or []),
            retry=RetryConfig(
                max_attempts=getattr(args, "max_attempts", 3),
                delay=getattr(args, "retry_delay", 60.0),
            ),
            lock=LockConfig(
                lock_dir=getattr(args, "lock_dir", None),
                backend=getattr(args, "lock_backend", "auto"),
            ),
            log=LogConfig(
                level=getattr(args, "log_level", "INFO"),
                log_dir=getattr(args, "log_dir", None),
                log_format=getattr(args, "log_format", "text"),
                max_bytes=int(log_max_mb * 1024 * 1024),
                retention_days=getattr(args, "log_retention_days", 30),
                syslog=not getattr(args, "no_syslog", False),
            ),
            resources=ResourceThresholds(
                cpu_percent=getattr(args, "cpu_threshold", 80.0),
                memory_percent=getattr(args, "memory_threshold", 90.0),
                disk_percent=getattr(args, "disk_threshold", 90.0),
            ),
            health=HealthCheckConfig(
                enabled=not getattr(args, "skip_health_check", False),
                services=list(getattr(args, "check_service", None) or []),
                ports=list(getattr(args, "check_port", None) or []),
                disk_percent=getattr(args, "check_disk_percent", 90.0),
            ),
            notification=NotificationConfig(
                recipients=list(getattr(args, "email", None) or []),
                sender=getattr(args, "email_from", None),
                smtp_host=getattr(args, "smtp_host", None),
                smtp_port=getattr(args, "smtp_port", 25),
                smtp_user=getattr(args, "smtp_user", None),
                use_tls=getattr(args, "smtp_tls", False),
                transport=getattr(args, "notify_transport", "auto"),
            ),
            quiet=getattr(args, "quiet", False),
        )
