"""Command-line argument parsing."""

from __future__ import annotations

import argparse

import argcomplete

from cronjob_runner.core.config import LOCK_BACKEND_CHOICES, LOG_FORMAT_CHOICES, NOTIFY_TRANSPORT_CHOICES
from cronjob_runner.core.constants import (
    DEFAULT_HEALTH,
    DEFAULT_LOCK,
    DEFAULT_LOG,
    DEFAULT_NOTIFICATION,
    DEFAULT_RESOURCES,
    DEFAULT_RETRY,
    VALID_LOG_LEVELS,
)
from cronjob_runner.core.version import __version__

_EPILOG = """
Examples:
  # Run a backup script with the default lock, health check and retries
  cronjob-runner --job-name nightly-backup -- /usr/local/bin/backup.sh

  # Require a service and a port before running; retry the check 5 times, 30s apart
  cronjob-runner --job-name report --check-service postgresql --check-port 5432 \\
      --max-attempts 5 --retry-delay 30 -- python3 /opt/jobs/report.py

  # Fail fast when prerequisites are missing
  cronjob-runner --job-name sync --require-command rsync --require-env SYNC_TARGET -- /opt/jobs/sync.sh

  # Email failures through an SMTP relay
  cronjob-runner --job-name etl --email ops@example.com --smtp-host mail.example.com --smtp-tls -- ./etl.sh

  # Example crontab line (every day at 02:00)
  0 2 * * * /usr/local/bin/cronjob-runner --job-name nightly-backup -- /usr/local/bin/backup.sh

Environment Variables:
  CRONJOB_MAX_ATTEMPTS, CRONJOB_RETRY_DELAY, CRONJOB_LOCK_DIR, CRONJOB_LOCK_BACKEND,
  CRONJOB_LOG_DIR, LOG_LEVEL, CRONJOB_EMAIL_RECIPIENTS, CRONJOB_SMTP_HOST,
  CRONJOB_SMTP_PORT, CRONJOB_SMTP_USER, CRONJOB_SMTP_PASSWORD
  Values may also come from a .env file in the working directory.
  Command-line options take precedence.

Exit Codes:
  0       - Success
  1       - Job failed, health check failed, prerequisite missing, or already running
  2       - Invalid configuration or command line
  128+N   - Terminated by signal N
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cronjob-runner",
        description="Run a scheduled job with single-instance locking, health checks, "
        "retries, resource monitoring and failure notification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}", help="Show program version and exit"
    )

    parser.add_argument(
        "--job-name",
        required=True,
        help="Job name; determines the lock file and log file names",
    )

    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        metavar="COMMAND",
        help="Command (and arguments) to run as the job. Separate it with -- from runner options",
    )

    parser.add_argument("--quiet", "-q", action="store_true", help="Only show warnings and errors on the console")

    lock_group = parser.add_argument_group("Locking")
    lock_group.add_argument(
        "--lock-dir",
        default=DEFAULT_LOCK.lock_dir,
        help="Directory for lock files (default: CRONJOB_LOCK_DIR or the system temp dir)",
    )
    lock_group.add_argument(
        "--lock-backend",
        default=DEFAULT_LOCK.backend,
        choices=LOCK_BACKEND_CHOICES,
        help="Lock mechanism: fcntl advisory lock, O_EXCL pid file, or auto (default: auto)",
    )

    retry_group = parser.add_argument_group("Retry")
    retry_group.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_RETRY.max_attempts,
        help=f"Total health-check attempts, including the first (default: {DEFAULT_RETRY.max_attempts})",
    )
    retry_group.add_argument(
        "--retry-delay",
        type=float,
        default=DEFAULT_RETRY.delay,
        help=f"Seconds to wait between attempts (default: {DEFAULT_RETRY.delay:g})",
    )

    health_group = parser.add_argument_group("Health Check")
    health_group.add_argument(
        "--check-service",
        action="append",
        metavar="UNIT",
        help="systemd unit that must be active (repeatable)",
    )
    health_group.add_argument(
        "--check-port",
        action="append",
        type=int,
        metavar="PORT",
        help="TCP port on localhost that must accept connections (repeatable)",
    )
    health_group.add_argument(
        "--check-disk-percent",
        type=float,
        default=DEFAULT_HEALTH.disk_percent,
        help=f"Fail the health check above this disk usage (default: {DEFAULT_HEALTH.disk_percent:g})",
    )
    health_group.add_argument("--skip-health-check", action="store_true", help="Do not run the health check")

    resource_group = parser.add_argument_group("Resources")
    resource_group.add_argument(
        "--cpu-threshold",
        type=float,
        default=DEFAULT_RESOURCES.cpu_percent,
        help=f"Warn above this CPU usage percent (default: {DEFAULT_RESOURCES.cpu_percent:g})",
    )
    resource_group.add_argument(
        "--memory-threshold",
        type=float,
        default=DEFAULT_RESOURCES.memory_percent,
        help=f"Warn above this memory usage percent (default: {DEFAULT_RESOURCES.memory_percent:g})",
    )
    resource_group.add_argument(
        "--disk-threshold",
        type=float,
        default=DEFAULT_RESOURCES.disk_percent,
        help=f"Warn above this disk usage percent (default: {DEFAULT_RESOURCES.disk_percent:g})",
    )

    prereq_group = parser.add_argument_group("Prerequisites")
    prereq_group.add_argument(
        "--require-env",
        action="append",
        metavar="NAME",
        help="Environment variable that must be set and non-empty (repeatable)",
    )
    prereq_group.add_argument(
        "--require-command",
        action="append",
        metavar="NAME",
        help="Executable that must be found on PATH (repeatable)",
    )

    log_group = parser.add_argument_group("Logging")
    log_group.add_argument(
        "--log-dir",
        default=DEFAULT_LOG.log_dir,
        help="Directory for the job log file (default: CRONJOB_LOG_DIR or ./logs)",
    )
    log_group.add_argument(
        "--log-level",
        type=str.upper,
        default=DEFAULT_LOG.level,
        choices=VALID_LOG_LEVELS,
        help="Logging level (default: INFO, or LOG_LEVEL environment variable)",
    )
    log_group.add_argument(
        "--log-format",
        default=DEFAULT_LOG.log_format,
        choices=LOG_FORMAT_CHOICES,
        help='Log output format: "text" (default) or "json" for structured logging',
    )
    log_group.add_argument(
        "--log-max-mb",
        type=float,
        default=DEFAULT_LOG.max_bytes / (1024 * 1024),
        help="Rotate the job log file at this size in MB (default: 10)",
    )
    log_group.add_argument(
        "--log-retention-days",
        type=int,
        default=DEFAULT_LOG.retention_days,
        help=f"Delete rotated log files older than this many days (default: {DEFAULT_LOG.retention_days})",
    )
    log_group.add_argument("--no-syslog", action="store_true", help="Do not send log records to syslog")

    notify_group = parser.add_argument_group("Notification")
    notify_group.add_argument(
        "--email",
        action="append",
        metavar="ADDRESS",
        help="Notify this address on failure (repeatable; default: CRONJOB_EMAIL_RECIPIENTS)",
    )
    notify_group.add_argument("--email-from", metavar="ADDRESS", help="Sender address (default: user@hostname)")
    notify_group.add_argument("--smtp-host", default=DEFAULT_NOTIFICATION.smtp_host, help="SMTP relay host")
    notify_group.add_argument(
        "--smtp-port",
        type=int,
        default=DEFAULT_NOTIFICATION.smtp_port,
        help=f"SMTP relay port (default: {DEFAULT_NOTIFICATION.smtp_port})",
    )
    notify_group.add_argument(
        "--smtp-user",
        default=DEFAULT_NOTIFICATION.smtp_user,
        help="SMTP login user; the password is read from CRONJOB_SMTP_PASSWORD",
    )
    notify_group.add_argument("--smtp-tls", action="store_true", help="Use STARTTLS with the SMTP relay")
    notify_group.add_argument(
        "--notify-transport",
        default=DEFAULT_NOTIFICATION.transport,
        choices=NOTIFY_TRANSPORT_CHOICES,
        help="How to deliver notifications (default: auto)",
    )

    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = build_parser()

    # Enable shell tab-completion
    argcomplete.autocomplete(parser)

    args = parser.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.command:
        parser.error("a command to run is required (e.g. cronjob-runner --job-name NAME -- /path/to/script.sh)")
    return args
