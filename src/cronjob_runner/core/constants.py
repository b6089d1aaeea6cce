"""Constants and default values for cronjob_runner.

This module centralizes exit codes, environment variable names,
notification subjects and default configuration instances.
"""

from cronjob_runner.core.config import (
    HealthCheckConfig,
    LockConfig,
    LogConfig,
    NotificationConfig,
    ResourceThresholds,
    RetryConfig,
)

# ==================== DISPLAY CONSTANTS ====================

# Width of banner separator lines in notification bodies
BANNER_WIDTH: int = 60

# ==================== EXIT CODES ====================

EXIT_SUCCESS: int = 0
EXIT_FAILURE: int = 1  # Task failed, health check exhausted, lock contention
EXIT_USAGE: int = 2  # Invalid configuration or command line
EXIT_SIGNAL_BASE: int = 128  # Terminated by signal N -> 128 + N

# ==================== LOCKING ====================

LOCK_FILE_SUFFIX: str = ".lock"
LOCK_FILE_MODE: int = 0o644
# Attempts at create-or-reclaim before giving up on a marker that keeps changing
LOCK_ACQUIRE_ATTEMPTS: int = 3

# ==================== LOGGING ====================

LOG_FILE_SUFFIX: str = ".log"
SYSLOG_SOCKET: str = "/dev/log"
TEXT_LOG_FORMAT: str = "%(asctime)s [%(levelname)s] [%(process)d] %(message)s"
TEXT_LOG_DATEFMT: str = "%Y-%m-%d %H:%M:%S"

# ==================== ENVIRONMENT VARIABLES ====================

ENV_MAX_ATTEMPTS: str = "CRONJOB_MAX_ATTEMPTS"
ENV_RETRY_DELAY: str = "CRONJOB_RETRY_DELAY"
ENV_LOCK_DIR: str = "CRONJOB_LOCK_DIR"
ENV_LOCK_BACKEND: str = "CRONJOB_LOCK_BACKEND"
ENV_LOG_DIR: str = "CRONJOB_LOG_DIR"
ENV_LOG_LEVEL: str = "LOG_LEVEL"
ENV_EMAIL_RECIPIENTS: str = "CRONJOB_EMAIL_RECIPIENTS"
ENV_SMTP_HOST: str = "CRONJOB_SMTP_HOST"
ENV_SMTP_PORT: str = "CRONJOB_SMTP_PORT"
ENV_SMTP_USER: str = "CRONJOB_SMTP_USER"
ENV_SMTP_PASSWORD: str = "CRONJOB_SMTP_PASSWORD"

# ==================== NOTIFICATION SUBJECTS ====================

SUBJECT_CONCURRENT: str = "Concurrent Execution"
SUBJECT_AMBIGUOUS_LOCK: str = "Ambiguous Lock Owner"
SUBJECT_HEALTH_CHECK: str = "Health Check Failed"
SUBJECT_PREREQUISITE: str = "Missing Prerequisite"
SUBJECT_MISSING_ENV_VAR: str = "Missing Environment Variable"
SUBJECT_FAILED: str = "Script Failed"

# ==================== DEFAULT CONFIG INSTANCES ====================

DEFAULT_RETRY = RetryConfig()
DEFAULT_LOCK = LockConfig()
DEFAULT_LOG = LogConfig()
DEFAULT_RESOURCES = ResourceThresholds()
DEFAULT_HEALTH = HealthCheckConfig()
DEFAULT_NOTIFICATION = NotificationConfig()

VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
