"""Core module - Foundation components with no internal dependencies.

This module provides the basic building blocks used throughout the application:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
"""

from cronjob_runner.core.version import __version__

from cronjob_runner.core.exceptions import (
    CronJobError,
    ConfigurationError,
    PrerequisiteError,
    HealthCheckError,
    AlreadyRunningError,
    AmbiguousLivenessError,
    RetriesExhaustedError,
)

from cronjob_runner.core.config import (
    RetryConfig,
    LockConfig,
    LogConfig,
    ResourceThresholds,
    HealthCheckConfig,
    NotificationConfig,
    JobConfig,
)

from cronjob_runner.core.constants import (
    EXIT_SUCCESS,
    EXIT_FAILURE,
    EXIT_USAGE,
    EXIT_SIGNAL_BASE,
    DEFAULT_RETRY,
    DEFAULT_LOCK,
    DEFAULT_LOG,
    DEFAULT_RESOURCES,
    DEFAULT_HEALTH,
    DEFAULT_NOTIFICATION,
)

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "CronJobError",
    "ConfigurationError",
    "PrerequisiteError",
    "HealthCheckError",
    "AlreadyRunningError",
    "AmbiguousLivenessError",
    "RetriesExhaustedError",
    # Config
    "RetryConfig",
    "LockConfig",
    "LogConfig",
    "ResourceThresholds",
    "HealthCheckConfig",
    "NotificationConfig",
    "JobConfig",
    # Constants
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "EXIT_USAGE",
    "EXIT_SIGNAL_BASE",
    "DEFAULT_RETRY",
    "DEFAULT_LOCK",
    "DEFAULT_LOG",
    "DEFAULT_RESOURCES",
    "DEFAULT_HEALTH",
    "DEFAULT_NOTIFICATION",
]
