"""Environment checks run around a job: prerequisites, health, resources."""

from cronjob_runner.checks.health import HealthCheck, HealthReport
from cronjob_runner.checks.prerequisites import (
    find_missing_commands,
    find_missing_env_vars,
    validate_prerequisites,
)
from cronjob_runner.checks.resources import ResourceMonitor, ResourceSample

__all__ = [
    "HealthCheck",
    "HealthReport",
    "ResourceMonitor",
    "ResourceSample",
    "find_missing_commands",
    "find_missing_env_vars",
    "validate_prerequisites",
]
