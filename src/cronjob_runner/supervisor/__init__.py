"""Supervision of one job run: retry loop, payloads and the job runner."""

from cronjob_runner.supervisor.messages import NotificationMessages
from cronjob_runner.supervisor.retry import RetryPlan, retry_with_fixed_delay, run_with_retry
from cronjob_runner.supervisor.runner import JobRunner
from cronjob_runner.supervisor.tasks import CommandTask

__all__ = [
    "CommandTask",
    "JobRunner",
    "NotificationMessages",
    "RetryPlan",
    "retry_with_fixed_delay",
    "run_with_retry",
]
