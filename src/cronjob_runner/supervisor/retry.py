"""Fixed-delay retry supervision for transiently failing operations.

The supervised operation is opaque: every attempt re-invokes it in full
and nothing is rolled back between attempts. Callers must only supply
operations that are safe to run more than once (idempotent, or tolerant
of their own partial side effects).
"""

from __future__ import annotations

import functools
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from cronjob_runner.core.exceptions import RetriesExhaustedError

T = TypeVar("T")


@dataclass
class RetryPlan:
    """Attempt budget for one supervised call.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        delay: Seconds slept between a failed attempt and the next one (>= 0)
        attempts_used: Attempts made so far in the current call
    """

    max_attempts: int
    delay: float
    attempts_used: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ValueError(f"max_attempts must be a positive integer, got {self.max_attempts!r}")
        if not math.isfinite(self.delay) or self.delay < 0:
            raise ValueError(f"delay must be a finite number of seconds >= 0, got {self.delay!r}")

    @property
    def exhausted(self) -> bool:
        return self.attempts_used >= self.max_attempts

    def next_attempt(self) -> int:
        self.attempts_used += 1
        return self.attempts_used


def _operation_label(operation: Callable[..., Any], operation_name: str | None) -> str:
    if operation_name:
        return operation_name
    return getattr(operation, "__name__", None) or repr(operation)


def run_with_retry(
    operation: Callable[[], T],
    max_attempts: int,
    delay: float,
    *,
    operation_name: str | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    sleep: Callable[[float], Any] | None = None,
) -> T:
    """
    Run `operation` until it succeeds or the attempt budget is spent.

    An attempt fails when the operation raises an Exception or returns
    False (the exit-status convention of shell health checks). Any other
    return value is success and is returned immediately.

    Args:
        operation: Zero-argument callable; must be safe to re-invoke
        max_attempts: Total attempts; 1 means run once with no retry
        delay: Fixed pause in seconds between attempts
        operation_name: Human-readable name for log messages
        logger: Logger for retry warnings
        sleep: Sleep function (default: time.sleep, injectable for tests)

    Returns:
        The first successful return value

    Raises:
        RetriesExhaustedError: The final attempt failed; the last exception
            (if any) is chained as __cause__
        ValueError: Invalid max_attempts or delay

    Blocks for at most (max_attempts - 1) * delay seconds plus the time
    spent in the operation itself. There is no cancellation hook; impose an
    outer deadline if one is needed.
    """
    _logger = logger or logging.getLogger(__name__)
    _sleep = sleep or time.sleep
    name = _operation_label(operation, operation_name)
    plan = RetryPlan(max_attempts=max_attempts, delay=delay)

    while True:
        attempt = plan.next_attempt()
        last_error: Exception | None = None
        try:
            result = operation()
        except Exception as e:
            last_error = e
            reason = f"{type(e).__name__}: {e!s}"
        else:
            if result is not False:
                if attempt > 1:
                    _logger.info(f"{name} succeeded on attempt {attempt}/{plan.max_attempts}")
                return result
            reason = "returned failure"

        if plan.exhausted:
            _logger.error(f"All {plan.max_attempts} attempts failed for {name}")
            raise RetriesExhaustedError(name, plan.attempts_used, last_error) from last_error

        _logger.warning(
            f"{name} failed ({reason}), retrying in {plan.delay:g} seconds (attempt {attempt}/{plan.max_attempts})"
        )
        _sleep(plan.delay)


def retry_with_fixed_delay(
    max_attempts: int,
    delay: float,
    logger: logging.Logger | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator form of run_with_retry.

    Example:
        @retry_with_fixed_delay(max_attempts=3, delay=60)
        def service_ready():
            return probe_service()

    Each call to the decorated function gets its own fresh attempt budget.
    """
    # Fail at decoration time on an invalid budget.
    RetryPlan(max_attempts=max_attempts, delay=delay)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return run_with_retry(
                functools.partial(func, *args, **kwargs),
                max_attempts,
                delay,
                operation_name=func.__name__,
                logger=logger,
            )

        return wrapper

    return decorator
