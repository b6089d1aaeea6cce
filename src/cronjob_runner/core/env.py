"""Environment-variable overrides for job configuration.

Values from a `.env` file are loaded with python-dotenv first, then
recognised variables override fields that were left at their defaults on
the command line. Invalid numeric values are ignored with a warning.
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Callable, Mapping
from typing import Any

from dotenv import find_dotenv, load_dotenv

from cronjob_runner.core.config import LOCK_BACKEND_CHOICES, JobConfig
from cronjob_runner.core.constants import (
    DEFAULT_LOCK,
    DEFAULT_LOG,
    DEFAULT_NOTIFICATION,
    DEFAULT_RETRY,
    ENV_EMAIL_RECIPIENTS,
    ENV_LOCK_BACKEND,
    ENV_LOCK_DIR,
    ENV_LOG_DIR,
    ENV_LOG_LEVEL,
    ENV_MAX_ATTEMPTS,
    ENV_RETRY_DELAY,
    ENV_SMTP_HOST,
    ENV_SMTP_PASSWORD,
    ENV_SMTP_PORT,
    ENV_SMTP_USER,
)


def load_dotenv_file(dotenv_path: str | os.PathLike | None = None, logger: logging.Logger | None = None) -> bool:
    """Load `.env` from the working directory (or its parents) if present.

    Variables already set in the environment are not overridden.
    """
    log = logger or logging.getLogger(__name__)
    path = dotenv_path if dotenv_path is not None else find_dotenv(usecwd=True)
    if not path:
        return False
    loaded = load_dotenv(path)
    if loaded:
        log.debug(f"Loaded environment variables from {path}")
    return loaded


def _parse_env_numeric(value: str | None, cast: Callable[[str], Any]) -> Any | None:
    """Parse an environment value, returning None when invalid."""
    if value is None:
        return None
    try:
        parsed = cast(value)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, float) and not math.isfinite(parsed):
        return None
    return parsed


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.replace(";", ",").split(",") if item.strip()]


def apply_env_overrides(
    config: JobConfig,
    environ: Mapping[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> JobConfig:
    """Apply CRONJOB_* environment overrides to fields still at their defaults.

    Explicit command-line values always win over the environment.
    """
    env = os.environ if environ is None else environ
    log = logger or logging.getLogger(__name__)

    if config.retry.max_attempts == DEFAULT_RETRY.max_attempts and ENV_MAX_ATTEMPTS in env:
        parsed = _parse_env_numeric(env.get(ENV_MAX_ATTEMPTS), int)
        if parsed is not None and parsed >= 1:
            config.retry.max_attempts = parsed
        else:
            log.warning(
                f"Ignoring invalid {ENV_MAX_ATTEMPTS}={env.get(ENV_MAX_ATTEMPTS)!r}; "
                f"using default {config.retry.max_attempts}"
            )

    if config.retry.delay == DEFAULT_RETRY.delay and ENV_RETRY_DELAY in env:
        parsed = _parse_env_numeric(env.get(ENV_RETRY_DELAY), float)
        if parsed is not None and parsed >= 0:
            config.retry.delay = parsed
        else:
            log.warning(
                f"Ignoring invalid {ENV_RETRY_DELAY}={env.get(ENV_RETRY_DELAY)!r}; using default {config.retry.delay}"
            )

    if config.lock.lock_dir is None and env.get(ENV_LOCK_DIR):
        config.lock.lock_dir = env[ENV_LOCK_DIR]
    if config.lock.backend == DEFAULT_LOCK.backend and env.get(ENV_LOCK_BACKEND):
        requested = env[ENV_LOCK_BACKEND].strip().lower()
        if requested in LOCK_BACKEND_CHOICES:
            config.lock.backend = requested
        else:
            log.warning(
                f"Ignoring unknown {ENV_LOCK_BACKEND}={env[ENV_LOCK_BACKEND]!r}; using {config.lock.backend} selection"
            )

    if config.log.log_dir is None and env.get(ENV_LOG_DIR):
        config.log.log_dir = env[ENV_LOG_DIR]
    if config.log.level == DEFAULT_LOG.level and env.get(ENV_LOG_LEVEL):
        config.log.level = env[ENV_LOG_LEVEL].strip().upper()

    notification = config.notification
    if not notification.recipients and env.get(ENV_EMAIL_RECIPIENTS):
        notification.recipients = _split_list(env[ENV_EMAIL_RECIPIENTS])
    if notification.smtp_host is None and env.get(ENV_SMTP_HOST):
        notification.smtp_host = env[ENV_SMTP_HOST]
    if notification.smtp_port == DEFAULT_NOTIFICATION.smtp_port and ENV_SMTP_PORT in env:
        parsed = _parse_env_numeric(env.get(ENV_SMTP_PORT), int)
        if parsed is not None and 0 < parsed < 65536:
            notification.smtp_port = parsed
        else:
            log.warning(f"Ignoring invalid {ENV_SMTP_PORT}={env.get(ENV_SMTP_PORT)!r}")
    if notification.smtp_user is None and env.get(ENV_SMTP_USER):
        notification.smtp_user = env[ENV_SMTP_USER]
    if notification.smtp_password is None and env.get(ENV_SMTP_PASSWORD):
        notification.smtp_password = env[ENV_SMTP_PASSWORD]

    return config
