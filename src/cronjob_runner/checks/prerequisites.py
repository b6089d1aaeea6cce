"""Prerequisite validation: required commands and environment variables."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable, Mapping

from cronjob_runner.core.exceptions import PrerequisiteError


def find_missing_commands(commands: Iterable[str], path: str | None = None) -> list[str]:
    """Return the commands that cannot be resolved on PATH, in input order."""
    return [cmd for cmd in commands if shutil.which(cmd, path=path) is None]


def find_missing_env_vars(names: Iterable[str], environ: Mapping[str, str] | None = None) -> list[str]:
    """Return the variables that are unset or empty, in input order."""
    env = os.environ if environ is None else environ
    return [name for name in names if not env.get(name)]


def validate_prerequisites(
    commands: Iterable[str] = (),
    env_vars: Iterable[str] = (),
    *,
    environ: Mapping[str, str] | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> None:
    """Raise PrerequisiteError for the first category with missing entries.

    Commands are checked before environment variables, matching the order
    a cron script validates its environment.
    """
    log = logger or logging.getLogger(__name__)

    missing_commands = find_missing_commands(commands)
    for cmd in missing_commands:
        log.error(f"Required command '{cmd}' not found")
    if missing_commands:
        raise PrerequisiteError("command", missing_commands)

    missing_vars = find_missing_env_vars(env_vars, environ)
    for var in missing_vars:
        log.error(f"Required environment variable '{var}' is not set")
    if missing_vars:
        raise PrerequisiteError("env_var", missing_vars)
