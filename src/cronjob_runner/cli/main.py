"""CLI entrypoint."""

from __future__ import annotations

import sys
from typing import NoReturn

from cronjob_runner.cli.parser import parse_arguments
from cronjob_runner.core.config import JobConfig
from cronjob_runner.core.constants import EXIT_USAGE
from cronjob_runner.core.env import apply_env_overrides, load_dotenv_file
from cronjob_runner.core.exceptions import ConfigurationError
from cronjob_runner.core.logging import setup_logging
from cronjob_runner.notify import create_notifier
from cronjob_runner.supervisor.runner import JobRunner
from cronjob_runner.supervisor.tasks import CommandTask


def _exit_error(msg: str) -> NoReturn:
    """Print an error message to stderr and exit with the usage code."""
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(EXIT_USAGE)


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the script"""
    args = parse_arguments(argv)

    load_dotenv_file()
    config = apply_env_overrides(JobConfig.from_args(args))

    try:
        config.validate()
    except ConfigurationError as e:
        _exit_error(str(e))

    logger = setup_logging(config.job_name, config.log, quiet=config.quiet)
    notifier = create_notifier(config.notification, logger=logger)
    runner = JobRunner(config, CommandTask(config.command, logger=logger), notifier=notifier, logger=logger)
    sys.exit(runner.run())


if __name__ == "__main__":
    main()
