"""Job payloads."""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Sequence

# Shell convention for "command not found" / "not executable"
EXIT_COMMAND_NOT_FOUND = 127
EXIT_COMMAND_NOT_EXECUTABLE = 126


class CommandTask:
    """Run an external command as the job payload; its exit status is the result.

    stdout/stderr are inherited so cron captures them as usual.
    """

    def __init__(
        self,
        command: Sequence[str],
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.logger = logger or logging.getLogger(__name__)
        self._run_command = run_command

    @property
    def __name__(self) -> str:
        return self.command[0]

    def __call__(self) -> int:
        self.logger.info(f"Running command: {shlex.join(self.command)}")
        try:
            completed = self._run_command(self.command, check=False)
        except FileNotFoundError:
            self.logger.error(f"Command not found: {self.command[0]}")
            return EXIT_COMMAND_NOT_FOUND
        except PermissionError:
            self.logger.error(f"Command not executable: {self.command[0]}")
            return EXIT_COMMAND_NOT_EXECUTABLE

        if completed.returncode != 0:
            self.logger.error(f"Command exited with status {completed.returncode}")
        return completed.returncode
