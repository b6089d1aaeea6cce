"""Notifier protocol and the logging-only fallback."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    """Accepts (subject, body) pairs for failure conditions.

    Implementations report delivery success as a bool and never raise:
    a broken mail relay must not mask the failure being reported.
    """

    name: str

    def notify(self, subject: str, body: str) -> bool: ...


class LoggingNotifier:
    """Notifier used when no recipients are configured: logs instead of sending."""

    name = "log"

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def notify(self, subject: str, body: str) -> bool:
        self.logger.info(f"Notification (not sent, no recipients configured): {subject}")
        self.logger.debug(body)
        return False
