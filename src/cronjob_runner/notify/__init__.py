"""Notification collaborators for job failure alerts."""

from __future__ import annotations

import logging

from cronjob_runner.core.config import NotificationConfig
from cronjob_runner.notify.base import LoggingNotifier, Notifier
from cronjob_runner.notify.email import MailCommandNotifier, SMTPNotifier

__all__ = [
    "LoggingNotifier",
    "MailCommandNotifier",
    "Notifier",
    "SMTPNotifier",
    "create_notifier",
]


def create_notifier(
    config: NotificationConfig | None = None,
    *,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> Notifier:
    """Pick a notifier from configuration.

    auto: SMTP when a relay host is set, else the `mail` command when
    recipients are set, else log-only.
    """
    config = config or NotificationConfig()
    transport = (config.transport or "auto").lower()

    if transport == "log":
        return LoggingNotifier(logger)
    if transport == "smtp":
        return SMTPNotifier(config, logger)
    if transport == "mail":
        return MailCommandNotifier(config, logger)

    if not config.recipients:
        return LoggingNotifier(logger)
    if config.smtp_host:
        return SMTPNotifier(config, logger)
    return MailCommandNotifier(config, logger)
