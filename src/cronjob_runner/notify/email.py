"""Email notifiers: direct SMTP and the local `mail` command."""

from __future__ import annotations

import getpass
import logging
import shutil
import smtplib
import socket
import ssl
import subprocess
from collections.abc import Callable
from email.message import EmailMessage

from cronjob_runner.core.config import NotificationConfig


def _default_sender() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "cron"
    return f"{user}@{socket.getfqdn()}"


class SMTPNotifier:
    """Send notifications through an SMTP relay.

    Args:
        config: Relay host/port, optional STARTTLS and login, recipients
        logger: Logger for delivery results
        smtp_factory: smtplib.SMTP-compatible class (injectable for tests)
    """

    name = "smtp"

    def __init__(
        self,
        config: NotificationConfig,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._smtp_factory = smtp_factory

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.config.sender or _default_sender()
        msg["To"] = ", ".join(self.config.recipients)
        msg.set_content(body)
        return msg

    def notify(self, subject: str, body: str) -> bool:
        if not self.config.recipients or not self.config.smtp_host:
            self.logger.warning("SMTP notification skipped: relay host or recipients not configured")
            return False

        msg = self.build_message(subject, body)
        try:
            with self._smtp_factory(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
                if self.config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.config.smtp_user and self.config.smtp_password:
                    server.login(self.config.smtp_user, self.config.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(f"Failed to send notification '{subject}': {e}")
            return False

        self.logger.info(f"Sent notification '{subject}' to {', '.join(self.config.recipients)}")
        return True


class MailCommandNotifier:
    """Send notifications with the local `mail` command (mailutils/bsd-mailx).

    Args:
        config: Recipients
        logger: Logger for delivery results
        run_command: subprocess.run-compatible callable (injectable for tests)
        which: shutil.which-compatible callable (injectable for tests)
    """

    name = "mail"

    def __init__(
        self,
        config: NotificationConfig,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._run_command = run_command
        self._which = which

    def notify(self, subject: str, body: str) -> bool:
        if not self.config.recipients:
            self.logger.warning("Mail notification skipped: no recipients configured")
            return False

        mail_path = self._which("mail")
        if mail_path is None:
            self.logger.warning("mail command not available, cannot send email notification")
            return False

        try:
            completed = self._run_command(
                [mail_path, "-s", subject, *self.config.recipients],
                input=body,
                text=True,
                capture_output=True,
                timeout=60,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            self.logger.error(f"Failed to send notification '{subject}': {e}")
            return False

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            self.logger.error(f"mail exited with status {completed.returncode} for '{subject}': {stderr}")
            return False

        self.logger.info(f"Sent notification '{subject}' to {', '.join(self.config.recipients)}")
        return True
