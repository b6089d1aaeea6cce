"""Pre-run health checks: systemd services, listening ports, disk space."""

from __future__ import annotations

import logging
import socket
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field

import psutil

from cronjob_runner.core.config import HealthCheckConfig
from cronjob_runner.core.exceptions import HealthCheckError


@dataclass
class HealthReport:
    """Outcome of one health check pass."""

    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class HealthCheck:
    """Composite health check built from HealthCheckConfig.

    Every configured sub-check runs on each pass so the log shows all
    problems at once, not just the first.

    Args:
        config: Services, ports and disk threshold to verify
        logger: Logger for failed sub-checks (ERROR level)
        run_command: subprocess.run-compatible callable (injectable for tests)
    """

    def __init__(
        self,
        config: HealthCheckConfig | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.config = config or HealthCheckConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._run_command = run_command

    def check_service(self, service: str) -> str | None:
        """Return a failure message if the systemd unit is not active."""
        try:
            completed = self._run_command(
                ["systemctl", "is-active", "--quiet", service],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.config.timeout,
                check=False,
            )
        except FileNotFoundError:
            return f"Cannot check service {service}: systemctl not available"
        except subprocess.TimeoutExpired:
            return f"Timed out checking service {service}"
        if completed.returncode != 0:
            return f"Service {service} is not running"
        return None

    def check_port(self, port: int) -> str | None:
        """Return a failure message if nothing accepts TCP connections on the port."""
        try:
            with socket.create_connection((self.config.host, port), timeout=self.config.timeout):
                return None
        except OSError:
            return f"Port {port} is not listening on {self.config.host}"

    def check_disk(self) -> str | None:
        """Return a failure message if disk usage is above the threshold."""
        try:
            usage = psutil.disk_usage(self.config.disk_path)
        except OSError as e:
            return f"Cannot read disk usage for {self.config.disk_path}: {e}"
        if usage.percent > self.config.disk_percent:
            return (
                f"Disk space on {self.config.disk_path} is above {self.config.disk_percent:g}% "
                f"(currently {usage.percent:.1f}%)"
            )
        return None

    def run(self) -> HealthReport:
        """Run all sub-checks and log each failure."""
        results = [self.check_service(service) for service in self.config.services]
        results.extend(self.check_port(port) for port in self.config.ports)
        results.append(self.check_disk())

        report = HealthReport(failures=[message for message in results if message])
        for message in report.failures:
            self.logger.error(message)
        return report

    def ensure_healthy(self) -> HealthReport:
        """Run all sub-checks, raising HealthCheckError if any failed."""
        report = self.run()
        if not report.ok:
            raise HealthCheckError(report.failures)
        return report
