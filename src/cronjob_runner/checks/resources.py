"""Resource usage monitoring with threshold warnings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import psutil

from cronjob_runner.core.config import ResourceThresholds


@dataclass
class ResourceSample:
    """Point-in-time usage percentages."""

    cpu_percent: float
    memory_percent: float
    disk_percent: float


class ResourceMonitor:
    """Sample CPU, memory and disk usage and warn above thresholds.

    Monitoring is advisory: it never fails the job. Sampling errors are
    logged at WARNING and the check returns no warnings.
    """

    def __init__(
        self,
        thresholds: ResourceThresholds | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        cpu_interval: float = 0.1,
    ):
        self.thresholds = thresholds or ResourceThresholds()
        self.logger = logger or logging.getLogger(__name__)
        self.cpu_interval = cpu_interval

    def sample(self) -> ResourceSample:
        return ResourceSample(
            cpu_percent=psutil.cpu_percent(interval=self.cpu_interval),
            memory_percent=psutil.virtual_memory().percent,
            disk_percent=psutil.disk_usage(self.thresholds.disk_path).percent,
        )

    def check(self) -> list[str]:
        """Log a warning for each resource above its threshold; return the warnings."""
        try:
            sample = self.sample()
        except (OSError, psutil.Error) as e:
            self.logger.warning(f"Resource monitoring failed: {e}")
            return []

        warnings = []
        if sample.cpu_percent > self.thresholds.cpu_percent:
            warnings.append(f"High CPU usage detected: {sample.cpu_percent:.0f}%")
        if sample.memory_percent > self.thresholds.memory_percent:
            warnings.append(f"High memory usage detected: {sample.memory_percent:.0f}%")
        if sample.disk_percent > self.thresholds.disk_percent:
            warnings.append(f"High disk usage detected: {sample.disk_percent:.0f}%")

        for message in warnings:
            self.logger.warning(message)
        if not warnings:
            self.logger.debug(
                f"Resources OK: cpu={sample.cpu_percent:.0f}% "
                f"memory={sample.memory_percent:.0f}% disk={sample.disk_percent:.0f}%"
            )
        return warnings
