"""Pytest configuration and fixtures for cronjob_runner tests"""

import errno
import logging
import os
from pathlib import Path

import pytest

from cronjob_runner.core.config import HealthCheckConfig, JobConfig, LockConfig, LogConfig
from cronjob_runner.core.locks import manager as lock_manager

_ENV_VARS = (
    "CRONJOB_MAX_ATTEMPTS",
    "CRONJOB_RETRY_DELAY",
    "CRONJOB_LOCK_DIR",
    "CRONJOB_LOCK_BACKEND",
    "CRONJOB_LOG_DIR",
    "LOG_LEVEL",
    "CRONJOB_EMAIL_RECIPIENTS",
    "CRONJOB_SMTP_HOST",
    "CRONJOB_SMTP_PORT",
    "CRONJOB_SMTP_USER",
    "CRONJOB_SMTP_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_cronjob_env(monkeypatch):
    """Keep the developer's environment out of the tests"""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def release_held_locks():
    """Release any marker a failing test left registered in this process"""
    yield
    for handle in list(lock_manager._held_markers.values()):
        lock_manager.release_instance_lock(handle)


@pytest.fixture
def restore_root_logging():
    """Restore root logger handlers after a test that calls setup_logging"""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def lock_dir(tmp_path):
    path = tmp_path / "locks"
    path.mkdir()
    return path


@pytest.fixture
def job_config(tmp_path, lock_dir):
    """JobConfig with lock and log files under tmp_path and no health sub-checks"""
    return JobConfig(
        job_name="test-job",
        lock=LockConfig(lock_dir=str(lock_dir)),
        log=LogConfig(log_dir=str(tmp_path / "logs"), syslog=False),
        health=HealthCheckConfig(enabled=False),
    )


class RecordingNotifier:
    """Notifier double that records (subject, body) pairs"""

    name = "recording"

    def __init__(self):
        self.sent = []

    def notify(self, subject, body):
        self.sent.append((subject, body))
        return True

    @property
    def subjects(self):
        return [subject for subject, _ in self.sent]


@pytest.fixture
def notifier():
    return RecordingNotifier()


class StaticResourceMonitor:
    """ResourceMonitor double that counts checks"""

    def __init__(self):
        self.checks = 0

    def check(self):
        self.checks += 1
        return []


@pytest.fixture
def resource_monitor():
    return StaticResourceMonitor()


@pytest.fixture
def deny_marker_access(monkeypatch):
    """Make an existing marker unopenable and unreadable, as a mode 000 file is for non-root users.

    Access is restored once this process creates a fresh marker with O_EXCL.
    """
    real_open = os.open
    real_read_text = Path.read_text

    def _deny(marker: Path) -> None:
        state = {"denied": True}

        def _open(path, flags, *args, **kwargs):
            if path == str(marker):
                if state["denied"] and not flags & os.O_EXCL:
                    raise PermissionError(errno.EACCES, "Permission denied", path)
                fd = real_open(path, flags, *args, **kwargs)
                if flags & os.O_EXCL:
                    state["denied"] = False
                return fd
            return real_open(path, flags, *args, **kwargs)

        def _read_text(self, *args, **kwargs):
            if state["denied"] and self == marker:
                raise PermissionError(errno.EACCES, "Permission denied", str(self))
            return real_read_text(self, *args, **kwargs)

        monkeypatch.setattr(os, "open", _open)
        monkeypatch.setattr(Path, "read_text", _read_text)

    return _deny
