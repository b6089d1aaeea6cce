"""Logging helpers for cronjob_runner."""

import atexit
import contextlib
import json
import logging
import os
import re
import sys
import time
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler, SysLogHandler
from pathlib import Path

from cronjob_runner.core.config import LogConfig
from cronjob_runner.core.constants import (
    LOG_FILE_SUFFIX,
    SYSLOG_SOCKET,
    TEXT_LOG_DATEFMT,
    TEXT_LOG_FORMAT,
    VALID_LOG_LEVELS,
)

_LOG_RECORD_RESERVED_FIELDS = set(logging.makeLogRecord({}).__dict__.keys()) | {"message", "asctime", "extra_fields"}
_REDACTION_FLAG_ATTR = "_cronjob_redacted"
_REDACTION_MARKER = object()
_SENSITIVE_FIELD_NAMES = {
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "smtp_password",
}
_REDACTED_VALUE = "[REDACTED]"
_SENSITIVE_KEY_VALUE_PATTERN = re.compile(
    r"""(?ix)
    (?P<key>(?<![A-Za-z0-9_])(?:smtp[_-]?password|password|passwd|pwd|secret|token|api[_-]?key)(?![A-Za-z0-9_]))
    (?P<separator>\s*[:=]\s*)
    (?P<value>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[^,\s;}\]]+)
    """
)


def _safe_str(value: object) -> str:
    try:
        return str(value)
    except Exception:
        return "<unprintable>"


def _safe_record_message(record: logging.LogRecord) -> str:
    try:
        return record.getMessage()
    except Exception:
        # Keep logging resilient when message formatting fails (bad placeholders or broken __str__).
        return f"{_safe_str(getattr(record, 'msg', ''))} [log-message-format-error]"


def _is_reserved_or_private_record_key(key: object) -> bool:
    if not isinstance(key, str):
        return True
    return key in _LOG_RECORD_RESERVED_FIELDS or key.startswith("_")


def _is_sensitive_field(name: str) -> bool:
    normalized = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    if normalized in _SENSITIVE_FIELD_NAMES:
        return True
    parts = normalized.split("_")
    return "password" in parts or "secret" in parts or "token" in parts


def _redact_captured_value(value: str) -> str:
    if len(value) >= 2 and value[0] in {"'", '"'} and value[-1] == value[0]:
        return f"{value[0]}{_REDACTED_VALUE}{value[0]}"
    return _REDACTED_VALUE


def _redact_message(message: str) -> str:
    return _SENSITIVE_KEY_VALUE_PATTERN.sub(
        lambda m: f"{m.group('key')}{m.group('separator')}{_redact_captured_value(m.group('value'))}",
        message,
    )


def _redact_extra_fields(extra_fields: dict[str, object]) -> dict[str, object]:
    redacted: dict[str, object] = {}
    for key, value in extra_fields.items():
        if _is_sensitive_field(_safe_str(key)):
            redacted[key] = _REDACTED_VALUE
        elif isinstance(value, str):
            redacted[key] = _redact_message(value)
        else:
            redacted[key] = value
    return redacted


class SensitiveDataFilter(logging.Filter):
    """Best-effort redaction of credentials (SMTP passwords, tokens) in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.__dict__.get(_REDACTION_FLAG_ATTR) is _REDACTION_MARKER:
            return True

        record.msg = _redact_message(_safe_record_message(record))
        record.args = ()

        for key, value in list(record.__dict__.items()):
            if _is_reserved_or_private_record_key(key):
                continue
            if _is_sensitive_field(_safe_str(key)):
                record.__dict__[key] = _REDACTED_VALUE
            elif isinstance(value, str):
                record.__dict__[key] = _redact_message(value)
        record.__dict__[_REDACTION_FLAG_ATTR] = _REDACTION_MARKER
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging output.

    Each log record is a single JSON object on one line, suitable for
    journald/ELK ingestion of cron output.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_message(_safe_record_message(record)),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if _is_reserved_or_private_record_key(key):
                continue
            extra_fields[key] = value

        if extra_fields:
            log_entry.update(_redact_extra_fields(extra_fields))

        return json.dumps(log_entry, default=str)


_atexit_registered = False


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges contextual fields into record extras."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = kwargs.get("extra")
        merged_extra = dict(self.extra)
        if isinstance(extra, dict):
            merged_extra.update(extra)
        kwargs["extra"] = merged_extra
        return msg, kwargs


def with_log_context(
    logger: logging.Logger | logging.LoggerAdapter, **context: object
) -> logging.Logger | logging.LoggerAdapter:
    """Return a logger enriched with persistent contextual fields (e.g. job name)."""
    if not isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        # Preserve test doubles/mocks that may not satisfy logging interfaces.
        return logger

    base_logger = logger
    existing_context: dict[str, object] = {}
    while isinstance(base_logger, logging.LoggerAdapter):
        existing_context = {**dict(getattr(base_logger, "extra", {}) or {}), **existing_context}
        base_logger = base_logger.logger

    existing_context.update({k: v for k, v in context.items() if v is not None})
    return ContextLoggerAdapter(base_logger, existing_context)


def resolve_log_dir(config: LogConfig) -> Path:
    """Return the directory the job log file lives in."""
    return Path(config.log_dir) if config.log_dir else Path("logs")


def log_file_path(config: LogConfig, job_name: str) -> Path:
    safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", job_name)
    return resolve_log_dir(config) / f"{safe_name}{LOG_FILE_SUFFIX}"


def _build_syslog_handler(job_name: str) -> logging.Handler | None:
    if not os.path.exists(SYSLOG_SOCKET):
        return None
    try:
        handler = SysLogHandler(address=SYSLOG_SOCKET)
    except OSError as e:
        print(f"Warning: Cannot connect to syslog: {e}", file=sys.stderr)
        return None
    handler.ident = f"{job_name}: "
    return handler


def setup_logging(
    job_name: str,
    config: LogConfig | None = None,
    quiet: bool = False,
) -> logging.Logger:
    """Setup logging to console, a rotating job log file and syslog.

    Args:
        job_name: Job name used for the log file name and syslog tag
        config: Logging configuration (defaults to LogConfig())
        quiet: Raise console output threshold to WARNING

    Returns:
        Configured logger instance

    Priority for the level: 1) config.level, 2) env LOG_LEVEL, 3) INFO
    """
    global _atexit_registered

    config = config or LogConfig()

    # Register atexit handler once to ensure logs are flushed on exit
    if not _atexit_registered:
        atexit.register(logging.shutdown)
        _atexit_registered = True

    log_dir: Path | None = resolve_log_dir(config)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        print("Warning: Cannot create log directory (permission denied). Logging to console only.", file=sys.stderr)
        log_dir = None
    except OSError as e:
        print(f"Warning: Cannot create log directory: {e}. Logging to console only.", file=sys.stderr)
        log_dir = None

    log_level = config.level or os.environ.get("LOG_LEVEL", "INFO")
    if log_level.upper() not in VALID_LOG_LEVELS:
        print(f"Warning: Invalid log level '{log_level}', using INFO", file=sys.stderr)
        log_level = "INFO"
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Clear any existing handlers from root logger
    for handler in logging.root.handlers[:]:
        handler.close()
        logging.root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(max(numeric_level, logging.WARNING) if quiet else numeric_level)
    handlers: list[logging.Handler] = [console]

    log_file = log_file_path(config, job_name) if log_dir is not None else None
    if log_file is not None:
        # Use RotatingFileHandler to prevent unbounded log growth
        file_handler = RotatingFileHandler(log_file, maxBytes=config.max_bytes, backupCount=config.backup_count)
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

    if config.syslog:
        syslog_handler = _build_syslog_handler(job_name)
        if syslog_handler is not None:
            syslog_handler.setLevel(numeric_level)
            handlers.append(syslog_handler)

    if config.log_format.lower() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT, datefmt=TEXT_LOG_DATEFMT)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(SensitiveDataFilter())
        logging.root.addHandler(handler)

    logging.root.setLevel(numeric_level)

    logger = logging.getLogger("cronjob_runner")
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

    if log_file is not None:
        logger.debug(f"Logging initialized. Log file: {log_file}")
    else:
        logger.debug("Logging initialized. Console output only.")

    return logger


def purge_old_logs(
    log_dir: Path,
    job_name: str,
    retention_days: int,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    now: float | None = None,
) -> list[Path]:
    """Delete rotated `<job>.log.*` files older than the retention window.

    The active log file is never touched. Returns the removed paths.
    """
    log = logger or logging.getLogger(__name__)
    if not log_dir.is_dir():
        return []

    safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", job_name)
    cutoff = (time.time() if now is None else now) - retention_days * 86400
    removed: list[Path] = []
    for candidate in sorted(log_dir.glob(f"{safe_name}{LOG_FILE_SUFFIX}.*")):
        try:
            if not candidate.is_file() or candidate.stat().st_mtime >= cutoff:
                continue
            candidate.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            log.warning(f"Could not remove old log file {candidate}: {e}")
            continue
        removed.append(candidate)

    if removed:
        log.info(f"Removed {len(removed)} log file(s) older than {retention_days} days")
    return removed


def flush_logging_handlers() -> None:
    """Flush root handlers so early exits do not lose buffered records."""
    for handler in logging.root.handlers:
        with contextlib.suppress(Exception):
            handler.flush()
