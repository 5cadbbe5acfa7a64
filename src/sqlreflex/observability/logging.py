"""Structured logging configuration for sqlreflex.

This module configures structlog with standard processors for structured
logging. It supports both development mode (human-readable console output)
and production mode (JSON output).

Features:
- ISO 8601 timestamps
- Log level in all entries
- contextvars integration for cross-async context propagation
- Optional daily log rotation with configurable retention
- Database URL and secret masking

Standard log keys:
- consumer: Consumer name (bound per stream loop)
- consumer_id: Consumer whose cursor is touched
- cursor: Cursor value
- table: Table name
- after_id: Lower bound of a batch fetch

Event naming convention:
- Use dot.notation (e.g., "event_log.batch.fetched", "stream_loop.retrying")
- Format: component.entity.verb_past_tense

Usage:
    from sqlreflex.observability import configure_logging, get_logger, bind_context

    configure_logging(LoggingConfig(mode=LogMode.PROD))
    log = get_logger()

    bind_context(consumer="user-projection")
    log.info("stream_loop.started")
"""

from __future__ import annotations

from enum import Enum
import logging
from logging.handlers import TimedRotatingFileHandler
import os
from pathlib import Path
import sys
from typing import Any

from pydantic import BaseModel, Field
import structlog

from sqlreflex.core.security import is_sensitive_field, is_url_field, mask_database_url

LOG_MODE_ENV = "SQLREFLEX_LOG_MODE"


class LogMode(str, Enum):
    """Logging output mode."""

    DEV = "dev"
    PROD = "prod"


class LoggingConfig(BaseModel):
    """Configuration for structured logging.

    Attributes:
        mode: Output mode (dev for human-readable, prod for JSON).
        log_level: Minimum log level to output.
        log_dir: Directory for log files. Defaults to ~/.sqlreflex/logs/.
        max_log_days: Number of days to retain log files. Defaults to 7.
        enable_file_logging: Whether to write logs to files.
    """

    mode: LogMode = Field(default=LogMode.DEV)
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".sqlreflex" / "logs")
    max_log_days: int = Field(default=7, ge=1, le=365)
    enable_file_logging: bool = Field(default=False)

    model_config = {"frozen": True}


# Module-level state for tracking configuration
_configured: bool = False


def _get_mode_from_env() -> LogMode:
    env_mode = os.environ.get(LOG_MODE_ENV, "dev").lower()
    if env_mode == "prod":
        return LogMode.PROD
    return LogMode.DEV


def _get_log_level(level_str: str) -> int:
    """Convert log level string to logging constant."""
    level = logging.getLevelName(level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _setup_file_handler(config: LoggingConfig) -> TimedRotatingFileHandler | None:
    """Set up a daily rotating file handler, or None if file logging is off."""
    if not config.enable_file_logging:
        return None

    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(config.log_dir / "sqlreflex.log"),
        when="midnight",
        interval=1,
        backupCount=config.max_log_days,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(_get_log_level(config.log_level))
    return handler


def _mask_sensitive_data(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that masks secrets and database passwords.

    Args:
        _logger: The logger instance (unused).
        _method_name: The log method name (unused).
        event_dict: The event dictionary to process.

    Returns:
        Event dictionary with sensitive values masked.
    """
    for key, value in list(event_dict.items()):
        if key in ("event", "level", "timestamp", "filename", "lineno"):
            continue
        if is_sensitive_field(key):
            event_dict[key] = "<REDACTED>"
        elif is_url_field(key) and isinstance(value, str):
            event_dict[key] = mask_database_url(value)
    return event_dict


def _get_shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        _mask_sensitive_data,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _get_processors(mode: LogMode) -> list[Any]:
    processors = _get_shared_processors()
    if mode == LogMode.DEV:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


class _FileWritingPrintLogger:
    """Print logger that writes to stderr and optionally to a file handler."""

    def __init__(self, file_handler: TimedRotatingFileHandler | None = None) -> None:
        self._file_handler = file_handler

    def _log(self, message: str, level: int = logging.INFO) -> None:
        print(message, file=sys.stderr)
        if self._file_handler:
            record = logging.LogRecord(
                name="sqlreflex",
                level=level,
                pathname="",
                lineno=0,
                msg=message,
                args=(),
                exc_info=None,
            )
            self._file_handler.emit(record)

    def msg(self, message: str) -> None:
        self._log(message, logging.INFO)

    def debug(self, message: str) -> None:
        self._log(message, logging.DEBUG)

    def info(self, message: str) -> None:
        self._log(message, logging.INFO)

    def warning(self, message: str) -> None:
        self._log(message, logging.WARNING)

    warn = warning

    def error(self, message: str) -> None:
        self._log(message, logging.ERROR)

    def critical(self, message: str) -> None:
        self._log(message, logging.CRITICAL)

    fatal = critical
    exception = error


class _FileWritingPrintLoggerFactory:
    """Factory for creating file-writing print loggers."""

    def __init__(self, file_handler: TimedRotatingFileHandler | None = None) -> None:
        self._file_handler = file_handler

    def __call__(self, *_args: Any) -> _FileWritingPrintLogger:
        return _FileWritingPrintLogger(self._file_handler)


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog for the process.

    This should be called once at startup. It configures:
    - structlog processors (log level, timestamp, stack info, masking)
    - Output renderer (console for dev, JSON for prod)
    - File handler with daily rotation (if enabled)

    Args:
        config: Logging configuration. If None, uses defaults with
               mode from the SQLREFLEX_LOG_MODE environment variable.
    """
    global _configured

    if config is None:
        config = LoggingConfig(mode=_get_mode_from_env())

    log_level = _get_log_level(config.log_level)

    file_handler = _setup_file_handler(config)

    structlog.configure(
        processors=_get_processors(config.mode),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=_FileWritingPrintLoggerFactory(file_handler),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a bound logger instance.

    If logging has not been configured, this will configure it with defaults.

    Args:
        name: Optional logger name.

    Returns:
        A bound structlog logger.
    """
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables for cross-async propagation.

    Context bound here is included in all subsequent log entries of the same
    asyncio task. Never bind database URLs with passwords.

    Example:
        bind_context(consumer="user-projection")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove context variables from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def reset_logging() -> None:
    """Reset logging configuration state.

    This is primarily for testing purposes.
    """
    global _configured
    _configured = False
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
