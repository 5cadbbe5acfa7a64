"""Pydantic models for sqlreflex configuration.

This module defines the configuration schema using Pydantic v2.
All configuration validation happens through these models.

Classes:
    DatabaseConfig: Database URL and engine options
    ConsumerConfig: Lag alert and liveness settings
    StreamLoopConfig: Polling and backoff settings
    ReflexConfig: Top-level configuration combining all sections

The table layouts (EventLogSchema, CursorSchema) and LoggingConfig are
defined next to the code that uses them and reused here.
"""

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from sqlreflex.observability.logging import LoggingConfig
from sqlreflex.persistence.schema import CursorSchema, EventLogSchema


def _optional_duration(seconds: float) -> timedelta | None:
    if seconds <= 0:
        return None
    return timedelta(seconds=seconds)


class DatabaseConfig(BaseModel, frozen=True):
    """Database configuration.

    Attributes:
        url: SQLAlchemy async URL, e.g. "mysql+aiomysql://user:pw@host/db"
        echo: Whether SQLAlchemy logs every statement
        pool_size: Connection pool size (ignored for SQLite)
    """

    url: str = "sqlite+aiosqlite:///sqlreflex.db"
    echo: bool = False
    pool_size: int = Field(default=5, ge=1)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require a driver that works with SQLAlchemy's asyncio extension."""
        scheme = v.split("://", 1)[0]
        if "+" not in scheme:
            msg = f"Database URL must name an async driver (e.g. sqlite+aiosqlite), got {scheme!r}"
            raise ValueError(msg)
        return v


class ConsumerConfig(BaseModel, frozen=True):
    """Consumer instrumentation configuration.

    Attributes:
        lag_alert_seconds: Lag that raises the alert gauge; -1 disables
        activity_ttl_seconds: Liveness TTL; -1 disables
    """

    lag_alert_seconds: float = 30 * 60
    activity_ttl_seconds: float = 24 * 60 * 60

    @property
    def lag_alert(self) -> timedelta | None:
        return _optional_duration(self.lag_alert_seconds)

    @property
    def activity_ttl(self) -> timedelta | None:
        return _optional_duration(self.activity_ttl_seconds)


class StreamLoopConfig(BaseModel, frozen=True):
    """Stream loop configuration.

    Attributes:
        poll_interval_seconds: Sleep between fetches when caught up
        max_lag_seconds: Deprecated settle window for fetches; 0 disables
        backoff_initial_seconds: First retry delay after a failure
        backoff_max_seconds: Upper bound of the retry delay
        backoff_jitter_seconds: Maximum random jitter added to each delay
    """

    poll_interval_seconds: float = Field(default=1.0, gt=0)
    max_lag_seconds: float = Field(default=0.0, ge=0)
    backoff_initial_seconds: float = Field(default=0.5, gt=0)
    backoff_max_seconds: float = Field(default=30.0, gt=0)
    backoff_jitter_seconds: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def validate_backoff(self) -> "StreamLoopConfig":
        """Validate that the initial delay does not exceed the maximum."""
        if self.backoff_initial_seconds > self.backoff_max_seconds:
            msg = (
                f"backoff_initial_seconds ({self.backoff_initial_seconds}) must be "
                f"<= backoff_max_seconds ({self.backoff_max_seconds})"
            )
            raise ValueError(msg)
        return self

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.poll_interval_seconds)

    @property
    def max_lag(self) -> timedelta | None:
        return _optional_duration(self.max_lag_seconds)


class ReflexConfig(BaseModel, frozen=True):
    """Top-level sqlreflex configuration.

    Attributes:
        database: Database connection settings
        events: Event table layout
        cursors: Cursor table layout
        consumer: Consumer instrumentation settings
        loop: Stream loop settings
        logging: Logging settings
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    events: EventLogSchema = Field(default_factory=EventLogSchema)
    cursors: CursorSchema = Field(default_factory=CursorSchema)
    consumer: ConsumerConfig = Field(default_factory=ConsumerConfig)
    loop: StreamLoopConfig = Field(default_factory=StreamLoopConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def get_default_config() -> ReflexConfig:
    """Get the default sqlreflex configuration.

    Returns:
        ReflexConfig with all default values populated.
    """
    return ReflexConfig()


def get_config_dir() -> Path:
    """Get the sqlreflex configuration directory path.

    Returns:
        Path to ~/.sqlreflex/
    """
    return Path.home() / ".sqlreflex"
