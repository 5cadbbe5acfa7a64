"""Async engine construction from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

if TYPE_CHECKING:
    from sqlreflex.config.models import DatabaseConfig

# NOW(6) follows the session time zone; event times are read back as UTC.
MYSQL_UTC_INIT_COMMAND = "SET time_zone = '+00:00'"


def connect_args_for(url: str) -> dict[str, object]:
    """Driver connect arguments needed for the backend of ``url``."""
    if make_url(url).get_backend_name() == "mysql":
        return {"init_command": MYSQL_UTC_INIT_COMMAND}
    return {}


def open_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an AsyncEngine for the configured database.

    Pooling and driver retries stay with SQLAlchemy and the driver; the event
    log and cursor store only issue statements. MySQL sessions are pinned to
    UTC.

    Args:
        config: Database configuration.

    Returns:
        A new AsyncEngine. Dispose it with ``await engine.dispose()``.
    """
    kwargs: dict[str, object] = {"echo": config.echo}
    if not config.url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
        kwargs["pool_size"] = config.pool_size
    connect_args = connect_args_for(config.url)
    if connect_args:
        kwargs["connect_args"] = connect_args
    return create_async_engine(config.url, **kwargs)
