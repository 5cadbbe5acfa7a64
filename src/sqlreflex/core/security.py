"""Masking helpers for database credentials.

Database URLs carry passwords and end up in configuration dumps, error
details and log lines. Everything that leaves the process goes through
these helpers first.
"""

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

# Field names whose values are never logged
SENSITIVE_FIELD_NAMES = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "token",
        "credential",
        "auth",
        "private",
        "authorization",
    }
)

# Field names that hold SQLAlchemy URLs
URL_FIELD_NAMES = frozenset({"url", "database_url", "dsn"})


def is_sensitive_field(field_name: str) -> bool:
    """Return True if the field name suggests a secret value.

    Args:
        field_name: The key or attribute name to check.

    Returns:
        True when any sensitive name is part of the field name.
    """
    lowered = field_name.lower()
    return any(name in lowered for name in SENSITIVE_FIELD_NAMES)


def is_url_field(field_name: str) -> bool:
    """Return True if the field name holds a database URL."""
    return field_name.lower() in URL_FIELD_NAMES


def mask_database_url(url: str) -> str:
    """Hide the password part of a SQLAlchemy database URL.

    Example:
        >>> mask_database_url("mysql+aiomysql://app:hunter2@db/events")
        'mysql+aiomysql://app:***@db/events'

    Values that do not parse as a URL are returned unchanged.
    """
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return url


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with secrets masked, recursing into dicts."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_field(key):
            result[key] = "<REDACTED>"
        elif is_url_field(key) and isinstance(value, str):
            result[key] = mask_database_url(value)
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value)
        else:
            result[key] = value
    return result
