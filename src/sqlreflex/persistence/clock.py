"""Database-side clock expressions.

Event and cursor times are always assigned by the database, never by the
client, so that rows written by hosts with skewed clocks still order
correctly. These constructs compile to the highest-precision "now" each
backend offers.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression

__all__ = ["db_now", "db_now_minus"]

_SQLITE_NOW_FORMAT = "'%Y-%m-%d %H:%M:%f'"


class db_now(expression.FunctionElement):  # noqa: N801
    """Current database time with sub-second precision."""

    type = sa.DateTime()
    inherit_cache = True


class db_now_minus(expression.FunctionElement):  # noqa: N801
    """Current database time minus a number of seconds.

    Example:
        >>> stmt = select(table).where(table.c.timestamp < db_now_minus(10.0))
    """

    type = sa.DateTime()
    inherit_cache = True


@compiles(db_now, "mysql")
def _mysql_now(_element, _compiler, **_kw):
    """MySQL: NOW(6), microsecond precision.

    NOW(6) is in the session time zone, so the session must run in UTC.
    ``open_engine`` sets that on every connection.
    """
    return "NOW(6)"


@compiles(db_now, "postgresql")
def _pg_now(_element, _compiler, **_kw):
    return "TIMEZONE('utc', CURRENT_TIMESTAMP)"


@compiles(db_now, "sqlite")
@compiles(db_now)
def _default_now(_element, _compiler, **_kw):
    """SQLite: millisecond UTC timestamp in the text format SQLAlchemy parses."""
    return f"strftime({_SQLITE_NOW_FORMAT}, 'now')"


@compiles(db_now_minus, "mysql")
def _mysql_now_minus(element, compiler, **kw):
    return f"NOW(6) - INTERVAL {compiler.process(element.clauses, **kw)} SECOND"


@compiles(db_now_minus, "postgresql")
def _pg_now_minus(element, compiler, **kw):
    seconds = compiler.process(element.clauses, **kw)
    return f"TIMEZONE('utc', CURRENT_TIMESTAMP) - make_interval(secs => {seconds})"


@compiles(db_now_minus, "sqlite")
@compiles(db_now_minus)
def _default_now_minus(element, compiler, **kw):
    seconds = compiler.process(element.clauses, **kw)
    return f"strftime({_SQLITE_NOW_FORMAT}, 'now', '-' || ({seconds}) || ' seconds')"
