"""Storage error classification.

Maps engine-specific error codes to the two semantic signals the event log
and the cursor store act on:

- write rejected: the instance refuses writes (read-only mode or missing
  grants). Do not retry here, fail over.
- duplicate key: the write violated a uniqueness constraint. For cursors this
  is the expected outcome of a lost race.

Codes are looked up on every exception in the chain (SQLAlchemy's ``orig``,
``__cause__`` and ``__context__``), so both raw driver errors and
``sqlalchemy.exc.DBAPIError`` wrappers are understood. Unknown errors and
``None`` classify as False; classification never raises.
"""

from collections.abc import Iterator
from typing import Any, Protocol

from sqlreflex.core.errors import StorageError, TransientStorageError, WriteRejectedError

# MySQL server error numbers
# https://dev.mysql.com/doc/mysql-errors/8.0/en/server-error-reference.html
ER_DUP_ENTRY = 1062
ER_OPTION_PREVENTS_STATEMENT = 1290  # --read-only / --super-read-only
ER_TABLEACCESS_DENIED_ERROR = 1142
ER_COLUMNACCESS_DENIED_ERROR = 1143
ER_PROCACCESS_DENIED_ERROR = 1370

# SQLite result codes (primary codes live in the low byte)
SQLITE_PERM = 3
SQLITE_READONLY = 8
SQLITE_AUTH = 23
SQLITE_CONSTRAINT_PRIMARYKEY = 1555
SQLITE_CONSTRAINT_UNIQUE = 2067

# PostgreSQL SQLSTATE codes
PG_UNIQUE_VIOLATION = "23505"
PG_READ_ONLY_SQL_TRANSACTION = "25006"
PG_INSUFFICIENT_PRIVILEGE = "42501"

_MAX_CHAIN_DEPTH = 16


class ErrorClassifier(Protocol):
    """Maps storage errors to semantic failure kinds."""

    def is_write_rejected(self, exc: BaseException | None) -> bool: ...

    def is_duplicate_key(self, exc: BaseException | None) -> bool: ...


def iter_error_chain(exc: BaseException | None) -> Iterator[BaseException]:
    """Yield ``exc`` and every exception it wraps, without cycles."""
    seen: set[int] = set()
    pending = [exc]
    while pending and len(seen) < _MAX_CHAIN_DEPTH:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException):
            pending.append(orig)
        pending.append(current.__cause__)
        pending.append(current.__context__)


class MySQLErrorClassifier:
    """Classifier for MySQL drivers (aiomysql, asyncmy, pymysql, mysqlclient).

    All of them raise errors whose first argument is the server error number.
    """

    @staticmethod
    def _codes(exc: BaseException | None) -> Iterator[int]:
        for err in iter_error_chain(exc):
            args = getattr(err, "args", ())
            if args and isinstance(args[0], int) and not isinstance(args[0], bool):
                yield args[0]

    def _matches(self, exc: BaseException | None, *codes: int) -> bool:
        return any(code in codes for code in self._codes(exc))

    def is_write_rejected(self, exc: BaseException | None) -> bool:
        return self._matches(
            exc,
            ER_OPTION_PREVENTS_STATEMENT,
            ER_TABLEACCESS_DENIED_ERROR,
            ER_COLUMNACCESS_DENIED_ERROR,
            ER_PROCACCESS_DENIED_ERROR,
        )

    def is_duplicate_key(self, exc: BaseException | None) -> bool:
        return self._matches(exc, ER_DUP_ENTRY)


class SQLiteErrorClassifier:
    """Classifier for the stdlib ``sqlite3`` module (and aiosqlite)."""

    @staticmethod
    def _codes(exc: BaseException | None) -> Iterator[int]:
        for err in iter_error_chain(exc):
            code = getattr(err, "sqlite_errorcode", None)
            if isinstance(code, int):
                yield code

    def is_write_rejected(self, exc: BaseException | None) -> bool:
        rejected = (SQLITE_PERM, SQLITE_READONLY, SQLITE_AUTH)
        return any((code & 0xFF) in rejected for code in self._codes(exc))

    def is_duplicate_key(self, exc: BaseException | None) -> bool:
        duplicate = (SQLITE_CONSTRAINT_PRIMARYKEY, SQLITE_CONSTRAINT_UNIQUE)
        return any(code in duplicate for code in self._codes(exc))


class PostgresErrorClassifier:
    """Classifier for asyncpg and psycopg (``sqlstate``) and psycopg2 (``pgcode``)."""

    @staticmethod
    def _states(exc: BaseException | None) -> Iterator[str]:
        for err in iter_error_chain(exc):
            for attr in ("sqlstate", "pgcode"):
                state = getattr(err, attr, None)
                if isinstance(state, str):
                    yield state

    def is_write_rejected(self, exc: BaseException | None) -> bool:
        rejected = (PG_READ_ONLY_SQL_TRANSACTION, PG_INSUFFICIENT_PRIVILEGE)
        return any(state in rejected for state in self._states(exc))

    def is_duplicate_key(self, exc: BaseException | None) -> bool:
        return any(state == PG_UNIQUE_VIOLATION for state in self._states(exc))


class CompositeErrorClassifier:
    """Classifier that answers True if any of its members does."""

    def __init__(self, *classifiers: ErrorClassifier) -> None:
        self._classifiers = classifiers

    def is_write_rejected(self, exc: BaseException | None) -> bool:
        return any(c.is_write_rejected(exc) for c in self._classifiers)

    def is_duplicate_key(self, exc: BaseException | None) -> bool:
        return any(c.is_duplicate_key(exc) for c in self._classifiers)


_DIALECT_CLASSIFIERS: dict[str, ErrorClassifier] = {
    "mysql": MySQLErrorClassifier(),
    "mariadb": MySQLErrorClassifier(),
    "sqlite": SQLiteErrorClassifier(),
    "postgresql": PostgresErrorClassifier(),
}

_ANY = CompositeErrorClassifier(*_DIALECT_CLASSIFIERS.values())


def classifier_for_dialect(dialect_name: str) -> ErrorClassifier:
    """Return the classifier for a SQLAlchemy dialect name.

    Unknown dialects get a classifier that tries every known mapping.
    """
    return _DIALECT_CLASSIFIERS.get(dialect_name, _ANY)


def wrap_storage_error(
    exc: BaseException,
    classifier: ErrorClassifier,
    message: str,
    *,
    operation: str,
    table: str,
    details: dict[str, Any] | None = None,
) -> StorageError:
    """Wrap a driver error into WriteRejectedError or TransientStorageError.

    The caller raises the returned error ``from exc`` so the original
    traceback stays attached.
    """
    error_cls: type[StorageError] = (
        WriteRejectedError if classifier.is_write_rejected(exc) else TransientStorageError
    )
    return error_cls(
        f"{message}: {exc}",
        operation=operation,
        table=table,
        details={**(details or {}), "original_exception": type(exc).__name__},
    )


def is_write_rejected(exc: BaseException | None) -> bool:
    """Return True if any known backend reports the write as rejected."""
    return _ANY.is_write_rejected(exc)


def is_duplicate_key(exc: BaseException | None) -> bool:
    """Return True if any known backend reports a uniqueness violation."""
    return _ANY.is_duplicate_key(exc)
