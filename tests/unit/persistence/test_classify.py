"""Unit tests for sqlreflex.persistence.classify module."""

import pytest
from sqlalchemy import exc as sa_exc

from sqlreflex.core.errors import TransientStorageError, WriteRejectedError
from sqlreflex.persistence.classify import (
    CompositeErrorClassifier,
    MySQLErrorClassifier,
    PostgresErrorClassifier,
    SQLiteErrorClassifier,
    classifier_for_dialect,
    is_duplicate_key,
    is_write_rejected,
    iter_error_chain,
    wrap_storage_error,
)


class FakeSQLiteError(Exception):
    def __init__(self, code: int) -> None:
        super().__init__(f"sqlite error {code}")
        self.sqlite_errorcode = code


class FakePostgresError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate


def mysql_error(code: int) -> Exception:
    return Exception(code, "mysql says no")


class TestMySQLErrorClassifier:
    """Test MySQL error numbers."""

    classifier = MySQLErrorClassifier()

    @pytest.mark.parametrize("code", [1290, 1142, 1143, 1370])
    def test_write_rejected_codes(self, code: int) -> None:
        assert self.classifier.is_write_rejected(mysql_error(code))

    def test_duplicate_entry(self) -> None:
        assert self.classifier.is_duplicate_key(mysql_error(1062))
        assert not self.classifier.is_write_rejected(mysql_error(1062))

    def test_other_codes(self) -> None:
        """Deadlocks and lost connections are neither."""
        assert not self.classifier.is_write_rejected(mysql_error(1213))
        assert not self.classifier.is_duplicate_key(mysql_error(2013))


class TestSQLiteErrorClassifier:
    """Test SQLite result codes."""

    classifier = SQLiteErrorClassifier()

    @pytest.mark.parametrize("code", [8, 264, 3, 23])
    def test_write_rejected_codes(self, code: int) -> None:
        """Primary and extended read-only, permission and auth codes."""
        assert self.classifier.is_write_rejected(FakeSQLiteError(code))

    @pytest.mark.parametrize("code", [1555, 2067])
    def test_duplicate_key_codes(self, code: int) -> None:
        assert self.classifier.is_duplicate_key(FakeSQLiteError(code))

    def test_not_null_constraint_is_not_duplicate(self) -> None:
        assert not self.classifier.is_duplicate_key(FakeSQLiteError(1299))


class TestPostgresErrorClassifier:
    """Test PostgreSQL SQLSTATEs."""

    classifier = PostgresErrorClassifier()

    def test_unique_violation(self) -> None:
        assert self.classifier.is_duplicate_key(FakePostgresError("23505"))

    @pytest.mark.parametrize("state", ["25006", "42501"])
    def test_write_rejected(self, state: str) -> None:
        assert self.classifier.is_write_rejected(FakePostgresError(state))


class TestErrorChain:
    """Test unwrapping of wrapped and chained errors."""

    def test_sqlalchemy_wrapper_is_unwrapped(self) -> None:
        """DBAPIError.orig carries the driver code."""
        wrapped = sa_exc.IntegrityError("INSERT ...", {}, mysql_error(1062))
        assert MySQLErrorClassifier().is_duplicate_key(wrapped)

    def test_cause_is_followed(self) -> None:
        try:
            try:
                raise FakeSQLiteError(2067)
            except FakeSQLiteError as inner:
                raise RuntimeError("outer") from inner
        except RuntimeError as outer:
            assert SQLiteErrorClassifier().is_duplicate_key(outer)

    def test_cycles_terminate(self) -> None:
        a = RuntimeError("a")
        b = RuntimeError("b")
        a.__cause__ = b
        b.__cause__ = a
        assert list(iter_error_chain(a)) == [a, b]

    def test_none_classifies_false(self) -> None:
        """Classification of None never raises."""
        assert not is_write_rejected(None)
        assert not is_duplicate_key(None)


class TestDialectLookup:
    """Test classifier_for_dialect and the module-level helpers."""

    def test_known_dialects(self) -> None:
        assert isinstance(classifier_for_dialect("sqlite"), SQLiteErrorClassifier)
        assert isinstance(classifier_for_dialect("mariadb"), MySQLErrorClassifier)
        assert isinstance(classifier_for_dialect("postgresql"), PostgresErrorClassifier)

    def test_unknown_dialect_tries_everything(self) -> None:
        classifier = classifier_for_dialect("oracle")
        assert isinstance(classifier, CompositeErrorClassifier)
        assert classifier.is_duplicate_key(FakePostgresError("23505"))

    def test_module_helpers_cover_all_backends(self) -> None:
        assert is_duplicate_key(mysql_error(1062))
        assert is_duplicate_key(FakeSQLiteError(1555))
        assert is_write_rejected(FakePostgresError("25006"))


class TestWrapStorageError:
    """Test wrap_storage_error."""

    def test_rejected_write_becomes_write_rejected_error(self) -> None:
        error = wrap_storage_error(
            mysql_error(1290),
            MySQLErrorClassifier(),
            "insert error",
            operation="insert",
            table="events",
        )
        assert isinstance(error, WriteRejectedError)
        assert error.operation == "insert"
        assert error.table == "events"

    def test_everything_else_is_transient(self) -> None:
        error = wrap_storage_error(
            ConnectionResetError("gone"),
            MySQLErrorClassifier(),
            "next events error",
            operation="next_batch",
            table="events",
            details={"after_id": 3},
        )
        assert isinstance(error, TransientStorageError)
        assert error.message == "next events error: gone"
        assert error.details == {"after_id": 3, "original_exception": "ConnectionResetError"}
