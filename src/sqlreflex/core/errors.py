"""Error hierarchy for sqlreflex.

This module defines the exceptions raised by the event log, the cursor store
and the stream loop. Every storage failure is wrapped into one of these types
and chained from the driver error, so callers can decide on retry, failover
or escalation without inspecting driver specifics.

Exception Hierarchy:
    ReflexError (base)
    ├── StorageError             - Database failures
    │   ├── TransientStorageError  - Connectivity, timeouts (retryable)
    │   └── WriteRejectedError     - Read-only replica or missing grants
    ├── MetadataDisabledError    - Metadata given but the schema has no column
    ├── CursorError              - Cursor advancement outcomes
    │   ├── CursorRegressionError   - Lost a race against a newer cursor
    │   └── InvalidCursorStateError - Guarded update hit more than one row
    └── ConfigError              - Configuration loading and validation

    InvalidCursorError (ValueError) - Cursor string does not fit the schema type
"""

from typing import Any


class ReflexError(Exception):
    """Base exception for all sqlreflex errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dict with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class StorageError(ReflexError):
    """Error from a database operation.

    Attributes:
        operation: The operation that failed (e.g., "insert", "next_batch").
        table: The database table involved if applicable.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        table: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation
        self.table = table


class TransientStorageError(StorageError):
    """Storage failure the caller may retry (connection loss, timeout, deadlock)."""

    retryable = True


class WriteRejectedError(StorageError):
    """The backend refused the write.

    Raised when the database is in read-only mode or the credentials lack
    permission. Retrying against the same instance will not help; the caller
    should fail over.
    """


class MetadataDisabledError(ReflexError):
    """Metadata was passed to a log whose schema has no metadata column."""


class CursorError(ReflexError):
    """Error from cursor advancement.

    Attributes:
        consumer_id: The consumer whose cursor was being advanced.
        cursor: The cursor value the caller attempted to store.
    """

    def __init__(
        self,
        message: str,
        *,
        consumer_id: str | None = None,
        cursor: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.consumer_id = consumer_id
        self.cursor = cursor


class CursorRegressionError(CursorError):
    """The stored cursor is already at or beyond the requested value.

    This is the expected outcome when two writers advance the same consumer
    concurrently. It is not corruption: re-read the cursor and carry on.
    """


class InvalidCursorStateError(CursorError):
    """A guarded cursor update affected more than one row.

    The cursor table is missing its unique key on the consumer id. This is a
    bug signal and must not be retried.
    """


class ConfigError(ReflexError):
    """Error from configuration loading or validation.

    Attributes:
        config_file: Path to the config file if applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_file = config_file


class InvalidCursorError(ValueError):
    """A cursor string cannot be cast to the schema's cursor type."""
