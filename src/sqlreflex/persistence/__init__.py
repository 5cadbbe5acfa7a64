"""sqlreflex persistence module - event log and cursor storage."""

from sqlreflex.persistence.classify import (
    CompositeErrorClassifier,
    ErrorClassifier,
    MySQLErrorClassifier,
    PostgresErrorClassifier,
    SQLiteErrorClassifier,
    classifier_for_dialect,
    is_duplicate_key,
    is_write_rejected,
)
from sqlreflex.persistence.cursor_store import CursorRecord, CursorStore
from sqlreflex.persistence.engine import open_engine
from sqlreflex.persistence.event_log import BATCH_SIZE, EventLog
from sqlreflex.persistence.schema import (
    CursorSchema,
    CursorType,
    EventLogSchema,
    build_cursors_table,
    build_events_table,
    create_tables,
)

__all__ = [
    "BATCH_SIZE",
    "CompositeErrorClassifier",
    "CursorRecord",
    "CursorSchema",
    "CursorStore",
    "CursorType",
    "ErrorClassifier",
    "EventLog",
    "EventLogSchema",
    "MySQLErrorClassifier",
    "PostgresErrorClassifier",
    "SQLiteErrorClassifier",
    "build_cursors_table",
    "build_events_table",
    "classifier_for_dialect",
    "create_tables",
    "is_duplicate_key",
    "is_write_rejected",
    "open_engine",
]
