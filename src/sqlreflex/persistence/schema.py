"""Table schemas for the event log and the cursor store.

Column names are configurable, so tables are not declared at import time as
module-level SQLAlchemy Core ``Table`` objects. Instead the schema objects
below describe the tables and ``build_events_table`` / ``build_cursors_table``
turn them into ``Table`` objects at runtime.

Table: events
    id           auto-assigned, strictly increasing integer primary key
    foreign_id   string, the entity the event is about
    timestamp    database-assigned insert time
    type         integer event kind
    metadata     optional binary payload (only when metadata_field is set)

Table: cursors
    id           consumer name, primary key
    cursor       integer or string, per CursorType
    updated_at   database-assigned time of the last advance

Provisioning production tables is left to migrations; ``create_tables``
exists for development databases and tests.
"""

from enum import Enum
import re

from pydantic import BaseModel, Field, field_validator
import sqlalchemy as sa
from sqlalchemy.dialects import mysql
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlreflex.core.errors import InvalidCursorError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Autoincrement only works on INTEGER PRIMARY KEY in SQLite
_EventId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_EventTime = sa.DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")


def _validate_identifier(value: str) -> str:
    if not _IDENTIFIER_RE.match(value):
        msg = f"Invalid SQL identifier: {value!r}"
        raise ValueError(msg)
    return value


class CursorType(str, Enum):
    """Representation of a cursor value in the cursor table.

    The representation decides how ``cursor < :new`` is evaluated by the
    database. Numeric cursors must be compared as numbers, otherwise "10"
    sorts before "9".
    """

    INT = "int"
    STRING = "string"

    @property
    def zero(self) -> str:
        """Cursor returned for consumers that have never advanced."""
        return "0" if self is CursorType.INT else ""

    def cast(self, cursor: str) -> int | str:
        """Convert a cursor string into its comparable representation.

        Raises:
            InvalidCursorError: If an INT cursor is not a decimal integer.
        """
        if self is CursorType.STRING:
            return cursor
        try:
            return int(cursor)
        except (TypeError, ValueError) as e:
            msg = f"Cursor {cursor!r} is not an integer"
            raise InvalidCursorError(msg) from e

    def column_type(self) -> sa.types.TypeEngine:
        if self is CursorType.INT:
            return sa.BigInteger()
        return sa.String(255)


class EventLogSchema(BaseModel, frozen=True):
    """Column layout of an event table.

    Attributes:
        table_name: Name of the events table.
        foreign_id_field: Column holding the entity identifier.
        time_field: Column holding the database-assigned insert time.
        type_field: Column holding the integer event kind.
        metadata_field: Column holding the binary payload; empty disables
            metadata entirely.
    """

    table_name: str = "events"
    foreign_id_field: str = "foreign_id"
    time_field: str = "timestamp"
    type_field: str = "type"
    metadata_field: str = ""

    @field_validator("table_name", "foreign_id_field", "time_field", "type_field")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return _validate_identifier(v)

    @field_validator("metadata_field")
    @classmethod
    def validate_metadata_field(cls, v: str) -> str:
        return _validate_identifier(v) if v else v

    @property
    def metadata_enabled(self) -> bool:
        return bool(self.metadata_field)


class CursorSchema(BaseModel, frozen=True):
    """Column layout of a cursor table.

    Attributes:
        table_name: Name of the cursors table.
        id_field: Column holding the consumer name (unique key).
        cursor_field: Column holding the cursor value.
        time_field: Column holding the time of the last advance.
        cursor_type: How cursor values are stored and compared.
    """

    table_name: str = "cursors"
    id_field: str = "id"
    cursor_field: str = "cursor"
    time_field: str = "updated_at"
    cursor_type: CursorType = Field(default=CursorType.INT)

    @field_validator("table_name", "id_field", "cursor_field", "time_field")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return _validate_identifier(v)


def build_events_table(schema: EventLogSchema, metadata: sa.MetaData | None = None) -> sa.Table:
    """Build the SQLAlchemy Core table for an event log schema.

    Args:
        schema: Event table layout.
        metadata: MetaData to attach to. A fresh one is used if omitted.

    Returns:
        The events Table.
    """
    if metadata is None:
        metadata = sa.MetaData()

    columns: list[sa.Column] = [
        sa.Column("id", _EventId, primary_key=True, autoincrement=True),
        sa.Column(schema.foreign_id_field, sa.String(255), nullable=False),
        sa.Column(schema.time_field, _EventTime, nullable=False),
        sa.Column(schema.type_field, sa.Integer, nullable=False),
    ]
    if schema.metadata_enabled:
        columns.append(sa.Column(schema.metadata_field, sa.LargeBinary, nullable=True))

    return sa.Table(
        schema.table_name,
        metadata,
        *columns,
        sa.Index(f"ix_{schema.table_name}_{schema.time_field}", schema.time_field),
    )


def build_cursors_table(schema: CursorSchema, metadata: sa.MetaData | None = None) -> sa.Table:
    """Build the SQLAlchemy Core table for a cursor schema.

    Args:
        schema: Cursor table layout.
        metadata: MetaData to attach to. A fresh one is used if omitted.

    Returns:
        The cursors Table.
    """
    if metadata is None:
        metadata = sa.MetaData()

    return sa.Table(
        schema.table_name,
        metadata,
        sa.Column(schema.id_field, sa.String(255), primary_key=True),
        sa.Column(schema.cursor_field, schema.cursor_type.column_type(), nullable=False),
        sa.Column(schema.time_field, sa.DateTime(), nullable=False),
    )


async def create_tables(
    engine: AsyncEngine,
    *schemas: EventLogSchema | CursorSchema,
) -> None:
    """Create the tables for the given schemas if they do not exist.

    Intended for development databases and tests. This method is idempotent.
    """
    metadata = sa.MetaData()
    for schema in schemas:
        if isinstance(schema, EventLogSchema):
            build_events_table(schema, metadata)
        else:
            build_cursors_table(schema, metadata)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
