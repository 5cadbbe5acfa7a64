"""Append-only event log on a relational table.

Provides async methods for appending events and reading them back in id
order using SQLAlchemy Core. Ids and times are assigned by the database.

Usage:
    engine = create_async_engine("sqlite+aiosqlite:///events.db")
    log = EventLog(engine, EventLogSchema(table_name="user_events"))

    await log.insert("user-42", UserEvent.CREATED)

    events = await log.next_batch(after_id=0)
    latest = await log.latest_id()
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import timedelta

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sqlreflex.core.errors import MetadataDisabledError, StorageError
from sqlreflex.events.base import EventRecord, EventType
from sqlreflex.observability.logging import get_logger
from sqlreflex.persistence.classify import (
    ErrorClassifier,
    classifier_for_dialect,
    wrap_storage_error,
)
from sqlreflex.persistence.clock import db_now, db_now_minus
from sqlreflex.persistence.schema import EventLogSchema, build_events_table

log = get_logger(__name__)

# Upper bound on events returned per fetch; callers re-invoke to drain more.
BATCH_SIZE = 1000


class EventLog:
    """Schema-driven accessor for an append-only events table.

    The log never updates or deletes rows. Reads only observe committed rows
    as of query time, so a reader can run ahead of inserts that commit later
    with a lower id; ``max_lag`` bounds that race for callers that care.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        schema: EventLogSchema,
        *,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        """Initialize the event log.

        Args:
            engine: Async engine connected to the database holding the table.
            schema: Column layout of the events table.
            classifier: Error classifier. Defaults to the engine's dialect.
        """
        self._engine = engine
        self._schema = schema
        self._table = build_events_table(schema)
        self._classifier = classifier or classifier_for_dialect(engine.dialect.name)

    @property
    def schema(self) -> EventLogSchema:
        return self._schema

    @property
    def table(self) -> sa.Table:
        return self._table

    async def insert(
        self,
        foreign_id: str,
        event_type: EventType,
        metadata: bytes | None = None,
        *,
        conn: AsyncConnection | None = None,
    ) -> None:
        """Append one event.

        Args:
            foreign_id: Identifier of the entity the event is about.
            event_type: Event kind.
            metadata: Optional payload; requires a metadata column.
            conn: Open connection of the caller's transaction. When given,
                the event commits (or rolls back) with the caller's writes.
                Otherwise the insert runs in its own transaction.

        Raises:
            MetadataDisabledError: If metadata is given but disabled.
            WriteRejectedError: If the database refuses writes.
            TransientStorageError: For any other storage failure.
        """
        schema = self._schema
        if metadata is not None and not schema.metadata_enabled:
            raise MetadataDisabledError(
                "metadata not enabled",
                details={"table": schema.table_name, "foreign_id": foreign_id},
            )

        values: dict[str, object] = {
            schema.foreign_id_field: foreign_id,
            schema.time_field: db_now(),
            schema.type_field: event_type.reflex_type(),
        }
        if schema.metadata_enabled:
            values[schema.metadata_field] = metadata

        stmt = self._table.insert().values(values)
        try:
            if conn is not None:
                await conn.execute(stmt)
            else:
                async with self._engine.begin() as own_conn:
                    await own_conn.execute(stmt)
        except Exception as e:
            raise wrap_storage_error(
                e,
                self._classifier,
                "insert error",
                operation="insert",
                table=schema.table_name,
                details={"foreign_id": foreign_id, "type": event_type.reflex_type()},
            ) from e

    async def latest_id(self) -> int:
        """Return the greatest id in the table, or 0 if it is empty.

        Raises:
            TransientStorageError: If the query fails.
        """
        stmt = sa.select(sa.func.max(self._table.c.id))
        try:
            async with self._engine.connect() as conn:
                latest = (await conn.execute(stmt)).scalar()
        except Exception as e:
            raise wrap_storage_error(
                e,
                self._classifier,
                "latest id error",
                operation="latest_id",
                table=self._schema.table_name,
            ) from e
        return int(latest) if latest is not None else 0

    async def next_batch(
        self,
        after_id: int | str,
        max_lag: timedelta | None = None,
    ) -> list[EventRecord]:
        """Return up to BATCH_SIZE events with id greater than ``after_id``.

        Args:
            after_id: Exclusive lower bound, usually the consumer's cursor.
            max_lag: Deprecated settle window. When positive, events newer
                than ``now - max_lag`` are left out of the batch.

        Returns:
            Events in ascending id order. Empty when there is nothing new.

        Raises:
            TransientStorageError: If the query fails.
            StorageError: If a row cannot be decoded. No partial batch is
                returned.
        """
        schema = self._schema
        table = self._table
        after = int(after_id) if after_id != "" else 0

        metadata_col = (
            table.c[schema.metadata_field]
            if schema.metadata_enabled
            else sa.null().label("metadata")
        )
        stmt = (
            sa.select(
                table.c.id,
                table.c[schema.foreign_id_field],
                table.c[schema.time_field],
                table.c[schema.type_field],
                metadata_col,
            )
            .where(table.c.id > after)
            .order_by(table.c.id.asc())
            .limit(BATCH_SIZE)
        )
        # TODO: drop max_lag once every consumer applies its own settle window.
        if max_lag is not None and max_lag > timedelta(0):
            stmt = stmt.where(
                table.c[schema.time_field] < db_now_minus(max_lag.total_seconds())
            )

        try:
            async with self._engine.connect() as conn:
                rows = (await conn.execute(stmt)).all()
        except Exception as e:
            raise wrap_storage_error(
                e,
                self._classifier,
                "next events error",
                operation="next_batch",
                table=schema.table_name,
                details={"after_id": after},
            ) from e

        try:
            events = [EventRecord.from_row(tuple(row)) for row in rows]
        except ValueError as e:
            raise StorageError(
                f"Malformed event row: {e}",
                operation="decode",
                table=schema.table_name,
                details={"after_id": after},
            ) from e

        log.debug(
            "event_log.batch.fetched",
            table=schema.table_name,
            after_id=after,
            count=len(events),
        )
        return events

    async def stream(
        self,
        after_id: int | str = 0,
        *,
        poll_interval: timedelta = timedelta(seconds=1),
        max_lag: timedelta | None = None,
    ) -> AsyncIterator[EventRecord]:
        """Yield events after ``after_id`` forever, polling when caught up.

        The iterator keeps its own position; it does not read or write
        cursors. Storage errors propagate to the caller and end the iterator.

        Example:
            async for event in log.stream(after_id=cursor):
                await handle(event)
        """
        position = int(after_id) if after_id != "" else 0
        while True:
            batch = await self.next_batch(position, max_lag)
            if not batch:
                await asyncio.sleep(poll_interval.total_seconds())
                continue
            for event in batch:
                position = event.id_int
                yield event
