"""Durable per-consumer cursors with compare-and-set advancement.

Each named consumer owns exactly one row. ``advance`` only ever moves a
cursor forward: the update is guarded by ``cursor < :new`` and evaluated by
the database in the schema's cursor representation, so two processes
running the same consumer cannot move it backward. The loser of such a race
gets a CursorRegressionError instead of corrupting the row.

Usage:
    store = CursorStore(engine, CursorSchema(table_name="cursors"))

    cursor = await store.get("audit-consumer")
    await store.advance("audit-consumer", "42")
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlreflex.core.errors import CursorRegressionError, InvalidCursorStateError
from sqlreflex.observability.logging import get_logger
from sqlreflex.persistence.classify import (
    ErrorClassifier,
    classifier_for_dialect,
    wrap_storage_error,
)
from sqlreflex.persistence.clock import db_now
from sqlreflex.persistence.schema import CursorSchema, build_cursors_table

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CursorRecord:
    """A stored cursor row.

    Attributes:
        consumer_id: Consumer name, the row's unique key.
        cursor: Cursor value rendered as a string.
        updated_at: Database time of the last successful advance (UTC).
    """

    consumer_id: str
    cursor: str
    updated_at: datetime


class CursorStore:
    """Cursor table accessor with monotonic advancement."""

    def __init__(
        self,
        engine: AsyncEngine,
        schema: CursorSchema,
        *,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        """Initialize the cursor store.

        Args:
            engine: Async engine connected to the database holding the table.
            schema: Column layout and cursor type of the cursors table.
            classifier: Error classifier. Defaults to the engine's dialect.
        """
        self._engine = engine
        self._schema = schema
        self._table = build_cursors_table(schema)
        self._classifier = classifier or classifier_for_dialect(engine.dialect.name)

    @property
    def schema(self) -> CursorSchema:
        return self._schema

    @property
    def table(self) -> sa.Table:
        return self._table

    async def get(self, consumer_id: str) -> str:
        """Return the stored cursor, or the zero cursor if there is none.

        Raises:
            TransientStorageError: If the query fails.
        """
        record = await self.get_record(consumer_id)
        if record is None:
            return self._schema.cursor_type.zero
        return record.cursor

    async def get_record(self, consumer_id: str) -> CursorRecord | None:
        """Return the full cursor row, or None for an unknown consumer.

        Raises:
            TransientStorageError: If the query fails.
        """
        schema = self._schema
        table = self._table
        stmt = sa.select(table.c[schema.cursor_field], table.c[schema.time_field]).where(
            table.c[schema.id_field] == consumer_id
        )
        try:
            async with self._engine.connect() as conn:
                row = (await conn.execute(stmt)).first()
        except Exception as e:
            raise wrap_storage_error(
                e,
                self._classifier,
                "query cursor error",
                operation="get_cursor",
                table=schema.table_name,
                details={"consumer_id": consumer_id},
            ) from e

        if row is None:
            return None
        cursor, updated_at = row
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        return CursorRecord(consumer_id=consumer_id, cursor=str(cursor), updated_at=updated_at)

    async def advance(self, consumer_id: str, cursor: str | int) -> None:
        """Move a consumer's cursor forward to ``cursor``.

        Tries a guarded update first and falls back to an insert when no row
        was updated, which covers both a first advance and a rejected guard.

        Args:
            consumer_id: Consumer name.
            cursor: New cursor; must be greater than the stored one.

        Raises:
            InvalidCursorError: If the cursor does not fit the cursor type.
            CursorRegressionError: If the stored cursor is already at or
                beyond ``cursor``. Re-read before retrying.
            InvalidCursorStateError: If the update hit more than one row.
            WriteRejectedError: If the database refuses writes.
            TransientStorageError: For any other storage failure.
        """
        schema = self._schema
        table = self._table
        cursor_str = str(cursor)
        value = schema.cursor_type.cast(cursor_str)
        details = {"consumer_id": consumer_id, "cursor": cursor_str}

        update = (
            table.update()
            .where(table.c[schema.id_field] == consumer_id)
            .where(table.c[schema.cursor_field] < value)
            .values({schema.cursor_field: value, schema.time_field: db_now()})
        )
        try:
            async with self._engine.begin() as conn:
                rows = (await conn.execute(update)).rowcount
        except Exception as e:
            raise wrap_storage_error(
                e,
                self._classifier,
                "set cursor error",
                operation="advance",
                table=schema.table_name,
                details=details,
            ) from e

        if rows > 1:
            log.error(
                "cursor_store.cursor.invalid_state",
                consumer_id=consumer_id,
                cursor=cursor_str,
                rows=rows,
            )
            raise InvalidCursorStateError(
                "invalid rows affected error",
                consumer_id=consumer_id,
                cursor=cursor_str,
                details={**details, "rows_affected": rows},
            )
        if rows == 1:
            return

        insert = table.insert().values(
            {
                schema.id_field: consumer_id,
                schema.cursor_field: value,
                schema.time_field: db_now(),
            }
        )
        try:
            async with self._engine.begin() as conn:
                await conn.execute(insert)
        except Exception as e:
            if self._classifier.is_duplicate_key(e):
                log.info(
                    "cursor_store.cursor.regressed",
                    consumer_id=consumer_id,
                    cursor=cursor_str,
                )
                raise CursorRegressionError(
                    "attempted to set cursor <= existing cursor",
                    consumer_id=consumer_id,
                    cursor=cursor_str,
                    details=details,
                ) from e
            raise wrap_storage_error(
                e,
                self._classifier,
                "insert cursor error",
                operation="advance",
                table=schema.table_name,
                details=details,
            ) from e

        log.debug("cursor_store.cursor.created", consumer_id=consumer_id, cursor=cursor_str)
