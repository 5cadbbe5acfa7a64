"""Unit tests for sqlreflex.persistence.cursor_store module."""

from datetime import UTC, datetime, timedelta

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlreflex.core.errors import (
    CursorRegressionError,
    InvalidCursorError,
    InvalidCursorStateError,
    TransientStorageError,
)
from sqlreflex.persistence.cursor_store import CursorStore
from sqlreflex.persistence.schema import CursorSchema, CursorType, create_tables


class TestGet:
    """Test CursorStore.get() and get_record()."""

    async def test_unknown_consumer_gets_zero_cursor(self, cursor_store: CursorStore) -> None:
        assert await cursor_store.get("audit") == "0"
        assert await cursor_store.get_record("audit") is None

    async def test_string_schema_zero_cursor(self, engine: AsyncEngine) -> None:
        schema = CursorSchema(table_name="str_cursors", cursor_type=CursorType.STRING)
        await create_tables(engine, schema)
        assert await CursorStore(engine, schema).get("audit") == ""

    async def test_missing_table_is_transient(self, engine: AsyncEngine) -> None:
        store = CursorStore(engine, CursorSchema(table_name="missing"))
        with pytest.raises(TransientStorageError):
            await store.get("audit")


class TestAdvance:
    """Test CursorStore.advance()."""

    async def test_first_advance_creates_row(self, cursor_store: CursorStore) -> None:
        await cursor_store.advance("audit", "5")

        record = await cursor_store.get_record("audit")
        assert record is not None
        assert record.cursor == "5"
        assert record.updated_at.tzinfo is UTC
        assert abs(record.updated_at - datetime.now(UTC)) < timedelta(minutes=1)

    async def test_advance_moves_forward(self, cursor_store: CursorStore) -> None:
        await cursor_store.advance("audit", "5")
        await cursor_store.advance("audit", 7)
        assert await cursor_store.get("audit") == "7"

    async def test_equal_cursor_is_regression(self, cursor_store: CursorStore) -> None:
        await cursor_store.advance("audit", "5")
        with pytest.raises(CursorRegressionError) as exc_info:
            await cursor_store.advance("audit", "5")

        assert exc_info.value.consumer_id == "audit"
        assert exc_info.value.cursor == "5"
        assert await cursor_store.get("audit") == "5"

    async def test_lower_cursor_is_regression(self, cursor_store: CursorStore) -> None:
        await cursor_store.advance("audit", "5")
        with pytest.raises(CursorRegressionError):
            await cursor_store.advance("audit", "4")
        assert await cursor_store.get("audit") == "5"

    async def test_int_cursors_compare_numerically(self, cursor_store: CursorStore) -> None:
        """An INT cursor table orders 10 after 9."""
        await cursor_store.advance("audit", "9")
        await cursor_store.advance("audit", "10")
        assert await cursor_store.get("audit") == "10"

        with pytest.raises(CursorRegressionError):
            await cursor_store.advance("audit", "9")

    async def test_string_cursors_compare_lexically(self, engine: AsyncEngine) -> None:
        schema = CursorSchema(table_name="str_cursors", cursor_type=CursorType.STRING)
        await create_tables(engine, schema)
        store = CursorStore(engine, schema)

        await store.advance("audit", "b")
        await store.advance("audit", "c")
        with pytest.raises(CursorRegressionError):
            await store.advance("audit", "a")
        assert await store.get("audit") == "c"

    async def test_non_numeric_cursor_rejected(self, cursor_store: CursorStore) -> None:
        with pytest.raises(InvalidCursorError):
            await cursor_store.advance("audit", "abc")
        assert await cursor_store.get_record("audit") is None

    async def test_consumers_are_independent(self, cursor_store: CursorStore) -> None:
        await cursor_store.advance("audit", "50")
        await cursor_store.advance("billing", "3")

        assert await cursor_store.get("audit") == "50"
        assert await cursor_store.get("billing") == "3"

    async def test_updated_at_moves_on_advance(self, cursor_store: CursorStore) -> None:
        await cursor_store.advance("audit", "1")
        first = await cursor_store.get_record("audit")
        await cursor_store.advance("audit", "2")
        second = await cursor_store.get_record("audit")

        assert first is not None
        assert second is not None
        assert second.updated_at >= first.updated_at

    async def test_multiple_rows_is_invalid_state(self, engine: AsyncEngine) -> None:
        """Without a unique key, a guarded update can hit several rows."""
        metadata = sa.MetaData()
        keyless = sa.Table(
            "keyless_cursors",
            metadata,
            sa.Column("id", sa.String(255)),
            sa.Column("cursor", sa.BigInteger),
            sa.Column("updated_at", sa.DateTime),
        )
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
            now = datetime.now(UTC).replace(tzinfo=None)
            await conn.execute(
                keyless.insert(),
                [
                    {"id": "audit", "cursor": 1, "updated_at": now},
                    {"id": "audit", "cursor": 2, "updated_at": now},
                ],
            )

        store = CursorStore(engine, CursorSchema(table_name="keyless_cursors"))
        with pytest.raises(InvalidCursorStateError) as exc_info:
            await store.advance("audit", "5")
        assert exc_info.value.details["rows_affected"] == 2
