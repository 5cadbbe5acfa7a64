"""Unit tests for sqlreflex.persistence.schema module."""

from pydantic import ValidationError
import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlreflex.core.errors import InvalidCursorError
from sqlreflex.persistence.schema import (
    CursorSchema,
    CursorType,
    EventLogSchema,
    build_cursors_table,
    build_events_table,
    create_tables,
)


class TestCursorType:
    """Test CursorType casting and zero values."""

    def test_zero_cursors(self) -> None:
        assert CursorType.INT.zero == "0"
        assert CursorType.STRING.zero == ""

    def test_int_cast(self) -> None:
        assert CursorType.INT.cast("42") == 42

    def test_int_cast_rejects_non_numeric(self) -> None:
        """A non-numeric cursor cannot be stored in an INT table."""
        with pytest.raises(InvalidCursorError):
            CursorType.INT.cast("abc")

    def test_string_cast_is_identity(self) -> None:
        assert CursorType.STRING.cast("abc") == "abc"

    def test_column_types(self) -> None:
        assert isinstance(CursorType.INT.column_type(), sa.BigInteger)
        assert isinstance(CursorType.STRING.column_type(), sa.String)


class TestSchemaModels:
    """Test schema model defaults and validation."""

    def test_event_schema_defaults(self) -> None:
        schema = EventLogSchema()
        assert schema.table_name == "events"
        assert schema.foreign_id_field == "foreign_id"
        assert schema.time_field == "timestamp"
        assert schema.type_field == "type"
        assert schema.metadata_enabled is False

    def test_metadata_enabled_by_field_name(self) -> None:
        assert EventLogSchema(metadata_field="payload").metadata_enabled is True

    def test_cursor_schema_defaults(self) -> None:
        schema = CursorSchema()
        assert schema.id_field == "id"
        assert schema.cursor_field == "cursor"
        assert schema.time_field == "updated_at"
        assert schema.cursor_type is CursorType.INT

    @pytest.mark.parametrize("name", ["events; DROP TABLE x", "1events", "my-events", ""])
    def test_invalid_identifiers_rejected(self, name: str) -> None:
        """Names end up in DDL and queries, so only plain identifiers pass."""
        with pytest.raises(ValidationError):
            EventLogSchema(table_name=name)

    def test_schemas_are_frozen(self) -> None:
        schema = CursorSchema()
        with pytest.raises(ValidationError):
            schema.table_name = "other"  # type: ignore[misc]


class TestBuildTables:
    """Test table construction from schemas."""

    def test_events_table_uses_configured_names(self) -> None:
        schema = EventLogSchema(
            table_name="user_events",
            foreign_id_field="user_id",
            time_field="created_at",
            type_field="kind",
        )
        table = build_events_table(schema)
        assert table.name == "user_events"
        assert set(table.c.keys()) == {"id", "user_id", "created_at", "kind"}
        assert table.c.id.primary_key

    def test_events_table_metadata_column_only_when_enabled(self) -> None:
        table = build_events_table(EventLogSchema(metadata_field="payload"))
        assert "payload" in table.c
        assert isinstance(table.c.payload.type, sa.LargeBinary)

    def test_cursors_table_key_and_type(self) -> None:
        table = build_cursors_table(CursorSchema(cursor_type=CursorType.STRING))
        assert table.c.id.primary_key
        assert isinstance(table.c.cursor.type, sa.String)


class TestCreateTables:
    """Test create_tables."""

    async def test_creates_both_tables(self, engine: AsyncEngine) -> None:
        await create_tables(engine, EventLogSchema(), CursorSchema())

        async with engine.connect() as conn:
            names = await conn.run_sync(lambda sync: sa.inspect(sync).get_table_names())
        assert {"events", "cursors"} <= set(names)

    async def test_is_idempotent(self, engine: AsyncEngine) -> None:
        """Calling create_tables twice is safe."""
        await create_tables(engine, EventLogSchema())
        await create_tables(engine, EventLogSchema())
