"""Shared fixtures for sqlreflex tests."""

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

from prometheus_client import CollectorRegistry
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
import stamina

from sqlreflex.consumer.metrics import ConsumerMetrics
from sqlreflex.persistence.cursor_store import CursorStore
from sqlreflex.persistence.event_log import EventLog
from sqlreflex.persistence.schema import CursorSchema, EventLogSchema, create_tables


@pytest.fixture(autouse=True)
def no_retry_waits() -> Iterator[None]:
    """Disable stamina backoff sleeps and retries unless a test opts in."""
    stamina.set_testing(True, attempts=1)
    yield
    stamina.set_testing(False)


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Async engine on a throwaway SQLite file."""
    db_path = tmp_path / "reflex.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    yield engine
    await engine.dispose()


@pytest.fixture
def event_schema() -> EventLogSchema:
    return EventLogSchema(table_name="events", metadata_field="metadata")


@pytest.fixture
def cursor_schema() -> CursorSchema:
    return CursorSchema(table_name="cursors")


@pytest.fixture
async def event_log(engine: AsyncEngine, event_schema: EventLogSchema) -> EventLog:
    """EventLog over a freshly created events table with metadata enabled."""
    await create_tables(engine, event_schema)
    return EventLog(engine, event_schema)


@pytest.fixture
async def cursor_store(engine: AsyncEngine, cursor_schema: CursorSchema) -> CursorStore:
    """CursorStore over a freshly created INT cursor table."""
    await create_tables(engine, cursor_schema)
    return CursorStore(engine, cursor_schema)


@pytest.fixture
def metrics() -> ConsumerMetrics:
    """Consumer metrics on an isolated prometheus registry."""
    return ConsumerMetrics(CollectorRegistry())
