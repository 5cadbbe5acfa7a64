"""Cursor-driven stream loop.

Feeds a Consumer with events from an EventLog in id order and records
progress in a CursorStore. A cursor only moves past an event after the
consumer returned successfully for it, so every event is delivered at least
once. Events before a failure stay acknowledged; the failed event and the
rest of its batch are fetched again on the next pass.

Usage:
    loop = StreamLoop(event_log, cursor_store, consumer, config=config.loop)

    stop = asyncio.Event()
    task = asyncio.create_task(loop.run(stop))
    ...
    stop.set()
    await task
"""

import asyncio
import contextlib

import stamina

from sqlreflex.config.models import StreamLoopConfig
from sqlreflex.consumer.consumer import Consumer
from sqlreflex.core.errors import (
    ConfigError,
    InvalidCursorError,
    InvalidCursorStateError,
    MetadataDisabledError,
    WriteRejectedError,
)
from sqlreflex.observability.logging import bind_context, get_logger, unbind_context
from sqlreflex.persistence.cursor_store import CursorStore
from sqlreflex.persistence.event_log import EventLog
from sqlreflex.persistence.schema import CursorType

log = get_logger(__name__)

# Errors that a retry from the stored cursor cannot fix.
FATAL_ERRORS: tuple[type[Exception], ...] = (
    InvalidCursorStateError,
    MetadataDisabledError,
    WriteRejectedError,
    InvalidCursorError,
)


def is_retryable(exc: Exception) -> bool:
    """Return True if ``run`` should back off and try again after ``exc``."""
    return not isinstance(exc, FATAL_ERRORS)


class StreamLoop:
    """Sequential delivery loop for one named consumer.

    Run at most one loop per consumer name per process. Two processes running
    the same consumer are safe: the loser of an advance race gets a
    CursorRegressionError and re-reads the cursor on its next pass.
    """

    def __init__(
        self,
        event_log: EventLog,
        cursor_store: CursorStore,
        consumer: Consumer,
        *,
        config: StreamLoopConfig | None = None,
    ) -> None:
        """Initialize the loop.

        Args:
            event_log: Source of events.
            cursor_store: Where the consumer's progress is stored.
            consumer: Consumer to feed; its name is the cursor id.
            config: Polling and backoff settings. Defaults apply if None.

        Raises:
            ConfigError: If the cursor table does not store integer cursors.
                Event ids only order correctly as integers.
        """
        cursor_type = cursor_store.schema.cursor_type
        if cursor_type is not CursorType.INT:
            raise ConfigError(
                f"stream loop needs an int cursor table, got {cursor_type.value!r}",
                details={"table": cursor_store.schema.table_name, "consumer": consumer.name},
            )

        self._events = event_log
        self._cursors = cursor_store
        self._consumer = consumer
        self._config = config or StreamLoopConfig()

    @property
    def consumer(self) -> Consumer:
        return self._consumer

    async def process_batch(self) -> int:
        """Deliver the next batch after the stored cursor.

        Returns:
            Number of events consumed and acknowledged. Zero means the
            consumer is caught up.

        Raises:
            Exception: The first handler or storage failure, unchanged.
                Nothing after the failed event is delivered.
        """
        name = self._consumer.name
        cursor = await self._cursors.get(name)
        events = await self._events.next_batch(cursor, self._config.max_lag)

        for event in events:
            await self._consumer.consume(event)
            await self._cursors.advance(name, event.id)

        if events:
            log.debug("stream_loop.batch.processed", count=len(events), cursor=events[-1].id)
        return len(events)

    async def _process_with_retry(self) -> int:
        config = self._config

        @stamina.retry(
            on=is_retryable,
            attempts=None,
            timeout=None,
            wait_initial=config.backoff_initial_seconds,
            wait_max=config.backoff_max_seconds,
            wait_jitter=config.backoff_jitter_seconds,
        )
        async def _attempt() -> int:
            try:
                return await self.process_batch()
            except Exception as e:
                if is_retryable(e):
                    log.warning(
                        "stream_loop.retrying",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                raise

        return await _attempt()

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Process batches until ``stop_event`` is set.

        Retryable failures are retried from the stored cursor with
        exponential backoff and jitter. Fatal failures and cancellation
        propagate and end the loop.

        Args:
            stop_event: Set it to stop after the current batch. If None the
                loop runs until cancelled or a fatal error occurs.

        Raises:
            InvalidCursorStateError: The cursor table breaks its invariant.
            WriteRejectedError: The database refuses writes.
            MetadataDisabledError: Propagated from the consumer's handler.
            InvalidCursorError: A stored or event id cannot be a cursor.
        """
        stop = stop_event or asyncio.Event()
        poll_seconds = self._config.poll_interval.total_seconds()

        bind_context(consumer=self._consumer.name)
        log.info("stream_loop.started", poll_interval=poll_seconds)
        try:
            while not stop.is_set():
                processed = await self._process_with_retry()
                if processed:
                    continue
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=poll_seconds)
        except Exception as e:
            log.error("stream_loop.failed", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            log.info("stream_loop.stopped")
            unbind_context("consumer")
