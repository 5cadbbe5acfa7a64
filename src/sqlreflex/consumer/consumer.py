"""Instrumented event consumer.

A Consumer wraps a bare async event handler with lag, lag-alert, error,
latency and liveness metrics. It never changes delivery semantics: handler
exceptions are counted and re-raised unchanged.

Usage:
    async def project_user(event: EventRecord) -> None:
        ...

    metrics = ConsumerMetrics()
    consumer = Consumer(
        "user-projection",
        project_user,
        metrics=metrics,
        lag_alert=timedelta(minutes=5),
        activity_ttl=None,  # no liveness tracking
    )
    await consumer.consume(event)
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from types import TracebackType

from prometheus_client import Gauge

from sqlreflex.config.models import ConsumerConfig
from sqlreflex.consumer.metrics import ConsumerMetrics
from sqlreflex.events.base import EventRecord

DEFAULT_LAG_ALERT = timedelta(minutes=30)
DEFAULT_ACTIVITY_TTL = timedelta(hours=24)

EventHandler = Callable[[EventRecord], Awaitable[None]]


def _enabled(duration: timedelta | None) -> bool:
    return duration is not None and duration > timedelta(0)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Consumer:
    """Named, metered wrapper around an event handler.

    The wrapper keeps no state between calls other than its metrics, so a
    single instance may be shared by concurrent invocations.
    """

    def __init__(
        self,
        name: str,
        handler: EventHandler,
        *,
        metrics: ConsumerMetrics,
        lag_alert: timedelta | None = DEFAULT_LAG_ALERT,
        activity_ttl: timedelta | None = DEFAULT_ACTIVITY_TTL,
        lag_alert_gauge: Gauge | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the consumer.

        Args:
            name: Consumer name; also the cursor id and the metrics label.
            handler: Async function called once per event. Raise to fail.
            metrics: Metrics registry shared by the process's consumers.
            lag_alert: Lag above which the alert gauge is raised. None or a
                non-positive duration disables alerting.
            activity_ttl: Liveness TTL. None or a non-positive duration
                disables liveness tracking.
            lag_alert_gauge: Gauge to use instead of the default labelled
                alert gauge, handy for custom alert labels.
            clock: Returns the current aware UTC time.
        """
        self._name = name
        self._handler = handler
        self._metrics = metrics
        self._lag_alert = lag_alert if _enabled(lag_alert) else None
        self._activity_ttl = activity_ttl if _enabled(activity_ttl) else None
        self._clock = clock

        self._lag_gauge = metrics.lag.labels(name)
        self._lag_alert_gauge = (
            lag_alert_gauge if lag_alert_gauge is not None else metrics.lag_alert.labels(name)
        )
        self._error_counter = metrics.errors.labels(name)
        self._latency = metrics.latency.labels(name)

        self._activity_key: str | None = None
        if self._activity_ttl is not None:
            self._activity_key = metrics.activity.register(name, self._activity_ttl)

    @classmethod
    def from_config(
        cls,
        name: str,
        handler: EventHandler,
        config: ConsumerConfig,
        *,
        metrics: ConsumerMetrics,
    ) -> "Consumer":
        """Build a consumer with the thresholds of a ``consumer:`` config section.

        Example:
            config = load_config(path)
            consumer = Consumer.from_config("audit", handle, config.consumer, metrics=metrics)
        """
        return cls(
            name,
            handler,
            metrics=metrics,
            lag_alert=config.lag_alert,
            activity_ttl=config.activity_ttl,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def lag_alert(self) -> timedelta | None:
        """Alert threshold, or None when alerting is disabled."""
        return self._lag_alert

    @property
    def activity_ttl(self) -> timedelta | None:
        """Liveness TTL, or None when liveness tracking is disabled."""
        return self._activity_ttl

    async def consume(self, event: EventRecord) -> None:
        """Record lag and liveness, then run the handler.

        Raises:
            Exception: Whatever the handler raised, unchanged.
        """
        if self._activity_key is not None:
            self._metrics.activity.set_active(self._activity_key)

        lag = self._clock() - event.timestamp
        self._lag_gauge.set(lag.total_seconds())

        alert = self._lag_alert is not None and lag > self._lag_alert
        self._lag_alert_gauge.set(1.0 if alert else 0.0)

        with self._latency.time():
            try:
                await self._handler(event)
            except Exception:
                self._error_counter.inc()
                raise

    def close(self) -> None:
        """Deregister from the liveness registry. Safe to call twice."""
        if self._activity_key is not None:
            self._metrics.activity.deregister(self._activity_key)
            self._activity_key = None

    def __enter__(self) -> "Consumer":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Consumer(name={self._name!r})"
