"""Consumer metrics registry.

All consumer metrics live on an explicit ConsumerMetrics object that is
constructed by the host process and passed to each Consumer. Nothing is
registered on prometheus_client's global default registry unless the host
passes it in.

Exported series (``namespace`` defaults to "reflex"):
    reflex_consumer_lag_seconds{consumer_name}        gauge
    reflex_consumer_lag_alert{consumer_name}          gauge, 1 when lag > threshold
    reflex_consumer_errors_total{consumer_name}       counter
    reflex_consumer_latency_seconds{consumer_name}    histogram
    reflex_consumer_active{consumer_name}             gauge, 1 when seen within TTL
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import timedelta
import threading
import time

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

CONSUMER_LABEL = "consumer_name"

LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0)


@dataclass(slots=True)
class _Activity:
    consumer_name: str
    ttl: float
    last_active: float


class ActivityRegistry(Collector):
    """Liveness gauge with a per-consumer time to live.

    A consumer is reported active (1) if it was marked active within its TTL
    and inactive (0) otherwise. Registration counts as activity so a freshly
    started consumer is not reported dead before its first event.
    """

    def __init__(
        self,
        name: str = "reflex_consumer_active",
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Activity] = {}

    def register(self, consumer_name: str, ttl: timedelta) -> str:
        """Start tracking a consumer and return its activity key.

        Raises:
            ValueError: If the consumer is already registered. Two live
                consumers with one name would share a single series.
        """
        key = consumer_name
        with self._lock:
            if key in self._entries:
                msg = f"consumer {consumer_name!r} is already registered"
                raise ValueError(msg)
            self._entries[key] = _Activity(
                consumer_name=consumer_name,
                ttl=ttl.total_seconds(),
                last_active=self._clock(),
            )
        return key

    def deregister(self, key: str) -> None:
        """Stop tracking a consumer. Unknown keys are ignored."""
        with self._lock:
            self._entries.pop(key, None)

    def set_active(self, key: str) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_active = self._clock()

    def is_active(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            return self._clock() - entry.last_active <= entry.ttl

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def describe(self) -> Iterator[GaugeMetricFamily]:
        yield GaugeMetricFamily(
            self._name, "Whether the consumer was active within its TTL", labels=[CONSUMER_LABEL]
        )

    def collect(self) -> Iterator[GaugeMetricFamily]:
        family = GaugeMetricFamily(
            self._name, "Whether the consumer was active within its TTL", labels=[CONSUMER_LABEL]
        )
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        for entry in entries:
            active = now - entry.last_active <= entry.ttl
            family.add_metric([entry.consumer_name], 1.0 if active else 0.0)
        yield family


class ConsumerMetrics:
    """Metric families shared by all consumers of one process.

    Usage:
        metrics = ConsumerMetrics(prometheus_client.REGISTRY)
        consumer = Consumer("audit", handle, metrics=metrics)

    Attributes:
        registry: The prometheus registry the families are registered on.
        lag: Seconds between now and the consumed event's timestamp.
        lag_alert: 1 while the lag exceeds the consumer's alert threshold.
        errors: Handler failures.
        latency: Handler latency, observed on every exit path.
        activity: Liveness registry.
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        *,
        namespace: str = "reflex",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        labels = [CONSUMER_LABEL]

        self.lag = Gauge(
            "consumer_lag_seconds",
            "Lag between now and the consumed event timestamp",
            labels,
            namespace=namespace,
            registry=self.registry,
        )
        self.lag_alert = Gauge(
            "consumer_lag_alert",
            "Whether consumer lag exceeds the alert threshold",
            labels,
            namespace=namespace,
            registry=self.registry,
        )
        self.errors = Counter(
            "consumer_errors",
            "Number of consumer handler errors",
            labels,
            namespace=namespace,
            registry=self.registry,
        )
        self.latency = Histogram(
            "consumer_latency_seconds",
            "Consumer handler latency",
            labels,
            namespace=namespace,
            registry=self.registry,
            buckets=LATENCY_BUCKETS,
        )
        self.activity = ActivityRegistry(f"{namespace}_consumer_active", clock=clock)
        self.registry.register(self.activity)

    def remove(self, consumer_name: str) -> None:
        """Drop every labelled series of a consumer."""
        self.activity.deregister(consumer_name)
        for family in (self.lag, self.lag_alert, self.errors, self.latency):
            try:
                family.remove(consumer_name)
            except KeyError:
                continue
