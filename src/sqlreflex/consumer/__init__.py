"""Instrumented consumers and their metrics."""

from sqlreflex.consumer.consumer import (
    DEFAULT_ACTIVITY_TTL,
    DEFAULT_LAG_ALERT,
    Consumer,
    EventHandler,
)
from sqlreflex.consumer.metrics import ActivityRegistry, ConsumerMetrics

__all__ = [
    "DEFAULT_ACTIVITY_TTL",
    "DEFAULT_LAG_ALERT",
    "ActivityRegistry",
    "Consumer",
    "ConsumerMetrics",
    "EventHandler",
]
