"""Event model for sqlreflex."""

from sqlreflex.events.base import (
    EventRecord,
    EventType,
    EventTypeRegistry,
    RawEventType,
    ReflexTypeEnum,
    same_type,
)

__all__ = [
    "EventRecord",
    "EventType",
    "EventTypeRegistry",
    "RawEventType",
    "ReflexTypeEnum",
    "same_type",
]
