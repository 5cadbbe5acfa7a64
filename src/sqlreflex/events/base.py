"""Event record and event type definitions.

Events are immutable rows of the append-only event log. The log itself only
knows integer type codes; mapping codes to meaningful types is owned by the
application through an EventTypeRegistry or a ReflexTypeEnum.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, field_validator


@runtime_checkable
class EventType(Protocol):
    """Anything that reports an integer event-kind code."""

    def reflex_type(self) -> int: ...


class RawEventType(int):
    """Bare integer event type, produced when decoding rows."""

    def reflex_type(self) -> int:
        return int(self)

    def __repr__(self) -> str:
        return f"RawEventType({int(self)})"


class ReflexTypeEnum(IntEnum):
    """IntEnum base for application event types.

    Example:
        class UserEvent(ReflexTypeEnum):
            CREATED = 1
            DELETED = 2

        await log.insert("user-42", UserEvent.CREATED)
    """

    def reflex_type(self) -> int:
        return int(self.value)


def same_type(a: EventType, b: EventType) -> bool:
    """Return True if both event types report the same code."""
    return a.reflex_type() == b.reflex_type()


class EventTypeRegistry:
    """Application-owned mapping from integer codes to event types.

    Decoded events carry a RawEventType; ``resolve`` turns it back into the
    application's own type. Unknown codes resolve to the raw type so that
    consumers never fail on event kinds added by newer producers.
    """

    def __init__(self, types: Iterable[EventType] = ()) -> None:
        self._types: dict[int, EventType] = {}
        for event_type in types:
            self.register(event_type)

    def register(self, event_type: EventType) -> None:
        """Register an event type under its code.

        Raises:
            ValueError: If a different type is already registered for the code.
        """
        code = event_type.reflex_type()
        existing = self._types.get(code)
        # IntEnum members of different enums compare equal by value
        if existing is not None and (
            type(existing) is not type(event_type) or existing != event_type
        ):
            msg = f"Event type code {code} already registered as {existing!r}"
            raise ValueError(msg)
        self._types[code] = event_type

    def resolve(self, event_type: EventType | int) -> EventType:
        code = event_type if isinstance(event_type, int) else event_type.reflex_type()
        return self._types.get(int(code), RawEventType(code))

    def __contains__(self, code: object) -> bool:
        return code in self._types

    def __len__(self) -> int:
        return len(self._types)


class EventRecord(BaseModel):
    """A single event read from the event log.

    Attributes:
        id: Database-assigned identifier as a decimal string. Ids are strictly
            increasing in fetch order but may have gaps.
        foreign_id: Identifier of the entity the event is about.
        type: Event kind, anything implementing ``reflex_type()``.
        timestamp: Database-assigned UTC time of the insert.
        metadata: Optional opaque payload, None when absent or disabled.

    Example:
        event = EventRecord(
            id="17",
            foreign_id="user-42",
            type=RawEventType(1),
            timestamp=datetime.now(UTC),
        )
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    foreign_id: str
    type: EventType
    timestamp: datetime
    metadata: bytes | None = None

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> str:
        """Accept ints and decimal strings; reject anything not positive."""
        text = str(v)
        if not text.isdigit() or int(text) <= 0:
            msg = f"Event id must be a positive integer, got {v!r}"
            raise ValueError(msg)
        return str(int(text))

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        """Treat naive timestamps from the database as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @property
    def id_int(self) -> int:
        """The event id as an integer."""
        return int(self.id)

    def is_type(self, event_type: EventType) -> bool:
        """Return True if this event has the given type code."""
        return same_type(self.type, event_type)

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "EventRecord":
        """Create an event from a positional row.

        Args:
            row: ``(id, foreign_id, timestamp, type, metadata)`` as selected
                by the event log. ``metadata`` is NULL when disabled.

        Returns:
            EventRecord instance.
        """
        event_id, foreign_id, timestamp, type_code, metadata = row
        if type_code is None:
            msg = f"Event {event_id} has no type"
            raise ValueError(msg)
        return cls(
            id=event_id,
            foreign_id=foreign_id,
            timestamp=timestamp,
            type=RawEventType(type_code),
            metadata=bytes(metadata) if metadata is not None else None,
        )
