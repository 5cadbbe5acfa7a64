"""Stream loop feeding consumers from the event log."""

from sqlreflex.streaming.loop import FATAL_ERRORS, StreamLoop, is_retryable

__all__ = ["FATAL_ERRORS", "StreamLoop", "is_retryable"]
