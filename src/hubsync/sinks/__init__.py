"""Event sinks -- destinations for flushed batches of normalized Events.

Exports:
    EventSink: Abstract append-only sink.
    LogEventSink: Writes batches to the structured log.
    RedisStreamEventSink: Appends batches to a Redis Stream.
"""

from __future__ import annotations

from src.hubsync.sinks.base import EventSink
from src.hubsync.sinks.log import LogEventSink

__all__ = [
    "EventSink",
    "LogEventSink",
    "RedisStreamEventSink",
]


def __getattr__(name: str):  # noqa: N807
    """Lazy-load the Redis sink so redis is only imported when used."""
    if name == "RedisStreamEventSink":
        from src.hubsync.sinks.redis_stream import RedisStreamEventSink

        return RedisStreamEventSink
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
