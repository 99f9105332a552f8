"""Logging event sink for development runs: writes each batch to the log."""

from __future__ import annotations

import structlog

from src.hubsync.sinks.base import EventSink
from src.hubsync.sync.schemas import Event

logger = structlog.get_logger(__name__)


class LogEventSink(EventSink):
    """Logs a summary line per batch and one debug line per event."""

    async def append(self, events: list[Event]) -> None:
        logger.info("sink.batch_received", count=len(events))
        for event in events:
            logger.debug(
                "sink.event",
                action_name=event.action_name,
                action_date=event.action_date.isoformat(),
                identity=event.identity,
                hub_id=event.hub_id,
                properties=event.properties,
            )
