"""Buffered hand-off of normalized Events to the event sink.

The live batch is swapped for an empty list before the sink is awaited, with
no suspension point in between. Events enqueued while a flush is in flight
land in the new batch, so no event is lost or flushed twice. The threshold is
a soft trigger: a batch may exceed it if enqueues race past the check.
"""

from __future__ import annotations

import asyncio

import structlog

from src.hubsync.sinks.base import EventSink
from src.hubsync.sync.schemas import Event

logger = structlog.get_logger(__name__)


class EventBatcher:
    """Explicit buffer with ``enqueue``/``drain`` in front of an EventSink.

    Args:
        sink: Destination for flushed batches.
        threshold: Flush once the batch holds more than this many events.
        hub_id: Account identifier for log context.
    """

    def __init__(self, sink: EventSink, threshold: int = 2000, hub_id: str | None = None) -> None:
        self._sink = sink
        self._threshold = threshold
        self._hub_id = hub_id
        self._batch: list[Event] = []
        self._inflight: set[asyncio.Task[None]] = set()
        self.flush_count = 0
        self.flushed_events = 0

    def __len__(self) -> int:
        return len(self._batch)

    async def enqueue(self, event: Event) -> None:
        """Append ``event``; flush synchronously once over the threshold."""
        self._batch.append(event)
        if len(self._batch) > self._threshold:
            await self._flush("threshold")

    async def drain(self) -> None:
        """Wait for in-flight flushes, then flush whatever remains."""
        if self._inflight:
            await asyncio.gather(*self._inflight)
        if self._batch:
            await self._flush("drain")

    async def _flush(self, reason: str) -> None:
        snapshot, self._batch = self._batch, []
        task = asyncio.ensure_future(self._write(snapshot, reason))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await task

    async def _write(self, snapshot: list[Event], reason: str) -> None:
        logger.info(
            "batcher.flushing",
            hub_id=self._hub_id,
            count=len(snapshot),
            reason=reason,
        )
        await self._sink.append(snapshot)
        self.flush_count += 1
        self.flushed_events += len(snapshot)
