"""Event sink backed by Redis Streams.

Stream key pattern: hubsync:events:{stream_name}

Each flushed batch is written with one pipelined round trip of XADD
commands, trimmed approximately to ``maxlen`` entries.
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog

from src.hubsync.sinks.base import EventSink
from src.hubsync.sync.schemas import Event

logger = structlog.get_logger(__name__)


class RedisStreamEventSink(EventSink):
    """Append Events to a Redis Stream.

    Args:
        redis: Async Redis client.
        stream: Stream name (without the ``hubsync:events:`` prefix).
        maxlen: Approximate stream length cap.
    """

    def __init__(self, redis: aioredis.Redis, stream: str = "crm-events", maxlen: int = 100_000) -> None:
        self._redis = redis
        self._stream = stream
        self._maxlen = maxlen

    @property
    def stream_key(self) -> str:
        return f"hubsync:events:{self._stream}"

    async def append(self, events: list[Event]) -> None:
        if not events:
            return

        async with self._redis.pipeline(transaction=False) as pipe:
            for event in events:
                pipe.xadd(
                    self.stream_key,
                    event.to_stream_dict(),
                    maxlen=self._maxlen,
                    approximate=True,
                )
            message_ids = await pipe.execute()

        logger.info(
            "sink.batch_published",
            stream=self.stream_key,
            count=len(events),
            first_id=message_ids[0] if message_ids else None,
            last_id=message_ids[-1] if message_ids else None,
        )

    async def close(self) -> None:
        await self._redis.aclose()
