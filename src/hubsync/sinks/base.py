"""Event sink abstract base class -- where flushed batches of Events go."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.hubsync.sync.schemas import Event


class EventSink(ABC):
    """Append-only destination for normalized Events.

    ``append`` receives an ordered batch; the engine does not wait for any
    confirmation beyond the call returning.
    """

    @abstractmethod
    async def append(self, events: list[Event]) -> None:
        """Append an ordered batch of events."""
        ...

    async def close(self) -> None:
        """Release resources. No-op by default."""
        return None
