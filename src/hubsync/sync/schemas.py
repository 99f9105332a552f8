"""Sync engine domain schemas.

Provides the account record the engine mutates (credentials + watermarks),
the token and cursor state tracked during a pass, the normalized Event
emitted to sinks, and the result summaries returned by the orchestrator.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Account(BaseModel):
    """One connected CRM portal.

    Owned by the account store; the engine mutates this in-memory copy
    (access token, watermarks) and asks the store to persist it at
    checkpoints.

    Attributes:
        hub_id: Provider portal identifier.
        access_token: Last known OAuth access token.
        refresh_token: OAuth refresh token used to mint new access tokens.
        last_pulled_dates: Per-object-type watermark; None means never synced.
    """

    hub_id: str
    access_token: str | None = None
    refresh_token: str
    last_pulled_dates: dict[str, datetime | None] = Field(default_factory=dict)

    @field_validator("last_pulled_dates")
    @classmethod
    def _assume_utc(cls, value: dict[str, datetime | None]) -> dict[str, datetime | None]:
        """Treat naive watermarks as UTC so they compare with provider timestamps."""
        return {
            object_type: (
                stamp.replace(tzinfo=timezone.utc)
                if stamp is not None and stamp.tzinfo is None
                else stamp
            )
            for object_type, stamp in value.items()
        }

    def watermark(self, object_type: str) -> datetime | None:
        return self.last_pulled_dates.get(object_type)


class TokenState(BaseModel):
    """Access token currently installed on the account's client."""

    access_token: str
    expires_at: datetime


class PageCursor(BaseModel):
    """Position inside one object-type pass.

    ``after`` is the provider's opaque next-page token. ``modified_since``
    replaces the account watermark as the lower filter bound once the
    result-window cap forced a rollover.
    """

    after: str | None = None
    modified_since: datetime | None = None


class Event(BaseModel):
    """Normalized output unit handed to the event sink."""

    model_config = ConfigDict(frozen=True)

    action_name: str
    action_date: datetime
    identity: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    object_type: str
    hub_id: str
    include_in_analytics: int = 0

    def to_stream_dict(self) -> dict[str, str]:
        """Serialize to a flat dict of strings for Redis Streams."""
        return {
            "action_name": self.action_name,
            "action_date": self.action_date.isoformat(),
            "identity": self.identity or "",
            "properties": json.dumps(self.properties, default=str),
            "object_type": self.object_type,
            "hub_id": self.hub_id,
            "include_in_analytics": str(self.include_in_analytics),
        }


class FetchStats(BaseModel):
    """Counters for one completed paginated pull."""

    pages: int = 0
    records: int = 0
    rollovers: int = 0


class PassStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PassResult(BaseModel):
    """Outcome of one object-type pass for one account."""

    object_type: str
    status: PassStatus
    records: int = 0
    events: int = 0
    error: str | None = None


class AccountSyncResult(BaseModel):
    """Outcome of one account's full run (token, passes, drain, checkpoint)."""

    hub_id: str
    passes: list[PassResult] = Field(default_factory=list)
    events_flushed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors
