"""Account store persistence model.

One row per connected HubSpot portal. Watermarks are kept as a JSON object
of object type -> ISO-8601 timestamp (or null), so new object types need no
schema change.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.hubsync.core.database import Base


class HubSpotAccountModel(Base):
    """Connected HubSpot portal with OAuth credentials and sync watermarks."""

    __tablename__ = "hubspot_accounts"

    hub_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    last_pulled_dates: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
