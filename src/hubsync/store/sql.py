"""SQLAlchemy-backed account store.

Uses the session_factory callable pattern: any async generator yielding
AsyncSession instances (``core.database.get_session`` in production, a
test double in unit tests).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.hubsync.store.base import AccountStore
from src.hubsync.store.models import HubSpotAccountModel
from src.hubsync.sync.schemas import Account

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_account(model: HubSpotAccountModel) -> Account:
    """Convert HubSpotAccountModel to Account schema."""
    watermarks: dict[str, datetime | None] = {}
    for object_type, value in (model.last_pulled_dates or {}).items():
        watermarks[object_type] = datetime.fromisoformat(value) if value else None

    return Account(
        hub_id=model.hub_id,
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        last_pulled_dates=watermarks,
    )


def _account_to_model(account: Account) -> HubSpotAccountModel:
    """Convert Account schema to a HubSpotAccountModel for merge."""
    return HubSpotAccountModel(
        hub_id=account.hub_id,
        access_token=account.access_token,
        refresh_token=account.refresh_token,
        last_pulled_dates={
            object_type: value.isoformat() if value else None
            for object_type, value in account.last_pulled_dates.items()
        },
    )


class SqlAccountStore(AccountStore):
    """Account store over the ``hubspot_accounts`` table.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def list_accounts(self) -> list[Account]:
        async for session in self._session_factory():
            stmt = select(HubSpotAccountModel).order_by(HubSpotAccountModel.hub_id)
            result = await session.execute(stmt)
            return [_model_to_account(model) for model in result.scalars().all()]
        return []

    async def save_account(self, account: Account) -> None:
        async for session in self._session_factory():
            await session.merge(_account_to_model(account))
            await session.commit()
            logger.debug("store.account_saved", hub_id=account.hub_id)
