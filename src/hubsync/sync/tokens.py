"""OAuth token lifecycle for one account."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from src.hubsync.crm.client import CRMClient, CRMError
from src.hubsync.sync.errors import AuthRefreshError
from src.hubsync.sync.schemas import Account, TokenState

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Owns the access token installed on one account's CRM client.

    The refreshed token is written onto ``account.access_token`` in place;
    persisting that change is left to the orchestrator's checkpoints.

    Args:
        client: The account's CRM client; receives each new access token.
        client_id: OAuth app client id.
        client_secret: OAuth app client secret.
        clock: Returns the current aware UTC time.
    """

    def __init__(
        self,
        client: CRMClient,
        client_id: str,
        client_secret: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._client_id = client_id
        self._client_secret = client_secret
        self._clock = clock
        self._state: TokenState | None = None

    @property
    def state(self) -> TokenState | None:
        return self._state

    def is_expired(self) -> bool:
        """True when no token was obtained yet or the tracked expiry has passed."""
        return self._state is None or self._clock() > self._state.expires_at

    async def refresh(self, account: Account) -> TokenState:
        """Mint a new access token from the account's refresh token.

        Raises:
            AuthRefreshError: If the provider rejects the refresh or the call fails.
        """
        try:
            result = await self._client.refresh_token(
                account.refresh_token, self._client_id, self._client_secret
            )
        except CRMError as exc:
            raise AuthRefreshError(account.hub_id, str(exc)) from exc

        self._state = TokenState(
            access_token=result.access_token,
            expires_at=self._clock() + timedelta(seconds=result.expires_in),
        )
        self._client.set_access_token(result.access_token)

        if result.access_token != account.access_token:
            account.access_token = result.access_token

        logger.info(
            "tokens.refreshed",
            hub_id=account.hub_id,
            expires_at=self._state.expires_at.isoformat(),
        )
        return self._state
