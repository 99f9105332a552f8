"""Sync engine exception hierarchy."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for failures raised by the sync engine."""


class AuthRefreshError(SyncError):
    """The provider rejected the refresh token. Never retried."""

    def __init__(self, hub_id: str, reason: str) -> None:
        super().__init__(f"Failed to refresh access token for hub {hub_id}: {reason}")
        self.hub_id = hub_id


class FetchExhaustedError(SyncError):
    """A search request failed on every attempt allowed by the retry policy."""

    def __init__(self, object_type: str, attempts: int) -> None:
        super().__init__(
            f"Failed to fetch {object_type} after {attempts} attempts. Aborting."
        )
        self.object_type = object_type
        self.attempts = attempts
