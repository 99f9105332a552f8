"""Incremental CRM sync engine.

Pulls companies, contacts and meetings modified since each account's
watermark, normalizes them into Events and hands them to an event sink in
batches.

Exports:
    Account: Connected portal with credentials and per-type watermarks.
    Event: Normalized output unit handed to sinks.
    AccountSyncResult: Outcome of one account's run.
    SyncError: Base class for sync engine failures.
    SyncOrchestrator: Per-account control loop over every object type.
    PaginatedFetcher: Retrying, window-aware search pagination.
    EventBatcher: Threshold-flushed buffer in front of a sink.
    TokenManager: Access-token refresh and expiry tracking.
"""

from __future__ import annotations

from src.hubsync.sync.errors import AuthRefreshError, FetchExhaustedError, SyncError
from src.hubsync.sync.schemas import Account, AccountSyncResult, Event, PassResult, PassStatus

__all__ = [
    "Account",
    "AccountSyncResult",
    "AuthRefreshError",
    "Event",
    "EventBatcher",
    "FetchExhaustedError",
    "PaginatedFetcher",
    "PassResult",
    "PassStatus",
    "SyncError",
    "SyncOrchestrator",
    "TokenManager",
]


def __getattr__(name: str):  # noqa: N807
    """Lazy-load engine components to avoid circular imports with sinks."""
    if name == "SyncOrchestrator":
        from src.hubsync.sync.orchestrator import SyncOrchestrator

        return SyncOrchestrator
    if name == "PaginatedFetcher":
        from src.hubsync.sync.fetcher import PaginatedFetcher

        return PaginatedFetcher
    if name == "EventBatcher":
        from src.hubsync.sync.batcher import EventBatcher

        return EventBatcher
    if name == "TokenManager":
        from src.hubsync.sync.tokens import TokenManager

        return TokenManager
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
