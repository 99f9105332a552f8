"""Account stores -- where account credentials and watermarks live.

Provides abstract AccountStore interface with concrete implementations:
- InMemoryAccountStore: Process-local store for tests and local runs
- SqlAccountStore: SQLAlchemy async store over the hubspot_accounts table
"""

from src.hubsync.store.base import AccountStore
from src.hubsync.store.memory import InMemoryAccountStore

__all__ = [
    "AccountStore",
    "InMemoryAccountStore",
    "SqlAccountStore",
]


def __getattr__(name: str):  # noqa: N807
    """Lazy-load the SQL store so SQLAlchemy is only imported when used."""
    if name == "SqlAccountStore":
        from src.hubsync.store.sql import SqlAccountStore

        return SqlAccountStore
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
