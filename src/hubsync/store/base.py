"""Account store abstract base class -- credentials and watermarks per account."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.hubsync.sync.schemas import Account


class AccountStore(ABC):
    """Persistent home of connected accounts.

    Methods:
        list_accounts: Load every account to sync, in processing order.
        save_account: Persist an account's credentials and watermarks.
            Must be idempotent under repeated writes of the same state.
    """

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """Load every account to sync."""
        ...

    @abstractmethod
    async def save_account(self, account: Account) -> None:
        """Upsert the account's current credentials and watermarks."""
        ...
