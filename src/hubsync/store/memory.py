"""In-memory account store for tests and local runs."""

from __future__ import annotations

from src.hubsync.store.base import AccountStore
from src.hubsync.sync.schemas import Account


class InMemoryAccountStore(AccountStore):
    """Keeps deep copies of accounts keyed by hub_id.

    Copies on the way in and out so the engine's in-memory mutations only
    become visible here through ``save_account``.
    """

    def __init__(self, accounts: list[Account] | None = None) -> None:
        self._accounts: dict[str, Account] = {}
        self.save_count = 0
        for account in accounts or []:
            self._accounts[account.hub_id] = account.model_copy(deep=True)

    async def list_accounts(self) -> list[Account]:
        return [account.model_copy(deep=True) for account in self._accounts.values()]

    async def save_account(self, account: Account) -> None:
        self._accounts[account.hub_id] = account.model_copy(deep=True)
        self.save_count += 1

    def get(self, hub_id: str) -> Account | None:
        account = self._accounts.get(hub_id)
        return account.model_copy(deep=True) if account else None
