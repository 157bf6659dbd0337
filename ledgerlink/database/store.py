"""Collaborator contracts for the import pipeline, plus a SQLite-backed store.

The pipeline only awaits these methods; anything implementing them (a
remote document store, a test fake) can stand in for RepositoryStore.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .models import AccountBalance, Transaction
from .repository import Repository

logger = logging.getLogger(__name__)


class Categorizer(Protocol):
    async def resolve_category(self, title: str, subtitle: str, is_expense: bool) -> str: ...

    async def resolve_transfer_category_id(self) -> str: ...


class TransactionStore(Protocol):
    async def fetch_all_transactions(self, user_id: str) -> list[Transaction]: ...

    async def fetch_queued_transactions(self, user_id: str) -> list[Transaction]: ...

    async def fetch_batch(self, user_id: str, batch_id: str) -> list[Transaction]: ...

    async def persist_transaction_batch(
        self, user_id: str, txns: list[Transaction],
    ) -> list[Transaction]: ...

    async def update_transaction(self, txn_id: str, fields: dict) -> None: ...

    async def delete_batch(self, user_id: str, batch_id: str) -> int: ...

    async def snapshot_balances(self, user_id: str, batch_id: str) -> None: ...

    async def restore_balances_snapshot(self, user_id: str, batch_id: str) -> None: ...

    async def update_account_balance(
        self, user_id: str, account: str, balance: int, currency: str,
    ) -> None: ...


class RepositoryStore:
    """TransactionStore over the local SQLite Repository.

    "All transactions" means synced rows; rows with status "queued" are
    written but not yet confirmed and are fetched separately.
    """

    def __init__(self, repo: Repository):
        self.repo = repo

    async def fetch_all_transactions(self, user_id: str) -> list[Transaction]:
        return self.repo.get_transactions_for_user(user_id, status="synced")

    async def fetch_queued_transactions(self, user_id: str) -> list[Transaction]:
        return self.repo.get_transactions_for_user(user_id, status="queued")

    async def fetch_batch(self, user_id: str, batch_id: str) -> list[Transaction]:
        return self.repo.get_transactions_by_batch(user_id, batch_id)

    async def persist_transaction_batch(
        self, user_id: str, txns: list[Transaction],
    ) -> list[Transaction]:
        for txn in txns:
            txn.user_id = user_id
        persisted = self.repo.insert_transactions_batch(txns)
        logger.debug("Persisted %d transactions for %s", len(persisted), user_id)
        return persisted

    async def update_transaction(self, txn_id: str, fields: dict) -> None:
        if not self.repo.update_transaction(txn_id, **fields):
            raise KeyError(f"Transaction not found: {txn_id}")

    async def delete_batch(self, user_id: str, batch_id: str) -> int:
        return self.repo.delete_transactions_by_batch(user_id, batch_id)

    async def snapshot_balances(self, user_id: str, batch_id: str) -> None:
        count = self.repo.snapshot_balances(user_id, batch_id)
        logger.debug("Snapshot of %d balances for batch %s", count, batch_id)

    async def restore_balances_snapshot(self, user_id: str, batch_id: str) -> None:
        count = self.repo.restore_balances_snapshot(user_id, batch_id)
        logger.debug("Restored %d balances from batch %s", count, batch_id)

    async def update_account_balance(
        self, user_id: str, account: str, balance: int, currency: str,
    ) -> None:
        self.repo.upsert_account_balance(
            AccountBalance(user_id=user_id, account=account, balance=balance, currency=currency)
        )
