"""Dataclass models matching the SQLite schema.

A Transaction is the canonical shape every statement dialect converges
to. Before persistence it has no id; the store assigns one.
All primary keys are TEXT (UUID strings generated via uuid4()).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

INCOME = "income"
EXPENSE = "expense"
KINDS = (INCOME, EXPENSE)

REVOLUT_SOURCE = "revolut_import"
AIB_SOURCE = "aib_import"


def new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Transaction:
    title: str
    subtitle: str
    amount: int            # minor units, never negative; sign lives in kind
    kind: str              # INCOME or EXPENSE
    date: str              # ISO-8601 instant, e.g. 2024-03-01T00:00:00.000Z
    category_id: str
    currency: str
    display_name: str | None = None
    exclude_from_analytics: bool = False
    is_analytics_protected: bool = False
    matched_transfer_id: str | None = None
    account: str | None = None
    # Assigned on persistence
    id: str | None = None
    user_id: str | None = None
    source: str | None = None
    import_batch_id: str | None = None
    status: str = "synced"   # "synced" or "queued"
    created_at: str = field(default_factory=_now)

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"amount must be non-negative minor units, got {self.amount}")
        if self.kind not in KINDS:
            raise ValueError(f"kind must be one of {KINDS}, got {self.kind!r}")
        if self.is_analytics_protected and not self.exclude_from_analytics:
            raise ValueError("analytics-protected transactions must be excluded from analytics")
        if self.display_name is None:
            self.display_name = self.title

    @property
    def is_expense(self) -> bool:
        return self.kind == EXPENSE

    def mark_as_transfer(
        self, transfer_category_id: str, matched_transfer_id: str | None = None,
    ) -> None:
        """Flag as one side of a transfer and hide it from analytics."""
        self.category_id = transfer_category_id
        self.exclude_from_analytics = True
        self.is_analytics_protected = True
        if matched_transfer_id is not None:
            self.matched_transfer_id = matched_transfer_id


@dataclass
class AccountBalance:
    user_id: str
    account: str
    balance: int           # minor units, signed
    currency: str
    updated_at: str = field(default_factory=_now)
