"""Convert raw statement records into canonical Transactions.

Both dialects:
  - kind from the sign of the source amount (negative -> expense)
  - amount in minor units: round(|amount| * 100)
  - category from the categorizer collaborator (title, subtitle, is_expense)

Revolut: started date, then completed date, then now. Title falls back to
the counterparty when the description is blank or a bare "Transfer".

AIB: DD/MM/YYYY (or YY), then a generic parse, then now with a warning.
display_name strips processor prefixes and masked card numbers.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ledgerlink.database.models import EXPENSE, INCOME, Transaction
from ledgerlink.normalize.dates import (
    now_iso,
    parse_day_month_year,
    parse_instant,
    to_iso,
)
from ledgerlink.parsers.aib import DEFAULT_PRODUCT, AibRecord
from ledgerlink.parsers.revolut import RevolutRecord

if TYPE_CHECKING:
    from ledgerlink.database.store import Categorizer

logger = logging.getLogger(__name__)

# Revolut's export defaults missing currency to GBP; converted rows with a
# blank currency default to EUR instead. Both kept: stored data relies on each.
REVOLUT_CONVERT_CURRENCY = "EUR"
AIB_CONVERT_CURRENCY = "EUR"

_AIB_PREFIX_RES = [
    re.compile(r"^TST-\s*", re.IGNORECASE),
    re.compile(r"^D/D\s*", re.IGNORECASE),
    re.compile(r"^VDP-\s*", re.IGNORECASE),
    re.compile(r"^VDC-\s*", re.IGNORECASE),
]
_MASKED_CARD_RE = re.compile(r"\*{2}\d{4}\s*")
_TRAILING_STARS_RE = re.compile(r"\*+$")
_POCKET_RE = re.compile(r"To pocket (?:EUR|GBP|USD)\s+(.+?)\s+from (?:EUR|GBP|USD)", re.IGNORECASE)


def to_minor_units(amount: float) -> int:
    """Absolute major-unit amount as integer cents (half rounds up)."""
    return int(abs(amount) * 100 + 0.5)


def default_title(is_expense: bool) -> str:
    return "Expense" if is_expense else "Income"


# ── Revolut ───────────────────────────────────────────────


def resolve_revolut_date(record: RevolutRecord) -> str:
    dt = parse_instant(record.started_date) or parse_instant(record.completed_date)
    return to_iso(dt) if dt is not None else now_iso()


def resolve_revolut_account(
    description: str,
    product: str,
    currency: str,
    pocket_hint: str | None = None,
    vault_hint: str | None = None,
) -> str:
    """Map Revolut's Product column (plus pocket names) to an account label."""
    normalized = (product or "").strip().lower()
    ccy = currency or REVOLUT_CONVERT_CURRENCY

    if normalized in ("pocket", "savings"):
        m = _POCKET_RE.search(description or "")
        name = m.group(1).strip() if m else None
        if normalized == "pocket":
            name = name or pocket_hint
            return f"Revolut Pocket: {name.strip()}" if name else "Revolut Pocket"
        name = name or vault_hint
        return f"Revolut Vault: {name.strip()}" if name else "Revolut Savings"

    return f"Revolut Current ({ccy})"


async def convert_revolut(
    record: RevolutRecord,
    categorizer: Categorizer,
    account: str | None = None,
) -> Transaction:
    is_expense = record.amount < 0
    counterparty = record.payee if is_expense else record.payer

    title = record.description
    subtitle = counterparty
    if not title or title.lower() == "transfer":
        title = counterparty
        subtitle = record.description or default_title(is_expense)

    category_id = await categorizer.resolve_category(title or "", subtitle or "", is_expense)

    title = title or default_title(is_expense)
    return Transaction(
        title=title,
        subtitle=subtitle or record.description or "",
        amount=to_minor_units(record.amount),
        kind=EXPENSE if is_expense else INCOME,
        date=resolve_revolut_date(record),
        category_id=category_id,
        currency=record.currency or REVOLUT_CONVERT_CURRENCY,
        display_name=title,
        account=account or resolve_revolut_account(
            record.description, record.product, record.currency,
        ),
    )


# ── AIB ───────────────────────────────────────────────────


def resolve_aib_date(raw: str) -> str:
    dt = parse_day_month_year(raw)
    if dt is None:
        dt = parse_instant(raw)
    if dt is None:
        logger.warning("Failed to parse AIB date %r, using current time", raw)
        return now_iso()
    return to_iso(dt)


def clean_display_name(title: str) -> str:
    """Strip AIB processor prefixes (repeatedly), masked cards and trailing '*'.

    "VDP-TST-SHOP **1234*" -> "SHOP". Returns title if nothing is left.
    """
    cleaned = title
    previous = None
    while cleaned != previous:
        previous = cleaned
        for prefix_re in _AIB_PREFIX_RES:
            cleaned = prefix_re.sub("", cleaned)
        cleaned = cleaned.strip()

    cleaned = _MASKED_CARD_RE.sub("", cleaned)
    cleaned = _TRAILING_STARS_RE.sub("", cleaned).strip()
    return cleaned or title


async def convert_aib(
    record: AibRecord,
    categorizer: Categorizer,
    account: str | None = None,
) -> Transaction:
    is_expense = record.amount < 0
    title = record.description or default_title(is_expense)
    subtitle = record.product or DEFAULT_PRODUCT

    category_id = await categorizer.resolve_category(title, subtitle, is_expense)

    return Transaction(
        title=title,
        subtitle=subtitle,
        amount=to_minor_units(record.amount),
        kind=EXPENSE if is_expense else INCOME,
        date=resolve_aib_date(record.date),
        category_id=category_id,
        currency=record.currency or AIB_CONVERT_CURRENCY,
        display_name=clean_display_name(title),
        account=account,
    )


# ── Dispatch ──────────────────────────────────────────────


async def canonicalize(
    record: RevolutRecord | AibRecord,
    categorizer: Categorizer,
    account: str | None = None,
) -> Transaction:
    """Convert a raw record of either dialect."""
    if isinstance(record, RevolutRecord):
        return await convert_revolut(record, categorizer, account=account)
    if isinstance(record, AibRecord):
        return await convert_aib(record, categorizer, account=account)
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


async def convert_records(
    records: list,
    categorizer: Categorizer,
    account: str | None = None,
) -> list[Transaction]:
    """Convert a parsed batch in order.

    Revolut pocket/vault names are carried forward: a pocket row whose
    description omits the name takes the last name seen in the batch.
    """
    converted: list[Transaction] = []
    pocket_hint: str | None = None
    vault_hint: str | None = None

    for record in records:
        record_account = account
        if isinstance(record, RevolutRecord) and account is None:
            record_account = resolve_revolut_account(
                record.description, record.product, record.currency,
                pocket_hint=pocket_hint, vault_hint=vault_hint,
            )
            if record_account.startswith("Revolut Pocket: "):
                pocket_hint = record_account[len("Revolut Pocket: "):]
            elif record_account.startswith("Revolut Vault: "):
                vault_hint = record_account[len("Revolut Vault: "):]
        converted.append(await canonicalize(record, categorizer, account=record_account))

    return converted
