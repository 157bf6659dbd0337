"""Exact-key deduplication for statement imports.

A candidate is a duplicate when an existing record has the same key:
  normalized title | absolute minor-unit amount | kind | calendar day (UTC)

There is no amount tolerance and no date window: a one-day shift or a
one-cent difference is a different transaction. Candidates are checked
against the existing set only, so two identical rows inside one file are
both kept.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ledgerlink.database.models import Transaction
from ledgerlink.normalize.dates import day_key

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(title: str | None) -> str:
    """Lower-case, trim, and collapse internal whitespace."""
    return _WHITESPACE_RE.sub(" ", (title or "").strip().lower())


def make_dedup_key(txn: Transaction) -> str:
    return f"{normalize_title(txn.title)}|{abs(txn.amount)}|{txn.kind}|{day_key(txn.date)}"


@dataclass
class DedupResult:
    """Candidates split into new and duplicate, both in input order."""
    new: list[Transaction] = field(default_factory=list)
    duplicates: list[Transaction] = field(default_factory=list)


def filter_duplicates(
    existing: list[Transaction],
    candidates: list[Transaction],
) -> DedupResult:
    existing_keys = {make_dedup_key(t) for t in existing}
    result = DedupResult()
    for txn in candidates:
        if make_dedup_key(txn) in existing_keys:
            result.duplicates.append(txn)
        else:
            result.new.append(txn)
    return result
