"""Transfer detection: pairs opposite-kind transactions that move money
between the user's own accounts.

Three strategies:
  - same-batch: pairs inside one list, bucketed by (day, amount, currency)
  - provider marker: a bank-specific title token (AIB's "*MOBI") on both
    sides, same day, matched against existing records
  - cross-provider: new records against the other provider's existing
    records, within a settlement window (default 4 days)

The matchers against existing records are greedy: each new record takes
the first eligible existing record in order, and an existing record is
never matched twice.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from ledgerlink.database.models import Transaction
from ledgerlink.normalize.dates import day_key, within_days

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "*MOBI"


@dataclass
class SameBatchResult:
    """Transfer participants found inside one list.

    pairs holds (i, j) index tuples with i < j. Each qualifying pair is
    appended twice; consumers that need distinct pairs should dedupe.
    """
    indices: set[int] = field(default_factory=set)
    pairs: list[tuple[int, int]] = field(default_factory=list)

    @property
    def distinct_pairs(self) -> list[tuple[int, int]]:
        return list(dict.fromkeys(self.pairs))


@dataclass
class MatchResult:
    """Matches between a new list and an existing list.

    pairs holds (new_index, existing_index) tuples, one per match.
    """
    new_indices: set[int] = field(default_factory=set)
    existing_indices: set[int] = field(default_factory=set)
    pairs: list[tuple[int, int]] = field(default_factory=list)

    def add(self, new_index: int, existing_index: int) -> None:
        self.new_indices.add(new_index)
        self.existing_indices.add(existing_index)
        self.pairs.append((new_index, existing_index))


def detect_same_batch_transfers(
    txns: list[Transaction],
    days: float = 1,
) -> SameBatchResult:
    """Find income/expense pairs with the same day, amount and currency."""
    groups: dict[tuple[str, int, str], list[int]] = defaultdict(list)
    for idx, txn in enumerate(txns):
        groups[(day_key(txn.date), txn.amount, txn.currency)].append(idx)

    result = SameBatchResult()
    for indices in groups.values():
        if len(indices) < 2:
            continue
        for a in range(len(indices)):
            for b in range(a + 1, len(indices)):
                i, j = indices[a], indices[b]
                if txns[i].kind == txns[j].kind:
                    continue
                if not within_days(txns[i].date, txns[j].date, days):
                    continue
                result.indices.update((i, j))
                result.pairs.append((i, j))
                result.pairs.append((i, j))

    if result.indices:
        logger.debug(
            "Same-batch transfers: %d participants in %d transactions",
            len(result.indices), len(txns),
        )
    return result


def _is_counterpart(new: Transaction, existing: Transaction) -> bool:
    return (
        abs(new.amount) == abs(existing.amount)
        and new.currency == existing.currency
        and new.kind != existing.kind
    )


def detect_provider_transfers(
    new_txns: list[Transaction],
    existing_txns: list[Transaction],
    marker: str = DEFAULT_MARKER,
) -> MatchResult:
    """Match marked new records to marked existing records on the same day.

    Only titles containing marker are considered, on both sides.
    """
    new_marked = sum(1 for t in new_txns if marker in t.title)
    existing_marked = sum(1 for t in existing_txns if marker in t.title)
    logger.debug(
        "Provider transfer detection: %d '%s' in new, %d in existing",
        new_marked, marker, existing_marked,
    )

    result = MatchResult()
    consumed: set[int] = set()

    for new_idx, new in enumerate(new_txns):
        if marker not in new.title:
            continue
        new_day = day_key(new.date)

        for existing_idx, existing in enumerate(existing_txns):
            if existing_idx in consumed:
                continue
            if marker not in existing.title:
                continue
            if day_key(existing.date) != new_day:
                continue
            if not _is_counterpart(new, existing):
                continue
            consumed.add(existing_idx)
            result.add(new_idx, existing_idx)
            break
        else:
            logger.debug(
                "No provider transfer match for '%s' %s %d on %s",
                new.title, new.kind, new.amount, new_day,
            )

    return result


def detect_cross_provider_transfers(
    new_txns: list[Transaction],
    existing_txns: list[Transaction],
    new_source: str,
    existing_source: str,
    tolerance_days: float = 4,
) -> MatchResult:
    """Match new records against another provider's existing records.

    Existing records tagged with a source other than existing_source are
    ineligible. Dates may differ by up to tolerance_days.
    """
    result = MatchResult()
    consumed: set[int] = set()

    for new_idx, new in enumerate(new_txns):
        for existing_idx, existing in enumerate(existing_txns):
            if existing_idx in consumed:
                continue
            if existing.source is not None and existing.source != existing_source:
                continue
            if not within_days(new.date, existing.date, tolerance_days):
                continue
            if not _is_counterpart(new, existing):
                continue
            consumed.add(existing_idx)
            result.add(new_idx, existing_idx)
            break

    if result.pairs:
        logger.info(
            "Cross-provider transfers %s -> %s: %d matched",
            new_source, existing_source, len(result.pairs),
        )
    return result
