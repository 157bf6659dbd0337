"""Import orchestration: dedup → transfer detection → persist → link.

The steps are independent calls against the store, not one atomic
transaction. Base records are persisted first; transfer links are then
written best-effort, so a failed link leaves an imported but unlinked
record rather than aborting the import.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ledgerlink.categorize.transfer_detect import (
    detect_cross_provider_transfers,
    detect_provider_transfers,
    detect_same_batch_transfers,
)
from ledgerlink.config import Config
from ledgerlink.database.dedup import filter_duplicates, make_dedup_key
from ledgerlink.database.models import AIB_SOURCE, REVOLUT_SOURCE, Transaction, new_id
from ledgerlink.database.store import Categorizer, TransactionStore

logger = logging.getLogger(__name__)

OTHER_SOURCE = {REVOLUT_SOURCE: AIB_SOURCE, AIB_SOURCE: REVOLUT_SOURCE}


@dataclass
class PrecheckResult:
    """Dry-run dedup outcome for a candidate batch."""
    unique_count: int = 0
    duplicate_count: int = 0
    zero_amount_count: int = 0
    duplicate_keys: list[str] = field(default_factory=list)


@dataclass
class ImportSummary:
    """Result of one run_import() call."""
    batch_id: str | None = None
    imported_count: int = 0
    skipped_count: int = 0     # duplicates plus zero-amount rows
    linked_pair_count: int = 0
    failed_links: int = 0
    cancelled: bool = False


def _transfer_fields(transfer_category_id: str, matched_transfer_id: str | None = None) -> dict:
    fields = {
        "category_id": transfer_category_id,
        "exclude_from_analytics": True,
        "is_analytics_protected": True,
    }
    if matched_transfer_id is not None:
        fields["matched_transfer_id"] = matched_transfer_id
    return fields


def _readback_key(txn: Transaction) -> tuple:
    return (txn.date, txn.title, txn.amount, txn.kind)


class ImportPipeline:
    """Reconcile a converted statement against a user's history.

    Args:
        store: Transaction store collaborator.
        categorizer: Categorizer collaborator (transfer category lookup).
        config: Application config (detection windows and markers).
    """

    def __init__(
        self,
        store: TransactionStore,
        categorizer: Categorizer,
        config: Config | None = None,
    ):
        self.store = store
        self.categorizer = categorizer
        self.config = config
        self._cancelled = False

    def cancel(self) -> None:
        """Stop issuing link updates. Already persisted records stay.

        run_import reads the flag only at its await points: after the batch
        is persisted and after the batch is read back for linking. Updates
        queued before the flag is seen are still sent.
        """
        self._cancelled = True

    @property
    def _same_batch_days(self) -> float:
        return self.config.same_batch_days if self.config else 1

    @property
    def _cross_provider_days(self) -> float:
        return self.config.cross_provider_days if self.config else 4

    def _marker_for(self, source: str) -> str | None:
        if self.config is None:
            return "*MOBI" if source == AIB_SOURCE else None
        return self.config.marker_for(source)

    async def _fetch_baseline(self, user_id: str) -> list[Transaction]:
        existing, queued = await asyncio.gather(
            self.store.fetch_all_transactions(user_id),
            self.store.fetch_queued_transactions(user_id),
        )
        return list(existing) + list(queued)

    async def precheck(self, user_id: str, candidates: list[Transaction]) -> PrecheckResult:
        """Count how many candidates would be imported, without writing."""
        baseline = await self._fetch_baseline(user_id)
        nonzero = [t for t in candidates if t.amount > 0]
        dedup = filter_duplicates(baseline, nonzero)
        return PrecheckResult(
            unique_count=len(dedup.new),
            duplicate_count=len(dedup.duplicates),
            zero_amount_count=len(candidates) - len(nonzero),
            duplicate_keys=[make_dedup_key(t) for t in dedup.duplicates],
        )

    async def run_import(
        self,
        user_id: str,
        candidates: list[Transaction],
        source: str,
        *,
        account: str | None = None,
        final_balance: int | None = None,
        currency: str | None = None,
    ) -> ImportSummary:
        """Import converted candidates for one user.

        Steps:
        1. Fetch history and queued records (concurrently)
        2. Resolve the transfer category id (fatal on failure)
        3. Drop zero-amount rows and duplicates
        4. Detect transfers: same-provider pairs (batch and history),
           provider marker, cross-provider
        5. Snapshot balances, persist the batch
        6. Link counterparts (best-effort, cancellable until queued)
        7. Update the account balance, if the statement carried one

        Raises whatever the store or categorizer raises in steps 1-5.
        """
        if source not in OTHER_SOURCE:
            raise ValueError(f"Unknown import source: {source!r}")
        self._cancelled = False
        summary = ImportSummary()

        baseline = await self._fetch_baseline(user_id)
        transfer_category_id = await self.categorizer.resolve_transfer_category_id()

        nonzero = [t for t in candidates if t.amount > 0]
        dedup = filter_duplicates(baseline, nonzero)
        new = dedup.new
        summary.skipped_count = (len(candidates) - len(nonzero)) + len(dedup.duplicates)
        logger.info(
            "Import for %s: %d candidates, %d new, %d skipped",
            user_id, len(candidates), len(new), summary.skipped_count,
        )
        if not new:
            return summary

        # ── Transfer detection ──
        # Same-provider history joins the new batch for pairing, so a record
        # whose counterpart arrived in an earlier statement is still found.
        own_pool = [
            t for t in baseline
            if t.source == source and t.matched_transfer_id is None
        ]
        offset = len(own_pool)
        same_batch = detect_same_batch_transfers(own_pool + new, days=self._same_batch_days)

        batch_pairs: list[tuple[int, int]] = []
        existing_pairs: list[tuple[int, Transaction]] = []
        matched_new: set[int] = set()
        for i, j in same_batch.distinct_pairs:
            if i >= offset:
                batch_pairs.append((i - offset, j - offset))
                matched_new.update((i - offset, j - offset))

        taken: set[int] = set()
        for i, j in same_batch.distinct_pairs:
            # i < j, so a pair spanning history and the batch has i in history
            if i >= offset or j < offset:
                continue
            new_idx = j - offset
            if new_idx in matched_new or id(own_pool[i]) in taken:
                continue
            matched_new.add(new_idx)
            taken.add(id(own_pool[i]))
            existing_pairs.append((new_idx, own_pool[i]))
        logger.info(
            "Same-provider transfers: %d in batch, %d against history",
            len(batch_pairs), len(existing_pairs),
        )

        marker = self._marker_for(source)
        if marker:
            remaining = [i for i in range(len(new)) if i not in matched_new]
            # Records already linked to a counterpart stay out of the pool
            pool = [
                t for t in baseline
                if t.matched_transfer_id is None and id(t) not in taken
            ]
            provider = detect_provider_transfers([new[i] for i in remaining], pool, marker=marker)
            for sub_idx, existing_idx in provider.pairs:
                matched_new.add(remaining[sub_idx])
                taken.add(id(pool[existing_idx]))
                existing_pairs.append((remaining[sub_idx], pool[existing_idx]))
            logger.info("Provider transfers (%s): %d matched", marker, len(provider.pairs))

        other_source = OTHER_SOURCE[source]
        remaining = [i for i in range(len(new)) if i not in matched_new]
        pool = [
            t for t in baseline
            if t.source == other_source and t.matched_transfer_id is None and id(t) not in taken
        ]
        cross = detect_cross_provider_transfers(
            [new[i] for i in remaining], pool, source, other_source,
            tolerance_days=self._cross_provider_days,
        )
        for sub_idx, existing_idx in cross.pairs:
            matched_new.add(remaining[sub_idx])
            existing_pairs.append((remaining[sub_idx], pool[existing_idx]))

        # ── Flag and persist ──
        batch_id = new_id()
        summary.batch_id = batch_id
        for txn in new:
            txn.user_id = user_id
            txn.source = source
            txn.import_batch_id = batch_id
            txn.status = "synced"
            if account and not txn.account:
                txn.account = account
        for idx in matched_new:
            new[idx].mark_as_transfer(transfer_category_id)
        for idx, existing in existing_pairs:
            new[idx].matched_transfer_id = existing.id

        await self.store.snapshot_balances(user_id, batch_id)
        persisted = await self.store.persist_transaction_batch(user_id, new)
        summary.imported_count = len(persisted)

        # ── Link ──
        # One update list per pair; a pair counts as linked only if all land
        links: list[list] = []
        if not self._cancelled:
            for idx, existing in existing_pairs:
                links.append([self.store.update_transaction(
                    existing.id, _transfer_fields(transfer_category_id, persisted[idx].id),
                )])

        if batch_pairs and not self._cancelled:
            readback = await self.store.fetch_batch(user_id, batch_id)
            ids: dict[tuple, str] = {}
            for txn in readback:
                ids.setdefault(_readback_key(txn), txn.id)
            if self._cancelled:
                batch_pairs = []
            for i, j in batch_pairs:
                id_i = ids.get(_readback_key(new[i]))
                id_j = ids.get(_readback_key(new[j]))
                if id_i is None or id_j is None:
                    logger.warning(
                        "Could not read back transfer pair '%s' / '%s'",
                        new[i].title, new[j].title,
                    )
                    summary.failed_links += 1
                    continue
                links.append([
                    self.store.update_transaction(id_i, {"matched_transfer_id": id_j}),
                    self.store.update_transaction(id_j, {"matched_transfer_id": id_i}),
                ])

        summary.cancelled = self._cancelled
        if summary.cancelled:
            logger.info("Import %s cancelled, remaining transfer links skipped", batch_id)
        results = await asyncio.gather(
            *(update for pair in links for update in pair), return_exceptions=True,
        )
        pos = 0
        for pair in links:
            errors = [r for r in results[pos:pos + len(pair)] if isinstance(r, Exception)]
            pos += len(pair)
            for error in errors:
                logger.warning("Transfer link update failed: %s", error)
            summary.failed_links += len(errors)
            if not errors:
                summary.linked_pair_count += 1

        if final_balance is not None and account:
            await self.store.update_account_balance(
                user_id, account, final_balance, currency or "EUR",
            )
            logger.info("Updated balance for %s: %d %s", account, final_balance, currency)

        logger.info(
            "Import %s complete: %d imported, %d skipped, %d linked pairs, %d failed links",
            batch_id, summary.imported_count, summary.skipped_count,
            summary.linked_pair_count, summary.failed_links,
        )
        return summary

    async def undo_import(self, user_id: str, batch_id: str) -> int:
        """Delete a batch's records and restore balances from its snapshot.

        Counterparts linked to the deleted records keep their
        matched_transfer_id; readers tolerate a missing target.
        """
        deleted = await self.store.delete_batch(user_id, batch_id)
        await self.store.restore_balances_snapshot(user_id, batch_id)
        logger.info("Undid import %s: %d transactions removed", batch_id, deleted)
        return deleted
