"""Rule-based categorizer: maps transaction titles to category ids.

Rules come from merchants.yaml, checked in file order. Match types:
  - contains: case-insensitive substring (default)
  - exact: case-insensitive full string match

A rule may be restricted to one kind ("expense" / "income"); "any" or a
missing kind matches both. Unmatched titles get the per-kind fallback
from rules.yaml.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ledgerlink.config import Config

logger = logging.getLogger(__name__)


@dataclass
class MerchantMatch:
    """Result of a merchant match."""
    category_id: str
    pattern: str
    matched_on: str  # "title" or "subtitle"


def match_merchant(
    title: str,
    subtitle: str,
    is_expense: bool,
    rules: list[dict],
) -> MerchantMatch | None:
    """Match title first, then subtitle, against the rule list."""
    for text, matched_on in ((title, "title"), (subtitle, "subtitle")):
        if not text:
            continue
        match = _match_against_rules(text, is_expense, rules)
        if match is not None:
            match.matched_on = matched_on
            return match
    return None


def _match_against_rules(
    description: str,
    is_expense: bool,
    rules: list[dict],
) -> MerchantMatch | None:
    desc_upper = description.upper()
    wanted_kind = "expense" if is_expense else "income"

    for rule in rules:
        kind = rule.get("kind", "any") or "any"
        if kind not in ("any", wanted_kind):
            continue

        pattern = rule.get("pattern", "")
        # Skip empty patterns - they would match everything
        if not pattern:
            continue

        match_type = rule.get("match", "contains")
        pattern_upper = pattern.upper()
        if match_type == "exact":
            matched = desc_upper == pattern_upper
        else:
            matched = pattern_upper in desc_upper

        if matched:
            category_id = rule.get("category_id")
            if not category_id:
                logger.warning(
                    "Merchant rule missing category_id for pattern '%s'", pattern
                )
                continue
            return MerchantMatch(category_id=category_id, pattern=pattern, matched_on="title")
    return None


class RuleCategorizer:
    """Categorizer collaborator backed by the YAML config."""

    def __init__(self, config: Config):
        self.config = config

    async def resolve_category(self, title: str, subtitle: str, is_expense: bool) -> str:
        match = match_merchant(title, subtitle, is_expense, self.config.merchant_rules)
        if match is not None:
            logger.debug(
                "Categorized '%s' as %s via pattern '%s' (%s)",
                title, match.category_id, match.pattern, match.matched_on,
            )
            return match.category_id
        return self.config.fallback_category(is_expense)

    async def resolve_transfer_category_id(self) -> str:
        """Return the reserved transfer category id.

        Raises:
            LookupError: rules.yaml does not define transfer_category.
        """
        category_id = self.config.transfer_category
        if not category_id:
            raise LookupError("rules.yaml does not define transfer_category")
        return category_id
