"""Import session: one parsed statement awaiting review.

A session is created by prepare_import() and handed back by the caller
to ImportPipeline.run_import(). Nothing is cached at module level, so two
sessions for different users never share state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ledgerlink.database.models import AIB_SOURCE, REVOLUT_SOURCE, Transaction
from ledgerlink.normalize.canonical import convert_records
from ledgerlink.normalize.dates import parse_day_month_year, parse_instant
from ledgerlink.parsers.aib import DEFAULT_CURRENCY as AIB_DEFAULT_CURRENCY
from ledgerlink.parsers.aib import AibRecord
from ledgerlink.parsers.base import ParseResult, UnknownFormatError, parse_optional_amount
from ledgerlink.parsers.detect import AIB, REVOLUT, UNKNOWN, detect_format, parser_for

if TYPE_CHECKING:
    from ledgerlink.database.store import Categorizer

logger = logging.getLogger(__name__)

SOURCES = {REVOLUT: REVOLUT_SOURCE, AIB: AIB_SOURCE}


@dataclass
class ImportSession:
    """Parsed and converted statement, plus the row accounting to show the user."""
    dialect: str
    source: str
    parse_result: ParseResult
    transactions: list[Transaction] = field(default_factory=list)
    final_balance: int | None = None   # minor units, AIB only
    currency: str | None = None
    account: str | None = None

    @property
    def total_rows(self) -> int:
        return self.parse_result.total_rows

    @property
    def parsed_rows(self) -> int:
        return self.parse_result.parsed_rows

    @property
    def skipped_rows(self) -> int:
        return self.parse_result.skipped

    @property
    def skipped_details(self):
        return self.parse_result.skipped_details


def _aib_sort_key(record: AibRecord):
    dt = parse_day_month_year(record.date) or parse_instant(record.date)
    return dt.timestamp() if dt is not None else float("-inf")


def extract_final_balance(records: list[AibRecord]) -> tuple[int | None, str]:
    """Balance (minor units) and currency of the latest row that has one.

    Rows are ordered by date; the currency defaults to EUR when no row
    carries a readable balance.
    """
    currency = AIB_DEFAULT_CURRENCY
    for record in reversed(sorted(records, key=_aib_sort_key)):
        if not record.balance:
            continue
        balance = parse_optional_amount(record.balance)
        if balance is None:
            continue
        return int(round(balance * 100)), record.currency or currency
    return None, currency


async def prepare_import(
    text: str,
    categorizer: Categorizer,
    dialect: str | None = None,
    account: str | None = None,
) -> ImportSession:
    """Detect, parse and convert a statement.

    Raises:
        UnknownFormatError: the dialect could not be determined.
        CsvFormatError: the statement is structurally unreadable.
    """
    dialect = dialect or detect_format(text)
    if dialect == UNKNOWN:
        raise UnknownFormatError("Unrecognized CSV format")

    parser = parser_for(dialect)
    result = parser.parse(text)
    logger.info(
        "Parsed %s statement: %d of %d rows, %d skipped",
        dialect, result.parsed_rows, result.total_rows, result.skipped,
    )
    for skipped in result.skipped_details:
        logger.debug("Skipped line %d: %s", skipped.line, skipped.reason)

    transactions = await convert_records(result.records, categorizer, account=account)

    session = ImportSession(
        dialect=dialect,
        source=SOURCES[dialect],
        parse_result=result,
        transactions=transactions,
        account=account,
    )
    if dialect == AIB:
        session.final_balance, session.currency = extract_final_balance(result.records)
    return session
