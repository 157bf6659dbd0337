"""Revolut CSV parser.

Expected columns: Type, Product, Started Date, Completed Date, Description,
Amount, Fee, Currency, State, Balance.

Format quirks:
- Amount is signed in major units (negative = money out)
- Dates are "YYYY-MM-DD HH:MM:SS" without a zone
- Header names are matched exactly (case-insensitive), no substring fallback
- Missing currency defaults to GBP at parse time
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import (
    BaseParser,
    CsvFormatError,
    ParseResult,
    field_at,
    find_column,
    parse_amount,
    parse_optional_amount,
)
from .detect import REVOLUT

DEFAULT_CURRENCY = "GBP"

_COLUMN_ALIASES: dict[str, list[str]] = {
    "type": ["type"],
    "product": ["product"],
    "started_date": ["started date", "started", "date"],
    "completed_date": ["completed date", "completed"],
    "description": ["description", "desc"],
    "amount": ["amount"],
    "fee": ["fee"],
    "currency": ["currency"],
    "state": ["state", "status"],
    "balance": ["balance"],
}


@dataclass
class RevolutRecord:
    """One Revolut statement row, before canonicalization."""
    type: str
    product: str
    started_date: str
    completed_date: str
    description: str
    amount: float          # signed, major units
    fee: float
    currency: str
    state: str
    balance: str
    payer: str = ""
    payee: str = ""


class RevolutCsvParser(BaseParser):
    """Parse Revolut account statement exports."""

    DIALECT = REVOLUT
    MIN_FIELDS = 3

    def _resolve_columns(self, header: list[str]) -> dict[str, int]:
        columns = {
            key: find_column(header, aliases)
            for key, aliases in _COLUMN_ALIASES.items()
        }
        if columns["amount"] == -1:
            raise CsvFormatError("CSV must contain 'Amount' column")
        return columns

    def _parse_fields(self, fields: list[str], columns: dict[str, int]) -> RevolutRecord:
        amount = parse_amount(field_at(fields, columns["amount"], "0"))
        fee = parse_optional_amount(field_at(fields, columns["fee"], "0")) or 0.0
        return RevolutRecord(
            type=field_at(fields, columns["type"]),
            product=field_at(fields, columns["product"]),
            started_date=field_at(fields, columns["started_date"]),
            completed_date=field_at(fields, columns["completed_date"]),
            description=field_at(fields, columns["description"]),
            amount=amount,
            fee=fee,
            currency=field_at(fields, columns["currency"], DEFAULT_CURRENCY),
            state=field_at(fields, columns["state"]),
            balance=field_at(fields, columns["balance"]),
        )


def parse_revolut(text: str) -> ParseResult:
    """Parse a Revolut CSV export held in memory."""
    return RevolutCsvParser().parse(text)
