"""AIB CSV parser.

Tolerant to the common AIB export shapes. Requires a date column and at
least one of Amount / Debit / Credit.

Format quirks:
- BOM marker (\\ufeff) before the header
- Dates are DD/MM/YYYY or DD/MM/YY (kept raw here, resolved on convert)
- Separate Debit/Credit columns; a signed Amount column is the fallback
- Header aliases match exactly first, then by substring
  ("Posted Transactions Date" resolves the "date" alias)
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import (
    BaseParser,
    CsvFormatError,
    InvalidAmountError,
    ParseResult,
    field_at,
    find_column,
    parse_amount,
    parse_optional_amount,
)
from .detect import AIB

DEFAULT_CURRENCY = "EUR"
DEFAULT_PRODUCT = "AIB"

_COLUMN_ALIASES: dict[str, list[str]] = {
    "date": [
        "date",
        "transaction date",
        "value date",
        "posting date",
        "posted date",
        "posted transactions date",
    ],
    "description": ["description", "details", "narrative", "info", "reference"],
    "amount": ["amount", "transaction amount"],
    "debit": ["debit", "withdrawal", "debit amount", "debit eur"],
    "credit": ["credit", "lodgement", "credit amount", "credit eur"],
    "currency": ["currency", "ccy"],
    "balance": ["balance", "running balance", "balance eur"],
    "product": ["account", "account name", "account type", "account product"],
}


@dataclass
class AibRecord:
    """One AIB statement row, before canonicalization."""
    date: str              # raw, DD/MM/YYYY or DD/MM/YY
    description: str
    amount: float          # signed, major units
    currency: str
    balance: str
    product: str


class AibCsvParser(BaseParser):
    """Parse AIB current/savings account CSV exports."""

    DIALECT = AIB
    MIN_FIELDS = 2

    def _header_line(self, line: str) -> str:
        return line.lstrip("\ufeff")

    def _resolve_columns(self, header: list[str]) -> dict[str, int]:
        columns = {
            key: find_column(header, aliases, substring=True)
            for key, aliases in _COLUMN_ALIASES.items()
        }
        has_money = any(columns[k] != -1 for k in ("amount", "debit", "credit"))
        if columns["date"] == -1 or not has_money:
            raise CsvFormatError(
                "CSV must contain date and amount (or debit/credit) columns"
            )
        return columns

    def _parse_fields(self, fields: list[str], columns: dict[str, int]) -> AibRecord:
        product = DEFAULT_PRODUCT if columns["product"] == -1 else field_at(fields, columns["product"])
        return AibRecord(
            date=field_at(fields, columns["date"]),
            description=field_at(fields, columns["description"]),
            amount=self._resolve_amount(fields, columns),
            currency=field_at(fields, columns["currency"], DEFAULT_CURRENCY),
            balance=field_at(fields, columns["balance"]),
            product=product,
        )

    @staticmethod
    def _resolve_amount(fields: list[str], columns: dict[str, int]) -> float:
        """Debit (as negative), else credit (as positive), else signed Amount.

        A zero or blank debit/credit falls through to the next source. Rows
        with every money field blank resolve to 0.0.

        Raises:
            InvalidAmountError: a money field is present but unreadable and
                no other source produced a value.
        """
        unreadable = False

        debit_str = field_at(fields, columns["debit"])
        if debit_str:
            debit = parse_optional_amount(debit_str)
            if debit is None:
                unreadable = True
            elif debit != 0:
                return -abs(debit)

        credit_str = field_at(fields, columns["credit"])
        if credit_str:
            credit = parse_optional_amount(credit_str)
            if credit is None:
                unreadable = True
            elif credit != 0:
                return abs(credit)

        amount_str = field_at(fields, columns["amount"])
        if amount_str:
            return parse_amount(amount_str)

        if unreadable:
            raise InvalidAmountError(debit_str or credit_str)
        return 0.0


def parse_aib(text: str) -> ParseResult:
    """Parse an AIB CSV export held in memory."""
    return AibCsvParser().parse(text)
