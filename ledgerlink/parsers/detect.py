"""Statement dialect detection from header vocabulary and row shape."""

from __future__ import annotations

import re

from .base import BaseParser, UnknownFormatError

REVOLUT = "revolut"
AIB = "aib"
UNKNOWN = "unknown"

_SHORT_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$")


def detect_format(text: str) -> str:
    """Classify a statement as REVOLUT, AIB or UNKNOWN.

    The AIB fingerprint is checked first: Revolut's loose
    amount+fee+currency+state rule would also accept some bank headers.
    """
    if not text or not text.strip():
        return UNKNOWN

    lines = text.strip().split("\n")
    header = next((line for line in lines if line.strip()), None)
    if header is None:
        return UNKNOWN
    h = header.lower()

    if (
        "posted transactions" in h
        or "posted account" in h
        or ("debit" in h and "credit" in h and "balance" in h)
    ):
        return AIB

    if (
        ("type" in h and "product" in h and "state" in h)
        or ("started date" in h and "completed date" in h)
        or ("amount" in h and "fee" in h and "currency" in h and "state" in h)
    ):
        return REVOLUT

    if len(lines) > 1:
        columns = [col.strip() for col in lines[1].split(",")]
        if len(columns) >= 10:
            return REVOLUT
        if 4 <= len(columns) <= 7 and any(_SHORT_DATE_RE.match(col) for col in columns):
            return AIB

    return UNKNOWN


def parser_for(dialect: str) -> BaseParser:
    """Instantiate the parser for a detected dialect.

    Raises:
        UnknownFormatError: dialect is UNKNOWN or unrecognized.
    """
    from .aib import AibCsvParser
    from .revolut import RevolutCsvParser

    if dialect == REVOLUT:
        return RevolutCsvParser()
    if dialect == AIB:
        return AibCsvParser()
    raise UnknownFormatError(
        "Could not detect the statement format (expected a Revolut or AIB CSV export)"
    )
