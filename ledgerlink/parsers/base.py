"""Base parser: shared interface, data structures, and utility functions."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path


class CsvFormatError(ValueError):
    """Raised when a statement cannot be parsed at all (not a row-level skip)."""


class UnknownFormatError(CsvFormatError):
    """Raised when a statement matches neither supported dialect."""


class InvalidAmountError(ValueError):
    """A row's monetary field could not be read as a number."""


@dataclass
class SkippedRow:
    """A data row that was not turned into a record."""
    line: int     # 1-based source line; the header is line 1
    reason: str


@dataclass
class ParseResult:
    """Records plus row accounting for one parse call.

    Invariant: total_rows == parsed_rows + skipped and
    len(skipped_details) == skipped.
    """
    records: list = field(default_factory=list)
    skipped: int = 0
    total_rows: int = 0
    skipped_details: list[SkippedRow] = field(default_factory=list)

    @property
    def parsed_rows(self) -> int:
        return len(self.records)

    def skip(self, line: int, reason: str) -> None:
        self.skipped += 1
        self.skipped_details.append(SkippedRow(line=line, reason=reason))


class BaseParser(ABC):
    """Abstract base for statement parsers.

    Subclasses set MIN_FIELDS and implement _resolve_columns() and
    _parse_fields(). parse() owns line splitting and skip accounting so
    both dialects report rows identically.
    """

    DIALECT: str = ""
    MIN_FIELDS: int = 1

    def parse(self, text: str) -> ParseResult:
        """Parse a whole statement held in memory.

        Raises:
            CsvFormatError: fewer than 2 lines, or a required column is missing.
        """
        lines = split_lines(text)
        if len(lines) < 2:
            raise CsvFormatError("CSV file is empty or invalid")

        header = [h.strip().lower() for h in split_csv_line(self._header_line(lines[0]))]
        columns = self._resolve_columns(header)

        result = ParseResult(total_rows=len(lines) - 1)
        for i, raw_line in enumerate(lines[1:], start=2):
            line = raw_line.strip()
            if not line:
                result.skip(i, "Empty line")
                continue

            fields = split_csv_line(line)
            if len(fields) < self.MIN_FIELDS:
                result.skip(i, "Not enough columns")
                continue

            try:
                record = self._parse_fields(fields, columns)
            except InvalidAmountError:
                result.skip(i, "Invalid amount")
                continue
            except (ValueError, TypeError, IndexError):
                result.skip(i, "Parse error")
                continue
            result.records.append(record)

        return result

    def detect(self, text: str) -> bool:
        """Return True if this parser can handle the given statement."""
        from .detect import detect_format

        return detect_format(text) == self.DIALECT

    def _header_line(self, line: str) -> str:
        return line

    @abstractmethod
    def _resolve_columns(self, header: list[str]) -> dict[str, int]:
        """Map logical field names to column indices (-1 when absent)."""

    @abstractmethod
    def _parse_fields(self, fields: list[str], columns: dict[str, int]):
        """Build one record from a tokenized row."""


def split_lines(text: str) -> list[str]:
    """Split on newlines, dropping a trailing carriage return from each line."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line into fields.

    Honors double-quote enclosure and "" escaping inside quoted fields.
    Unquoted commas are the only delimiter. Never raises: an unbalanced
    quote just swallows the rest of the line into the current field.
    """
    fields: list[str] = []
    current: list[str] = []
    inside_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if inside_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                inside_quotes = not inside_quotes
        elif ch == "," and not inside_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current))
    return fields


def field_at(fields: list[str], idx: int, default: str = "") -> str:
    """Trimmed field value, or default when the column is absent or blank."""
    if idx < 0 or idx >= len(fields):
        return default
    return fields[idx].strip() or default


def find_column(header: list[str], aliases: list[str], substring: bool = False) -> int:
    """Return the index of the first header matching an alias, or -1.

    Aliases are tried in order. For each alias an exact (case-insensitive)
    match is tried first, then, when substring=True, the first header that
    contains it.
    """
    for alias in aliases:
        alias = alias.lower()
        for idx, name in enumerate(header):
            if name == alias:
                return idx
        if substring:
            for idx, name in enumerate(header):
                if alias in name:
                    return idx
    return -1


_DECIMAL_COMMA_RE = re.compile(r"^[-+]?\d+,\d{2}$")


def parse_amount(value: str) -> float:
    """Parse a statement amount in major units.

    Commas are thousands separators and are removed, except in the
    "45,00" shape (one comma, exactly two trailing digits, no dot) where
    the comma is the decimal mark.

    Raises:
        InvalidAmountError: empty, non-numeric, or non-finite input.
    """
    s = value.strip()
    if _DECIMAL_COMMA_RE.match(s):
        s = s.replace(",", ".")
    else:
        s = s.replace(",", "")
    try:
        amount = float(s)
    except ValueError as e:
        raise InvalidAmountError(value) from e
    if not math.isfinite(amount):
        raise InvalidAmountError(value)
    return amount


def parse_optional_amount(value: str) -> float | None:
    """Like parse_amount() but returns None instead of raising."""
    try:
        return parse_amount(value)
    except InvalidAmountError:
        return None


def read_statement(file_path: Path) -> str:
    """Read a statement file as text, dropping a UTF-8 BOM if present."""
    with open(file_path, "r", encoding="utf-8-sig", errors="replace", newline="") as f:
        return f.read()
