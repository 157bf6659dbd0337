"""Tests for statement preparation (detect → parse → convert)."""

import pytest

from ledgerlink.database.models import AIB_SOURCE, REVOLUT_SOURCE
from ledgerlink.importer.session import extract_final_balance, prepare_import
from ledgerlink.parsers.aib import AibRecord
from ledgerlink.parsers.base import CsvFormatError, UnknownFormatError, read_statement
from ledgerlink.parsers.detect import AIB, REVOLUT
from tests.conftest import FIXTURE_STATEMENTS_DIR


def _aib(date, balance, currency="EUR") -> AibRecord:
    return AibRecord(date=date, description="x", amount=-1.0, currency=currency,
                     balance=balance, product="AIB")


class TestPrepareImport:
    @pytest.mark.asyncio
    async def test_revolut_statement(self, categorizer):
        text = read_statement(FIXTURE_STATEMENTS_DIR / "revolut.csv")
        session = await prepare_import(text, categorizer)
        assert session.dialect == REVOLUT
        assert session.source == REVOLUT_SOURCE
        assert len(session.transactions) == 5
        assert session.total_rows == session.parsed_rows + session.skipped_rows
        assert session.final_balance is None

    @pytest.mark.asyncio
    async def test_aib_statement(self, categorizer):
        text = read_statement(FIXTURE_STATEMENTS_DIR / "aib.csv")
        session = await prepare_import(text, categorizer, account="AIB Current")
        assert session.dialect == AIB
        assert session.source == AIB_SOURCE
        assert session.parsed_rows == 4
        assert session.final_balance == 492000
        assert session.currency == "EUR"
        assert session.transactions[0].account == "AIB Current"

    @pytest.mark.asyncio
    async def test_unknown_format(self, categorizer):
        with pytest.raises(UnknownFormatError):
            await prepare_import("foo,bar\n1,2\n", categorizer)

    @pytest.mark.asyncio
    async def test_forced_dialect_surfaces_column_error(self, categorizer):
        with pytest.raises(CsvFormatError):
            await prepare_import("foo,bar\n1,2\n", categorizer, dialect=REVOLUT)

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, categorizer):
        revolut = await prepare_import(
            read_statement(FIXTURE_STATEMENTS_DIR / "revolut.csv"), categorizer,
        )
        aib = await prepare_import(
            read_statement(FIXTURE_STATEMENTS_DIR / "aib.csv"), categorizer,
        )
        assert revolut.transactions is not aib.transactions
        assert revolut.dialect != aib.dialect


class TestFinalBalance:
    def test_latest_dated_row_wins(self):
        records = [
            _aib("03/03/2024", "30.00"),
            _aib("01/03/2024", "10.00"),
            _aib("02/03/2024", "20.00"),
        ]
        assert extract_final_balance(records) == (3000, "EUR")

    def test_skips_blank_and_unreadable(self):
        records = [
            _aib("01/03/2024", "1,500.25", currency="GBP"),
            _aib("02/03/2024", "n/a"),
            _aib("03/03/2024", ""),
        ]
        assert extract_final_balance(records) == (150025, "GBP")

    def test_negative_balance(self):
        assert extract_final_balance([_aib("01/03/2024", "-12.34")]) == (-1234, "EUR")

    def test_none(self):
        assert extract_final_balance([_aib("01/03/2024", "")]) == (None, "EUR")
