"""Tests for conversion of raw statement records to Transactions."""

import logging

import pytest

from ledgerlink.database.models import EXPENSE, INCOME
from ledgerlink.normalize.canonical import (
    canonicalize,
    clean_display_name,
    convert_aib,
    convert_records,
    convert_revolut,
    resolve_aib_date,
    resolve_revolut_account,
    to_minor_units,
)
from ledgerlink.parsers.aib import AibRecord, parse_aib
from ledgerlink.parsers.base import read_statement
from ledgerlink.parsers.revolut import RevolutRecord, parse_revolut
from tests.conftest import FIXTURE_STATEMENTS_DIR


def _revolut(**overrides) -> RevolutRecord:
    defaults = dict(
        type="CARD_PAYMENT", product="Current",
        started_date="2024-03-01 10:15:30", completed_date="2024-03-02 09:00:00",
        description="Tesco", amount=-12.50, fee=0.0, currency="EUR",
        state="COMPLETED", balance="987.50",
    )
    defaults.update(overrides)
    return RevolutRecord(**defaults)


def _aib(**overrides) -> AibRecord:
    defaults = dict(
        date="01/03/2024", description="VDP-TESCO STORES", amount=-45.0,
        currency="EUR", balance="100.00", product="AIB",
    )
    defaults.update(overrides)
    return AibRecord(**defaults)


class TestMinorUnits:
    @pytest.mark.parametrize("amount,cents", [
        (-12.5, 1250), (45.0, 4500), (0.1 + 0.2, 30), (19.99, 1999), (0.005, 1),
    ])
    def test_rounding(self, amount, cents):
        assert to_minor_units(amount) == cents


class TestConvertRevolut:
    @pytest.mark.asyncio
    async def test_expense_sign_and_cents(self, categorizer):
        txn = await convert_revolut(_revolut(), categorizer)
        assert txn.kind == EXPENSE
        assert txn.amount == 1250
        assert txn.date == "2024-03-01T10:15:30.000Z"
        assert txn.title == "Tesco"
        assert txn.display_name == "Tesco"
        assert txn.currency == "EUR"
        assert txn.category_id == "general-expense"
        assert txn.exclude_from_analytics is False
        assert txn.is_analytics_protected is False
        assert categorizer.calls == [("Tesco", "", True)]

    @pytest.mark.asyncio
    async def test_income(self, categorizer):
        txn = await convert_revolut(_revolut(amount=100.0, description="Top-Up"), categorizer)
        assert txn.kind == INCOME
        assert txn.amount == 10000

    @pytest.mark.asyncio
    async def test_completed_date_fallback(self, categorizer):
        txn = await convert_revolut(_revolut(started_date="bad"), categorizer)
        assert txn.date == "2024-03-02T09:00:00.000Z"

    @pytest.mark.asyncio
    async def test_now_fallback(self, categorizer):
        txn = await convert_revolut(_revolut(started_date="", completed_date=""), categorizer)
        assert txn.date.endswith("Z")

    @pytest.mark.asyncio
    async def test_bare_transfer_uses_counterparty(self, categorizer):
        txn = await convert_revolut(
            _revolut(description="Transfer", payee="Alice", amount=-5.0), categorizer,
        )
        assert txn.title == "Alice"
        assert txn.subtitle == "Transfer"

    @pytest.mark.asyncio
    async def test_blank_description_defaults_title(self, categorizer):
        txn = await convert_revolut(_revolut(description="", amount=3.0), categorizer)
        assert txn.title == "Income"
        assert txn.subtitle == "Income"

    @pytest.mark.asyncio
    async def test_blank_currency_defaults_to_eur(self, categorizer):
        txn = await convert_revolut(_revolut(currency=""), categorizer)
        assert txn.currency == "EUR"

    @pytest.mark.asyncio
    async def test_account_label(self, categorizer):
        txn = await convert_revolut(_revolut(), categorizer)
        assert txn.account == "Revolut Current (EUR)"


class TestRevolutAccount:
    def test_pocket_name_from_description(self):
        label = resolve_revolut_account("To pocket EUR Holiday from EUR", "Pocket", "EUR")
        assert label == "Revolut Pocket: Holiday"

    def test_pocket_hint(self):
        assert resolve_revolut_account("Top up", "Pocket", "EUR", pocket_hint="Car") == "Revolut Pocket: Car"

    def test_pocket_without_name(self):
        assert resolve_revolut_account("Top up", "Pocket", "EUR") == "Revolut Pocket"

    def test_savings(self):
        assert resolve_revolut_account("Interest", "Savings", "EUR") == "Revolut Savings"
        assert resolve_revolut_account("Interest", "Savings", "EUR", vault_hint="Rainy") == "Revolut Vault: Rainy"

    def test_current_uses_currency(self):
        assert resolve_revolut_account("Shop", "Current", "GBP") == "Revolut Current (GBP)"


class TestConvertAib:
    @pytest.mark.asyncio
    async def test_debit_row(self, categorizer):
        txn = await convert_aib(_aib(), categorizer)
        assert txn.kind == EXPENSE
        assert txn.amount == 4500
        assert txn.date == "2024-03-01T00:00:00.000Z"
        assert txn.title == "VDP-TESCO STORES"
        assert txn.display_name == "TESCO STORES"
        assert txn.subtitle == "AIB"
        assert categorizer.calls == [("VDP-TESCO STORES", "AIB", True)]

    @pytest.mark.asyncio
    async def test_blank_product_uses_provider(self, categorizer):
        txn = await convert_aib(_aib(product=""), categorizer)
        assert txn.subtitle == "AIB"

    @pytest.mark.asyncio
    async def test_blank_description(self, categorizer):
        txn = await convert_aib(_aib(description="", amount=5.0), categorizer)
        assert txn.title == "Income"

    @pytest.mark.asyncio
    async def test_parsed_debit_to_cents(self, categorizer):
        result = parse_aib('Date,Description,Debit,Credit\n01/03/2024,Shop,"45,00",')
        txn = await canonicalize(result.records[0], categorizer)
        assert (txn.kind, txn.amount) == (EXPENSE, 4500)

    @pytest.mark.asyncio
    async def test_explicit_account(self, categorizer):
        txn = await convert_aib(_aib(), categorizer, account="AIB Current")
        assert txn.account == "AIB Current"


class TestAibDate:
    def test_short_year(self):
        assert resolve_aib_date("05/01/24") == "2024-01-05T00:00:00.000Z"

    def test_generic_fallback(self):
        assert resolve_aib_date("2024-01-05 12:00:00") == "2024-01-05T12:00:00.000Z"

    def test_now_fallback_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            value = resolve_aib_date("someday")
        assert value.endswith("Z")
        assert "someday" in caplog.text


class TestCleanDisplayName:
    @pytest.mark.parametrize("title,expected", [
        ("VDP-TESCO STORES", "TESCO STORES"),
        ("vdc-Coffee Shop", "Coffee Shop"),
        ("D/D ELECTRIC IRELAND", "ELECTRIC IRELAND"),
        ("VDP-TST-SHOP", "SHOP"),
        ("TST-VDC-D/D GYM", "GYM"),
        ("AMAZON **1234 MARKETPLACE", "AMAZON MARKETPLACE"),
        ("SHOP***", "SHOP"),
        ("VDP-TESCO STORES **1234*", "TESCO STORES"),
        ("PLAIN NAME", "PLAIN NAME"),
        ("VDP-", "VDP-"),
        ("***", "***"),
    ])
    def test_cleanup(self, title, expected):
        assert clean_display_name(title) == expected


class TestCanonicalize:
    @pytest.mark.asyncio
    async def test_rejects_unknown_record(self, categorizer):
        with pytest.raises(TypeError):
            await canonicalize(object(), categorizer)

    @pytest.mark.asyncio
    async def test_revolut_fixture(self, categorizer):
        records = parse_revolut(read_statement(FIXTURE_STATEMENTS_DIR / "revolut.csv")).records
        txns = await convert_records(records, categorizer)
        assert [t.amount for t in txns] == [1250, 10000, 5000, 5000, 4200]
        assert [t.kind for t in txns] == [EXPENSE, INCOME, EXPENSE, INCOME, EXPENSE]
        assert txns[3].account == "Revolut Pocket: Holiday"
        assert txns[4].date == "2024-03-04T18:30:00.000Z"

    @pytest.mark.asyncio
    async def test_pocket_name_carried_forward(self, categorizer):
        records = [
            _revolut(product="Pocket", description="To pocket EUR Car from EUR", amount=10.0),
            _revolut(product="Pocket", description="Pocket withdrawal", amount=-4.0),
        ]
        txns = await convert_records(records, categorizer)
        assert [t.account for t in txns] == ["Revolut Pocket: Car", "Revolut Pocket: Car"]

    @pytest.mark.asyncio
    async def test_aib_fixture(self, categorizer):
        records = parse_aib(read_statement(FIXTURE_STATEMENTS_DIR / "aib.csv")).records
        txns = await convert_records(records, categorizer, account="AIB Current")
        assert txns[0].display_name == "TESCO STORES"
        assert txns[0].amount == 123450
        assert txns[2].display_name == "ELECTRIC IRELAND"
        assert all(t.account == "AIB Current" for t in txns)
