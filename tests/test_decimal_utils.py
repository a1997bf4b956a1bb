"""Tests for decimal precision utilities."""
from decimal import Decimal

import pytest

from rcm.utils.decimal_utils import (
    MAX_FINANCIAL_AMOUNT,
    money_to_str,
    parse_decimal,
    parse_financial_amount,
    quantize,
    round_to_precision,
    to_money,
)


@pytest.mark.unit
class TestParseDecimal:
    def test_parse_string(self):
        assert parse_decimal("123.456") == Decimal("123.456")

    def test_parse_float_uses_string_form(self):
        assert parse_decimal(0.1) == Decimal("0.1")

    def test_parse_with_precision(self):
        assert parse_decimal("123.455", precision=Decimal("0.01")) == Decimal("123.46")

    def test_thousands_separator(self):
        assert parse_decimal("1,500.25") == Decimal("1500.25")

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", True, float("nan"), float("inf"), "NaN", [1]])
    def test_rejects(self, value):
        assert parse_decimal(value) is None


@pytest.mark.unit
class TestMoney:
    def test_parse_financial_amount_rounds_half_up(self):
        assert parse_financial_amount("1,500.005") == Decimal("1500.01")
        assert parse_financial_amount("2.5") == Decimal("2.50")

    def test_to_money_defaults_to_zero(self):
        assert to_money("garbage") == Decimal("0.00")
        assert to_money(None) == Decimal("0.00")
        assert to_money(12) == Decimal("12.00")

    def test_money_to_str(self):
        assert money_to_str(Decimal("120")) == "120.00"
        assert money_to_str(None) == "0.00"

    def test_round_to_precision(self):
        assert round_to_precision(Decimal("123.456")) == Decimal("123.46")
        assert round_to_precision(Decimal("123.456"), decimal_places=1) == Decimal("123.5")
        assert round_to_precision(None) is None


@pytest.mark.unit
class TestLargeAmounts:
    def test_quantize_widens_precision(self):
        assert quantize(Decimal("1e30"), Decimal("0.01")) == Decimal("1000000000000000000000000000000.00")

    def test_parse_decimal_with_precision_handles_huge_values(self):
        assert parse_decimal(1e30, precision=Decimal("0.01")) == Decimal("1e30")

    def test_financial_amount_out_of_range(self):
        assert parse_financial_amount("1e30") is None
        assert parse_financial_amount("-10000000000.00") is None
        assert parse_financial_amount(MAX_FINANCIAL_AMOUNT) == MAX_FINANCIAL_AMOUNT

    def test_to_money_keeps_large_totals(self):
        assert to_money("12345678901234.5") == Decimal("12345678901234.50")
