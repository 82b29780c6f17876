# tests/test_x402_pricing.py
"""
Unit tests for x402 price conversion.
"""
from decimal import Decimal

import pytest

from paygate.x402.pricing import (
    USDC_DECIMALS,
    format_minor,
    parse_price,
    smallest_unit_to_minor,
    to_smallest_unit,
)


class TestParsePrice:
    """Test money string parsing."""

    def test_dollar_sign(self):
        """"$0.01" parses to one cent."""
        assert parse_price("$0.01") == Decimal("0.01")

    def test_plain_number_string(self):
        assert parse_price("0.05") == Decimal("0.05")

    def test_currency_suffix(self):
        """Trailing USD/USDC is ignored."""
        assert parse_price("0.01 USD") == Decimal("0.01")
        assert parse_price("0.01 USDC") == Decimal("0.01")
        assert parse_price("2 usdc") == Decimal("2")

    def test_thousands_separator(self):
        assert parse_price("$1,000.00") == Decimal("1000.00")

    def test_numeric_input(self):
        """Floats go through their string form, not binary."""
        assert parse_price(0.1) == Decimal("0.1")
        assert parse_price(3) == Decimal("3")
        assert parse_price(Decimal("0.25")) == Decimal("0.25")

    def test_zero_allowed(self):
        assert parse_price("$0") == Decimal("0")

    @pytest.mark.parametrize("value", ["abc", "", "$", "-0.01", "NaN", "Infinity"])
    def test_invalid(self, value):
        """Garbage, negatives and non-finite values are rejected."""
        with pytest.raises(ValueError):
            parse_price(value)


class TestToSmallestUnit:
    """Test conversion to USDC smallest units."""

    def test_one_cent(self):
        """$0.01 is 10,000 smallest units."""
        assert to_smallest_unit("$0.01") == 10000

    def test_one_dollar(self):
        """$1.00 is 1,000,000 smallest units."""
        assert to_smallest_unit("$1.00") == 1000000

    def test_decimals_default(self):
        assert USDC_DECIMALS == 6

    def test_rounds_half_up(self):
        """Sub-unit fractions round half up."""
        assert to_smallest_unit("0.0000005") == 1
        assert to_smallest_unit("0.0000004") == 0

    def test_other_decimals(self):
        assert to_smallest_unit("$0.01", decimals=18) == 10 ** 16


class TestSmallestUnitToMinor:
    """Test conversion to cents for the provisioning call."""

    def test_one_cent(self):
        assert smallest_unit_to_minor(10000) == 1

    def test_one_dollar(self):
        assert smallest_unit_to_minor(1000000) == 100

    def test_rounds_up(self):
        """Never under-collect: fractions of a cent round up."""
        assert smallest_unit_to_minor(15000) == 2
        assert smallest_unit_to_minor(1) == 1

    def test_zero(self):
        assert smallest_unit_to_minor(0) == 0


class TestFormatMinor:
    """Test dollar formatting of minor units."""

    def test_one_cent(self):
        assert format_minor(1) == "$0.01"

    def test_dollars(self):
        assert format_minor(150) == "$1.50"
