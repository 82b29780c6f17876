# paygate/x402/pricing.py
"""
Price conversion for x402 payment requirements.

Prices are configured as human-denominated money strings ("$0.01") and must be
expressed two ways:
1. In the payment asset's smallest unit (USDC has 6 decimals, so $0.01 = 10000)
   for the amount published in a PaymentRequirement
2. In minor currency units (cents) for the deposit-address provisioning call

All arithmetic uses Decimal so that no float rounding leaks into amounts.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP
from typing import Union

logger = logging.getLogger(__name__)

# USDC has 6 decimals, so $1.00 = 1,000,000 smallest units
USDC_DECIMALS = 6
# USD minor unit is the cent
USD_MINOR_EXPONENT = 2

_CURRENCY_SUFFIXES = ("USDC", "USD")


def parse_price(price: Union[str, int, float, Decimal]) -> Decimal:
    """
    Parse a money value into a Decimal amount of dollars.

    Accepts "$0.01", "0.01", "0.01 USD", "1,000.00" or a plain number.

    Raises:
        ValueError: If the value is not a finite, non-negative amount
    """
    if isinstance(price, Decimal):
        amount = price
    elif isinstance(price, (int, float)):
        amount = Decimal(str(price))
    else:
        text = str(price).strip()
        for suffix in _CURRENCY_SUFFIXES:
            if text.upper().endswith(suffix):
                text = text[: -len(suffix)].strip()
                break
        if text.startswith("$"):
            text = text[1:]
        text = text.replace(",", "").strip()
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid price: {price!r}")

    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid price: {price!r}")
    return amount


def to_smallest_unit(price: Union[str, Decimal], decimals: int = USDC_DECIMALS) -> int:
    """
    Convert a price into the payment asset's smallest unit.

    Args:
        price: Money string or Decimal dollars
        decimals: Number of decimals of the payment asset

    Returns:
        Integer amount in smallest units (e.g. "$0.01" -> 10000 for USDC)
    """
    amount = parse_price(price) * (Decimal(10) ** decimals)
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def smallest_unit_to_minor(
    amount: int,
    decimals: int = USDC_DECIMALS,
    minor_exponent: int = USD_MINOR_EXPONENT,
) -> int:
    """
    Convert a smallest-unit asset amount into minor currency units.

    Fractions of a minor unit are rounded up so the provisioning service is
    never asked to collect less than the published requirement.

    Args:
        amount: Amount in the asset's smallest unit
        decimals: Number of decimals of the payment asset
        minor_exponent: Decimals of the fiat currency (2 for cents)

    Returns:
        Integer amount in minor currency units (e.g. 10000 -> 1 cent)
    """
    scale = Decimal(10) ** (decimals - minor_exponent)
    minor = (Decimal(amount) / scale).quantize(Decimal(1), rounding=ROUND_CEILING)
    return int(minor)


def format_minor(amount_minor: int, minor_exponent: int = USD_MINOR_EXPONENT) -> str:
    """Format minor units as a dollar string, e.g. 1 -> "$0.01"."""
    value = Decimal(amount_minor) / (Decimal(10) ** minor_exponent)
    return f"${value:.{minor_exponent}f}"
