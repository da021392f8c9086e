"""
Fixed-point money helpers.

All monetary values are Decimal quantized to two fractional digits with
ROUND_HALF_UP. Floats are rejected so binary rounding error never reaches
a stored total.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Matches NUMERIC(10,2) on products.price / sale_items.unit_price
MAX_PRICE = Decimal("99999999.99")

# NUMERIC(12,2) on sale_items.line_total / sales.total_amount
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value) -> Decimal:
    """
    Normalize int / str / Decimal to a 2-place Decimal (half-up).

    Raises ValueError for floats, booleans and unparseable input.
    """
    if value is None:
        raise ValueError("amount is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError("amount must be a decimal string or integer, not a float")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    else:
        raise ValueError(f"invalid amount: {value!r}")

    if not dec.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def money_sum(amounts) -> Decimal:
    total = ZERO
    for amount in amounts:
        total += to_money(amount)
    return to_money(total)


def format_money(value) -> str | None:
    """Serialize for JSON responses ("20.00")."""
    if value is None:
        return None
    return str(to_money(value))
