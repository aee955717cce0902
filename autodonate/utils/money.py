"""
Fixed-point money helpers.

Balances and amounts are NUMERIC(15,2) in the database and ``Decimal`` in
Python. Floats never enter the settlement path.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from autodonate.errors import ValidationError

CENT = Decimal("0.01")
# NUMERIC(15,2)
MAX_AMOUNT = Decimal("9999999999999.99")


def to_money(value: Any) -> Decimal:
    """
    Parse a request/DB value into a two-digit Decimal.

    Accepts Decimal, int and numeric strings with at most two decimals.
    Floats are rejected because their binary value is not the amount the
    user typed; sub-cent digits are rejected rather than rounded.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("amount is required")
    if isinstance(value, float):
        raise ValidationError("amount must be sent as a string or integer")
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a number")
    if not d.is_finite():
        raise ValidationError("amount must be a number")
    if abs(d) > MAX_AMOUNT:
        raise ValidationError(f"amount must not exceed {MAX_AMOUNT}")
    try:
        cents = d.quantize(CENT)
    except InvalidOperation:
        raise ValidationError("amount must be a number")
    if cents != d:
        raise ValidationError("amount must have at most two decimal places")
    return cents


def to_positive_money(value: Any) -> Decimal:
    amount = to_money(value)
    if amount <= 0:
        raise ValidationError("amount must be > 0")
    return amount


def format_money(amount: Decimal, symbol: str = "Rp") -> str:
    # 25000.00 -> "Rp 25,000"; cents only when present
    if amount == amount.to_integral_value():
        return f"{symbol} {int(amount):,}"
    return f"{symbol} {amount:,.2f}"


def as_json_number(amount: Decimal) -> str:
    """Decimal for JSON payloads, kept as a string so no precision is lost."""
    return str(amount.quantize(CENT))
