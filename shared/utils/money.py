"""
Money and rate helpers.

All amounts are Decimal, rounded half-up to two places the way a printed
bill is.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from shared.utils.exceptions import InternalError

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Quantize to cents, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_rate(raw: str | None, key: str) -> Decimal:
    """
    Parse a tax/discount rate setting such as "0.08".

    Missing or blank values mean 0. Anything else unparseable is malformed
    data, not a client error.
    """
    if raw is None or not str(raw).strip():
        return Decimal("0")
    try:
        rate = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InternalError(f"malformed {key} setting", key=key, value=raw) from exc
    if not rate.is_finite() or rate < 0:
        raise InternalError(f"malformed {key} setting", key=key, value=raw)
    return rate


def parse_amount(raw: Any, default: Decimal = ZERO) -> Decimal:
    """
    Parse a vendor amount (number or numeric string) into cents.

    Vendor payloads are not trusted; unparseable values fall back to default.
    """
    if raw is None or raw == "":
        return default
    try:
        amount = Decimal(str(raw).strip())
        if not amount.is_finite():
            return default
        return to_money(amount)
    except InvalidOperation:
        return default


def price_totals(
    subtotal: Decimal,
    tax_rate: Decimal,
    discount_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """
    (subtotal, tax, discount, total) for a bill.

    Tax and discount are rounded first so the printed lines always add up:
    total == subtotal + tax - discount exactly.
    """
    subtotal = to_money(subtotal)
    tax = to_money(subtotal * tax_rate)
    discount = to_money(subtotal * discount_rate)
    total = subtotal + tax - discount
    return subtotal, tax, discount, total
