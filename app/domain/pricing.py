# app/domain/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(quantity: int, price) -> Decimal:
    return to_money(Decimal(str(price)) * quantity)


def cart_total(items: Iterable) -> Decimal:
    """
    Sum of quantity x price over the given line items.

    Works on anything exposing ``quantity`` and ``price`` (cart items, order
    items). Always Decimal, never float.
    """
    total = sum((line_total(i.quantity, i.price) for i in items), Decimal("0.00"))
    return to_money(total)
