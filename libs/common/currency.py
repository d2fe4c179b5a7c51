"""Money helpers for store amounts.

Amounts are ``Decimal`` in the major unit (rupee, dollar, euro) and stored in
``Numeric(12, 2)`` columns. Every computed amount goes through ``to_money`` so
totals never carry float drift.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

SUPPORTED_CURRENCIES = ("INR", "USD", "EUR")

Number = Union[Decimal, int, float, str]


# ─── helpers ─────────────────────────────────────────────────────────────────


def to_money(value: Number) -> Decimal:
    """Round to two decimal places, half up. Floats go through ``str`` first."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(price: Number, quantity: int) -> Decimal:
    return to_money(to_money(price) * quantity)


def relative_difference(current: Number, reference: Number) -> Decimal:
    """Absolute change of ``current`` relative to ``reference``.

    A zero reference counts as fully changed unless ``current`` is zero too.
    """
    current = Decimal(str(current))
    reference = Decimal(str(reference))
    if reference == 0:
        return Decimal(0) if current == 0 else Decimal(1)
    return abs(current - reference) / reference
