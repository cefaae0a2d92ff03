"""
Fixed-point quantity and money helpers.

- Money is integer cents everywhere below the HTTP boundary.
- Quantities are integer thousandths of the unit of measure ("milli"):
  2.5 kg is stored as 2500. Unit costs are cents per one whole unit.
- Every division rounds half-up to the nearest integer, so repeated
  deductions never accumulate float drift.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MILLI = 1000


def divide_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half-up (non-negative operands)."""
    if denominator <= 0:
        raise ZeroDivisionError("denominator must be positive")
    return (numerator + denominator // 2) // denominator


def line_cost_cents(quantity_milli: int, unit_cost_cents: int) -> int:
    """Cost of quantity_milli thousandths at unit_cost_cents per whole unit."""
    return divide_half_up(quantity_milli * unit_cost_cents, MILLI)


def to_milli(value) -> int:
    """
    Convert a user-facing quantity (int, str, Decimal, float) to milli-units.

    Raises ValueError for anything that is not a finite number.
    Values with more than three decimals are rounded half-up.
    """
    if isinstance(value, bool):
        raise ValueError("quantity must be a number")
    try:
        if isinstance(value, float):
            dec = Decimal(repr(value))
        else:
            dec = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("quantity must be a number")
    if not dec.is_finite():
        raise ValueError("quantity must be a finite number")
    return int((dec * MILLI).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_milli(quantity_milli: int | None) -> str | None:
    """Render milli-units as a decimal string ("2.500")."""
    if quantity_milli is None:
        return None
    return str((Decimal(quantity_milli) / MILLI).quantize(Decimal("0.001")))
