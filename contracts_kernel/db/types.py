"""
Module: contracts_kernel.db.types
Responsibility: Money helpers shared by models, engines and services.

Invariants enforced:
    - No floats for monetary amounts.  Money is Decimal, serialised as a
      canonical string inside JSON columns.
    - round_money() is the only rounding function for money.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given number of decimal places."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an int, str or Decimal into a Decimal.

    Floats are routed through ``str`` so that 0.1 becomes Decimal("0.1")
    rather than its binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def money_to_str(value: Decimal) -> str:
    """Canonical string form used inside JSON columns."""
    return str(value)
