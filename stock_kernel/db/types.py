"""
Module: stock_kernel.db.types
Responsibility: Annotated type aliases and numeric helpers for quantity and
    money columns.  Centralizes precision and rounding so every model and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for stock quantities or costs.  All values use Decimal with
      explicit precision (Numeric(38, 9)).
    - round_money() and round_percentage() are the only rounding helpers.

Failure modes:
    - decimal.InvalidOperation from to_decimal() on non-numeric input.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Signed stock quantity; 9 decimal places covers weights in grams of tonnes
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Unit cost / line total
Money = Annotated[Decimal, Numeric(38, 9)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


QUANTITY_DECIMAL_PLACES = 9
MONEY_DECIMAL_PLACES = 2
PERCENTAGE_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """
    Normalize a numeric value read from the database or a caller to Decimal.

    SQL aggregates can come back as int, float or None depending on the
    dialect; None maps to zero.  Floats go through str() so that binary
    representation noise is not carried into Decimal arithmetic.

    Raises:
        decimal.InvalidOperation: If value is not numeric.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a quantity")
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value).strip())


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` using ``rounding``."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_percentage(value: Decimal) -> Decimal:
    return round_money(value, PERCENTAGE_DECIMAL_PLACES)


def normalize_quantity(value: Decimal) -> Decimal:
    """Strip storage-scale trailing zeros (``150.000000000`` -> ``150``)."""
    if value == value.to_integral_value():
        return value.quantize(Decimal("1"))
    return value.normalize()
