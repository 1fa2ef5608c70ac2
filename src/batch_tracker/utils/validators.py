"""
Numeric input validation shared by the batch services.

This module provides:
- Finite-number checks that reject bools, strings and values too large to
  represent as a float
- Quantity parsing to the stored Numeric(10, 3) precision
"""

import math
from decimal import Decimal, InvalidOperation
from numbers import Real
from typing import Any, Optional

from .constants import MAX_QUANTITY, QUANTITY_STEP


def is_finite_number(value: Any) -> bool:
    """
    True for a real, finite number.

    Bools are rejected even though they are ints. Integers beyond the float
    range (``10**400``) are treated as non-finite instead of raising.

    Args:
        value: The value to check

    Returns:
        Whether value can be stored as a finite number
    """
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def parse_quantity(value: Any) -> Optional[Decimal]:
    """
    Convert a quantity to a Decimal rounded to the stored precision.

    Floats are converted through their shortest repr, so 0.1 becomes
    Decimal("0.100") rather than the nearest binary fraction.

    Args:
        value: Number to convert

    Returns:
        Quantized Decimal, or None if value is not a finite number within
        the storable range
    """
    if not is_finite_number(value):
        return None
    try:
        quantity = Decimal(str(value)).quantize(QUANTITY_STEP)
    except InvalidOperation:
        return None
    if abs(quantity) > MAX_QUANTITY:
        return None
    return quantity
