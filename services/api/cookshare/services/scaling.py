"""
Serving-size scaling for ingredient quantities.

A quantity is a display string such as "2cups" or "0.5 tsp": an optional
leading decimal number followed by free text. Only a plain decimal prefix is
numeric ("1/2tsp" scales its leading "1"); strings without one ("pinch",
"to taste") pass through untouched.
"""

import math
import re
from decimal import Decimal
from typing import Union

# Leading decimal literal, same shape a browser's parseFloat accepts
NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class ScalingError(ValueError):
    """Raised when a serving count makes the scale ratio meaningless."""


def scale_factor(original_servings: int, new_servings: int) -> float:
    if original_servings <= 0:
        raise ScalingError(f"original servings must be positive, got {original_servings}")
    if new_servings <= 0:
        raise ScalingError(f"new servings must be positive, got {new_servings}")
    return new_servings / original_servings


def format_number(value: Union[float, Decimal]) -> str:
    """Render a number with no trailing-zero noise ("4", "0.25", "2.5")."""
    if isinstance(value, Decimal):
        value = float(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" in text and abs(value) >= 1e-6:
        # Python switches to exponent form sooner than a browser does
        text = format(Decimal(text), "f")
    return text


def _round_half_up(value: float, places: int) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def round_for_display(value: float) -> float:
    """Tiered precision: 2 places below 1, 1 place below 10, whole numbers above."""
    if value < 1:
        return _round_half_up(value, 2)
    if value < 10:
        return _round_half_up(value, 1)
    return float(math.floor(value + 0.5))


def scale_quantity(quantity: str, original_servings: int, new_servings: int) -> str:
    """Rescale the numeric prefix of `quantity` from one serving count to another.

    The unit suffix is whatever remains after removing the first occurrence of
    the parsed number's text, preserved verbatim.

    Raises:
        ScalingError: if either serving count is not positive.
    """
    ratio = scale_factor(original_servings, new_servings)

    match = NUMERIC_PREFIX.match(quantity or "")
    if not match:
        return quantity

    numeric_value = float(match.group(1))
    if not math.isfinite(numeric_value):
        return quantity

    suffix = quantity.replace(format_number(numeric_value), "", 1)
    scaled = round_for_display(numeric_value * ratio)
    return f"{format_number(scaled)}{suffix}"


def compose_quantity(quantity: Union[Decimal, float, None], unit: str | None) -> str:
    """Join a stored quantity and unit into the display string the scaler reads."""
    if quantity is None:
        return unit or ""
    return f"{format_number(quantity)}{unit or ''}"
