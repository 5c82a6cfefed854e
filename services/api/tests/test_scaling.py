import re
from decimal import Decimal

import pytest

from cookshare.services.scaling import (
    ScalingError,
    compose_quantity,
    format_number,
    round_for_display,
    scale_factor,
    scale_quantity,
)


@pytest.mark.parametrize("quantity,orig,new,expected", [
    ("2cups", 4, 8, "4cups"),
    ("2 cups", 4, 2, "1 cups"),
    ("1.5 cups", 4, 6, "2.3 cups"),   # 2.25 -> one decimal, half up
    ("0.25tsp", 4, 2, "0.13tsp"),     # 0.125 -> two decimals, half up
    ("3 eggs", 2, 9, "14 eggs"),      # 13.5 -> whole number, half up
    ("12oz", 4, 4, "12oz"),
    ("0.5tsp", 2, 1, "0.25tsp"),
    ("3cups", 4, 40, "30cups"),
    ("0.00001cups", 4, 8, "0cups"),
])
def test_scale_quantity_tiers(quantity, orig, new, expected):
    assert scale_quantity(quantity, orig, new) == expected


def test_scale_quantity_rounds_up_into_next_tier():
    # 9.96 rounds to 10.0 in the one-decimal tier and prints as a whole number
    assert scale_quantity("4.98g", 1, 2) == "10g"


@pytest.mark.parametrize("quantity", ["pinch", "to taste", "", "a handful"])
def test_non_numeric_quantities_pass_through(quantity):
    assert scale_quantity(quantity, 4, 8) == quantity


def test_only_leading_number_is_scaled():
    # A fraction keeps everything after its leading integer as suffix
    assert scale_quantity("1/2tsp", 1, 2) == "2/2tsp"


@pytest.mark.parametrize("orig,new", [(4, 0), (0, 4), (4, -2)])
def test_non_positive_servings_raise(orig, new):
    with pytest.raises(ScalingError):
        scale_quantity("2cups", orig, new)


def test_scaling_error_is_value_error():
    with pytest.raises(ValueError):
        scale_factor(4, 0)


def test_scale_factor():
    assert scale_factor(4, 2) == 0.5
    assert scale_factor(3, 9) == 3.0


@pytest.mark.parametrize("value,expected", [
    (0.333, 0.33),
    (2.25, 2.3),
    (9.94, 9.9),
    (10.5, 11.0),
    (123.4, 123.0),
])
def test_round_for_display(value, expected):
    assert round_for_display(value) == pytest.approx(expected)


@pytest.mark.parametrize("value,expected", [
    (2.0, "2"),
    (2.5, "2.5"),
    (0.13, "0.13"),
    (Decimal("3.000"), "3"),
    (Decimal("0.250"), "0.25"),
    (0.00001, "0.00001"),
    (0.000015, "0.000015"),
])
def test_format_number(value, expected):
    assert format_number(value) == expected


def test_compose_quantity_drops_stored_scale():
    assert compose_quantity(Decimal("2.000"), "cups") == "2cups"
    assert compose_quantity(Decimal("0.500"), " tsp") == "0.5 tsp"
    assert compose_quantity(Decimal("4"), "") == "4"
    assert compose_quantity(None, "pinch") == "pinch"


def test_composed_quantity_scales():
    original = compose_quantity(Decimal("1.500"), "cups")
    assert scale_quantity(original, 2, 4) == "3cups"


def _leading_number(quantity):
    return float(re.match(r"[\d.]+", quantity).group())


@pytest.mark.parametrize("quantity,orig,new", [
    ("2cups", 4, 8),
    ("1.5 cups", 4, 6),
    ("0.25tsp", 4, 2),
    ("3 eggs", 2, 9),
    ("12oz", 4, 3),
    ("7g", 3, 5),
    ("0.75 l", 6, 1),
])
def test_scaling_there_and_back_is_close(quantity, orig, new):
    there = scale_quantity(quantity, orig, new)
    back = scale_quantity(there, new, orig)
    assert back.lstrip("0123456789.") == quantity.lstrip("0123456789.")
    # Tiered rounding loses at most a few percent each way
    assert _leading_number(back) == pytest.approx(_leading_number(quantity), rel=0.1)
