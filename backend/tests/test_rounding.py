"""
Unit tests for rounding.py.
"""

import math

import pytest

from app.services.engine.rounding import round2, round4, round_half_up


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.005, 0.01),
        (1.005, 1.01),
        (2.675, 2.68),
        (-0.005, 0.0),
        (-1.005, -1.0),
        (-1.0051, -1.01),
        (-2.675, -2.67),
        (1234.5678, 1234.57),
    ],
)
def test_round2_ties_go_toward_positive_infinity(value, expected):
    assert round2(value) == expected


def test_round4_ties():
    assert round4(0.00005) == 0.0001
    assert round4(-0.00005) == 0.0


def test_negative_zero_is_normalized():
    assert math.copysign(1.0, round2(-0.004)) == 1.0


def test_arbitrary_places():
    assert round_half_up(12.3456789, 6) == 12.345679


@pytest.mark.parametrize("value", [math.inf, -math.inf, math.nan])
def test_non_finite_values_raise(value):
    with pytest.raises(ValueError):
        round2(value)
