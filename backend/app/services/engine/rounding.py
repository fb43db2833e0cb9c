"""
rounding.py — Decimal rounding for monetary and percentage values.

Every SeriesRow field is rounded at the point it is computed, and every
aggregate is built from those rounded values. Going through Decimal(repr(v))
keeps results stable for values such as 1.005 that sit just below the
midpoint in binary floating point.

Ties round toward positive infinity: 0.005 → 0.01, but -0.005 → 0.00 and
-1.005 → -1.00. Negative cash-flow rows in replacement years depend on this.
Non-finite input raises ValueError.
"""

import math
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal

_QUANTS = {
    2: Decimal("0.01"),
    4: Decimal("0.0001"),
}


def round_half_up(value: float, places: int = 2) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"cannot round non-finite value {value!r}")
    quant = _QUANTS.get(places) or Decimal(1).scaleb(-places)
    exact = Decimal(repr(value))
    if exact < 0:
        rounded = -(-exact).quantize(quant, rounding=ROUND_HALF_DOWN)
    else:
        rounded = exact.quantize(quant, rounding=ROUND_HALF_UP)
    # Collapse -0.0 so hashes of zero rows do not depend on the sign.
    return float(rounded) + 0.0


def round2(value: float) -> float:
    return round_half_up(value, 2)


def round4(value: float) -> float:
    return round_half_up(value, 4)
