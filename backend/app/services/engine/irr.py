"""Internal rate of return by bisection over the NPV function."""

from typing import Sequence

IRR_LOWER_BOUND = -0.5
IRR_UPPER_BOUND = 5.0
IRR_MAX_ITERATIONS = 100
IRR_TOLERANCE = 0.01


def npv_at(rate: float, investment: float, cash_flows: Sequence[float]) -> float:
    npv = -investment
    for i, flow in enumerate(cash_flows):
        npv += flow / (1 + rate) ** (i + 1)
    return npv


def solve_irr(investment: float, cash_flows: Sequence[float]) -> float:
    """
    Return the IRR as a percent.

    Assumes NPV decreases with the rate (negative investment followed by
    mostly positive flows). If the search does not reach |NPV| < 0.01 within
    the iteration budget, the final midpoint is returned as a best estimate.
    """
    lo, hi = IRR_LOWER_BOUND, IRR_UPPER_BOUND
    for _ in range(IRR_MAX_ITERATIONS):
        mid = (lo + hi) / 2
        npv = npv_at(mid, investment, cash_flows)
        if abs(npv) < IRR_TOLERANCE:
            return mid * 100
        if npv > 0:
            lo = mid
        else:
            hi = mid
    return ((lo + hi) / 2) * 100
