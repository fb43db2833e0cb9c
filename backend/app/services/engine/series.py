"""
series.py — 25-Year Financial Projection

Purpose:
- Turn one normalized CalcInputs into a year-by-year projection of a solar
  installation: generation, tariff, Fio B cost, savings, cash flow, present
  value, plus payback / NPV / IRR aggregates.

Contract:
- Pure and deterministic: no I/O, no clock, no settings.
- Every monetary / percentage field is rounded to 2 decimals where it is
  computed; running totals and aggregates accumulate the rounded values so
  the snapshot, its hash and the rendered report always agree.
- CalcInputs refuses non-finite or out-of-range numbers at construction, so
  NaN / Infinity cannot reach a persisted snapshot.

Two payback figures are produced on purpose:
- payback_years: first year whose cumulative cash flow is >= 0 (None when it
  never happens within the horizon).
- payback_months: ceil(investment / first-year monthly savings), a flat
  approximation independent of the series.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import List, Optional

from app.services.engine.fee_schedule import FeeSchedule, resolve_fee_percent
from app.services.engine.irr import solve_irr
from app.services.engine.rounding import round2

PROJECTION_YEARS = 25

# Share of the tariff that corresponds to the TUSD Fio B component.
FIO_B_TARIFF_SHARE = 0.28


@dataclass(frozen=True)
class CalcInputs:
    """
    Normalized numeric basis for a projection. Rates are percents
    (6.5 means 6.5% a year).
    """
    total_investment: float
    first_year_monthly_savings: float
    monthly_generation_kwh: float
    avg_tariff: float
    energy_inflation_pct: float
    efficiency_loss_pct: float
    inverter_replacement_year: int
    inverter_replacement_cost_pct: float
    discount_rate_pct: float
    fee_schedule: FeeSchedule

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (int, float)) and not math.isfinite(value):
                raise ValueError(f"{f.name} must be a finite number, got {value!r}")

        for name in ("total_investment", "first_year_monthly_savings", "monthly_generation_kwh", "avg_tariff"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        for name in ("energy_inflation_pct", "discount_rate_pct"):
            if getattr(self, name) <= -100:
                raise ValueError(f"{name} must be greater than -100")
        if not 0 <= self.efficiency_loss_pct < 100:
            raise ValueError("efficiency_loss_pct must be in [0, 100)")
        if self.inverter_replacement_year < 0:
            raise ValueError("inverter_replacement_year must not be negative")
        if self.inverter_replacement_cost_pct < 0:
            raise ValueError("inverter_replacement_cost_pct must not be negative")
        if not math.isfinite(self.fee_schedule.base_percent) or any(
            not math.isfinite(step.percent) for step in self.fee_schedule.steps
        ):
            raise ValueError("fee schedule percents must be finite")


@dataclass(frozen=True)
class SeriesRow:
    year: int
    generated_kwh: float
    tariff: float
    cumulative_degradation_pct: float
    gross_savings: float
    fee_cost: float
    net_savings: float
    cumulative_net_savings: float
    replacement_cost: float
    cash_flow: float
    cumulative_cash_flow: float
    pv_contribution: float


@dataclass(frozen=True)
class CalcResult:
    series: List[SeriesRow] = field(default_factory=list)
    payback_years: Optional[int] = None
    payback_months: int = 0
    npv: float = 0.0
    irr_percent: float = 0.0
    first_year_savings: float = 0.0
    total_25yr_savings: float = 0.0


def calc_series_25(inputs: CalcInputs) -> CalcResult:
    """
    Build the 25-row projection.

    Per year y (1-based):
        degradation = (1 - loss%)^(y-1)
        inflation   = (1 + inflation%)^(y-1)
        tariff      = round2(avg_tariff * inflation)
        kwh         = round2(monthly_kwh * 12 * degradation)
        gross       = round2(kwh * tariff)
        fee         = round2(kwh * tariff * 0.28 * fee%(y))
        net         = round2(gross - fee)
        replacement = round2(investment * cost%)  only in the replacement year
        cash_flow   = round2(net - replacement)
        pv          = round2(cash_flow / (1 + discount%)^y)
    """
    investment = inputs.total_investment
    loss_rate = inputs.efficiency_loss_pct / 100
    inflation_rate = inputs.energy_inflation_pct / 100
    discount_rate = inputs.discount_rate_pct / 100

    series: List[SeriesRow] = []
    cumulative_net = 0.0
    cumulative_cash = -investment
    npv = -investment
    payback_years: Optional[int] = None

    for year in range(1, PROJECTION_YEARS + 1):
        degradation = (1 - loss_rate) ** (year - 1)
        inflation = (1 + inflation_rate) ** (year - 1)
        tariff = round2(inputs.avg_tariff * inflation)
        generated_kwh = round2(inputs.monthly_generation_kwh * 12 * degradation)
        gross_savings = round2(generated_kwh * tariff)

        fee_fraction = resolve_fee_percent(inputs.fee_schedule, year) / 100
        fee_cost = round2(generated_kwh * tariff * FIO_B_TARIFF_SHARE * fee_fraction)
        net_savings = round2(gross_savings - fee_cost)

        replacement_cost = 0.0
        if inputs.inverter_replacement_year > 0 and year == inputs.inverter_replacement_year:
            replacement_cost = round2(investment * inputs.inverter_replacement_cost_pct / 100)

        cash_flow = round2(net_savings - replacement_cost)
        cumulative_net += net_savings
        cumulative_cash += cash_flow

        pv_contribution = round2(cash_flow / (1 + discount_rate) ** year)
        npv += pv_contribution

        if payback_years is None and round2(cumulative_cash) >= 0:
            payback_years = year

        series.append(
            SeriesRow(
                year=year,
                generated_kwh=generated_kwh,
                tariff=tariff,
                cumulative_degradation_pct=round2((1 - degradation) * 100),
                gross_savings=gross_savings,
                fee_cost=fee_cost,
                net_savings=net_savings,
                cumulative_net_savings=round2(cumulative_net),
                replacement_cost=replacement_cost,
                cash_flow=cash_flow,
                cumulative_cash_flow=round2(cumulative_cash),
                pv_contribution=pv_contribution,
            )
        )

    irr = solve_irr(investment, [row.cash_flow for row in series])

    monthly_savings = inputs.first_year_monthly_savings
    payback_months = math.ceil(investment / monthly_savings) if monthly_savings > 0 else 0

    return CalcResult(
        series=series,
        payback_years=payback_years,
        payback_months=payback_months,
        npv=round2(npv),
        irr_percent=round2(irr),
        first_year_savings=round2(monthly_savings * 12),
        total_25yr_savings=round2(cumulative_net),
    )
