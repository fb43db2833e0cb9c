"""
scenarios.py — Payment Scenario Evaluation

Purpose:
- Evaluate each offered payment structure (cash, financed, installments)
  against the same technical/financial base.
- Each scenario reruns the 25-year series with the investment replaced by
  the scenario's principal.

Scenario-specific figures:
- effective_annual_rate_pct: ((1 + monthly%)^12 - 1) * 100 when both the
  installment count and the monthly rate are positive, else 0.
- payback_months for financed plans: while installments run, the monthly
  net flow is savings - installment. When that flow is positive, payback is
  the months needed to recover the down payment plus the installment count.
  Every other plan keeps the series' own payback_months.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from app.services.engine.rounding import round2
from app.services.engine.series import CalcInputs, SeriesRow, calc_series_25


class ScenarioType(str, Enum):
    CASH = "a_vista"
    FINANCED = "financiamento"
    INSTALLMENT = "parcelado"
    OTHER = "outro"


@dataclass(frozen=True)
class ScenarioInput:
    name: str
    type: ScenarioType
    principal: float
    down_payment: float = 0.0
    monthly_rate_pct: float = 0.0
    installment_count: int = 0
    installment_amount: float = 0.0
    financier_id: Optional[str] = None


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    type: ScenarioType
    final_price: float
    down_payment: float
    installment_count: int
    installment_amount: float
    monthly_rate_pct: float
    total_paid: float
    effective_annual_rate_pct: float
    payback_months: int
    payback_years: Optional[int]
    irr_percent: float
    npv: float
    total_25yr_savings: float
    first_year_savings: float
    series: List[SeriesRow] = field(default_factory=list)
    financier_id: Optional[str] = None


def effective_annual_rate(monthly_rate_pct: float, installment_count: int) -> float:
    if installment_count > 0 and monthly_rate_pct > 0:
        return round2(((1 + monthly_rate_pct / 100) ** 12 - 1) * 100)
    return 0.0


def financed_payback_months(
    monthly_savings: float,
    down_payment: float,
    installment_count: int,
    installment_amount: float,
) -> Optional[int]:
    """
    Months to payback under financing, or None when the installment eats the
    whole monthly saving (the plan does not change the series payback then).
    """
    monthly_net = monthly_savings - installment_amount
    if monthly_net <= 0:
        return None
    down_payment_months = math.ceil(down_payment / monthly_savings) if down_payment > 0 else 0
    return down_payment_months + installment_count


def calc_scenario(base_inputs: CalcInputs, scenario: ScenarioInput) -> ScenarioResult:
    result = calc_series_25(dataclasses.replace(base_inputs, total_investment=scenario.principal))

    if scenario.type is ScenarioType.CASH:
        total_paid = scenario.principal
    else:
        total_paid = scenario.down_payment + scenario.installment_count * scenario.installment_amount

    payback_months = result.payback_months
    if scenario.type is ScenarioType.FINANCED and scenario.installment_count > 0:
        financed = financed_payback_months(
            base_inputs.first_year_monthly_savings,
            scenario.down_payment,
            scenario.installment_count,
            scenario.installment_amount,
        )
        if financed is not None:
            payback_months = financed

    return ScenarioResult(
        name=scenario.name,
        type=scenario.type,
        final_price=scenario.principal,
        down_payment=scenario.down_payment,
        installment_count=scenario.installment_count,
        installment_amount=scenario.installment_amount,
        monthly_rate_pct=scenario.monthly_rate_pct,
        total_paid=round2(total_paid),
        effective_annual_rate_pct=effective_annual_rate(scenario.monthly_rate_pct, scenario.installment_count),
        payback_months=payback_months,
        payback_years=result.payback_years,
        irr_percent=result.irr_percent,
        npv=result.npv,
        total_25yr_savings=result.total_25yr_savings,
        first_year_savings=result.first_year_savings,
        series=result.series,
        financier_id=scenario.financier_id,
    )
