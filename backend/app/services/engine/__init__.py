"""
Proposal financial engine: pure, deterministic calculators (no I/O).
"""

from app.services.engine.expressions import (
    CustomVariableResult,
    evaluate_custom_variables,
    evaluate_expression,
)
from app.services.engine.fee_schedule import FeeSchedule, FeeStep, resolve_fee_percent
from app.services.engine.hashing import calc_hash
from app.services.engine.irr import solve_irr
from app.services.engine.scenarios import ScenarioInput, ScenarioResult, ScenarioType, calc_scenario
from app.services.engine.series import CalcInputs, CalcResult, SeriesRow, calc_series_25

ENGINE_VERSION = "2.1.0"

__all__ = [
    "ENGINE_VERSION",
    "CalcInputs",
    "CalcResult",
    "CustomVariableResult",
    "FeeSchedule",
    "FeeStep",
    "ScenarioInput",
    "ScenarioResult",
    "ScenarioType",
    "SeriesRow",
    "calc_hash",
    "calc_scenario",
    "calc_series_25",
    "evaluate_custom_variables",
    "evaluate_expression",
    "resolve_fee_percent",
    "solve_irr",
]
