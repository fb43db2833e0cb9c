"""
Unit tests for fee_schedule.py (Fio B escalation resolution).
"""

import pytest

from app.services.engine.fee_schedule import FeeSchedule, FeeStep, resolve_fee_percent


@pytest.fixture
def unsorted_schedule() -> FeeSchedule:
    return FeeSchedule(
        base_year=2024,
        base_percent=15.0,
        steps=(FeeStep(2024, 15.0), FeeStep(2026, 60.0), FeeStep(2025, 45.0)),
    )


@pytest.mark.parametrize(
    "projection_year, expected",
    [
        (1, 15.0),   # 2024
        (2, 45.0),   # 2025
        (3, 60.0),   # 2026
        (10, 60.0),  # 2033, latest applicable step
    ],
)
def test_resolves_latest_step_for_unsorted_steps(unsorted_schedule, projection_year, expected):
    assert resolve_fee_percent(unsorted_schedule, projection_year) == expected


def test_base_percent_applies_before_first_step():
    schedule = FeeSchedule(base_year=2022, base_percent=0.0, steps=(FeeStep(2023, 15.0),))
    assert resolve_fee_percent(schedule, 1) == 0.0
    assert resolve_fee_percent(schedule, 2) == 15.0


def test_empty_steps_fall_back_to_base_percent():
    schedule = FeeSchedule(base_year=2026, base_percent=42.0)
    assert resolve_fee_percent(schedule, 1) == 42.0
    assert resolve_fee_percent(schedule, 25) == 42.0


def test_duplicate_years_do_not_fail():
    schedule = FeeSchedule(
        base_year=2025,
        base_percent=0.0,
        steps=(FeeStep(2025, 45.0), FeeStep(2025, 45.0), FeeStep(2027, 75.0)),
    )
    assert resolve_fee_percent(schedule, 1) == 45.0
    assert resolve_fee_percent(schedule, 3) == 75.0


def test_from_mapping_derives_base_percent():
    schedule = FeeSchedule.from_mapping(2026, {2025: 45.0, 2026: 60.0, 2027: 75.0})
    assert schedule.base_percent == 60.0
    assert schedule.version == "2026-01"
    assert resolve_fee_percent(schedule, 2) == 75.0


def test_from_mapping_without_earlier_step_uses_zero():
    schedule = FeeSchedule.from_mapping(2020, {2023: 15.0})
    assert schedule.base_percent == 0.0


def test_zero_schedule():
    schedule = FeeSchedule.zero(2026)
    assert all(resolve_fee_percent(schedule, year) == 0.0 for year in range(1, 26))
