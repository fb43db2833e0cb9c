"""
fee_schedule.py — Regulatory Fee (Fio B) Escalation Resolver

Purpose:
- Model the sparse, tenant-overridable schedule of the non-compensated
  grid-usage fee (Lei 14.300).
- Resolve the percent in force for a relative projection year.

Resolution rule:
- projection year 1 maps to `base_year`.
- The latest step whose year is <= the calendar year wins.
- With no qualifying step, `base_percent` applies.

Steps may arrive unsorted, with duplicate years, or empty; resolution sorts
a copy and never fails on any of those.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class FeeStep:
    year: int
    percent: float  # % of Fio B not compensated (e.g. 60.0)


@dataclass(frozen=True)
class FeeSchedule:
    base_year: int
    base_percent: float
    steps: Tuple[FeeStep, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(
        cls,
        base_year: int,
        percents_by_year: Mapping[int, float],
        base_percent: Optional[float] = None,
    ) -> "FeeSchedule":
        """
        Build a schedule from `{year: percent}`. When `base_percent` is not
        given, the percent of the latest year <= base_year is used (0 if none).
        """
        steps = tuple(FeeStep(year=int(y), percent=float(p)) for y, p in percents_by_year.items())
        if base_percent is None:
            base_percent = _latest_percent(steps, base_year, default=0.0)
        return cls(base_year=base_year, base_percent=float(base_percent), steps=steps)

    @classmethod
    def zero(cls, base_year: int) -> "FeeSchedule":
        """Schedule for connections that carry no Fio B charge (group A)."""
        return cls(base_year=base_year, base_percent=0.0, steps=())

    @property
    def version(self) -> str:
        return f"{self.base_year}-01"


def _latest_percent(steps: Iterable[FeeStep], calendar_year: int, default: float) -> float:
    for step in sorted(steps, key=lambda s: s.year, reverse=True):
        if step.year <= calendar_year:
            return step.percent
    return default


def resolve_fee_percent(schedule: FeeSchedule, projection_year: int) -> float:
    """
    Return the fee percent (not fraction) in force for `projection_year`
    (1-based, relative to `schedule.base_year`).
    """
    calendar_year = schedule.base_year + projection_year - 1
    return _latest_percent(schedule.steps, calendar_year, default=schedule.base_percent)
