"""
context.py — Reference Data Gathered Before Computation

Purpose:
- Issue every independent platform lookup for one generation request
  concurrently and collect them into a GenerationContext.
- Turn the raw Fio B rows into a FeeSchedule (tenant rows override global
  rows for the same year; statutory defaults when neither exists).

None of the lookups depends on another, so they are awaited jointly with
asyncio.gather; a failure in any of them fails the request.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.core.config import Settings
from app.services.engine.fee_schedule import FeeSchedule
from app.services.platform.store import ProposalStore, Row
from app.services.proposals.schemas import GenerateProposalRequest

FEE_SOURCE_TENANT = "fio_b_escalonamento_tenant"
FEE_SOURCE_GLOBAL = "fio_b_escalonamento"
FEE_SOURCE_STATUTORY = "lei_14300_padrao"


@dataclass(frozen=True)
class FeeContext:
    schedule: FeeSchedule
    source: str
    current_percent: float


@dataclass(frozen=True)
class GenerationContext:
    fee: FeeContext
    tax: Optional[Row]
    irradiation: Optional[Row]
    tenant_premises: Optional[Row]
    consultant: Optional[Row]
    tariff: Optional[Row]
    tariff_sync: Optional[Row]
    custom_variables: List[Row] = field(default_factory=list)


def build_fee_schedule(
    rows: List[Row],
    tenant_id: str,
    base_year: int,
    settings: Settings,
) -> FeeContext:
    """
    Merge global and tenant rows by year (tenant wins), falling back to the
    statutory schedule in settings when no row exists at all.
    """
    by_year: Dict[int, float] = {}
    tenant_years = set()
    for row in rows:
        if row.get("ano") is None or row.get("percentual_nao_compensado") is None:
            continue
        year = int(row["ano"])
        is_tenant = row.get("tenant_id") == tenant_id
        if is_tenant or year not in tenant_years:
            by_year[year] = float(row["percentual_nao_compensado"])
        if is_tenant:
            tenant_years.add(year)

    if by_year:
        source = FEE_SOURCE_TENANT if tenant_years else FEE_SOURCE_GLOBAL
    else:
        by_year = dict(settings.DEFAULT_FEE_STEPS)
        source = FEE_SOURCE_STATUTORY

    schedule = FeeSchedule.from_mapping(base_year, by_year)
    return FeeContext(schedule=schedule, source=source, current_percent=schedule.base_percent)


async def _none() -> None:
    return None


async def _empty() -> List[Any]:
    return []


async def gather_context(
    store: ProposalStore,
    request: GenerateProposalRequest,
    tenant_id: str,
    user_id: str,
    base_year: int,
    settings: Settings,
) -> GenerationContext:
    primary = request.ucs[0] if request.ucs else None
    state = primary.estado if primary and primary.estado else None
    utility_id = primary.concessionaria_id if primary and primary.concessionaria_id else None

    (
        fee_rows,
        tax,
        irradiation,
        tenant_premises,
        consultant,
        tariff,
        tariff_sync,
        custom_variables,
    ) = await asyncio.gather(
        store.get_fee_schedule_rows(tenant_id),
        store.get_tax_config(state) if state else _none(),
        store.get_irradiation(tenant_id, state) if state else _none(),
        store.get_tenant_premises(tenant_id) if request.premissas is None else _none(),
        store.get_consultant(tenant_id, user_id),
        store.get_active_tariff(tenant_id, utility_id) if utility_id else _none(),
        store.get_latest_tariff_sync(tenant_id),
        store.get_custom_variables(tenant_id) if not request.skip_variaveis_custom else _empty(),
    )

    return GenerationContext(
        fee=build_fee_schedule(fee_rows, tenant_id, base_year, settings),
        tax=tax,
        irradiation=irradiation,
        tenant_premises=tenant_premises,
        consultant=consultant,
        tariff=tariff,
        tariff_sync=tariff_sync,
        custom_variables=list(custom_variables or []),
    )
