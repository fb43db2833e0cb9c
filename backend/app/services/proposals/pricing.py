"""
pricing.py — Commercial Totals and Technical Basis for the Projection

Purpose:
- Price the proposal from kit items, services and commercial terms.
- Derive first-year monthly generation and savings from installed power,
  irradiation, consumption and the resolved tariff.
- Resolve premises (caller → tenant defaults → settings) and assemble the
  CalcInputs handed to the pure engine.

Pricing:
    base     = kit + services (in price) + commission + other costs
    price    = base * (1 + margin%)
    discount = price * discount%
    total    = round2(price - discount)

Savings (monthly, first year):
    availability = Σ per-UC minimum billable kWh (30 / 50 / 100 by phase)
    compensable  = max(total consumption - availability, 0)
    compensated  = min(generation, compensable)
    fee fraction = current-year Fio B % for group B, 0 for group A
    savings      = max(round2(compensated * (tariff - fee_tariff * fraction)), 0)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.core.config import Settings
from app.services.engine.fee_schedule import FeeSchedule
from app.services.engine.rounding import round2
from app.services.engine.series import CalcInputs
from app.services.proposals.context import GenerationContext
from app.services.proposals.invariants import PrecisionDecision, TariffGroup, kit_cost, total_consumption
from app.services.proposals.schemas import GenerateProposalRequest

# Minimum billable kWh per month by connection phase
AVAILABILITY_KWH = {
    "monofasico": 30.0,
    "bifasico": 50.0,
    "trifasico": 100.0,
}


@dataclass(frozen=True)
class CommercialTotals:
    kit_cost: float
    services_cost: float
    commission: float
    other_costs: float
    base_cost: float
    margin_pct: float
    margin_value: float
    discount_pct: float
    discount_value: float
    total_value: float


@dataclass(frozen=True)
class ResolvedPremises:
    energy_inflation_pct: float
    efficiency_loss_pct: float
    inverter_replacement_year: int
    inverter_replacement_cost_pct: float
    discount_rate_pct: float
    source: str


@dataclass(frozen=True)
class TariffBasis:
    avg_tariff: float
    fee_tariff: float
    provenance: str
    tariff_id: Optional[str]
    valid_from: Optional[str]


@dataclass(frozen=True)
class TechnicalSummary:
    installed_kwp: float
    generation_per_kwp: float
    monthly_generation_kwh: float
    total_consumption_kwh: float
    availability_kwh: float
    compensated_kwh: float
    fee_fraction: float
    monthly_savings: float


def price_proposal(request: GenerateProposalRequest) -> CommercialTotals:
    kit = kit_cost(request)
    services = sum(s.valor for s in request.servicos if s.incluso_no_preco)
    terms = request.venda
    base = kit + services + terms.custo_comissao + terms.custo_outros
    margin_value = base * terms.margem_percentual / 100
    price = base + margin_value
    discount_value = price * terms.desconto_percentual / 100
    return CommercialTotals(
        kit_cost=round2(kit),
        services_cost=round2(services),
        commission=round2(terms.custo_comissao),
        other_costs=round2(terms.custo_outros),
        base_cost=round2(base),
        margin_pct=terms.margem_percentual,
        margin_value=round2(margin_value),
        discount_pct=terms.desconto_percentual,
        discount_value=round2(discount_value),
        total_value=round2(price - discount_value),
    )


def _pick(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


def resolve_premises(
    request: GenerateProposalRequest,
    context: GenerationContext,
    settings: Settings,
) -> ResolvedPremises:
    if request.premissas is not None:
        raw: Dict[str, Any] = request.premissas.model_dump()
        source = "request"
    elif context.tenant_premises:
        raw = dict(context.tenant_premises)
        source = "tenant_defaults"
    else:
        raw = {}
        source = "settings"

    return ResolvedPremises(
        energy_inflation_pct=float(_pick(raw.get("inflacao_energetica"), settings.DEFAULT_ENERGY_INFLATION_PCT)),
        efficiency_loss_pct=float(_pick(raw.get("perda_eficiencia_anual"), settings.DEFAULT_EFFICIENCY_LOSS_PCT)),
        inverter_replacement_year=int(_pick(raw.get("troca_inversor_anos"), settings.DEFAULT_INVERTER_REPLACEMENT_YEAR)),
        inverter_replacement_cost_pct=float(
            _pick(raw.get("troca_inversor_custo_pct"), settings.DEFAULT_INVERTER_REPLACEMENT_COST_PCT)
        ),
        discount_rate_pct=float(_pick(raw.get("vpl_taxa_desconto"), settings.DEFAULT_DISCOUNT_RATE_PCT)),
        source=source,
    )


def resolve_tariff_basis(
    context: GenerationContext,
    precision: PrecisionDecision,
    settings: Settings,
) -> TariffBasis:
    """
    Average tariff from the active record (TE + TUSD, or its total) with the
    settings default otherwise. The Fio B tariff is the real component when
    precision is exact, else the configured share of the TUSD (or of the
    whole tariff when no TUSD is known).
    """
    tariff = context.tariff or {}
    te = tariff.get("te_kwh")
    tusd = tariff.get("tusd_total_kwh")
    total = tariff.get("tarifa_total_kwh")

    if total:
        avg = float(total)
    elif te is not None and tusd is not None:
        avg = float(te) + float(tusd)
    else:
        avg = settings.DEFAULT_TARIFF_KWH

    if precision.fee_tariff_kwh is not None:
        fee_tariff = precision.fee_tariff_kwh
    elif tusd:
        fee_tariff = float(tusd) * settings.FEE_TARIFF_SHARE
    else:
        fee_tariff = avg * settings.FEE_TARIFF_SHARE

    return TariffBasis(
        avg_tariff=avg,
        fee_tariff=fee_tariff,
        provenance=str(tariff.get("origem") or ("premissa" if not context.tariff else "desconhecida")),
        tariff_id=tariff.get("id"),
        valid_from=tariff.get("vigencia_inicio"),
    )


def summarize_technical(
    request: GenerateProposalRequest,
    group: TariffGroup,
    context: GenerationContext,
    basis: TariffBasis,
    settings: Settings,
) -> TechnicalSummary:
    irradiation = context.irradiation or {}
    per_kwp = float(irradiation.get("geracao_media_kwp_mes") or settings.DEFAULT_GENERATION_PER_KWP)
    installed = float(request.potencia_kwp or 0)
    generation = installed * per_kwp

    consumption = total_consumption(request)
    availability = sum(AVAILABILITY_KWH[p.tipo_fase] for p in request.ucs)
    compensable = max(consumption - availability, 0.0)
    compensated = min(generation, compensable)

    fee_fraction = context.fee.current_percent / 100 if group is TariffGroup.B else 0.0
    savings = max(round2(compensated * (basis.avg_tariff - basis.fee_tariff * fee_fraction)), 0.0)

    return TechnicalSummary(
        installed_kwp=installed,
        generation_per_kwp=per_kwp,
        monthly_generation_kwh=round2(generation),
        total_consumption_kwh=round2(consumption),
        availability_kwh=availability,
        compensated_kwh=round2(compensated),
        fee_fraction=fee_fraction,
        monthly_savings=savings,
    )


def build_calc_inputs(
    totals: CommercialTotals,
    technical: TechnicalSummary,
    premises: ResolvedPremises,
    basis: TariffBasis,
    fee_schedule: FeeSchedule,
) -> CalcInputs:
    return CalcInputs(
        total_investment=totals.total_value,
        first_year_monthly_savings=technical.monthly_savings,
        monthly_generation_kwh=technical.monthly_generation_kwh,
        avg_tariff=basis.avg_tariff,
        energy_inflation_pct=premises.energy_inflation_pct,
        efficiency_loss_pct=premises.efficiency_loss_pct,
        inverter_replacement_year=premises.inverter_replacement_year,
        inverter_replacement_cost_pct=premises.inverter_replacement_cost_pct,
        discount_rate_pct=premises.discount_rate_pct,
        fee_schedule=fee_schedule,
    )
