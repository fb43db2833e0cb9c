"""
invariants.py — Server-Side Business Rules for Proposal Generation

Purpose:
- Re-derive every trust-sensitive field from server data and refuse to
  proceed when a rule is violated. Caller-supplied values for these fields
  (advisory `grupo`, any precision flag) are never used.

Rules:
- Each consumption point resolves to tariff group A or B from its sub-group
  code → otherwise `grupo_indefinido`.
- All consumption points share one group → otherwise `mixed_grupos`.
- Lead, positive power, positive total consumption and positive kit cost
  are present → otherwise `missing_required_variables` listing each.
- Precision comes from the active tariff record: a real Fio B component
  means `exato`, anything else `estimado`. An estimate needs the caller's
  explicit acceptance → otherwise `estimativa_not_accepted`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from app.core.errors import (
    ESTIMATE_NOT_ACCEPTED,
    MISSING_REQUIRED_VARIABLES,
    MIXED_GROUPS,
    UNDEFINED_GROUP,
    BusinessRuleViolation,
)
from app.services.proposals.schemas import ConsumptionPointIn, GenerateProposalRequest

_GROUP_A = re.compile(r"^A(1|2|3A?|4|S)$")
_GROUP_B = re.compile(r"^B[1-4]$")

# Stable symbolic names reported under `missing`
REQUIRED_LEAD = "lead_id"
REQUIRED_POWER = "potencia_kwp"
REQUIRED_CONSUMPTION = "consumo_total_kwh"
REQUIRED_KIT_COST = "custo_kit"


class TariffGroup(str, Enum):
    A = "A"
    B = "B"


class Precision(str, Enum):
    EXACT = "exato"
    ESTIMATED = "estimado"


@dataclass(frozen=True)
class PrecisionDecision:
    precision: Precision
    reason: str
    fee_tariff_kwh: Optional[float]


def resolve_tariff_group(subgroup: Optional[str]) -> Optional[TariffGroup]:
    """Map a sub-group code ("B1", "A4", "AS", ...) to its tariff group."""
    if not subgroup:
        return None
    code = subgroup.strip().upper()
    if _GROUP_A.match(code):
        return TariffGroup.A
    if _GROUP_B.match(code):
        return TariffGroup.B
    return None


def enforce_single_group(points: Sequence[ConsumptionPointIn]) -> TariffGroup:
    groups: List[TariffGroup] = []
    undefined: List[str] = []
    for index, point in enumerate(points):
        group = resolve_tariff_group(point.subgrupo)
        if group is None:
            undefined.append(point.nome or f"uc_{index + 1}")
        else:
            groups.append(group)

    if undefined or not points:
        raise BusinessRuleViolation(
            "Could not resolve a tariff group for: " + (", ".join(undefined) or "no consumption points"),
            code=UNDEFINED_GROUP,
        )

    distinct = sorted({g.value for g in groups})
    if len(distinct) > 1:
        raise BusinessRuleViolation(
            f"Consumption points mix tariff groups {', '.join(distinct)}",
            code=MIXED_GROUPS,
        )
    return groups[0]


def kit_cost(request: GenerateProposalRequest) -> float:
    return sum(item.quantidade * item.preco_unitario for item in request.itens)


def total_consumption(request: GenerateProposalRequest) -> float:
    return sum(point.consumo_mensal_kwh for point in request.ucs)


def find_missing_required(request: GenerateProposalRequest) -> List[str]:
    missing: List[str] = []
    if not (request.lead_id or "").strip():
        missing.append(REQUIRED_LEAD)
    if not request.potencia_kwp or request.potencia_kwp <= 0:
        missing.append(REQUIRED_POWER)
    if total_consumption(request) <= 0:
        missing.append(REQUIRED_CONSUMPTION)
    if kit_cost(request) <= 0:
        missing.append(REQUIRED_KIT_COST)
    return missing


def enforce_required(request: GenerateProposalRequest) -> None:
    missing = find_missing_required(request)
    if missing:
        raise BusinessRuleViolation(
            "Required variables are missing: " + ", ".join(missing),
            code=MISSING_REQUIRED_VARIABLES,
            missing=missing,
        )


def _positive(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def resolve_precision(tariff: Optional[Dict[str, Any]]) -> PrecisionDecision:
    """
    Decide precision from the active tariff record only.
    """
    if not tariff:
        return PrecisionDecision(Precision.ESTIMATED, "no active tariff record", None)

    fio_b = _positive(tariff.get("tusd_fio_b_kwh"))
    if fio_b is not None:
        return PrecisionDecision(Precision.EXACT, "real Fio B component on tariff", fio_b)
    return PrecisionDecision(Precision.ESTIMATED, "Fio B estimated from TUSD total", None)


def enforce_estimate_acceptance(decision: PrecisionDecision, accepted: bool) -> None:
    if decision.precision is Precision.ESTIMATED and not accepted:
        raise BusinessRuleViolation(
            f"Tariff precision is estimated ({decision.reason}); explicit acceptance required",
            code=ESTIMATE_NOT_ACCEPTED,
        )
