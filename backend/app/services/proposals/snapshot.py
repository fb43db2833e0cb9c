"""
snapshot.py — Immutable Proposal Snapshot (schema v1)

Purpose:
- Define the closed shape persisted on each proposal version: everything
  needed to re-render or audit the proposal without reading any other
  table.
- Every shape change bumps SNAPSHOT_SCHEMA_VERSION and registers a new model
  in _SNAPSHOT_MODELS (plus an upgrade function in _MIGRATIONS) instead of
  adding ad hoc optional fields.

A snapshot is created once per successful generation and never mutated;
the model is frozen.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict

from app.services.engine.expressions import CustomVariableResult
from app.services.engine.scenarios import ScenarioResult
from app.services.engine.series import CalcResult

SNAPSHOT_SCHEMA_VERSION = 1


class UnsupportedSnapshotVersion(ValueError):
    pass


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)


class FeeRuleContext(_Frozen):
    version: str
    base_year: int
    applied_percent: float
    current_year_percent: float
    source: str
    steps: Dict[str, float]
    precision: str
    precision_reason: str
    estimate_accepted_at: Optional[datetime] = None


class TaxContext(_Frozen):
    state: Optional[str]
    icms_rate: float
    scee_exemption: bool
    exemption_percent: float


class TariffContext(_Frozen):
    avg_tariff_kwh: float
    fee_tariff_kwh: float
    provenance: str
    tariff_id: Optional[str] = None
    valid_from: Optional[str] = None
    sync_run_id: Optional[str] = None
    sync_finished_at: Optional[str] = None


class ProposalSnapshotV1(_Frozen):
    schema_version: Literal[1] = 1
    engine_version: str
    calc_hash: str
    generated_at: datetime
    tariff_group: str
    fee_rule: FeeRuleContext
    tax: TaxContext
    tariff: TariffContext
    technical: Dict[str, Any]
    premises: Dict[str, Any]
    consumption_points: List[Dict[str, Any]]
    kit_items: List[Dict[str, Any]]
    services: List[Dict[str, Any]]
    commercial_terms: Dict[str, Any]
    commercial_totals: Dict[str, Any]
    references: Dict[str, Optional[str]]
    calc: CalcResult
    scenarios: List[ScenarioResult]
    custom_variables: List[CustomVariableResult]


ProposalSnapshot = ProposalSnapshotV1

_SNAPSHOT_MODELS: Dict[int, Type[_Frozen]] = {
    1: ProposalSnapshotV1,
}

# from_version -> function producing the next version's raw dict
_MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {}


def load_snapshot(raw: Dict[str, Any]) -> ProposalSnapshot:
    """
    Validate a persisted snapshot, upgrading older schema versions through
    _MIGRATIONS. Unknown versions are rejected rather than guessed.
    """
    version = raw.get("schema_version")
    if version not in _SNAPSHOT_MODELS:
        raise UnsupportedSnapshotVersion(f"unknown snapshot schema_version {version!r}")

    data = dict(raw)
    while version != SNAPSHOT_SCHEMA_VERSION:
        migrate = _MIGRATIONS.get(version)
        if migrate is None:
            raise UnsupportedSnapshotVersion(f"no migration from schema_version {version}")
        data = migrate(data)
        version = data["schema_version"]

    return _SNAPSHOT_MODELS[version].model_validate(data)
