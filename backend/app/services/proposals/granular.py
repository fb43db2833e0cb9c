"""
granular.py — Denormalized Reporting Rows for a Committed Version

Purpose:
- Fan the snapshot out into per-entity reporting tables (consumption
  points, premises, kit items, services, scenarios, per-scenario yearly
  series, custom-variable results).

This step runs after the version row is durably committed. It is
best-effort: writes are dispatched concurrently, each failure is logged as a
warning and recorded in PersistOutcome, and nothing is rolled back. The
snapshot stays the authoritative record.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from app.core.logging import get_logger
from app.services.engine.hashing import to_jsonable
from app.services.platform.store import ProposalStore, Row
from app.services.proposals.snapshot import ProposalSnapshot

logger = get_logger(__name__)

TABLE_UCS = "proposta_versao_ucs"
TABLE_PREMISES = "proposta_versao_premissas"
TABLE_KIT_ITEMS = "proposta_versao_kit_itens"
TABLE_SERVICES = "proposta_versao_servicos"
TABLE_SCENARIOS = "proposta_versao_cenarios"
TABLE_SERIES = "proposta_versao_series"
TABLE_CUSTOM_VARIABLES = "proposta_versao_variaveis"


@dataclass(frozen=True)
class GranularFailure:
    table: str
    row_count: int
    error: str


@dataclass
class PersistOutcome:
    committed: str  # version id
    denormalized_failures: List[GranularFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.denormalized_failures


def build_granular_rows(
    snapshot: ProposalSnapshot,
    version_id: str,
    tenant_id: str,
) -> List[Tuple[str, List[Row]]]:
    base = {"versao_id": version_id, "tenant_id": tenant_id}

    def _rows(items: List[Dict[str, Any]]) -> List[Row]:
        return [{**base, "ordem": i, **item} for i, item in enumerate(items)]

    scenarios: List[Row] = []
    series: List[Row] = []
    for i, scenario in enumerate(snapshot.scenarios):
        data = to_jsonable(scenario)
        scenario_series = data.pop("series")
        scenarios.append({**base, "ordem": i, **data})
        series.extend({**base, "cenario_ordem": i, **row} for row in scenario_series)

    return [
        (TABLE_UCS, _rows(snapshot.consumption_points)),
        (TABLE_PREMISES, [{**base, **snapshot.premises}]),
        (TABLE_KIT_ITEMS, _rows(snapshot.kit_items)),
        (TABLE_SERVICES, _rows(snapshot.services)),
        (TABLE_SCENARIOS, scenarios),
        (TABLE_SERIES, series),
        (TABLE_CUSTOM_VARIABLES, _rows([to_jsonable(v) for v in snapshot.custom_variables])),
    ]


async def persist_granular(
    store: ProposalStore,
    snapshot: ProposalSnapshot,
    version_id: str,
    tenant_id: str,
) -> PersistOutcome:
    batches = [(table, rows) for table, rows in build_granular_rows(snapshot, version_id, tenant_id) if rows]
    results = await asyncio.gather(
        *(store.insert_rows(table, rows) for table, rows in batches),
        return_exceptions=True,
    )

    outcome = PersistOutcome(committed=version_id)
    for (table, rows), result in zip(batches, results):
        if isinstance(result, Exception):
            logger.warning("Granular write to %s failed for version %s: %s", table, version_id, result)
            outcome.denormalized_failures.append(
                GranularFailure(table=table, row_count=len(rows), error=str(result))
            )
    return outcome
