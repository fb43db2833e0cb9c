"""
Shared fixtures for the proposal engine tests.

FakeProposalStore keeps every platform table in memory. Its version counter
and the proposal and idempotency-key uniqueness checks run without awaiting
in between, so they behave atomically under asyncio the same way the
database RPC and unique constraints do. Other calls yield to the loop once
so concurrent requests interleave.
"""

import asyncio
import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from app.core.config import Settings
from app.core.errors import IdempotencyConflict, ProposalConflict
from app.core.security import create_access_token
from app.services.platform.store import ProposalStore, Row
from app.services.proposals.orchestrator import ProposalGenerator
from app.services.proposals.schemas import GenerateProposalRequest

TENANT_ID = "tenant-1"
USER_ID = "user-1"
LEAD_ID = "lead-1"
UTILITY_ID = "cemig"
FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeProposalStore(ProposalStore):
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.profiles: Dict[str, Row] = {}
        self.tenants: Dict[str, Row] = {}
        self.roles: Dict[str, List[str]] = {}
        self.fee_rows: List[Row] = []
        self.tax: Dict[str, Row] = {}
        self.irradiation: Dict[str, Row] = {}
        self.premises: Dict[str, Row] = {}
        self.consultants: Dict[str, Row] = {}
        self.tariffs: Dict[str, Row] = {}
        self.tariff_sync: Optional[Row] = None
        self.custom_variables: List[Row] = []
        self.leads: Dict[str, Row] = {}
        self.proposals: List[Row] = []
        self.versions: List[Row] = []
        self.counters: Dict[str, int] = defaultdict(int)
        self.granular: Dict[str, List[Row]] = defaultdict(list)
        self.audit_logs: List[Row] = []

        # failure injection
        self.failing_tables: set = set()
        self.fail_audit = False
        self.hide_versions_on_first_lookup = False
        self._version_lookups = 0

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # caller / tenant
    async def get_profile(self, user_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.profiles.get(user_id)

    async def get_tenant(self, tenant_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.tenants.get(tenant_id)

    async def get_user_roles(self, user_id: str) -> List[str]:
        await asyncio.sleep(0)
        return list(self.roles.get(user_id, []))

    # idempotency
    async def find_version_by_idempotency_key(self, tenant_id: str, idempotency_key: str) -> Optional[Row]:
        await asyncio.sleep(0)
        self._version_lookups += 1
        if self.hide_versions_on_first_lookup and self._version_lookups == 1:
            return None
        for row in self.versions:
            if row["tenant_id"] == tenant_id and row["idempotency_key"] == idempotency_key:
                return dict(row)
        return None

    # reference data
    async def get_fee_schedule_rows(self, tenant_id: str) -> List[Row]:
        await asyncio.sleep(0)
        return [r for r in self.fee_rows if r.get("tenant_id") in (None, tenant_id)]

    async def get_tax_config(self, state: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.tax.get(state)

    async def get_irradiation(self, tenant_id: str, state: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.irradiation.get(state)

    async def get_tenant_premises(self, tenant_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.premises.get(tenant_id)

    async def get_consultant(self, tenant_id: str, user_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.consultants.get(user_id)

    async def get_active_tariff(self, tenant_id: str, utility_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.tariffs.get(utility_id)

    async def get_latest_tariff_sync(self, tenant_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        return self.tariff_sync

    async def get_custom_variables(self, tenant_id: str) -> List[Row]:
        await asyncio.sleep(0)
        return list(self.custom_variables)

    # proposals / versions
    async def get_lead(self, tenant_id: str, lead_id: str) -> Optional[Row]:
        await asyncio.sleep(0)
        lead = self.leads.get(lead_id)
        return lead if lead and lead["tenant_id"] == tenant_id else None

    async def find_proposal(self, tenant_id: str, lead_id: str, project_id: Optional[str]) -> Optional[Row]:
        await asyncio.sleep(0)
        for row in self.proposals:
            if row["tenant_id"] == tenant_id and row["lead_id"] == lead_id and (
                project_id is None or row.get("projeto_id") == project_id
            ):
                return row
        return None

    async def insert_proposal(self, row: Row) -> Row:
        for existing in self.proposals:
            if all(existing.get(k) == row.get(k) for k in ("tenant_id", "lead_id", "projeto_id")):
                raise ProposalConflict(row["tenant_id"], row["lead_id"], row.get("projeto_id"))
        created = {**row, "id": self._new_id("proposal")}
        self.proposals.append(created)
        await asyncio.sleep(0)
        return created

    async def next_version_number(self, proposal_id: str) -> int:
        self.counters[proposal_id] += 1
        value = self.counters[proposal_id]
        await asyncio.sleep(0)
        return value

    async def insert_version(self, row: Row) -> Row:
        for existing in self.versions:
            if existing["tenant_id"] == row["tenant_id"] and existing["idempotency_key"] == row["idempotency_key"]:
                raise IdempotencyConflict(row["tenant_id"], row["idempotency_key"])
        created = {**row, "id": self._new_id("version")}
        self.versions.append(created)
        await asyncio.sleep(0)
        return dict(created)

    async def insert_rows(self, table: str, rows: List[Row]) -> None:
        await asyncio.sleep(0)
        if table in self.failing_tables:
            raise RuntimeError(f"insert into {table} failed")
        self.granular[table].extend(rows)

    async def insert_audit_log(self, entry: Row) -> None:
        await asyncio.sleep(0)
        if self.fail_audit:
            raise RuntimeError("audit table unavailable")
        self.audit_logs.append(entry)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        SUPABASE_URL="",
        SUPABASE_SERVICE_ROLE_KEY="",
        SUPABASE_JWT_SECRET="test-secret",
    )


@pytest.fixture
def store() -> FakeProposalStore:
    """A tenant with one active consultant, one lead and an exact tariff for UTILITY_ID."""
    fake = FakeProposalStore()
    fake.profiles[USER_ID] = {"tenant_id": TENANT_ID, "ativo": True}
    fake.tenants[TENANT_ID] = {"id": TENANT_ID, "status": "active", "nome": "Solar MG", "estado": "MG"}
    fake.roles[USER_ID] = ["consultor"]
    fake.consultants[USER_ID] = {"id": "consultant-1", "nome": "Ana"}
    fake.leads[LEAD_ID] = {"id": LEAD_ID, "tenant_id": TENANT_ID, "nome": "Joao Silva", "lead_code": "L-001"}
    fake.tax["MG"] = {"estado": "MG", "aliquota_icms": 0.18, "possui_isencao_scee": True, "percentual_isencao": 100}
    fake.tariffs[UTILITY_ID] = {
        "id": "tariff-1",
        "te_kwh": 0.35,
        "tusd_total_kwh": 0.5,
        "tusd_fio_b_kwh": 0.25,
        "origem": "aneel_sync",
        "vigencia_inicio": "2025-06-01",
    }
    fake.tariff_sync = {"id": "sync-1", "status": "success", "finished_at": "2026-03-01T03:00:00+00:00"}
    return fake


@pytest.fixture
def generator(store, settings) -> ProposalGenerator:
    return ProposalGenerator(store=store, settings=settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def auth_header(settings) -> str:
    return "Bearer " + create_access_token({"sub": USER_ID}, settings)


def request_payload(**overrides: Any) -> Dict[str, Any]:
    """
    5 kWp system for one B1 consumer using 630 kWh/month. Priced at
    (20000 kit + 3000 install) * 1.10 margin = 25300.
    """
    payload: Dict[str, Any] = {
        "lead_id": LEAD_ID,
        "potencia_kwp": 5.0,
        "ucs": [
            {
                "nome": "Casa",
                "subgrupo": "B1",
                "estado": "MG",
                "concessionaria_id": UTILITY_ID,
                "tipo_fase": "monofasico",
                "consumo_mensal_kwh": 630,
            }
        ],
        "itens": [{"descricao": "Kit 5 kWp", "quantidade": 1, "preco_unitario": 20000, "categoria": "kit"}],
        "servicos": [{"descricao": "Instalacao", "valor": 3000}],
        "venda": {"margem_percentual": 10},
        "idempotency_key": "key-1",
    }
    payload.update(overrides)
    return payload


def make_request(**overrides: Any) -> GenerateProposalRequest:
    return GenerateProposalRequest.model_validate(request_payload(**overrides))
