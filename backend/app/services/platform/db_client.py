"""
Supabase-backed ProposalStore for the generation pipeline.
"""

from __future__ import annotations

from typing import Any, List, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from app.core.config import Settings
from app.core.errors import IdempotencyConflict, PersistenceError, ProposalConflict
from app.core.logging import get_logger
from app.services.platform.store import ProposalStore, Row


logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"

VERSION_COLUMNS = (
    "id, proposta_id, versao_numero, valor_total, payback_meses, payback_anos, "
    "economia_mensal, vpl, tir, engine_version, calc_hash, snapshot"
)


async def create_supabase_client(settings: Settings) -> AsyncClient:
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


def _prefer_tenant(rows: List[Row], tenant_id: str) -> Optional[Row]:
    for row in rows:
        if row.get("tenant_id") == tenant_id:
            return row
    return rows[0] if rows else None


class SupabaseProposalStore(ProposalStore):
    """
    Thin wrapper providing typed helpers around the platform tables.
    Uses the service-role client; tenant scoping is applied on every query.

    Relies on two platform constraints: unique (tenant_id, idempotency_key)
    on proposta_versoes, and unique nulls not distinct
    (tenant_id, lead_id, projeto_id) on propostas_nativas.
    """

    def __init__(self, client: AsyncClient):
        self._client = client

    @classmethod
    async def connect(cls, settings: Settings) -> "SupabaseProposalStore":
        return cls(await create_supabase_client(settings))

    async def _first(self, query: Any) -> Optional[Row]:
        response = await query.limit(1).execute()
        data = response.data or []
        return data[0] if data else None

    async def _all(self, query: Any) -> List[Row]:
        response = await query.execute()
        return list(response.data or [])

    # ------------------------------------------------------------------ #
    # Caller / tenant
    async def get_profile(self, user_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("profiles").select("tenant_id, ativo").eq("user_id", user_id)
        )

    async def get_tenant(self, tenant_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("tenants").select("id, status, nome, estado").eq("id", tenant_id)
        )

    async def get_user_roles(self, user_id: str) -> List[str]:
        rows = await self._all(self._client.table("user_roles").select("role").eq("user_id", user_id))
        return [r["role"] for r in rows if r.get("role")]

    # ------------------------------------------------------------------ #
    # Idempotency
    async def find_version_by_idempotency_key(self, tenant_id: str, idempotency_key: str) -> Optional[Row]:
        return await self._first(
            self._client.table("proposta_versoes")
            .select(VERSION_COLUMNS)
            .eq("tenant_id", tenant_id)
            .eq("idempotency_key", idempotency_key)
        )

    # ------------------------------------------------------------------ #
    # Reference data
    async def get_fee_schedule_rows(self, tenant_id: str) -> List[Row]:
        return await self._all(
            self._client.table("fio_b_escalonamento")
            .select("ano, percentual_nao_compensado, tenant_id")
            .or_(f"tenant_id.eq.{tenant_id},tenant_id.is.null")
            .order("ano")
        )

    async def get_tax_config(self, state: str) -> Optional[Row]:
        return await self._first(
            self._client.table("config_tributaria_estado")
            .select("estado, aliquota_icms, possui_isencao_scee, percentual_isencao")
            .eq("estado", state)
        )

    async def get_irradiation(self, tenant_id: str, state: str) -> Optional[Row]:
        rows = await self._all(
            self._client.table("irradiacao_por_estado")
            .select("estado, geracao_media_kwp_mes, tenant_id")
            .eq("estado", state)
            .or_(f"tenant_id.eq.{tenant_id},tenant_id.is.null")
        )
        return _prefer_tenant(rows, tenant_id)

    async def get_tenant_premises(self, tenant_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("premissas_tecnicas").select("*").eq("tenant_id", tenant_id)
        )

    async def get_consultant(self, tenant_id: str, user_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("consultores")
            .select("id, nome")
            .eq("user_id", user_id)
            .eq("tenant_id", tenant_id)
            .eq("ativo", True)
        )

    async def get_active_tariff(self, tenant_id: str, utility_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("tarifa_versoes")
            .select("*")
            .eq("tenant_id", tenant_id)
            .eq("concessionaria_id", utility_id)
            .eq("ativa", True)
            .order("vigencia_inicio", desc=True)
        )

    async def get_latest_tariff_sync(self, tenant_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("aneel_sync_runs")
            .select("id, status, started_at, finished_at")
            .eq("tenant_id", tenant_id)
            .order("started_at", desc=True)
        )

    async def get_custom_variables(self, tenant_id: str) -> List[Row]:
        return await self._all(
            self._client.table("proposta_variaveis_custom")
            .select("nome, expressao")
            .eq("tenant_id", tenant_id)
            .eq("ativo", True)
            .order("ordem")
        )

    # ------------------------------------------------------------------ #
    # Proposal + version writes
    async def get_lead(self, tenant_id: str, lead_id: str) -> Optional[Row]:
        return await self._first(
            self._client.table("leads").select("id, nome, lead_code").eq("id", lead_id).eq("tenant_id", tenant_id)
        )

    async def find_proposal(self, tenant_id: str, lead_id: str, project_id: Optional[str]) -> Optional[Row]:
        query = (
            self._client.table("propostas_nativas")
            .select("id")
            .eq("tenant_id", tenant_id)
            .eq("lead_id", lead_id)
        )
        if project_id:
            query = query.eq("projeto_id", project_id)
        return await self._first(query.order("created_at", desc=True))

    async def insert_proposal(self, row: Row) -> Row:
        try:
            response = await self._client.table("propostas_nativas").insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ProposalConflict(row["tenant_id"], row["lead_id"], row.get("projeto_id")) from e
            raise PersistenceError(f"Failed to create proposal: {e.message}") from e
        return response.data[0]

    async def next_version_number(self, proposal_id: str) -> int:
        try:
            response = await self._client.rpc(
                "next_proposta_versao_numero", {"_proposta_id": proposal_id}
            ).execute()
        except APIError as e:
            raise PersistenceError(f"Failed to allocate version number: {e.message}") from e
        if not response.data:
            raise PersistenceError("Version counter returned no value")
        return int(response.data)

    async def insert_version(self, row: Row) -> Row:
        try:
            response = await self._client.table("proposta_versoes").insert(row).execute()
        except APIError as e:
            text = f"{e.message or ''} {e.details or ''}"
            if e.code == UNIQUE_VIOLATION and "idempotency" in text:
                raise IdempotencyConflict(row["tenant_id"], row["idempotency_key"]) from e
            raise PersistenceError(f"Failed to create version: {e.message}") from e
        return response.data[0]

    async def insert_rows(self, table: str, rows: List[Row]) -> None:
        if not rows:
            return
        await self._client.table(table).insert(rows).execute()

    async def insert_audit_log(self, entry: Row) -> None:
        await self._client.table("audit_logs").insert(entry).execute()
