"""
store.py — Platform Backend Interface Consumed by Proposal Generation

Purpose:
- Name every read and write the generation orchestrator performs against
  the platform backend, so the orchestrator depends on this interface and
  not on a concrete client.

The backing store must provide:
- row-level tenant isolation (every tenant-scoped call takes tenant_id),
- an atomic per-proposal version counter (`next_version_number`),
- a uniqueness signal on (tenant_id, idempotency_key) for version inserts,
  surfaced as `IdempotencyConflict`,
- a uniqueness signal on (tenant_id, lead_id, projeto_id) for proposal
  inserts, surfaced as `ProposalConflict`.

All rows are plain dicts keyed by column name.
"""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


class ProposalStore(abc.ABC):
    # ------------------------------------------------------------------ #
    # Caller / tenant
    @abc.abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Row]:
        """`{tenant_id, ativo}` for the user, or None."""

    @abc.abstractmethod
    async def get_tenant(self, tenant_id: str) -> Optional[Row]:
        """`{id, status, nome, estado}` or None."""

    @abc.abstractmethod
    async def get_user_roles(self, user_id: str) -> List[str]:
        ...

    # ------------------------------------------------------------------ #
    # Idempotency
    @abc.abstractmethod
    async def find_version_by_idempotency_key(self, tenant_id: str, idempotency_key: str) -> Optional[Row]:
        ...

    # ------------------------------------------------------------------ #
    # Reference data (gathered concurrently)
    @abc.abstractmethod
    async def get_fee_schedule_rows(self, tenant_id: str) -> List[Row]:
        """Tenant and global (`tenant_id` null) rows of `{ano, percentual_nao_compensado, tenant_id}`."""

    @abc.abstractmethod
    async def get_tax_config(self, state: str) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def get_irradiation(self, tenant_id: str, state: str) -> Optional[Row]:
        """Tenant row preferred over the global one."""

    @abc.abstractmethod
    async def get_tenant_premises(self, tenant_id: str) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def get_consultant(self, tenant_id: str, user_id: str) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def get_active_tariff(self, tenant_id: str, utility_id: str) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def get_latest_tariff_sync(self, tenant_id: str) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def get_custom_variables(self, tenant_id: str) -> List[Row]:
        """Active `{nome, expressao}` definitions."""

    # ------------------------------------------------------------------ #
    # Proposal + version writes
    @abc.abstractmethod
    async def get_lead(self, tenant_id: str, lead_id: str) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def find_proposal(self, tenant_id: str, lead_id: str, project_id: Optional[str]) -> Optional[Row]:
        ...

    @abc.abstractmethod
    async def insert_proposal(self, row: Row) -> Row:
        """Insert a proposal row; raise ProposalConflict if the lead already has one."""

    @abc.abstractmethod
    async def next_version_number(self, proposal_id: str) -> int:
        """Single indivisible increment of the proposal's version counter."""

    @abc.abstractmethod
    async def insert_version(self, row: Row) -> Row:
        """Insert a version row; raise IdempotencyConflict on a duplicate key."""

    @abc.abstractmethod
    async def insert_rows(self, table: str, rows: List[Row]) -> None:
        ...

    @abc.abstractmethod
    async def insert_audit_log(self, entry: Row) -> None:
        ...
