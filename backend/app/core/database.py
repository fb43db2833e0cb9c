"""
database.py — Platform Backend Connection Management

Purpose:
- Create and provide access to the Supabase project used as the platform
  backend (data, auth-issued identities, atomic counters).
- Expose FastAPI dependencies that yield the shared ProposalStore and a
  ProposalGenerator wired with the application settings.

Key Characteristics:
- Async Supabase client (service-role key), created once on first use and
  reused across requests.
- No schema management here; tables, the version-counter RPC and unique
  constraints are owned by the platform migrations.

This module does NOT:
- Define queries (see services/platform/db_client.py).
- Contain business logic.
"""

import asyncio
from typing import Optional

from app.core.config import settings
from app.core.errors import ProposalError
from app.services.platform.db_client import SupabaseProposalStore
from app.services.platform.store import ProposalStore
from app.services.proposals.orchestrator import ProposalGenerator

_store: Optional[ProposalStore] = None
_store_lock = asyncio.Lock()


async def get_platform_store() -> ProposalStore:
    """
    FastAPI dependency: returns the process-wide Supabase-backed store.

    Raises:
        ProposalError: internal_error if Supabase is not configured
            (SUPABASE_URL / key empty)
    """
    global _store
    if _store is not None:
        return _store

    if not settings.supabase_configured:
        raise ProposalError(
            "Platform backend is not configured. Please set SUPABASE_URL and "
            "SUPABASE_SERVICE_ROLE_KEY environment variables."
        )

    async with _store_lock:
        if _store is None:
            _store = await SupabaseProposalStore.connect(settings)
    return _store


async def get_generator() -> ProposalGenerator:
    """FastAPI dependency: a generator bound to the shared store and settings."""
    store = await get_platform_store()
    return ProposalGenerator(store=store, settings=settings)
