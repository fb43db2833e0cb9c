"""
audit.py — Best-Effort Audit Trail for Proposal Generation

Rejections and successful generations both leave an entry. A failure to
write the entry is logged and swallowed so it never changes the response
the caller receives.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from app.core.logging import get_logger
from app.services.engine.hashing import to_jsonable
from app.services.platform.store import ProposalStore

logger = get_logger(__name__)

ACTION_REJECTED = "proposal_generation_rejected"
ACTION_GENERATED = "proposal_generated"


async def write_audit_entry(
    store: ProposalStore,
    *,
    tenant_id: str,
    user_id: str,
    action: str,
    at: datetime,
    record_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> bool:
    entry = {
        "tenant_id": tenant_id,
        "user_id": user_id,
        "acao": action,
        "tabela": "proposta_versoes",
        "registro_id": record_id,
        "dados_novos": to_jsonable(details or {}),
        "created_at": at.isoformat(),
    }
    try:
        await store.insert_audit_log(entry)
    except Exception as exc:
        logger.warning("Audit entry %s could not be written: %s", action, exc)
        return False
    return True
