"""
Purpose:
- Expose the proposal generation endpoint:
    • POST /proposals/generate → validate caller, compute and persist a new
      immutable proposal version (or replay an earlier one for the same
      idempotency key).

Key Interactions:
- app.services.proposals.orchestrator → runs the full generation pipeline.
- app.core.database → provides the generator bound to the platform store.

Role in System:
- The API layer should NOT contain business logic.
- It converts ProposalError subclasses into the
  `{success: false, error, message, [missing]}` payload with their status.

Data Flow:
Client → FastAPI Router → (this file) → ProposalGenerator → Supabase → response
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from app.core.database import get_generator
from app.core.errors import ProposalError
from app.core.logging import get_logger
from app.services.proposals.orchestrator import ProposalGenerator
from app.services.proposals.schemas import (
    ErrorResponse,
    GenerateProposalRequest,
    GenerateProposalResponse,
)

logger = get_logger(__name__)

router = APIRouter(
    prefix="/proposals",
    tags=["proposals"]
)


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

@router.post(
    "/generate",
    response_model=GenerateProposalResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def generate_proposal(
    request: GenerateProposalRequest,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    generator: ProposalGenerator = Depends(get_generator),
):
    """
    POST /proposals/generate

    Returns the new version's headline figures. A repeated idempotency key
    returns the existing version with `idempotent: true`.
    """
    try:
        result = await generator.generate(authorization, request)
    except ProposalError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    except Exception as exc:
        logger.exception("Error generating proposal: %s", exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="internal_error", message="Failed to generate proposal").model_dump(
                exclude_none=True
            ),
        )
    return result.response
