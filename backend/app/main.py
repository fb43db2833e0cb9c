"""
main.py — FastAPI Application Entrypoint

Purpose:
- Initialize application services (logging, config, platform store dependency).
- Register API routers.
- Define root-level health/status endpoints.
- Provide `app` object used by ASGI server (uvicorn / hypercorn).

This file should stay clean — no business logic here.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import ProposalError
from app.core.logging import configure_logging
from app.api.v1 import proposals
from app.services.engine import ENGINE_VERSION

# -----------------------------------------------------------------------------
# App Initialization
# -----------------------------------------------------------------------------

configure_logging(settings.LOG_LEVEL)  # Set logging defaults at startup

app = FastAPI(
    title="Solar Proposal Engine",
    description="Financial engine + versioned proposal generation for the solar CRM",
    version=ENGINE_VERSION,
)

# -----------------------------------------------------------------------------
# CORS (useful for local frontend development)
# -----------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# Router Registration
# -----------------------------------------------------------------------------

app.include_router(proposals.router, prefix="/api/v1")

# -----------------------------------------------------------------------------
# Error Envelope (errors raised outside route handlers, e.g. in dependencies)
# -----------------------------------------------------------------------------

@app.exception_handler(ProposalError)
async def proposal_error_handler(request: Request, exc: ProposalError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

# -----------------------------------------------------------------------------
# Health Check
# -----------------------------------------------------------------------------

@app.get("/")
def root():
    return {"status": "ok", "message": "Proposal engine running", "engine_version": ENGINE_VERSION}
