"""
errors.py — Proposal Generation Error Types

Purpose:
- Give every terminal outcome of a generation request a status code and a
  stable symbolic code that the API layer can serialize as
  `{success: false, error, message, [missing]}`.
- Keep HTTP concerns out of the orchestrator: services raise these, the
  router converts them.

Tiers:
- AuthenticationError / AuthorizationError → no partial state, no audit write.
- BusinessRuleViolation → audit entry written best-effort before raising.
- Post-commit failures are never raised (see services/proposals/granular.py).
"""

from typing import Any, Dict, List, Optional

# Symbolic business-rule codes (part of the public contract)
MISSING_REQUIRED_VARIABLES = "missing_required_variables"
ESTIMATE_NOT_ACCEPTED = "estimativa_not_accepted"
UNDEFINED_GROUP = "grupo_indefinido"
MIXED_GROUPS = "mixed_grupos"
INVALID_INPUTS = "invalid_inputs"


class ProposalError(Exception):
    """Base class for terminal generation failures."""

    status_code: int = 500
    default_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        missing: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.missing = missing

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.missing is not None:
            payload["missing"] = list(self.missing)
        return payload


class AuthenticationError(ProposalError):
    status_code = 401
    default_code = "unauthorized"


class AuthorizationError(ProposalError):
    status_code = 403
    default_code = "forbidden"


class NotFoundError(ProposalError):
    status_code = 404
    default_code = "not_found"


class InvalidRequestError(ProposalError):
    status_code = 400
    default_code = "invalid_request"


class BusinessRuleViolation(ProposalError):
    status_code = 422
    default_code = "business_rule_violation"


class PersistenceError(ProposalError):
    status_code = 500
    default_code = "persistence_error"


class IdempotencyConflict(Exception):
    """
    Raised by a ProposalStore when a version insert collides on the
    (tenant_id, idempotency_key) uniqueness constraint.
    """

    def __init__(self, tenant_id: str, idempotency_key: str) -> None:
        super().__init__(f"idempotency key already used: {idempotency_key}")
        self.tenant_id = tenant_id
        self.idempotency_key = idempotency_key


class ProposalConflict(Exception):
    """
    Raised by a ProposalStore when a proposal insert collides on the
    (tenant_id, lead_id, projeto_id) uniqueness constraint.
    """

    def __init__(self, tenant_id: str, lead_id: str, project_id: Optional[str] = None) -> None:
        super().__init__(f"proposal already exists for lead {lead_id}")
        self.tenant_id = tenant_id
        self.lead_id = lead_id
        self.project_id = project_id
