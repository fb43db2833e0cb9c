"""
security.py — Caller Authentication Utilities (Bearer JWT)

Purpose:
- Extract the bearer token from an `Authorization` header.
- Validate platform-issued access tokens (HS256, signed with the project's
  JWT secret) and return the caller identity.

Key Constraints:
- Authentication is stateless — the token is the only credential.
- Tenant, role and activity checks happen later in the orchestrator against
  the platform store; this module only answers "who is calling".

This module does NOT:
- Define API routes (see app/api/v1/proposals.py).
- Query the platform backend.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from app.core.config import Settings
from app.core.errors import AuthenticationError


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    claims: Dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Token Handling
# -----------------------------------------------------------------------------

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Return the raw token from an `Authorization: Bearer <token>` header, or
    None when the header is absent or uses another scheme.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_access_token(token: str, settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.
    Returns the payload dict if valid, None if invalid.
    """
    if not settings.SUPABASE_JWT_SECRET:
        return None
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        return None


def create_access_token(claims: Dict[str, Any], settings: Settings) -> str:
    """
    Sign a token with the configured secret. Used by tests and local tooling;
    production tokens are issued by the platform auth service.
    """
    to_encode = dict(claims)
    to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    return jwt.encode(to_encode, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# -----------------------------------------------------------------------------
# Caller Resolution
# -----------------------------------------------------------------------------

def resolve_caller(authorization: Optional[str], settings: Settings) -> CallerIdentity:
    """
    Flow:
    - Extract bearer token (missing → 401).
    - Decode + verify signature/expiry/audience (invalid → 401).
    - Require a `sub` claim (user id).
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Missing bearer token")

    claims = decode_access_token(token, settings)
    if not claims or not claims.get("sub"):
        raise AuthenticationError("Invalid token")

    return CallerIdentity(user_id=str(claims["sub"]), claims=claims)
