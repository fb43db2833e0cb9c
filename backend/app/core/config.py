"""
config.py — Centralized Application Configuration Loader

Purpose:
- Define a single source of truth for application settings.
- Load and validate environment variables from `.env` or OS environment.
- Hold the fallbacks the proposal engine uses when the platform backend has
  no reference row (tariff, irradiation, tax, premises, fee schedule).

Settings are handed to the generation orchestrator explicitly at startup.
The pure calculators under app/services/engine never read this module.

This module does NOT:
- Open Supabase connections (see core/database.py).
- Make external API calls.
- Modify runtime settings.
"""

from pathlib import Path
from typing import Any, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/app/core/config.py
# .env should be at: backend/.env
_CONFIG_DIR = Path(__file__).parent  # backend/app/core
_BACKEND_DIR = _CONFIG_DIR.parent.parent  # backend
_ENV_FILE = _BACKEND_DIR / ".env"

if _ENV_FILE.exists():
    _ENV_FILE_PATH = str(_ENV_FILE.resolve())
else:
    # Fallback: use relative path (pydantic will look in CWD)
    _ENV_FILE_PATH = ".env"


# Lei 14.300 non-compensated Fio B share (%) by calendar year.
STATUTORY_FEE_STEPS: Dict[int, float] = {
    2023: 15.0,
    2024: 30.0,
    2025: 45.0,
    2026: 60.0,
    2027: 75.0,
    2028: 90.0,
    2029: 100.0,
}


class Settings(BaseSettings):
    """
    Settings container for the proposal engine service.

    Groups:
    1. Platform backend (Supabase) connection + JWT verification
    2. Authorization policy
    3. Reference-data fallbacks used by the orchestrator
    """
    # Platform backend (Supabase)
    SUPABASE_URL: str = Field(
        "",
        description="Supabase project URL",
    )
    SUPABASE_SERVICE_ROLE_KEY: str = Field(
        "",
        description="Supabase service role key used for server-side reads/writes",
    )
    SUPABASE_JWT_SECRET: str = Field(
        "",
        description="Secret used to verify caller access tokens (HS256)",
    )
    JWT_ALGORITHM: str = Field("HS256", description="Access token signing algorithm")
    JWT_AUDIENCE: str = Field("authenticated", description="Expected `aud` claim on access tokens")

    LOG_LEVEL: str = Field("INFO", description="Root log level")

    # Authorization
    ALLOWED_ROLES: List[str] = Field(
        default_factory=lambda: ["admin", "gerente", "financeiro", "consultor"],
        description="Roles permitted to generate proposals",
    )

    # Proposal lifecycle
    PROPOSAL_VALIDITY_DAYS: int = Field(30, description="Days a generated version stays valid")

    # Reference-data fallbacks
    DEFAULT_TARIFF_KWH: float = Field(
        0.85,
        description="Average tariff (R$/kWh) when the utility has no active tariff record",
    )
    DEFAULT_GENERATION_PER_KWP: float = Field(
        120.0,
        description="Monthly kWh generated per installed kWp when no irradiation row exists",
    )
    DEFAULT_ICMS_RATE: float = Field(0.25, description="ICMS rate when the state has no tax row")
    FEE_TARIFF_SHARE: float = Field(
        0.28,
        description="Share of the tariff estimated as Fio B when the tariff has no real component",
    )

    # Default premises (percent values)
    DEFAULT_ENERGY_INFLATION_PCT: float = Field(6.5)
    DEFAULT_EFFICIENCY_LOSS_PCT: float = Field(0.5)
    DEFAULT_INVERTER_REPLACEMENT_YEAR: int = Field(12)
    DEFAULT_INVERTER_REPLACEMENT_COST_PCT: float = Field(15.0)
    DEFAULT_DISCOUNT_RATE_PCT: float = Field(10.0)

    # Statutory fee schedule used when neither tenant nor global rows exist
    DEFAULT_FEE_STEPS: Dict[int, float] = Field(default_factory=lambda: dict(STATUTORY_FEE_STEPS))

    @field_validator("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_JWT_SECRET", mode="before")
    @classmethod
    def strip_secret(cls, v: Any) -> str:
        """Strip whitespace from keys pasted into .env files."""
        if isinstance(v, str):
            return v.strip()
        return v or ""

    @property
    def supabase_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Singleton pattern — settings imported anywhere will reference same object.
settings = Settings()
