"""
Pricing core configuration — single source of truth for environment settings,
formula constants and service defaults.

Import from here in engines and adapters rather than hardcoding values.
"""
from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env automatically in dev (no-op when the file is missing)
load_dotenv()

# ── Environment ────────────────────────────────────────────────────────────────

DATABASE_URL: str = os.getenv("DATABASE_URL", "")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json").lower()
CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")
    if o.strip()
]

# Postgres NOTIFY channel carrying service_pricing_configs row changes
PRICING_NOTIFY_CHANNEL: str = os.getenv("PRICING_NOTIFY_CHANNEL", "service_pricing_configs_changes")

# Drop and recreate tables on startup (early development only)
DB_RESET_ON_STARTUP: bool = os.getenv("DB_RESET_ON_STARTUP", "").lower() in ("1", "true", "yes")

# Company seeded into the in-memory store when no DATABASE_URL is configured
DEV_COMPANY_ID: str = os.getenv("DEV_COMPANY_ID", "dev-company")


# ── Service names ──────────────────────────────────────────────────────────────

PAVER_PATIO_SERVICE: str = "paver_patio_sqft"
EXCAVATION_SERVICE: str = "excavation_removal"
DEFAULT_SERVICE: str = PAVER_PATIO_SERVICE


# ── Tier 1 constants ───────────────────────────────────────────────────────────

# One labor-day per crew member
HOURS_PER_DAY: int = 8


# ── Excavation (bundled service) constants ─────────────────────────────────────

# Hours are a step function of area: each started tier costs a flat block
EXCAVATION_TIER_SIZE: int = 1000          # sqft per tier
EXCAVATION_HOURS_PER_TIER: int = 12
EXCAVATION_DAYS_PER_TIER: float = 1.5

INCHES_PER_FOOT: float = 12.0
CUBIC_FEET_PER_CUBIC_YARD: float = 27.0

# Rounding rules for adjusted cubic yards
ROUNDING_UP_WHOLE: str = "up_whole"
ROUNDING_UP_HALF: str = "up_half"
ROUNDING_EXACT: str = "exact"
ROUNDING_RULES: tuple[str, ...] = (ROUNDING_UP_WHOLE, ROUNDING_UP_HALF, ROUNDING_EXACT)

# Service integration toggle that bundles excavation into a primary service
INCLUDE_EXCAVATION: str = "includeExcavation"


# ── Result boundary ────────────────────────────────────────────────────────────

CURRENCY_PRECISION: int = 2
HOURS_PRECISION: int = 1

# Confidence reported with a result, by configuration source
CONFIDENCE_LIVE: float = 0.90
CONFIDENCE_FALLBACK: float = 0.50
