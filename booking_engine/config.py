"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# SQLite database file
DB_PATH: str = os.getenv("DB_PATH", str(DATA_DIR / "booking_engine.db"))

# ── JWT ───────────────────────────────────────────────────────────────────

JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me-in-production")
JWT_ALGORITHM: str = "HS256"
JWT_EXPIRY_DAYS: int = int(os.getenv("JWT_EXPIRY_DAYS", "7"))

# ── Payments (Stripe) ─────────────────────────────────────────────────────

STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")

# Platform cut taken from each connected-account charge.
APPLICATION_FEE_PERCENT: int = int(os.getenv("APPLICATION_FEE_PERCENT", "5"))

DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "CAD")

# ── External availability providers ───────────────────────────────────────

# Per-request timeout for provider HTTP calls (seconds).
PROVIDER_REQUEST_TIMEOUT: float = float(os.getenv("PROVIDER_REQUEST_TIMEOUT", "10"))

# How long a loaded provider configuration stays fresh (seconds).
PROVIDER_CONFIG_TTL: float = float(os.getenv("PROVIDER_CONFIG_TTL", "300"))

# ── Reminder sweep ────────────────────────────────────────────────────────

REMINDER_INTERVAL: float = float(os.getenv("REMINDER_INTERVAL", "3600"))
REMINDER_BUFFER_MINUTES: int = int(os.getenv("REMINDER_BUFFER_MINUTES", "5"))
REMINDERS_ENABLED: bool = os.getenv("REMINDERS_ENABLED", "true").lower() == "true"

# ── Platform admins ───────────────────────────────────────────────────────

# Comma-separated user ids allowed to edit data provider configurations.
ADMIN_USER_IDS: frozenset[str] = frozenset(
    uid.strip() for uid in os.getenv("ADMIN_USER_IDS", "").split(",") if uid.strip()
)
