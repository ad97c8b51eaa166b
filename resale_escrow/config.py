"""
Configuration - Resale Escrow Service
All settings come from the environment (a local .env is loaded first).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _database_uri():
    url = os.getenv("DATABASE_URL")
    if url:
        # Heroku-style URLs still use the old scheme
        return url.replace("postgres://", "postgresql://", 1)

    db_pass = os.getenv("DB_PASS")
    if not db_pass:
        return None

    return (
        f"postgresql://{os.getenv('DB_USER', 'escrow_svc_user')}"
        f":{db_pass}"
        f"@{os.getenv('DB_HOST', 'escrow-db')}"
        f":{os.getenv('DB_PORT', '5432')}"
        f"/{os.getenv('DB_NAME', 'escrow_db')}"
    )


def _bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_TABLES = _bool("AUTO_CREATE_TABLES", False)

    # Shared secrets
    CRON_SECRET = os.getenv("CRON_SECRET")
    INTERNAL_API_TOKEN = os.getenv("INTERNAL_API_TOKEN")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")

    # Stripe Connect
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_TIMEOUT_SECONDS = float(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))
    STRIPE_MAX_NETWORK_RETRIES = int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", "2"))
    PAYOUT_CURRENCY = os.getenv("PAYOUT_CURRENCY", "gbp")

    # Strike / reputation service
    REPUTATION_SERVICE_URL = os.getenv("REPUTATION_SERVICE_URL")
    REPUTATION_TIMEOUT_SECONDS = float(os.getenv("REPUTATION_TIMEOUT_SECONDS", "2.0"))

    # Settlement batch
    SETTLEMENT_MAX_WORKERS = int(os.getenv("SETTLEMENT_MAX_WORKERS", "4"))

    # "flag": listings under review stay sellable and settle normally
    # "hold": escrow for orders on listings under review is not auto-released
    MANUAL_REVIEW_POLICY = os.getenv("MANUAL_REVIEW_POLICY", "flag")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
