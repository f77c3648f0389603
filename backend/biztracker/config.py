# backend/biztracker/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file in the working directory unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///biztracker.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma-separated list of dashboard origins allowed to call the API
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]

    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₦")
    OVERDUE_AFTER_DAYS = int(os.environ.get("OVERDUE_AFTER_DAYS", "7"))
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))
    ACTIVITY_DEFAULT_LIMIT = int(os.environ.get("ACTIVITY_DEFAULT_LIMIT", "50"))

    # When False, repaid_amount_cents may exceed the debt amount
    REJECT_DEBT_OVERPAYMENT = _env_bool("REJECT_DEBT_OVERPAYMENT", False)
