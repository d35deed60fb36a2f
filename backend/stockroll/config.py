# backend/stockroll/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockroll.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockroll.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Business calendar: every assignment date is a plain date in this zone.
    # America/Bogota is UTC-5 all year (no DST).
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "America/Bogota")
    SKIP_WEEKENDS = _env_bool("SKIP_WEEKENDS", False)
    STALE_AFTER_DAYS = int(os.environ.get("STALE_AFTER_DAYS", "1"))

    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
