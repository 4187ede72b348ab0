# backend/opsdesk/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/opsdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///opsdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Order lifecycle sweep: every interval, Pending orders older than the
    # timeout are moved to Rejected.
    ORDER_SWEEP_INTERVAL_SECONDS = float(os.environ.get("ORDER_SWEEP_INTERVAL_SECONDS", "10"))
    ORDER_PENDING_TIMEOUT_SECONDS = float(os.environ.get("ORDER_PENDING_TIMEOUT_SECONDS", "60"))
    ORDER_SWEEPER_ENABLED = _env_flag("ORDER_SWEEPER_ENABLED", True)

    # Per-customer lock around allocation read-modify-write (off keeps the
    # last-write-wins behaviour of the shared store)
    ALLOCATION_LOCKING = _env_flag("ALLOCATION_LOCKING", False)

    # Admin session lifetime (seconds)
    ADMIN_SESSION_TTL_SECONDS = int(os.environ.get("ADMIN_SESSION_TTL_SECONDS", "3600"))

    # Server-Sent Events keepalive interval
    LIVE_KEEPALIVE_SECONDS = float(os.environ.get("LIVE_KEEPALIVE_SECONDS", "15"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
