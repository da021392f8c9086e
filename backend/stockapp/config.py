# backend/stockapp/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockapp.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location (e.g. postgresql://...)
        "sqlite:///stockapp.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection-layer limits; timeouts surface as PersistenceError
    DB_CONNECT_TIMEOUT = int(os.environ.get("DB_CONNECT_TIMEOUT", "10"))
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "5"))

    FALLBACK_CATEGORY_NAME = os.environ.get("FALLBACK_CATEGORY_NAME", "General")
    CRITICAL_STOCK_THRESHOLD = int(os.environ.get("CRITICAL_STOCK_THRESHOLD", "10"))

    SALES_RETENTION_YEARS = int(os.environ.get("SALES_RETENTION_YEARS", "3"))
    MAINTENANCE_ENABLED = _env_bool("MAINTENANCE_ENABLED")
    MAINTENANCE_INTERVAL_SECONDS = int(os.environ.get("MAINTENANCE_INTERVAL_SECONDS", "86400"))

    WORKER_THREADS = int(os.environ.get("WORKER_THREADS", "4"))


def engine_options_for(uri: str, *, connect_timeout: int, pool_size: int) -> dict:
    """
    Build SQLALCHEMY_ENGINE_OPTIONS for the configured database.

    SQLite takes a busy timeout in seconds; server databases take a
    connect timeout plus a small pool sized for a desktop client.
    """
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": connect_timeout}}
    return {
        "pool_size": pool_size,
        "pool_pre_ping": True,
        "pool_recycle": 900,
        "connect_args": {"connect_timeout": connect_timeout},
    }
