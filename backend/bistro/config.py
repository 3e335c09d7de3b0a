# backend/bistro/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bistro.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bistro.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger/lifecycle transactions: bounded retry on lost races, bounded lock wait
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))
    TRANSACTION_TIMEOUT_SECONDS = float(os.environ.get("TRANSACTION_TIMEOUT_SECONDS", "5"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options(database_uri: str, timeout_seconds: float) -> dict:
    """
    Per-dialect engine options that bound how long one attempt waits on a lock.

    SQLite: busy timeout on the connection.
    PostgreSQL: lock_timeout for every session.
    """
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    if database_uri.startswith("postgresql"):
        millis = int(timeout_seconds * 1000)
        return {"connect_args": {"options": f"-c lock_timeout={millis}"}}
    return {}
