# backend/retail_pos/config.py
from __future__ import annotations
import os


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retail_pos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds a connection waits on a locked database before OperationalError
    DB_LOCK_TIMEOUT_SECONDS = float(os.environ.get("DB_LOCK_TIMEOUT_SECONDS", "5"))

    # Calendar days in reports are interpreted in this zone
    REPORT_TIMEZONE = os.environ.get("REPORT_TIMEZONE", "UTC")

    UNIT_OF_WORK_ATTEMPTS = int(os.environ.get("UNIT_OF_WORK_ATTEMPTS", "3"))
    UNIT_OF_WORK_BACKOFF_SECONDS = float(os.environ.get("UNIT_OF_WORK_BACKOFF_SECONDS", "0.05"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options(database_uri: str, lock_timeout: float) -> dict:
    """SQLite needs an explicit busy timeout so writers queue instead of failing at once."""
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": lock_timeout}}
    return {"pool_pre_ping": True}
