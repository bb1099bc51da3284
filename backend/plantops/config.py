# backend/plantops/config.py
from __future__ import annotations
import os


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///plantops.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seed value for the LOT_SIZE_THRESHOLD system setting.
    # The live value is read from the system_settings table on every classification.
    LOT_SIZE_THRESHOLD = int(os.environ.get("LOT_SIZE_THRESHOLD", "3"))

    # Fallback used by low-stock evaluation when no threshold row matches.
    # None means records without a matching row are skipped.
    DEFAULT_LOW_STOCK_THRESHOLD = _optional_int("DEFAULT_LOW_STOCK_THRESHOLD")

    # External production scheduler
    SCHEDULER_URL = os.environ.get("SCHEDULER_URL", "http://localhost:8016/api/simal")
    SCHEDULER_TIMEOUT_SECONDS = float(os.environ.get("SCHEDULER_TIMEOUT_SECONDS", "5.0"))

    STOCK_ADJUST_RETRY_ATTEMPTS = int(os.environ.get("STOCK_ADJUST_RETRY_ATTEMPTS", "3"))

    # Process pipeline events right after the emitting transaction commits.
    # Disable to leave them for `flask orders replay-events`.
    PIPELINE_EVENTS_AUTODISPATCH = os.environ.get("PIPELINE_EVENTS_AUTODISPATCH", "1") == "1"
