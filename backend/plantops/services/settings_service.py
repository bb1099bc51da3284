# Overview: System settings (key/value) with the lot-size threshold used by scenario classification.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import SystemSetting
from ..validation import ValidationError, coerce_int
from .concurrency import acquire_for_transaction, atomic


LOT_SIZE_THRESHOLD = "LOT_SIZE_THRESHOLD"

SETTING_DESCRIPTIONS = {
    LOT_SIZE_THRESHOLD: "Order quantity at or above which orders go straight to production",
}


def _setting_key(key: str) -> tuple:
    return ("setting", key)


def get_setting(key: str) -> SystemSetting | None:
    return db.session.query(SystemSetting).filter_by(key=key).first()


def list_settings() -> list[SystemSetting]:
    return db.session.query(SystemSetting).order_by(SystemSetting.key.asc()).all()


def set_setting(key: str, value: str) -> SystemSetting:
    with atomic():
        acquire_for_transaction(_setting_key(key))
        row = get_setting(key)
        if row is None:
            row = SystemSetting(key=key, value=value, description=SETTING_DESCRIPTIONS.get(key))
            db.session.add(row)
        else:
            row.value = value
        db.session.flush()
    current_app.logger.info("System setting %s = %s", key, value)
    return row


def get_lot_size_threshold() -> int:
    """
    Current lot-size threshold.

    Read from the table on every call so a change applies to the next
    classification; falls back to the configured seed value.
    """
    row = get_setting(LOT_SIZE_THRESHOLD)
    if row is None:
        return int(current_app.config.get("LOT_SIZE_THRESHOLD", 3))
    return int(row.value)


def set_lot_size_threshold(value) -> int:
    threshold = coerce_int("lot_size_threshold", value)
    if threshold < 1:
        raise ValidationError("lot_size_threshold must be >= 1")
    set_setting(LOT_SIZE_THRESHOLD, str(threshold))
    return threshold


def ensure_defaults() -> None:
    """Seed missing settings from app config (idempotent)."""
    if get_setting(LOT_SIZE_THRESHOLD) is None:
        set_lot_size_threshold(current_app.config.get("LOT_SIZE_THRESHOLD", 3))
