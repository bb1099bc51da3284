from __future__ import annotations
from datetime import datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .factory import ITEM_TYPES, is_known_workstation
from .time_utils import parse_iso_datetime


PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients may set
    - required_on_create: fields required when partial=False
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{name} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    raise ValidationError(f"{name} must be an integer")


def _coerce_value(col, value: Any):
    if value is None:
        return None
    coltype = col.type
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is not None:
                return dt
        raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate and normalize incoming JSON against column metadata and a policy allowlist.
    Returns a cleaned patch with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}
    for k, raw in payload.items():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")
        col = cols[k]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue
        val = _coerce_value(col, raw)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")
        patch[k] = val
    return patch


def enforce_stock_key(workstation_id: int, item_type: str, item_id: int) -> None:
    if not is_known_workstation(workstation_id):
        raise ValidationError(f"Unknown workstation_id: {workstation_id}")
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"item_type must be one of {', '.join(sorted(ITEM_TYPES))}")
    if item_id is None or item_id <= 0:
        raise ValidationError("item_id must be a positive integer")


def enforce_rules_threshold(patch: dict) -> None:
    if patch.get("item_type") not in ITEM_TYPES:
        raise ValidationError(f"item_type must be one of {', '.join(sorted(ITEM_TYPES))}")
    threshold = patch.get("threshold")
    if threshold is None or threshold < 0:
        raise ValidationError("threshold must be >= 0")
    ws = patch.get("workstation_id")
    if ws is not None and not is_known_workstation(ws):
        raise ValidationError(f"Unknown workstation_id: {ws}")


def parse_order_lines(raw_lines: Any, *, expected_type: str | None = None) -> list[dict]:
    """Normalize a list of {item_type, item_id, quantity} dicts for order creation."""
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")
    lines = []
    for i, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{i}] must be an object")
        item_type = raw.get("item_type", expected_type)
        if item_type not in ITEM_TYPES:
            raise ValidationError(f"lines[{i}].item_type is invalid")
        if expected_type and item_type != expected_type:
            raise ValidationError(f"lines[{i}].item_type must be {expected_type}")
        item_id = coerce_int(f"lines[{i}].item_id", raw.get("item_id"))
        quantity = coerce_int(f"lines[{i}].quantity", raw.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"lines[{i}].quantity must be > 0")
        lines.append({"item_type": item_type, "item_id": item_id, "quantity": quantity})
    return lines


def parse_priority(value: Any) -> str:
    if value is None:
        return "NORMAL"
    value = str(value).strip().upper()
    if value not in PRIORITIES:
        raise ValidationError(f"priority must be one of {', '.join(PRIORITIES)}")
    return value
