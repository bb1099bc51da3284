from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..services import settings_service
from ..validation import ValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@json_errors
def list_settings_route():
    rows = settings_service.list_settings()
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})


@settings_bp.get("/lot-size-threshold")
@json_errors
def get_lot_size_route():
    return jsonify({"lot_size_threshold": settings_service.get_lot_size_threshold()})


@settings_bp.put("/lot-size-threshold")
@json_errors
def set_lot_size_route():
    """Applies to the next classification only; existing orders keep their scenario."""
    payload = request.get_json(silent=True) or {}
    if payload.get("value") is None:
        raise ValidationError("value is required")
    value = settings_service.set_lot_size_threshold(payload["value"])
    return jsonify({"lot_size_threshold": value})
