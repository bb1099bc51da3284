# Overview: Low-stock threshold registry API.

from flask import Blueprint, request, jsonify

from ..decorators import json_errors
from ..services import threshold_service
from ..validation import ValidationError


thresholds_bp = Blueprint("thresholds", __name__, url_prefix="/api/thresholds")


@thresholds_bp.get("")
@json_errors
def list_thresholds_route():
    rows = threshold_service.list_thresholds()
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})


@thresholds_bp.put("")
@json_errors
def upsert_thresholds_route():
    """
    Body: {"thresholds": [{workstation_id?, item_type, item_id?, threshold, id?}, ...]}
    or a single threshold object. Null workstation_id / item_id mean "any".
    """
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and "thresholds" in payload:
        items = payload["thresholds"]
    elif isinstance(payload, dict):
        items = [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        raise ValidationError("Invalid JSON payload")
    rows = threshold_service.upsert(items)
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})


@thresholds_bp.delete("/<int:threshold_id>")
@json_errors
def delete_threshold_route(threshold_id: int):
    threshold_service.delete_threshold(threshold_id)
    return "", 204
