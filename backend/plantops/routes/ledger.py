# Overview: Read-only API over the stock ledger.

from flask import Blueprint, request, jsonify

from ..decorators import json_errors
from ..services import stock_ledger


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
@json_errors
def list_ledger_route():
    """Most recent first; filter by any of workstation_id, item_type, item_id."""
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))
    item_type = request.args.get("item_type")
    entries = stock_ledger.history(
        workstation_id=request.args.get("workstation_id", type=int),
        item_type=item_type.upper() if item_type else None,
        item_id=request.args.get("item_id", type=int),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})


@ledger_bp.get("/recent")
@json_errors
def recent_ledger_route():
    limit = request.args.get("limit", default=20, type=int)
    entries = stock_ledger.recent(limit)
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
