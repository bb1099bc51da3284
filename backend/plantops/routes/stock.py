# Overview: Flask API routes for stock levels, ledger adjustments and low-stock alerts.

from flask import Blueprint, request, jsonify

from ..decorators import json_errors
from ..errors import NotFound
from ..models import StockLedgerEntry
from ..services import stock_ledger, stock_store, threshold_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_stock_key,
    validate_payload,
)


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"workstation_id", "item_type", "item_id", "delta", "reason_code", "notes", "order_id"},
    required_on_create={"workstation_id", "item_type", "item_id", "delta"},
)


@stock_bp.get("")
@json_errors
def list_stock_route():
    workstation_id = request.args.get("workstation_id", type=int)
    item_type = request.args.get("item_type")
    records = stock_store.list_records(workstation_id=workstation_id, item_type=item_type)
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})


@stock_bp.get("/<int:workstation_id>/<item_type>/<int:item_id>")
@json_errors
def get_stock_route(workstation_id: int, item_type: str, item_id: int):
    record = stock_store.get(workstation_id=workstation_id, item_type=item_type.upper(), item_id=item_id)
    if record is None:
        raise NotFound(f"No stock record for workstation {workstation_id} {item_type} {item_id}")
    return jsonify(record.to_dict())


@stock_bp.post("/adjust")
@json_errors
def adjust_stock_route():
    """
    Apply a signed delta: {workstation_id, item_type, item_id, delta, reason_code?, notes?}.

    409 when the delta would take the record below zero; nothing is written.
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=StockLedgerEntry, payload=payload, policy=ADJUST_POLICY, partial=False)
    entry = stock_ledger.adjust(
        workstation_id=patch["workstation_id"],
        item_type=patch["item_type"],
        item_id=patch["item_id"],
        delta=patch["delta"],
        reason_code=patch.get("reason_code") or stock_ledger.REASON_ADJUSTMENT,
        notes=patch.get("notes"),
        order_id=patch.get("order_id"),
    )
    return jsonify({"entry": entry.to_dict()}), 201


@stock_bp.put("/<int:workstation_id>/<item_type>/<int:item_id>")
@json_errors
def set_stock_route(workstation_id: int, item_type: str, item_id: int):
    """Administrative set-level; recorded as an ADMIN_RESET ledger entry."""
    payload = request.get_json(silent=True) or {}
    if "quantity" not in payload:
        raise ValidationError("quantity is required")
    entry = stock_store.set_absolute(
        workstation_id=workstation_id,
        item_type=item_type.upper(),
        item_id=item_id,
        quantity=coerce_int("quantity", payload["quantity"]),
        notes=payload.get("notes"),
    )
    return jsonify({"entry": entry.to_dict()})


@stock_bp.post("/transfer")
@json_errors
def transfer_stock_route():
    payload = request.get_json(silent=True) or {}
    for name in ("from_workstation_id", "to_workstation_id", "item_type", "item_id", "quantity"):
        if payload.get(name) is None:
            raise ValidationError(f"{name} is required")
    item_type = str(payload["item_type"]).upper()
    from_ws = coerce_int("from_workstation_id", payload["from_workstation_id"])
    to_ws = coerce_int("to_workstation_id", payload["to_workstation_id"])
    item_id = coerce_int("item_id", payload["item_id"])
    enforce_stock_key(from_ws, item_type, item_id)
    enforce_stock_key(to_ws, item_type, item_id)
    debit, credit = stock_ledger.transfer(
        from_workstation_id=from_ws,
        to_workstation_id=to_ws,
        item_type=item_type,
        item_id=item_id,
        quantity=coerce_int("quantity", payload["quantity"]),
        notes=payload.get("notes"),
    )
    return jsonify({"entries": [debit.to_dict(), credit.to_dict()]}), 201


@stock_bp.get("/low")
@json_errors
def low_stock_route():
    workstation_id = request.args.get("workstation_id", type=int)
    alerts = threshold_service.evaluate(workstation_id=workstation_id)
    return jsonify({"items": [a.to_dict() for a in alerts], "count": len(alerts)})


@stock_bp.get("/reconcile")
@json_errors
def reconcile_route():
    workstation_id = request.args.get("workstation_id", type=int)
    mismatches = stock_ledger.reconcile(workstation_id=workstation_id)
    return jsonify({"ok": not mismatches, "mismatches": mismatches})
