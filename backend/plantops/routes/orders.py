# Overview: Order pipeline API: create orders, run transitions, read lineage and audit trails.

"""
Transitions are posted as POST /api/orders/<id>/<action>; the order's type
selects the service function. Illegal actions come back as 409 with the
current status in the message, unknown actions for a type as 404.
"""

from flask import Blueprint, request, jsonify

from ..decorators import json_errors
from ..errors import NotFound
from ..models import Order
from ..models.orders import (
    ORDER_ASSEMBLY_CONTROL,
    ORDER_CUSTOMER,
    ORDER_FINAL_ASSEMBLY,
    ORDER_PRODUCTION,
    ORDER_PRODUCTION_CONTROL,
    ORDER_SUPPLY,
    ORDER_WAREHOUSE,
    ORDER_WORKSTATION,
)
from ..services import (
    audit_service,
    control_order_service,
    customer_order_service,
    final_assembly_service,
    pipeline,
    production_order_service,
    supply_order_service,
    warehouse_order_service,
    workstation_order_service,
)
from ..services.order_state import machine_for
from ..validation import coerce_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


_CONTROL_ACTIONS = {
    "assign": lambda oid, body: control_order_service.assign(oid, notes=body.get("notes")),
    "start": lambda oid, body: control_order_service.start(oid),
    "halt": lambda oid, body: control_order_service.halt(oid, reason=body.get("reason")),
    "resume": lambda oid, body: control_order_service.resume(oid),
    "abandon": lambda oid, body: control_order_service.abandon(oid, reason=body.get("reason")),
    "request_supply": lambda oid, body: control_order_service.request_supply(
        oid, lines=body.get("lines"), notes=body.get("notes")
    ),
}

ACTIONS = {
    ORDER_CUSTOMER: {
        "confirm": lambda oid, body: customer_order_service.confirm(oid),
        "fulfill": lambda oid, body: customer_order_service.fulfill(oid),
        "complete": lambda oid, body: customer_order_service.complete(oid),
        "cancel": lambda oid, body: customer_order_service.cancel(oid, reason=body.get("reason")),
    },
    ORDER_WAREHOUSE: {
        "confirm": lambda oid, body: warehouse_order_service.confirm(oid),
        "fulfill": lambda oid, body: warehouse_order_service.fulfill(oid),
        "cancel": lambda oid, body: warehouse_order_service.cancel(oid, reason=body.get("reason")),
    },
    ORDER_PRODUCTION: {
        "confirm": lambda oid, body: production_order_service.confirm(oid),
        "schedule": lambda oid, body: production_order_service.schedule(oid, due_date=body.get("due_date")),
        "dispatch": lambda oid, body: production_order_service.dispatch(oid),
        "cancel": lambda oid, body: production_order_service.cancel(oid, reason=body.get("reason")),
    },
    ORDER_PRODUCTION_CONTROL: _CONTROL_ACTIONS,
    ORDER_ASSEMBLY_CONTROL: _CONTROL_ACTIONS,
    ORDER_WORKSTATION: {
        "parts_ready": lambda oid, body: workstation_order_service.parts_ready(oid),
        "start": lambda oid, body: workstation_order_service.start(oid),
        "halt": lambda oid, body: workstation_order_service.halt(oid, reason=body.get("reason")),
        "resume": lambda oid, body: workstation_order_service.resume(oid),
        "complete": lambda oid, body: workstation_order_service.complete(oid),
    },
    ORDER_FINAL_ASSEMBLY: {
        "confirm": lambda oid, body: final_assembly_service.confirm(oid),
        "start": lambda oid, body: final_assembly_service.start(oid),
        "complete": lambda oid, body: final_assembly_service.complete(oid),
        "submit": lambda oid, body: final_assembly_service.submit(oid),
    },
    ORDER_SUPPLY: {
        "start": lambda oid, body: supply_order_service.start(oid),
        "fulfill": lambda oid, body: supply_order_service.fulfill(oid),
        "reject": lambda oid, body: supply_order_service.reject(oid, reason=body.get("reason")),
    },
}


def _order_payload(order: Order) -> dict:
    data = order.to_dict()
    machine = machine_for(order)
    data["children"] = [c.id for c in order.children]
    data["available_actions"] = sorted(
        set(machine.available_actions(machine.status_of(order))) & set(ACTIONS[order.order_type])
    )
    return data


@orders_bp.get("")
@json_errors
def list_orders_route():
    order_type = request.args.get("type")
    status = request.args.get("status")
    parent_id = request.args.get("parent_id", type=int)
    orders = pipeline.list_orders(Order, status=status.upper() if status else None, parent_id=parent_id)
    if order_type:
        orders = [o for o in orders if o.order_type == order_type.upper()]
    return jsonify({"items": [o.to_dict(include_lines=False) for o in orders], "count": len(orders)})


@orders_bp.get("/<int:order_id>")
@json_errors
def get_order_route(order_id: int):
    return jsonify(_order_payload(pipeline.get_order(Order, order_id)))


@orders_bp.get("/<int:order_id>/audit")
@json_errors
def order_audit_route(order_id: int):
    pipeline.get_order(Order, order_id)
    rows = audit_service.audit_trail(order_id)
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})


@orders_bp.get("/<int:order_id>/scenario")
@json_errors
def customer_scenario_route(order_id: int):
    """Live re-evaluation; the stored scenario is not changed."""
    scenario = customer_order_service.current_scenario(order_id)
    return jsonify({"order_id": order_id, "scenario": scenario.value})


@orders_bp.post("/customer")
@json_errors
def create_customer_order_route():
    payload = request.get_json(silent=True) or {}
    order = customer_order_service.create_customer_order(
        lines=payload.get("lines"),
        priority=payload.get("priority"),
        notes=payload.get("notes"),
    )
    return jsonify(_order_payload(order)), 201


@orders_bp.post("/warehouse")
@json_errors
def create_warehouse_order_route():
    payload = request.get_json(silent=True) or {}
    order = warehouse_order_service.create_warehouse_order(
        lines=payload.get("lines"),
        priority=payload.get("priority"),
        notes=payload.get("notes"),
    )
    return jsonify(_order_payload(order)), 201


@orders_bp.post("/production")
@json_errors
def create_production_order_route():
    payload = request.get_json(silent=True) or {}
    order = production_order_service.create_production_order(
        lines=payload.get("lines"),
        priority=payload.get("priority"),
        due_date=payload.get("due_date"),
        notes=payload.get("notes"),
    )
    return jsonify(_order_payload(order)), 201


@orders_bp.post("/supply")
@json_errors
def create_supply_order_route():
    payload = request.get_json(silent=True) or {}
    order = supply_order_service.create_supply_order(
        workstation_id=coerce_int("workstation_id", payload.get("workstation_id")),
        lines=payload.get("lines"),
        priority=payload.get("priority"),
        notes=payload.get("notes"),
    )
    return jsonify(_order_payload(order)), 201


@orders_bp.post("/<int:order_id>/<action>")
@json_errors
def order_action_route(order_id: int, action: str):
    order = pipeline.get_order(Order, order_id)
    handler = ACTIONS.get(order.order_type, {}).get(action)
    if handler is None:
        raise NotFound(f"Unknown action '{action}' for {order.order_type} orders")
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    result = handler(order_id, body)
    return jsonify(_order_payload(result))
