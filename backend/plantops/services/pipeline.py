# Overview: Shared order-pipeline plumbing: loading, creating and transitioning orders.

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, Optional, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound
from ..extensions import db
from ..models import Order, OrderLine
from ..time_utils import utcnow
from ..validation import ValidationError
from . import audit_service, bom_service, event_service, settings_service, stock_store
from .concurrency import acquire_for_transaction, atomic, lock_for_update, order_key, run_with_retry
from .order_numbers import next_order_number
from .order_state import machine_for, MACHINES
from .scenario_resolver import LineRequest, Scenario, classify

T = TypeVar("T")


def order_type_of(model) -> str:
    return model.__mapper__.polymorphic_identity


def get_order(model, order_id: int):
    order = db.session.get(Order, order_id)
    if order is None or not isinstance(order, model):
        raise NotFound(f"{model.__name__} {order_id} not found")
    return order


def list_orders(model, *, status: Optional[str] = None, parent_id: Optional[int] = None) -> list:
    query = db.session.query(model)
    if status is not None:
        query = query.filter(model.status == status)
    if parent_id is not None:
        query = query.filter(model.parent_id == parent_id)
    return query.order_by(model.id.asc()).all()


def _load_for_update(model, order_id: int):
    order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
    if order is None or not isinstance(order, model):
        raise NotFound(f"{model.__name__} {order_id} not found")
    return order


def create_order(
    model,
    *,
    workstation_id: int,
    lines: Iterable[dict],
    parent: Optional[Order] = None,
    priority: str = "NORMAL",
    status: Optional[Enum] = None,
    scenario: Optional[str] = None,
    source_workstation_id: Optional[int] = None,
    due_date=None,
    notes: Optional[str] = None,
):
    """
    Build and flush a new order inside the caller's transaction.

    lines: dicts with item_type, item_id, quantity and optional product_id.
    """
    order_type = order_type_of(model)
    lines = list(lines)
    if not lines:
        raise ValidationError(f"{order_type} order needs at least one line")
    machine = MACHINES[order_type]
    order = model(
        order_number=next_order_number(order_type),
        status=(status or machine.initial).value,
        priority=priority,
        parent_id=parent.id if parent is not None else None,
        workstation_id=workstation_id,
        source_workstation_id=source_workstation_id,
        scenario=scenario,
        due_date=due_date,
        notes=notes,
    )
    for line in lines:
        order.lines.append(OrderLine(
            item_type=line["item_type"],
            item_id=line["item_id"],
            requested_quantity=line["quantity"],
            fulfilled_quantity=0,
            product_id=line.get("product_id"),
        ))
    db.session.add(order)
    db.session.flush()
    audit_service.record(
        order_id=order.id,
        event_type="CREATED",
        to_status=order.status,
        detail=f"spawned by order {parent.id}" if parent is not None else None,
    )
    if parent is not None:
        audit_service.record(
            order_id=parent.id,
            event_type="SPAWNED",
            detail=f"{order.order_type} {order.order_number}",
        )
    current_app.logger.info("Created %s order %s", order.order_type, order.order_number)
    return order


def transition(order: Order, action: str, target: Optional[Enum] = None, *, detail: Optional[str] = None) -> Enum:
    """Validate and apply one status change, with an audit row in the same transaction."""
    machine = machine_for(order)
    new_status = machine.check(order, action, target)
    old_status = order.status
    order.status = new_status.value
    audit_service.record(
        order_id=order.id,
        event_type=action.upper(),
        from_status=old_status,
        to_status=new_status.value,
        detail=detail,
    )
    current_app.logger.info(
        "%s order %s: %s -> %s (%s)",
        order.order_type, order.order_number, old_status, new_status.value, action,
    )
    return new_status


def transact(model, order_id: int, func: Callable[..., T]) -> T:
    """
    Run func(order) with the order locked, in one transaction, then dispatch
    the pipeline events it emitted.
    """
    def _op():
        with atomic():
            acquire_for_transaction(order_key(order_id))
            order = _load_for_update(model, order_id)
            return func(order)

    result = run_with_retry(_op, retry_on=(IntegrityError,))
    event_service.dispatch_after_commit()
    return result


def create_and_commit(model, **kwargs):
    def _op():
        with atomic():
            return create_order(model, **kwargs)
    order = run_with_retry(_op, retry_on=(IntegrityError,))
    return order


def line_requests(order: Order) -> list[LineRequest]:
    return [LineRequest(l.item_type, l.item_id, l.requested_quantity) for l in order.lines]


def classify_lines(
    lines: list[LineRequest],
    *,
    stage_workstation_id: int,
    upstream_workstation_id: Optional[int] = None,
    use_lot_size: bool = True,
) -> Scenario:
    """Gather current stock, BOM and lot size, then run the pure classifier."""
    items = {(l.item_type, l.item_id) for l in lines}
    bom = bom_service.load_bom(items) if upstream_workstation_id is not None else None

    keys = {(stage_workstation_id, t, i) for t, i in items}
    if bom:
        for components in bom.values():
            keys.update((upstream_workstation_id, ct, ci) for ct, ci, _ in components)
    snapshot = stock_store.snapshot(keys)

    lot_size = settings_service.get_lot_size_threshold() if use_lot_size else None
    return classify(
        lines,
        snapshot,
        lot_size,
        stage_workstation_id=stage_workstation_id,
        upstream_workstation_id=upstream_workstation_id,
        bom=bom,
    )


def stamp(order: Order, field: str) -> None:
    setattr(order, field, utcnow())
