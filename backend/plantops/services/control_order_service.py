# Overview: Production-control (WS-1..3) and assembly-control (WS-4..5) orders.

from __future__ import annotations

from typing import Optional

from ..errors import IllegalTransition, NotFound
from ..extensions import db
from ..factory import ITEM_PART, WS_PARTS_SUPPLY
from ..models import AssemblyControlOrder, Order, ProductionControlOrder, SupplyOrder, WorkstationOrder
from ..models.orders import CONTROL_ORDER_TYPES
from ..validation import ValidationError, parse_order_lines
from . import bom_service, event_service, pipeline, stock_store, workstation_order_service
from .concurrency import acquire_for_transaction, order_key
from .order_state import ControlStatus, SupplyStatus, WorkstationStatus, machine_for

_OUTSTANDING_SUPPLY = {SupplyStatus.PENDING.value, SupplyStatus.IN_PROGRESS.value}


def get_control_order(order_id: int) -> Order:
    order = pipeline.get_order(Order, order_id)
    if order.order_type not in CONTROL_ORDER_TYPES:
        raise NotFound(f"Control order {order_id} not found")
    return order


def list_control_orders(*, workstation_id: Optional[int] = None, status: Optional[str] = None) -> list[Order]:
    orders = pipeline.list_orders(ProductionControlOrder, status=status) + pipeline.list_orders(
        AssemblyControlOrder, status=status
    )
    if workstation_id is not None:
        orders = [o for o in orders if o.workstation_id == workstation_id]
    return sorted(orders, key=lambda o: o.id)


def _model_of(order_id: int):
    order = get_control_order(order_id)
    return type(order)


def _supply_children(order: Order) -> list[SupplyOrder]:
    return [c for c in order.children if isinstance(c, SupplyOrder)]


def _workstation_children(order: Order) -> list[WorkstationOrder]:
    return [c for c in order.children if isinstance(c, WorkstationOrder)]


def assign(order_id: int, *, notes: Optional[str] = None) -> Order:
    def _op(order: Order) -> Order:
        pipeline.transition(order, "assign", detail=notes)
        return order
    return pipeline.transact(_model_of(order_id), order_id, _op)


def start(order_id: int) -> Order:
    """
    Begin work: one workstation order per line.

    Refused while a supply order for this control order is still open.
    """
    def _op(order: Order) -> Order:
        outstanding = [s for s in _supply_children(order) if s.status in _OUTSTANDING_SUPPLY]
        if outstanding:
            raise IllegalTransition(
                order.order_type, order.id, order.status, "start",
                reason=f"supply order {outstanding[0].order_number} is not fulfilled",
            )
        pipeline.transition(order, "start")
        pipeline.stamp(order, "started_at")
        for line in order.lines:
            workstation_order_service.spawn_for_control(order, line)
        event_service.emit(
            event_service.CONTROL_ORDER_STARTED,
            order=order,
            target_order_id=order.parent_id,
            payload={"control_order_id": order.id},
        )
        return order
    return pipeline.transact(_model_of(order_id), order_id, _op)


def halt(order_id: int, *, reason: Optional[str] = None) -> Order:
    def _op(order: Order) -> Order:
        pipeline.transition(order, "halt", detail=reason)
        order.halted_reason = reason
        return order
    return pipeline.transact(_model_of(order_id), order_id, _op)


def resume(order_id: int) -> Order:
    def _op(order: Order) -> Order:
        pipeline.transition(order, "resume")
        order.halted_reason = None
        # workstation orders may have finished while halted
        complete_if_finished(order)
        return order
    return pipeline.transact(_model_of(order_id), order_id, _op)


def abandon(order_id: int, *, reason: Optional[str] = None) -> Order:
    def _op(order: Order) -> Order:
        pipeline.transition(order, "abandon", detail=reason)
        order.halted_reason = reason
        return order
    return pipeline.transact(_model_of(order_id), order_id, _op)


def parts_shortfall(order: Order) -> dict[int, int]:
    """Parts the control order's workstation lacks for all of its lines: {part_id: qty}."""
    needed = bom_service.explode(
        {(l.item_type, l.item_id): l.requested_quantity for l in order.lines},
        bom_service.load_bom((l.item_type, l.item_id) for l in order.lines),
    )
    parts = {key: qty for key, qty in needed.items() if key[0] == ITEM_PART}
    snapshot = stock_store.snapshot((order.workstation_id, t, i) for t, i in parts)
    missing = {}
    for (item_type, item_id), qty in parts.items():
        available = snapshot.get((order.workstation_id, item_type, item_id), 0)
        if available < qty:
            missing[item_id] = qty - available
    return missing


def request_supply(order_id: int, *, lines=None, notes: Optional[str] = None) -> SupplyOrder:
    """
    Ask Parts Supply (WS-9) for parts. Without explicit lines the request
    covers the current parts shortfall at this control order's workstation.
    """
    def _op(order: Order) -> SupplyOrder:
        machine = machine_for(order)
        if machine.is_terminal(machine.status_of(order)):
            raise IllegalTransition(order.order_type, order.id, order.status, "request_supply")
        if lines is not None:
            supply_lines = parse_order_lines(lines, expected_type=ITEM_PART)
        else:
            missing = parts_shortfall(order)
            if not missing:
                raise ValidationError(f"Control order {order.order_number} has no parts shortfall")
            supply_lines = [
                {"item_type": ITEM_PART, "item_id": part_id, "quantity": qty}
                for part_id, qty in sorted(missing.items())
            ]
        return pipeline.create_order(
            SupplyOrder,
            workstation_id=order.workstation_id,
            source_workstation_id=WS_PARTS_SUPPLY,
            lines=supply_lines,
            parent=order,
            priority=order.priority,
            notes=notes or f"Parts for {order.order_number}",
        )
    return pipeline.transact(_model_of(order_id), order_id, _op)


def complete_if_finished(order: Order) -> bool:
    """Complete an IN_PROGRESS control order whose workstation orders are all COMPLETED."""
    if order.status != ControlStatus.IN_PROGRESS.value:
        return False
    children = _workstation_children(order)
    if not children or any(c.status != WorkstationStatus.COMPLETED.value for c in children):
        return False
    for line in order.lines:
        line.fulfilled_quantity = line.requested_quantity
    pipeline.transition(order, "complete", detail="all workstation orders completed")
    pipeline.stamp(order, "completed_at")
    event_service.emit(
        event_service.CONTROL_ORDER_COMPLETED,
        order=order,
        target_order_id=order.parent_id,
        payload={"control_order_id": order.id},
    )
    return True


def on_supply_fulfilled(order: Order, supply_order_id: int) -> int:
    """Release workstation orders that were waiting for parts. Returns how many moved to PENDING."""
    released = 0
    children = _workstation_children(order)
    acquire_for_transaction(*(order_key(c.id) for c in children))
    for child in children:
        db.session.refresh(child)
        if child.status == WorkstationStatus.WAITING_FOR_PARTS.value:
            if workstation_order_service.release_if_parts_available(child, detail=f"supply order {supply_order_id}"):
                released += 1
    return released
