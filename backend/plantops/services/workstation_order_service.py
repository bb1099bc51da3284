# Overview: Workstation orders: the unit of work executed at one manufacturing or assembly station.

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from ..errors import IllegalTransition
from ..models import Order, OrderLine, WorkstationOrder
from . import bom_service, event_service, pipeline, stock_ledger, stock_store
from .order_state import ControlStatus, WorkstationStatus
from .stock_ledger import StockEffect


def get_workstation_order(order_id: int) -> WorkstationOrder:
    return pipeline.get_order(WorkstationOrder, order_id)


def list_workstation_orders(*, workstation_id: Optional[int] = None, status: Optional[str] = None) -> list:
    orders = pipeline.list_orders(WorkstationOrder, status=status)
    if workstation_id is not None:
        orders = [o for o in orders if o.workstation_id == workstation_id]
    return orders


def _components(order: Order) -> dict[tuple[str, int], int]:
    needed: dict[tuple[str, int], int] = defaultdict(int)
    for line in order.lines:
        for component_type, component_id, per_unit in bom_service.components_of(line.item_type, line.item_id):
            needed[(component_type, component_id)] += per_unit * line.requested_quantity
    return dict(needed)


def _missing_components(workstation_id: int, components: dict[tuple[str, int], int]) -> dict[tuple[str, int], int]:
    snapshot = stock_store.snapshot((workstation_id, t, i) for t, i in components)
    return {
        key: qty - snapshot.get((workstation_id, *key), 0)
        for key, qty in components.items()
        if snapshot.get((workstation_id, *key), 0) < qty
    }


def spawn_for_control(control: Order, line: OrderLine) -> WorkstationOrder:
    """One workstation order per control-order line; WAITING_FOR_PARTS when components are short."""
    components = {}
    for component_type, component_id, per_unit in bom_service.components_of(line.item_type, line.item_id):
        components[(component_type, component_id)] = per_unit * line.requested_quantity
    missing = _missing_components(control.workstation_id, components)
    status = WorkstationStatus.WAITING_FOR_PARTS if missing else WorkstationStatus.PENDING
    return pipeline.create_order(
        WorkstationOrder,
        workstation_id=control.workstation_id,
        lines=[{
            "item_type": line.item_type,
            "item_id": line.item_id,
            "quantity": line.requested_quantity,
            "product_id": line.product_id,
        }],
        parent=control,
        priority=control.priority,
        status=status,
        notes=f"Control order {control.order_number}",
    )


def release_if_parts_available(order: WorkstationOrder, *, detail: Optional[str] = None) -> bool:
    if _missing_components(order.workstation_id, _components(order)):
        return False
    pipeline.transition(order, "parts_ready", detail=detail)
    return True


def parts_ready(order_id: int) -> WorkstationOrder:
    def _op(order: WorkstationOrder) -> WorkstationOrder:
        if not release_if_parts_available(order, detail="manual check"):
            raise IllegalTransition(order.order_type, order.id, order.status, "parts_ready", reason="components still short")
        return order
    return pipeline.transact(WorkstationOrder, order_id, _op)


def start(order_id: int) -> WorkstationOrder:
    def _op(order: WorkstationOrder) -> WorkstationOrder:
        parent = order.parent
        if parent is not None and parent.status != ControlStatus.IN_PROGRESS.value:
            raise IllegalTransition(
                order.order_type, order.id, order.status, "start",
                reason=f"control order {parent.order_number} is {parent.status}",
            )
        missing = _missing_components(order.workstation_id, _components(order))
        if missing:
            raise IllegalTransition(order.order_type, order.id, order.status, "start", reason="components short")
        pipeline.transition(order, "start")
        pipeline.stamp(order, "started_at")
        return order
    return pipeline.transact(WorkstationOrder, order_id, _op)


def halt(order_id: int, *, reason: Optional[str] = None) -> WorkstationOrder:
    def _op(order: WorkstationOrder) -> WorkstationOrder:
        pipeline.transition(order, "halt", detail=reason)
        order.halted_reason = reason
        return order
    return pipeline.transact(WorkstationOrder, order_id, _op)


def resume(order_id: int) -> WorkstationOrder:
    def _op(order: WorkstationOrder) -> WorkstationOrder:
        pipeline.transition(order, "resume")
        order.halted_reason = None
        return order
    return pipeline.transact(WorkstationOrder, order_id, _op)


def complete(order_id: int) -> WorkstationOrder:
    """Consume components and credit the output item at this workstation, then notify the control order."""
    def _op(order: WorkstationOrder) -> WorkstationOrder:
        pipeline.transition(order, "complete")
        note = f"Workstation order {order.order_number}"
        effects = [
            StockEffect(order.workstation_id, item_type, item_id, -qty, stock_ledger.REASON_CONSUMPTION, note)
            for (item_type, item_id), qty in sorted(_components(order).items())
        ]
        effects += [
            StockEffect(
                order.workstation_id, line.item_type, line.item_id,
                line.requested_quantity, stock_ledger.REASON_PRODUCTION_COMPLETE, note,
            )
            for line in order.lines
        ]
        stock_ledger.apply_effects(effects, order_id=order.id)
        for line in order.lines:
            line.fulfilled_quantity = line.requested_quantity
        pipeline.stamp(order, "completed_at")
        event_service.emit(
            event_service.WORKSTATION_ORDER_COMPLETED,
            order=order,
            target_order_id=order.parent_id,
            payload={"workstation_order_id": order.id},
        )
        return order
    return pipeline.transact(WorkstationOrder, order_id, _op)
