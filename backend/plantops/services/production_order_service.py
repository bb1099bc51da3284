# Overview: Production orders: scheduling handoff and dispatch to control orders.

"""
Production order flow

    CREATED -> confirm -> CONFIRMED -> schedule -> SCHEDULED
    dispatch: call the external scheduler with no lock held, then (locked)
              store the schedule, create one control order per target
              workstation and move to DISPATCHED
    first control order started      -> IN_PRODUCTION
    every control order completed    -> COMPLETED, modules moved to WS-8,
                                        parent warehouse order notified
    cancel from any non-terminal status

A scheduler failure or timeout raises SchedulerUnavailable and leaves the
order in SCHEDULED; dispatch can simply be called again.
"""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Optional

from flask import current_app

from ..errors import SchedulerUnavailable
from ..factory import ASSEMBLY_WORKSTATIONS, ITEM_MODULE, MANUFACTURING_WORKSTATIONS, WS_MODULES_SUPERMARKET
from ..models import AssemblyControlOrder, ProductionControlOrder, ProductionOrder
from ..models.orders import CONTROL_ORDER_TYPES
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_order_lines, parse_priority
from . import bom_service, event_service, pipeline, stock_ledger
from .order_state import ControlStatus, PRODUCTION_MACHINE, ProductionStatus
from .scheduler_client import ScheduleResult, get_scheduler
from .stock_ledger import StockEffect


def create_production_order(
    *,
    lines,
    priority=None,
    due_date=None,
    notes: Optional[str] = None,
) -> ProductionOrder:
    parsed = parse_order_lines(lines, expected_type=ITEM_MODULE)
    return pipeline.create_and_commit(
        ProductionOrder,
        workstation_id=WS_MODULES_SUPERMARKET,
        lines=parsed,
        priority=parse_priority(priority),
        due_date=parse_iso_datetime(due_date) if isinstance(due_date, str) else due_date,
        notes=notes,
    )


def get_production_order(order_id: int) -> ProductionOrder:
    return pipeline.get_order(ProductionOrder, order_id)


def confirm(order_id: int) -> ProductionOrder:
    def _op(order: ProductionOrder) -> ProductionOrder:
        pipeline.transition(order, "confirm")
        pipeline.stamp(order, "confirmed_at")
        return order
    return pipeline.transact(ProductionOrder, order_id, _op)


def schedule(order_id: int, *, due_date=None) -> ProductionOrder:
    if isinstance(due_date, str):
        due_date = parse_iso_datetime(due_date)

    def _op(order: ProductionOrder) -> ProductionOrder:
        pipeline.transition(order, "schedule")
        if due_date is not None:
            order.due_date = due_date
        return order
    return pipeline.transact(ProductionOrder, order_id, _op)


def _routed_lines(order: ProductionOrder) -> dict[int, list[dict]]:
    """Module lines grouped by the workstation that produces them."""
    grouped: dict[int, list[dict]] = defaultdict(list)
    for line in order.lines:
        workstation_id = bom_service.route_for(line.item_type, line.item_id)
        if workstation_id not in MANUFACTURING_WORKSTATIONS | ASSEMBLY_WORKSTATIONS:
            raise ValidationError(
                f"{line.item_type} {line.item_id} is routed to workstation {workstation_id}, "
                "which does not take control orders"
            )
        grouped[workstation_id].append({
            "item_type": line.item_type,
            "item_id": line.item_id,
            "quantity": line.requested_quantity,
            "product_id": line.product_id,
        })
    return dict(grouped)


def build_schedule_request(order: ProductionOrder) -> dict:
    tasks = []
    for workstation_id, lines in sorted(_routed_lines(order).items()):
        for line in lines:
            tasks.append({
                "item_type": line["item_type"],
                "item_id": line["item_id"],
                "quantity": line["quantity"],
                "workstation_id": workstation_id,
            })
    return {
        "order_number": order.order_number,
        "priority": order.priority,
        "due_date": order.due_date.date().isoformat() if order.due_date else None,
        "tasks": tasks,
    }


def dispatch(order_id: int, *, scheduler=None, timeout: Optional[float] = None) -> ProductionOrder:
    # Phase 1: read-only precheck and request building, no locks held
    order = get_production_order(order_id)
    PRODUCTION_MACHINE.check(order, "dispatch")
    request = build_schedule_request(order)

    # Phase 2: external call, no locks held
    scheduler = scheduler or get_scheduler()
    if timeout is None:
        timeout = current_app.config.get("SCHEDULER_TIMEOUT_SECONDS", 5.0)
    try:
        result: ScheduleResult = scheduler.create_schedule(request, timeout=timeout)
    except SchedulerUnavailable as exc:
        current_app.logger.warning("Scheduler unavailable for production order %s: %s", order.order_number, exc)
        raise

    # Phase 3: apply through an ordinary locked transition
    def _op(locked: ProductionOrder) -> ProductionOrder:
        pipeline.transition(locked, "dispatch", detail=f"schedule {result.schedule_id}")
        locked.schedule_id = result.schedule_id
        locked.expected_completion = result.expected_completion
        locked.schedule_payload = json.dumps(result.to_dict(), sort_keys=True)

        for workstation_id, lines in sorted(_routed_lines(locked).items()):
            model = AssemblyControlOrder if workstation_id in ASSEMBLY_WORKSTATIONS else ProductionControlOrder
            pipeline.create_order(
                model,
                workstation_id=workstation_id,
                lines=lines,
                parent=locked,
                priority=locked.priority,
                due_date=locked.due_date,
                notes=f"Production order {locked.order_number}",
            )
        return locked
    return pipeline.transact(ProductionOrder, order_id, _op)


def cancel(order_id: int, *, reason: Optional[str] = None) -> ProductionOrder:
    def _op(order: ProductionOrder) -> ProductionOrder:
        pipeline.transition(order, "cancel", detail=reason)
        return order
    return pipeline.transact(ProductionOrder, order_id, _op)


def _control_children(order: ProductionOrder) -> list:
    return [c for c in order.children if c.order_type in CONTROL_ORDER_TYPES]


def on_control_started(order: ProductionOrder, control_order_id: int) -> None:
    if order.status != ProductionStatus.DISPATCHED.value:
        return
    pipeline.transition(order, "start", detail=f"control order {control_order_id} started")
    pipeline.stamp(order, "started_at")


def on_control_completed(order: ProductionOrder, control_order_id: int) -> bool:
    """
    Complete the production order once every control order is COMPLETED.

    Produced modules are moved from their workstation to the modules
    supermarket. Returns True when this call completed the order.
    """
    if order.status not in (ProductionStatus.DISPATCHED.value, ProductionStatus.IN_PRODUCTION.value):
        return False
    controls = _control_children(order)
    if not controls or any(c.status != ControlStatus.COMPLETED.value for c in controls):
        return False

    effects = []
    for control in controls:
        for line in control.lines:
            note = f"Production order {order.order_number}"
            effects.append(StockEffect(
                control.workstation_id, line.item_type, line.item_id,
                -line.requested_quantity, stock_ledger.REASON_TRANSFER_OUT, note,
            ))
            effects.append(StockEffect(
                WS_MODULES_SUPERMARKET, line.item_type, line.item_id,
                line.requested_quantity, stock_ledger.REASON_TRANSFER_IN, note,
            ))
    stock_ledger.apply_effects(effects, order_id=order.id)
    for line in order.lines:
        line.fulfilled_quantity = line.requested_quantity

    pipeline.transition(order, "complete", detail=f"last control order {control_order_id}")
    pipeline.stamp(order, "completed_at")
    event_service.emit(
        event_service.PRODUCTION_ORDER_COMPLETED,
        order=order,
        target_order_id=order.parent_id,
        payload={"production_order_id": order.id},
    )
    return True
