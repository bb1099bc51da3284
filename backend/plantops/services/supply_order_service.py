# Overview: Supply orders from Parts Supply (WS-9) to a control order's workstation.

from __future__ import annotations

from typing import Optional

from ..factory import ITEM_PART, WS_PARTS_SUPPLY, is_known_workstation
from ..models import SupplyOrder
from ..validation import ValidationError, parse_order_lines, parse_priority
from . import event_service, pipeline, stock_ledger
from .stock_ledger import StockEffect


def create_supply_order(*, workstation_id: int, lines, priority=None, notes: Optional[str] = None) -> SupplyOrder:
    """Standalone supply request (control orders use control_order_service.request_supply)."""
    if not is_known_workstation(workstation_id) or workstation_id == WS_PARTS_SUPPLY:
        raise ValidationError("workstation_id must be a workstation other than Parts Supply")
    parsed = parse_order_lines(lines, expected_type=ITEM_PART)
    return pipeline.create_and_commit(
        SupplyOrder,
        workstation_id=workstation_id,
        source_workstation_id=WS_PARTS_SUPPLY,
        lines=parsed,
        priority=parse_priority(priority),
        notes=notes,
    )


def get_supply_order(order_id: int) -> SupplyOrder:
    return pipeline.get_order(SupplyOrder, order_id)


def list_supply_orders(*, status: Optional[str] = None) -> list[SupplyOrder]:
    return pipeline.list_orders(SupplyOrder, status=status)


def start(order_id: int) -> SupplyOrder:
    def _op(order: SupplyOrder) -> SupplyOrder:
        pipeline.transition(order, "start")
        pipeline.stamp(order, "started_at")
        return order
    return pipeline.transact(SupplyOrder, order_id, _op)


def fulfill(order_id: int) -> SupplyOrder:
    """Two-sided transfer: debit WS-9, credit the requesting workstation."""
    def _op(order: SupplyOrder) -> SupplyOrder:
        pipeline.transition(order, "fulfill")
        note = f"Supply order {order.order_number}"
        effects = []
        for line in order.lines:
            effects.append(StockEffect(
                order.source_workstation_id, line.item_type, line.item_id,
                -line.requested_quantity, stock_ledger.REASON_TRANSFER_OUT, note,
            ))
            effects.append(StockEffect(
                order.workstation_id, line.item_type, line.item_id,
                line.requested_quantity, stock_ledger.REASON_REPLENISHMENT, note,
            ))
        stock_ledger.apply_effects(effects, order_id=order.id)
        for line in order.lines:
            line.fulfilled_quantity = line.requested_quantity
        pipeline.stamp(order, "completed_at")
        event_service.emit(
            event_service.SUPPLY_ORDER_FULFILLED,
            order=order,
            target_order_id=order.parent_id,
            payload={"supply_order_id": order.id},
        )
        return order
    return pipeline.transact(SupplyOrder, order_id, _op)


def reject(order_id: int, *, reason: Optional[str] = None) -> SupplyOrder:
    def _op(order: SupplyOrder) -> SupplyOrder:
        pipeline.transition(order, "reject", detail=reason)
        order.halted_reason = reason
        pipeline.stamp(order, "completed_at")
        return order
    return pipeline.transact(SupplyOrder, order_id, _op)
