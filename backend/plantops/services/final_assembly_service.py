# Overview: Final assembly orders at WS-6; submit is the only step that moves stock.

"""
PENDING -> confirm -> CONFIRMED -> start -> IN_PROGRESS -> complete -> COMPLETED -> submit -> SUBMITTED

COMPLETED records that assembly finished and changes no stock. submit
credits the product to the Plant Warehouse (WS-7) and emits
FinalAssemblySubmitted, which is what lets the parent warehouse and customer
orders finish. There is no separate COMPLETED_ASSEMBLY status.
"""

from __future__ import annotations

from typing import Optional

from ..factory import WS_PLANT_WAREHOUSE
from ..models import FinalAssemblyOrder
from . import event_service, pipeline, stock_ledger
from .stock_ledger import StockEffect


def get_final_assembly_order(order_id: int) -> FinalAssemblyOrder:
    return pipeline.get_order(FinalAssemblyOrder, order_id)


def list_final_assembly_orders(*, status: Optional[str] = None) -> list[FinalAssemblyOrder]:
    return pipeline.list_orders(FinalAssemblyOrder, status=status)


def confirm(order_id: int) -> FinalAssemblyOrder:
    def _op(order: FinalAssemblyOrder) -> FinalAssemblyOrder:
        pipeline.transition(order, "confirm")
        pipeline.stamp(order, "confirmed_at")
        return order
    return pipeline.transact(FinalAssemblyOrder, order_id, _op)


def start(order_id: int) -> FinalAssemblyOrder:
    def _op(order: FinalAssemblyOrder) -> FinalAssemblyOrder:
        pipeline.transition(order, "start")
        pipeline.stamp(order, "started_at")
        return order
    return pipeline.transact(FinalAssemblyOrder, order_id, _op)


def complete(order_id: int) -> FinalAssemblyOrder:
    def _op(order: FinalAssemblyOrder) -> FinalAssemblyOrder:
        pipeline.transition(order, "complete")
        pipeline.stamp(order, "completed_at")
        return order
    return pipeline.transact(FinalAssemblyOrder, order_id, _op)


def submit(order_id: int) -> FinalAssemblyOrder:
    def _op(order: FinalAssemblyOrder) -> FinalAssemblyOrder:
        pipeline.transition(order, "submit")
        effects = [
            StockEffect(
                WS_PLANT_WAREHOUSE,
                line.item_type,
                line.item_id,
                line.requested_quantity,
                stock_ledger.REASON_PRODUCTION_COMPLETE,
                f"Final assembly {order.order_number}",
            )
            for line in order.lines
        ]
        stock_ledger.apply_effects(effects, order_id=order.id)
        for line in order.lines:
            line.fulfilled_quantity = line.requested_quantity
        pipeline.stamp(order, "submitted_at")
        event_service.emit(
            event_service.FINAL_ASSEMBLY_SUBMITTED,
            order=order,
            target_order_id=order.parent_id,
            payload={"final_assembly_order_id": order.id},
        )
        return order
    return pipeline.transact(FinalAssemblyOrder, order_id, _op)
