# Overview: Parent-side reactions to pipeline events.

from __future__ import annotations

from ..errors import PlantOpsError
from ..models import Order, PipelineEvent
from ..models.orders import (
    CONTROL_ORDER_TYPES,
    ORDER_CUSTOMER,
    ORDER_PRODUCTION,
    ORDER_WAREHOUSE,
)
from . import (
    audit_service,
    control_order_service,
    customer_order_service,
    event_service,
    production_order_service,
    warehouse_order_service,
)
from .event_service import handles


def _expect(target: Order, *order_types: str) -> None:
    if target.order_type not in order_types:
        raise PlantOpsError(f"Order {target.id} is {target.order_type}, expected {'/'.join(order_types)}")


@handles(event_service.WORKSTATION_ORDER_COMPLETED)
def _workstation_completed(event: PipelineEvent, target: Order) -> None:
    _expect(target, *CONTROL_ORDER_TYPES)
    control_order_service.complete_if_finished(target)


@handles(event_service.SUPPLY_ORDER_FULFILLED)
def _supply_fulfilled(event: PipelineEvent, target: Order) -> None:
    _expect(target, *CONTROL_ORDER_TYPES)
    control_order_service.on_supply_fulfilled(target, event.order_id)


@handles(event_service.CONTROL_ORDER_STARTED)
def _control_started(event: PipelineEvent, target: Order) -> None:
    _expect(target, ORDER_PRODUCTION)
    production_order_service.on_control_started(target, event.order_id)


@handles(event_service.CONTROL_ORDER_COMPLETED)
def _control_completed(event: PipelineEvent, target: Order) -> None:
    _expect(target, ORDER_PRODUCTION)
    production_order_service.on_control_completed(target, event.order_id)


@handles(event_service.PRODUCTION_ORDER_COMPLETED)
def _production_completed(event: PipelineEvent, target: Order) -> None:
    _expect(target, ORDER_WAREHOUSE)
    warehouse_order_service.on_production_completed(target, event.order_id)


@handles(event_service.FINAL_ASSEMBLY_SUBMITTED)
def _final_assembly_submitted(event: PipelineEvent, target: Order) -> None:
    _expect(target, ORDER_WAREHOUSE)
    if warehouse_order_service.on_final_assembly_submitted(target):
        event_service.emit(
            event_service.WAREHOUSE_LINEAGE_COMPLETED,
            order=target,
            target_order_id=target.parent_id,
            payload={"warehouse_order_id": target.id},
        )


@handles(event_service.WAREHOUSE_ORDER_FULFILLED)
def _warehouse_fulfilled(event: PipelineEvent, target: Order) -> None:
    _expect(target, ORDER_CUSTOMER)
    audit_service.record(
        order_id=target.id,
        event_type="MODULES_RELEASED",
        detail=f"warehouse order {event.order_id} fulfilled",
    )


@handles(event_service.WAREHOUSE_LINEAGE_COMPLETED)
def _warehouse_lineage_completed(event: PipelineEvent, target: Order) -> None:
    _expect(target, ORDER_CUSTOMER)
    customer_order_service.mark_lineage_completed(target, event.order_id)
