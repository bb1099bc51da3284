# Overview: Customer orders at the Plant Warehouse (WS-7).

"""
Customer order flow

    create   -> PENDING
    confirm  -> CONFIRMED, scenario classified and stored
    fulfill  DIRECT_FULFILLMENT: debit products at WS-7 -> COMPLETED
             otherwise: spawn a warehouse order for the needed modules -> PROCESSING
    complete only after WarehouseLineageCompleted (every final-assembly order
             of the warehouse order submitted): debit products -> COMPLETED
    cancel   from PENDING / CONFIRMED / PROCESSING
"""

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from ..errors import IllegalTransition
from ..factory import ITEM_MODULE, ITEM_PRODUCT, WS_MODULES_SUPERMARKET, WS_PLANT_WAREHOUSE
from ..models import CustomerOrder, WarehouseOrder
from ..validation import ValidationError, parse_order_lines, parse_priority
from . import audit_service, bom_service, pipeline, stock_ledger, stock_store
from .order_state import CustomerStatus
from .scenario_resolver import Scenario, shortfall
from .stock_ledger import StockEffect


def create_customer_order(*, lines, priority=None, notes: Optional[str] = None) -> CustomerOrder:
    parsed = parse_order_lines(lines, expected_type=ITEM_PRODUCT)
    return pipeline.create_and_commit(
        CustomerOrder,
        workstation_id=WS_PLANT_WAREHOUSE,
        lines=parsed,
        priority=parse_priority(priority),
        notes=notes,
    )


def get_customer_order(order_id: int) -> CustomerOrder:
    return pipeline.get_order(CustomerOrder, order_id)


def _classify(order: CustomerOrder) -> Scenario:
    return pipeline.classify_lines(
        pipeline.line_requests(order),
        stage_workstation_id=order.workstation_id,
        upstream_workstation_id=WS_MODULES_SUPERMARKET,
    )


def current_scenario(order_id: int) -> Scenario:
    """Live re-evaluation against current stock and settings; nothing is persisted."""
    return _classify(get_customer_order(order_id))


def confirm(order_id: int) -> CustomerOrder:
    def _op(order: CustomerOrder) -> CustomerOrder:
        scenario = _classify(order)
        pipeline.transition(order, "confirm", detail=f"scenario={scenario.value}")
        order.scenario = scenario.value
        pipeline.stamp(order, "confirmed_at")
        return order
    return pipeline.transact(CustomerOrder, order_id, _op)


def _debit_products(order: CustomerOrder) -> None:
    effects = [
        StockEffect(
            order.workstation_id,
            line.item_type,
            line.item_id,
            -line.requested_quantity,
            stock_ledger.REASON_FULFILLMENT,
            f"Customer order {order.order_number}",
        )
        for line in order.lines
    ]
    stock_ledger.apply_effects(effects, order_id=order.id)
    for line in order.lines:
        line.fulfilled_quantity = line.requested_quantity


def _module_lines_for(order: CustomerOrder, scenario: Scenario) -> list[dict]:
    """Modules needed to build the products this order is short of (all of them for DIRECT_PRODUCTION)."""
    requests = pipeline.line_requests(order)
    if scenario == Scenario.DIRECT_PRODUCTION:
        products = {}
        for r in requests:
            products[r.item_id] = products.get(r.item_id, 0) + r.quantity
    else:
        keys = {(order.workstation_id, r.item_type, r.item_id) for r in requests}
        missing = shortfall(requests, stock_store.snapshot(keys), order.workstation_id)
        products = {item_id: qty for (_, item_id), qty in missing.items()}

    modules: dict[tuple[int, int], int] = defaultdict(int)
    for product_id, qty in sorted(products.items()):
        components = bom_service.components_of(ITEM_PRODUCT, product_id)
        if not components:
            raise ValidationError(f"Product {product_id} has no bill of materials")
        for component_type, component_id, per_unit in components:
            if component_type != ITEM_MODULE:
                continue
            modules[(product_id, component_id)] += per_unit * qty

    return [
        {"item_type": ITEM_MODULE, "item_id": module_id, "quantity": qty, "product_id": product_id}
        for (product_id, module_id), qty in sorted(modules.items())
    ]


def fulfill(order_id: int) -> CustomerOrder:
    def _op(order: CustomerOrder) -> CustomerOrder:
        scenario = Scenario(order.scenario)
        if scenario == Scenario.DIRECT_FULFILLMENT:
            _debit_products(order)
            pipeline.transition(order, "fulfill", CustomerStatus.COMPLETED, detail="shipped from stock")
            pipeline.stamp(order, "completed_at")
            return order

        module_lines = _module_lines_for(order, scenario)
        if not module_lines:
            # restocked since confirm: nothing left to build, ship from WS-7
            _debit_products(order)
            pipeline.transition(
                order, "fulfill", CustomerStatus.COMPLETED,
                detail=f"scenario={scenario.value}, shortfall covered since confirm",
            )
            pipeline.stamp(order, "completed_at")
            return order

        pipeline.transition(order, "fulfill", CustomerStatus.PROCESSING, detail=f"scenario={scenario.value}")
        pipeline.create_order(
            WarehouseOrder,
            workstation_id=WS_MODULES_SUPERMARKET,
            lines=module_lines,
            parent=order,
            priority=order.priority,
            scenario=Scenario.DIRECT_PRODUCTION.value if scenario == Scenario.DIRECT_PRODUCTION else None,
            notes=f"For customer order {order.order_number}",
        )
        return order
    return pipeline.transact(CustomerOrder, order_id, _op)


def complete(order_id: int) -> CustomerOrder:
    def _op(order: CustomerOrder) -> CustomerOrder:
        if order.status == CustomerStatus.PROCESSING.value and order.lineage_completed_at is None:
            raise IllegalTransition(
                order.order_type, order.id, order.status, "complete",
                reason="final assembly for this order has not been submitted",
            )
        pipeline.transition(order, "complete")
        _debit_products(order)
        pipeline.stamp(order, "completed_at")
        return order
    return pipeline.transact(CustomerOrder, order_id, _op)


def cancel(order_id: int, *, reason: Optional[str] = None) -> CustomerOrder:
    def _op(order: CustomerOrder) -> CustomerOrder:
        pipeline.transition(order, "cancel", detail=reason)
        return order
    return pipeline.transact(CustomerOrder, order_id, _op)


def mark_lineage_completed(order: CustomerOrder, warehouse_order_id: int) -> None:
    """Event-side: the warehouse lineage finished; complete becomes legal."""
    if order.lineage_completed_at is not None:
        return
    pipeline.stamp(order, "lineage_completed_at")
    audit_service.record(
        order_id=order.id,
        event_type="LINEAGE_COMPLETED",
        detail=f"warehouse order {warehouse_order_id}",
    )
