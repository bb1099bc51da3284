# Overview: Warehouse orders at the Modules Supermarket (WS-8).

from __future__ import annotations

from typing import Optional

from ..factory import ITEM_MODULE, ITEM_PRODUCT, WS_FINAL_ASSEMBLY, WS_MODULES_SUPERMARKET
from ..models import FinalAssemblyOrder, ProductionOrder, WarehouseOrder
from ..validation import ValidationError, coerce_int, parse_order_lines, parse_priority
from . import audit_service, bom_service, event_service, pipeline, stock_ledger, stock_store
from .order_state import FinalAssemblyStatus, WarehouseStatus
from .scenario_resolver import Scenario, shortfall
from .stock_ledger import StockEffect


def create_warehouse_order(*, lines, priority=None, notes: Optional[str] = None) -> WarehouseOrder:
    parsed = parse_order_lines(lines, expected_type=ITEM_MODULE)
    for raw, line in zip(lines, parsed):
        if raw.get("product_id") is not None:
            line["product_id"] = coerce_int("product_id", raw["product_id"])
    return pipeline.create_and_commit(
        WarehouseOrder,
        workstation_id=WS_MODULES_SUPERMARKET,
        lines=parsed,
        priority=parse_priority(priority),
        notes=notes,
    )


def get_warehouse_order(order_id: int) -> WarehouseOrder:
    return pipeline.get_order(WarehouseOrder, order_id)


def confirm(order_id: int) -> WarehouseOrder:
    """
    Re-classify against module stock at WS-8.

    DIRECT_FULFILLMENT stays CONFIRMED and can be fulfilled. Anything else
    spawns a production order (the module shortfall, or every line when the
    customer order asked for DIRECT_PRODUCTION) and waits for it.
    """
    def _op(order: WarehouseOrder) -> WarehouseOrder:
        requests = pipeline.line_requests(order)
        if order.scenario == Scenario.DIRECT_PRODUCTION.value:
            scenario = Scenario.DIRECT_PRODUCTION
        else:
            scenario = pipeline.classify_lines(
                requests,
                stage_workstation_id=order.workstation_id,
                use_lot_size=False,
            )
        order.scenario = scenario.value
        pipeline.stamp(order, "confirmed_at")

        if scenario == Scenario.DIRECT_FULFILLMENT:
            pipeline.transition(order, "confirm", WarehouseStatus.CONFIRMED, detail=f"scenario={scenario.value}")
            return order

        if scenario == Scenario.DIRECT_PRODUCTION:
            production_lines = [
                {"item_type": l.item_type, "item_id": l.item_id, "quantity": l.requested_quantity, "product_id": l.product_id}
                for l in order.lines
            ]
        else:
            keys = {(order.workstation_id, r.item_type, r.item_id) for r in requests}
            missing = shortfall(requests, stock_store.snapshot(keys), order.workstation_id)
            production_lines = [
                {"item_type": item_type, "item_id": item_id, "quantity": qty}
                for (item_type, item_id), qty in sorted(missing.items())
            ]

        pipeline.transition(order, "confirm", WarehouseStatus.AWAITING_PRODUCTION, detail=f"scenario={scenario.value}")
        pipeline.create_order(
            ProductionOrder,
            workstation_id=order.workstation_id,
            lines=production_lines,
            parent=order,
            priority=order.priority,
            notes=f"Modules for warehouse order {order.order_number}",
        )
        return order
    return pipeline.transact(WarehouseOrder, order_id, _op)


def _products_of(order: WarehouseOrder) -> dict[int, int]:
    """Product quantities implied by the module lines (module qty / BOM quantity per product)."""
    products: dict[int, int] = {}
    for line in order.lines:
        if line.product_id is None:
            continue
        per_unit = {
            component_id: qty
            for component_type, component_id, qty in bom_service.components_of(ITEM_PRODUCT, line.product_id)
            if component_type == ITEM_MODULE
        }.get(line.item_id)
        if not per_unit:
            raise ValidationError(f"Module {line.item_id} is not in the BOM of product {line.product_id}")
        products[line.product_id] = max(products.get(line.product_id, 0), line.requested_quantity // per_unit)
    return products


def fulfill(order_id: int) -> WarehouseOrder:
    """Release modules from WS-8 to final assembly: debit them and spawn one final-assembly order per product."""
    def _op(order: WarehouseOrder) -> WarehouseOrder:
        pipeline.transition(order, "fulfill")
        effects = [
            StockEffect(
                order.workstation_id,
                line.item_type,
                line.item_id,
                -line.requested_quantity,
                stock_ledger.REASON_FULFILLMENT,
                f"Warehouse order {order.order_number}",
            )
            for line in order.lines
        ]
        stock_ledger.apply_effects(effects, order_id=order.id)
        for line in order.lines:
            line.fulfilled_quantity = line.requested_quantity

        for product_id, qty in sorted(_products_of(order).items()):
            pipeline.create_order(
                FinalAssemblyOrder,
                workstation_id=WS_FINAL_ASSEMBLY,
                lines=[{"item_type": ITEM_PRODUCT, "item_id": product_id, "quantity": qty}],
                parent=order,
                priority=order.priority,
                notes=f"Assemble for warehouse order {order.order_number}",
            )
        pipeline.stamp(order, "completed_at")
        event_service.emit(
            event_service.WAREHOUSE_ORDER_FULFILLED,
            order=order,
            target_order_id=order.parent_id,
            payload={"warehouse_order_id": order.id},
        )
        return order
    return pipeline.transact(WarehouseOrder, order_id, _op)


def cancel(order_id: int, *, reason: Optional[str] = None) -> WarehouseOrder:
    def _op(order: WarehouseOrder) -> WarehouseOrder:
        pipeline.transition(order, "cancel", detail=reason)
        return order
    return pipeline.transact(WarehouseOrder, order_id, _op)


def on_production_completed(order: WarehouseOrder, production_order_id: int) -> None:
    if order.status != WarehouseStatus.AWAITING_PRODUCTION.value:
        return
    pipeline.transition(order, "modules_ready", detail=f"production order {production_order_id} completed")


def on_final_assembly_submitted(order: WarehouseOrder) -> bool:
    """
    Mark the lineage complete once every final-assembly child is SUBMITTED.

    Returns True the first time the lineage completes.
    """
    if order.lineage_completed_at is not None:
        return False
    assemblies = [c for c in order.children if isinstance(c, FinalAssemblyOrder)]
    if not assemblies or any(a.status != FinalAssemblyStatus.SUBMITTED.value for a in assemblies):
        return False
    pipeline.stamp(order, "lineage_completed_at")
    audit_service.record(order_id=order.id, event_type="LINEAGE_COMPLETED", detail="all final assembly submitted")
    return True
