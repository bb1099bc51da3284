"""
Order pipeline tests on the seeded demo factory.

Demo BOM: product 1 = module 1 + module 2; module 2 = part 3 + 2 x part 4,
assembled at WS-5. Opening stock: 5 of each product at WS-7, 5 of each
module at WS-8, 100 of each part at WS-9. Lot size is 100 unless a test
changes it.
"""

import pytest

from plantops.errors import IllegalTransition, InsufficientStock, SchedulerUnavailable
from plantops.models import (
    AssemblyControlOrder,
    FinalAssemblyOrder,
    Order,
    PipelineEvent,
    ProductionOrder,
    StockLedgerEntry,
    WarehouseOrder,
    WorkstationOrder,
)
from plantops.services import (
    audit_service,
    control_order_service,
    customer_order_service,
    event_service,
    final_assembly_service,
    pipeline,
    production_order_service,
    settings_service,
    stock_ledger,
    stock_store,
    supply_order_service,
    warehouse_order_service,
    workstation_order_service,
)
from plantops.services.concurrency import atomic
from plantops.services.scenario_resolver import Scenario
from plantops.validation import ValidationError


def _children(db_session, order_id, model):
    return (
        db_session.query(model)
        .filter(model.parent_id == order_id)
        .order_by(model.id)
        .all()
    )


def _only_child(db_session, order_id, model):
    children = _children(db_session, order_id, model)
    assert len(children) == 1
    return children[0]


def _customer_order(product_id, quantity):
    order = customer_order_service.create_customer_order(
        lines=[{"item_type": "PRODUCT", "item_id": product_id, "quantity": quantity}],
    )
    return customer_order_service.confirm(order.id)


def _run_final_assembly(fa_id):
    final_assembly_service.confirm(fa_id)
    final_assembly_service.start(fa_id)
    return final_assembly_service.complete(fa_id)


def test_direct_fulfillment_debits_plant_warehouse(factory):
    stock_store.set_absolute(workstation_id=7, item_type="PRODUCT", item_id=1, quantity=50)

    order = _customer_order(1, 5)
    assert order.order_number.startswith("CO-")
    assert order.scenario == Scenario.DIRECT_FULFILLMENT.value

    order = customer_order_service.fulfill(order.id)

    assert order.status == "COMPLETED"
    assert order.lines[0].fulfilled_quantity == 5
    entry = stock_ledger.history(workstation_id=7, item_type="PRODUCT", item_id=1, limit=1)[0]
    assert (entry.delta, entry.balance_after, entry.reason_code) == (-5, 45, "FULFILLMENT")
    assert entry.order_id == order.id


def test_illegal_transitions_raise(factory):
    order = _customer_order(1, 1)
    with pytest.raises(IllegalTransition):
        customer_order_service.confirm(order.id)
    with pytest.raises(IllegalTransition):
        customer_order_service.complete(order.id)

    customer_order_service.fulfill(order.id)
    with pytest.raises(IllegalTransition):
        customer_order_service.cancel(order.id)


def test_cancel_pending_customer_order(factory):
    order = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 1}])
    order = customer_order_service.cancel(order.id, reason="customer changed mind")
    assert order.status == "CANCELLED"
    trail = [(a.event_type, a.to_status) for a in audit_service.audit_trail(order.id)]
    assert trail == [("CREATED", "PENDING"), ("CANCEL", "CANCELLED")]


def test_fulfill_with_stale_scenario_fails_cleanly(factory):
    order = _customer_order(1, 5)
    stock_ledger.adjust(workstation_id=7, item_type="PRODUCT", item_id=1, delta=-3)

    with pytest.raises(InsufficientStock):
        customer_order_service.fulfill(order.id)

    assert customer_order_service.get_customer_order(order.id).status == "CONFIRMED"
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 2


def test_restock_between_confirm_and_fulfill_ships_from_stock(factory):
    order = _customer_order(1, 7)
    assert order.scenario == Scenario.WAREHOUSE_ORDER_NEEDED.value
    stock_store.set_absolute(workstation_id=7, item_type="PRODUCT", item_id=1, quantity=20)

    order = customer_order_service.fulfill(order.id)

    assert order.status == "COMPLETED"
    assert order.lines[0].fulfilled_quantity == 7
    assert _children(factory, order.id, Order) == []
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 13
    assert stock_ledger.reconcile() == []


def test_orders_cannot_be_created_without_lines(factory):
    parent = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 1}])

    with pytest.raises(ValidationError, match="at least one line"):
        with atomic():
            pipeline.create_order(WarehouseOrder, workstation_id=8, lines=[], parent=parent)

    assert _children(factory, parent.id, Order) == []


def test_warehouse_path_and_final_assembly_submit(factory):
    # 7 wanted, 5 on hand; modules for the other 2 are in the supermarket
    order = _customer_order(1, 7)
    assert order.scenario == Scenario.WAREHOUSE_ORDER_NEEDED.value

    order = customer_order_service.fulfill(order.id)
    assert order.status == "PROCESSING"

    warehouse = _only_child(factory, order.id, WarehouseOrder)
    assert sorted((l.item_id, l.requested_quantity, l.product_id) for l in warehouse.lines) == [
        (1, 2, 1), (2, 2, 1),
    ]

    warehouse = warehouse_order_service.confirm(warehouse.id)
    assert warehouse.status == "CONFIRMED"
    warehouse = warehouse_order_service.fulfill(warehouse.id)
    assert warehouse.status == "FULFILLED"
    assert stock_store.quantity_of(8, "MODULE", 1) == 3
    assert stock_store.quantity_of(8, "MODULE", 2) == 3

    assembly = _only_child(factory, warehouse.id, FinalAssemblyOrder)
    assert assembly.workstation_id == 6
    assert assembly.lines[0].requested_quantity == 2

    assembly = _run_final_assembly(assembly.id)
    assert assembly.status == "COMPLETED"
    # assembly completion alone moves no stock and does not unblock the customer order
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 5
    with pytest.raises(IllegalTransition):
        customer_order_service.complete(order.id)

    assembly = final_assembly_service.submit(assembly.id)
    assert assembly.status == "SUBMITTED"
    assert [a.id for a in final_assembly_service.list_final_assembly_orders(status="SUBMITTED")] == [assembly.id]
    assert final_assembly_service.get_final_assembly_order(assembly.id).submitted_at is not None
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 7
    assert warehouse_order_service.get_warehouse_order(warehouse.id).lineage_completed_at is not None

    order = customer_order_service.complete(order.id)
    assert order.status == "COMPLETED"
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 0
    assert stock_ledger.reconcile() == []


def test_full_production_lineage(factory, scheduler):
    stock_store.set_absolute(workstation_id=8, item_type="MODULE", item_id=2, quantity=0)

    order = _customer_order(1, 8)
    assert order.scenario == Scenario.PRODUCTION_REQUIRED.value
    customer_order_service.fulfill(order.id)

    warehouse = _only_child(factory, order.id, WarehouseOrder)
    warehouse = warehouse_order_service.confirm(warehouse.id)
    assert warehouse.status == "AWAITING_PRODUCTION"

    production = _only_child(factory, warehouse.id, ProductionOrder)
    assert [(l.item_id, l.requested_quantity) for l in production.lines] == [(2, 3)]

    production_order_service.confirm(production.id)
    production = production_order_service.schedule(production.id, due_date="2026-02-01")
    assert production.status == "SCHEDULED"
    production = production_order_service.dispatch(production.id)
    assert production.status == "DISPATCHED"
    assert production.schedule_id == "SCH-1"
    request, _ = scheduler.requests[0]
    assert request["due_date"] == "2026-02-01"
    assert request["tasks"] == [{"item_type": "MODULE", "item_id": 2, "quantity": 3, "workstation_id": 5}]

    control = _only_child(factory, production.id, AssemblyControlOrder)
    assert control.workstation_id == 5
    assert control_order_service.parts_shortfall(control) == {3: 3, 4: 6}

    supply = control_order_service.request_supply(control.id)
    assert supply.source_workstation_id == 9
    with pytest.raises(IllegalTransition):
        control_order_service.start(control.id)

    supply_order_service.start(supply.id)
    supply = supply_order_service.fulfill(supply.id)
    assert supply.status == "FULFILLED"
    assert stock_store.quantity_of(9, "PART", 4) == 94
    assert stock_store.quantity_of(5, "PART", 4) == 6

    control = control_order_service.start(control.id)
    assert control.status == "IN_PROGRESS"
    assert production_order_service.get_production_order(production.id).status == "IN_PRODUCTION"

    job = _only_child(factory, control.id, WorkstationOrder)
    assert job.status == "PENDING"
    workstation_order_service.start(job.id)
    job = workstation_order_service.complete(job.id)
    assert job.status == "COMPLETED"

    # events cascade: control -> production -> warehouse
    assert control_order_service.get_control_order(control.id).status == "COMPLETED"
    production = production_order_service.get_production_order(production.id)
    assert production.status == "COMPLETED"
    assert warehouse_order_service.get_warehouse_order(warehouse.id).status == "MODULES_READY"
    assert stock_store.quantity_of(5, "PART", 3) == 0
    assert stock_store.quantity_of(5, "MODULE", 2) == 0
    assert stock_store.quantity_of(8, "MODULE", 2) == 3

    warehouse_order_service.fulfill(warehouse.id)
    assembly = _only_child(factory, warehouse.id, FinalAssemblyOrder)
    _run_final_assembly(assembly.id)
    final_assembly_service.submit(assembly.id)

    order = customer_order_service.complete(order.id)
    assert order.status == "COMPLETED"
    assert stock_store.quantity_of(7, "PRODUCT", 1) == 0
    assert event_service.pending_events() == []
    assert stock_ledger.reconcile() == []

    reasons = {e.reason_code for e in factory.query(StockLedgerEntry).all()}
    assert {"CONSUMPTION", "PRODUCTION_COMPLETE", "TRANSFER_OUT", "TRANSFER_IN", "REPLENISHMENT"} <= reasons


def test_direct_production_orders_every_module(factory):
    settings_service.set_lot_size_threshold(3)

    order = _customer_order(1, 3)
    assert order.scenario == Scenario.DIRECT_PRODUCTION.value
    customer_order_service.fulfill(order.id)

    warehouse = _only_child(factory, order.id, WarehouseOrder)
    warehouse = warehouse_order_service.confirm(warehouse.id)
    # modules are on hand, but the lot goes to production anyway
    assert warehouse.status == "AWAITING_PRODUCTION"
    production = _only_child(factory, warehouse.id, ProductionOrder)
    assert sorted((l.item_id, l.requested_quantity) for l in production.lines) == [(1, 3), (2, 3)]


def test_scheduler_failure_leaves_order_scheduled(factory, scheduler):
    production = production_order_service.create_production_order(
        lines=[{"item_type": "MODULE", "item_id": 1, "quantity": 2}],
    )
    production_order_service.confirm(production.id)
    production_order_service.schedule(production.id)

    scheduler.fail = True
    with pytest.raises(SchedulerUnavailable):
        production_order_service.dispatch(production.id)

    production = production_order_service.get_production_order(production.id)
    assert production.status == "SCHEDULED"
    assert production.schedule_id is None
    assert _children(factory, production.id, AssemblyControlOrder) == []

    scheduler.fail = False
    production = production_order_service.dispatch(production.id)
    assert production.status == "DISPATCHED"
    assert len(scheduler.requests) == 2


def test_workstation_waits_for_parts_until_supply_fulfilled(factory, scheduler):
    production = production_order_service.create_production_order(
        lines=[{"item_type": "MODULE", "item_id": 1, "quantity": 1}],
    )
    production_order_service.confirm(production.id)
    production_order_service.schedule(production.id)
    production_order_service.dispatch(production.id)
    control = _only_child(factory, production.id, AssemblyControlOrder)
    assert control.workstation_id == 4

    control_order_service.start(control.id)
    job = _only_child(factory, control.id, WorkstationOrder)
    assert job.status == "WAITING_FOR_PARTS"
    with pytest.raises(IllegalTransition):
        workstation_order_service.start(job.id)
    with pytest.raises(IllegalTransition):
        workstation_order_service.parts_ready(job.id)

    supply = control_order_service.request_supply(control.id)
    assert sorted((l.item_id, l.requested_quantity) for l in supply.lines) == [(1, 2), (2, 1)]
    supply_order_service.start(supply.id)
    supply_order_service.fulfill(supply.id)

    assert workstation_order_service.get_workstation_order(job.id).status == "PENDING"
    assert supply_order_service.get_supply_order(supply.id).status == "FULFILLED"
    assert [s.id for s in supply_order_service.list_supply_orders(status="FULFILLED")] == [supply.id]
    assert [j.id for j in workstation_order_service.list_workstation_orders(workstation_id=4)] == [job.id]
    assert [c.id for c in control_order_service.list_control_orders(workstation_id=4)] == [control.id]


def test_rejected_supply_does_not_block_control_start(factory, scheduler):
    production = production_order_service.create_production_order(
        lines=[{"item_type": "MODULE", "item_id": 3, "quantity": 1}],
    )
    production_order_service.confirm(production.id)
    production_order_service.schedule(production.id)
    production_order_service.dispatch(production.id)
    control = _only_child(factory, production.id, AssemblyControlOrder)

    supply = control_order_service.request_supply(control.id)
    supply = supply_order_service.reject(supply.id, reason="parts on hold")
    assert supply.status == "REJECTED"
    with pytest.raises(IllegalTransition):
        supply_order_service.fulfill(supply.id)

    assert control_order_service.start(control.id).status == "IN_PROGRESS"


def test_control_halt_and_resume(factory, scheduler):
    production = production_order_service.create_production_order(
        lines=[{"item_type": "MODULE", "item_id": 2, "quantity": 1}],
    )
    production_order_service.confirm(production.id)
    production_order_service.schedule(production.id)
    production_order_service.dispatch(production.id)
    control = _only_child(factory, production.id, AssemblyControlOrder)

    control_order_service.assign(control.id)
    control_order_service.start(control.id)
    control = control_order_service.halt(control.id, reason="line maintenance")
    assert (control.status, control.halted_reason) == ("HALTED", "line maintenance")
    control = control_order_service.resume(control.id)
    assert (control.status, control.halted_reason) == ("IN_PROGRESS", None)
    control = control_order_service.abandon(control.id, reason="cancelled upstream")
    assert control.status == "ABANDONED"
    with pytest.raises(IllegalTransition):
        control_order_service.resume(control.id)


def test_pending_events_can_be_replayed(factory, manual_dispatch):
    order = _customer_order(1, 7)
    customer_order_service.fulfill(order.id)
    warehouse = _only_child(factory, order.id, WarehouseOrder)
    warehouse_order_service.confirm(warehouse.id)
    warehouse_order_service.fulfill(warehouse.id)
    assembly = _only_child(factory, warehouse.id, FinalAssemblyOrder)
    _run_final_assembly(assembly.id)
    final_assembly_service.submit(assembly.id)

    # nothing dispatched yet: the customer order is still blocked
    assert {e.event_type for e in event_service.pending_events()} == {
        event_service.WAREHOUSE_ORDER_FULFILLED,
        event_service.FINAL_ASSEMBLY_SUBMITTED,
    }
    with pytest.raises(IllegalTransition):
        customer_order_service.complete(order.id)

    consumed = event_service.replay_pending()

    # the FA event emits WarehouseLineageCompleted, consumed in the same replay
    assert consumed == 3
    assert event_service.pending_events() == []
    assert customer_order_service.complete(order.id).status == "COMPLETED"
    # replaying again is a no-op
    assert event_service.replay_pending() == 0


def test_failing_event_stays_pending_with_error(factory):
    order = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 1}])
    factory.add(PipelineEvent(
        event_type=event_service.WORKSTATION_ORDER_COMPLETED,
        order_id=order.id,
        target_order_id=order.id,
        payload="{}",
    ))
    factory.commit()

    assert event_service.dispatch_pending() == 0

    (event,) = event_service.pending_events()
    assert event.attempts == 1
    assert "expected" in event.last_error


def test_order_numbers_are_sequential_per_type(factory):
    first = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 1}])
    second = customer_order_service.create_customer_order(lines=[{"item_id": 2, "quantity": 1}])
    supply = supply_order_service.create_supply_order(
        workstation_id=4, lines=[{"item_type": "PART", "item_id": 1, "quantity": 2}],
    )
    assert (first.order_number, second.order_number) == ("CO-0001", "CO-0002")
    assert supply.order_number == "SO-0001"
    assert factory.query(Order).count() == 3


def test_audit_trail_follows_transitions(factory):
    order = _customer_order(1, 2)
    customer_order_service.fulfill(order.id)
    trail = [(a.event_type, a.from_status, a.to_status) for a in audit_service.audit_trail(order.id)]
    assert trail == [
        ("CREATED", None, "PENDING"),
        ("CONFIRM", "PENDING", "CONFIRMED"),
        ("FULFILL", "CONFIRMED", "COMPLETED"),
    ]
