# Overview: Pipeline event outbox; cross-order effects run as their own transactions.

"""
Pipeline events

A transition never calls into another order's transition. It appends a
PipelineEvent in its own transaction (emit), and after that transaction
commits the dispatcher hands each pending event to its handler, which locks
the target order, applies the parent-side transition and marks the event
consumed, all in one transaction.

If a handler fails with a domain error the event stays pending with
last_error set; replay_pending() (CLI: flask orders replay-events) retries
it. Handlers are idempotent: they re-check the target's state first.
"""

from __future__ import annotations

import json
import threading
from typing import Callable, Optional

from flask import current_app

from ..errors import PlantOpsError
from ..extensions import db
from ..models import Order, PipelineEvent
from ..time_utils import utcnow
from .concurrency import acquire_for_transaction, atomic, lock_for_update, run_with_retry


WORKSTATION_ORDER_COMPLETED = "WorkstationOrderCompleted"
CONTROL_ORDER_STARTED = "ControlOrderStarted"
CONTROL_ORDER_COMPLETED = "ControlOrderCompleted"
PRODUCTION_ORDER_COMPLETED = "ProductionOrderCompleted"
SUPPLY_ORDER_FULFILLED = "SupplyOrderFulfilled"
FINAL_ASSEMBLY_SUBMITTED = "FinalAssemblySubmitted"
WAREHOUSE_ORDER_FULFILLED = "WarehouseOrderFulfilled"
WAREHOUSE_LINEAGE_COMPLETED = "WarehouseLineageCompleted"

_handlers: dict[str, Callable[[PipelineEvent, Order], None]] = {}
_local = threading.local()


def handles(event_type: str):
    """Register the handler for one event type."""
    def decorator(func):
        _handlers[event_type] = func
        return func
    return decorator


def emit(
    event_type: str,
    *,
    order: Order,
    target_order_id: Optional[int],
    payload: Optional[dict] = None,
) -> Optional[PipelineEvent]:
    """Append an event inside the caller's transaction. Orders without a target emit nothing."""
    if target_order_id is None:
        return None
    event = PipelineEvent(
        event_type=event_type,
        order_id=order.id,
        target_order_id=target_order_id,
        payload=json.dumps(payload or {}, sort_keys=True),
    )
    db.session.add(event)
    db.session.flush()
    return event


def pending_events(limit: int = 100) -> list[PipelineEvent]:
    return (
        db.session.query(PipelineEvent)
        .filter(PipelineEvent.consumed_at.is_(None))
        .order_by(PipelineEvent.id.asc())
        .limit(limit)
        .all()
    )


def _record_failure(event_id: int, exc: Exception) -> None:
    with atomic():
        event = db.session.get(PipelineEvent, event_id)
        event.attempts = (event.attempts or 0) + 1
        event.last_error = str(exc)[:500]


def _process(event_id: int) -> bool:
    def _op() -> bool:
        with atomic():
            acquire_for_transaction(("event", event_id))
            event = lock_for_update(db.session.query(PipelineEvent).filter_by(id=event_id)).first()
            if event is None or event.consumed_at is not None:
                return False
            handler = _handlers.get(event.event_type)
            if handler is None:
                raise PlantOpsError(f"No handler registered for {event.event_type}")
            acquire_for_transaction(("order", event.target_order_id))
            target = lock_for_update(db.session.query(Order).filter_by(id=event.target_order_id)).first()
            if target is None:
                raise PlantOpsError(f"Event {event.id} targets missing order {event.target_order_id}")
            handler(event, target)
            event.consumed_at = utcnow()
            event.attempts = (event.attempts or 0) + 1
            return True

    try:
        return run_with_retry(_op)
    except PlantOpsError as exc:
        current_app.logger.warning("Pipeline event %s left pending: %s", event_id, exc)
        _record_failure(event_id, exc)
        return False


def dispatch_pending(max_rounds: int = 50) -> int:
    """
    Consume pending events (and the events their handlers emit) in id order.

    Returns the number of events consumed. Re-entrant calls from inside a
    handler return immediately; the outer loop picks up new events.
    """
    # registers handlers
    from . import event_handlers  # noqa: F401

    if getattr(_local, "dispatching", False):
        return 0
    _local.dispatching = True
    consumed = 0
    failed: set[int] = set()
    try:
        for _ in range(max_rounds):
            batch = [e.id for e in pending_events() if e.id not in failed]
            if not batch:
                break
            for event_id in batch:
                if _process(event_id):
                    consumed += 1
                else:
                    failed.add(event_id)
    finally:
        _local.dispatching = False
    return consumed


def dispatch_after_commit() -> int:
    if not current_app.config.get("PIPELINE_EVENTS_AUTODISPATCH", True):
        return 0
    return dispatch_pending()


def replay_pending() -> int:
    """Retry every unconsumed event, including ones that failed before."""
    return dispatch_pending()
