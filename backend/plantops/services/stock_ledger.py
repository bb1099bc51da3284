# Overview: Service-layer operations for the stock ledger; the only write path into stock records.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock
from ..extensions import db
from ..models import StockRecord, StockLedgerEntry
from ..time_utils import utcnow
from ..validation import ValidationError, enforce_stock_key
from .concurrency import acquire_for_transaction, atomic, lock_for_update, run_with_retry, stock_key

"""
Stock Ledger Invariants (authoritative)

- Every quantity change is one StockLedgerEntry; entries are never updated or deleted.
- balance_after == StockRecord.quantity at the instant the entry commits, and
  == previous balance_after for the same key + delta.
- StockRecord.quantity >= 0; a change that would go negative raises
  InsufficientStock and leaves no trace (no record, no entry).
- Record update and entry append share one transaction.
"""

REASON_PRODUCTION_COMPLETE = "PRODUCTION_COMPLETE"
REASON_FULFILLMENT = "FULFILLMENT"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_REPLENISHMENT = "REPLENISHMENT"
REASON_ADMIN_RESET = "ADMIN_RESET"
REASON_CONSUMPTION = "CONSUMPTION"
REASON_TRANSFER_OUT = "TRANSFER_OUT"
REASON_TRANSFER_IN = "TRANSFER_IN"

REASON_CODES = {
    REASON_PRODUCTION_COMPLETE,
    REASON_FULFILLMENT,
    REASON_ADJUSTMENT,
    REASON_REPLENISHMENT,
    REASON_ADMIN_RESET,
    REASON_CONSUMPTION,
    REASON_TRANSFER_OUT,
    REASON_TRANSFER_IN,
}


@dataclass(frozen=True)
class StockEffect:
    """One pending ledger change, used by order transitions to batch their stock work."""
    workstation_id: int
    item_type: str
    item_id: int
    delta: int
    reason_code: str
    notes: Optional[str] = None

    @property
    def key(self) -> tuple:
        return stock_key(self.workstation_id, self.item_type, self.item_id)


def _validate(workstation_id: int, item_type: str, item_id: int, delta: int, reason_code: str) -> None:
    enforce_stock_key(workstation_id, item_type, item_id)
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("delta must be an integer")
    if reason_code not in REASON_CODES:
        raise ValidationError(f"Unknown reason_code: {reason_code}")
    if delta == 0 and reason_code != REASON_ADMIN_RESET:
        raise ValidationError("delta must be non-zero")


def _apply(
    workstation_id: int,
    item_type: str,
    item_id: int,
    delta: int,
    reason_code: str,
    notes: Optional[str],
    order_id: Optional[int],
) -> StockLedgerEntry:
    record = lock_for_update(
        db.session.query(StockRecord).filter_by(
            workstation_id=workstation_id, item_type=item_type, item_id=item_id
        )
    ).first()

    current = record.quantity if record else 0
    new_quantity = current + delta
    if new_quantity < 0:
        current_app.logger.warning(
            "Rejected stock change ws=%s %s:%s delta=%s available=%s",
            workstation_id, item_type, item_id, delta, current,
        )
        raise InsufficientStock(workstation_id, item_type, item_id, current, delta)

    if record is None:
        record = StockRecord(
            workstation_id=workstation_id,
            item_type=item_type,
            item_id=item_id,
            quantity=0,
        )
        db.session.add(record)

    record.quantity = new_quantity
    record.last_updated = utcnow()

    entry = StockLedgerEntry(
        workstation_id=workstation_id,
        item_type=item_type,
        item_id=item_id,
        delta=delta,
        balance_after=new_quantity,
        reason_code=reason_code,
        notes=notes,
        order_id=order_id,
    )
    db.session.add(entry)
    db.session.flush()

    current_app.logger.info(
        "Stock ws=%s %s:%s %+d -> %s (%s)",
        workstation_id, item_type, item_id, delta, new_quantity, reason_code,
    )
    return entry


def adjust(
    *,
    workstation_id: int,
    item_type: str,
    item_id: int,
    delta: int,
    reason_code: str = REASON_ADJUSTMENT,
    notes: Optional[str] = None,
    order_id: Optional[int] = None,
) -> StockLedgerEntry:
    """
    Apply a signed delta to one stock key and append the matching ledger entry.

    Called on its own this commits; called inside an open atomic() block it
    joins that transaction and the key lock is held until the outer commit.
    """
    _validate(workstation_id, item_type, item_id, delta, reason_code)

    def _op() -> StockLedgerEntry:
        with atomic():
            acquire_for_transaction(stock_key(workstation_id, item_type, item_id))
            return _apply(workstation_id, item_type, item_id, delta, reason_code, notes, order_id)

    attempts = current_app.config.get("STOCK_ADJUST_RETRY_ATTEMPTS", 3)
    # IntegrityError: another process created the same record first
    return run_with_retry(_op, attempts=attempts, retry_on=(IntegrityError,))


def apply_effects(effects: Iterable[StockEffect], *, order_id: Optional[int] = None) -> list[StockLedgerEntry]:
    """
    Apply several ledger changes as one unit, in the given order.

    All keys are locked up front (sorted) so concurrent multi-key callers
    cannot deadlock. Must run inside the caller's atomic() block.
    """
    effects = list(effects)
    for e in effects:
        _validate(e.workstation_id, e.item_type, e.item_id, e.delta, e.reason_code)
    acquire_for_transaction(*(e.key for e in effects))
    return [
        _apply(e.workstation_id, e.item_type, e.item_id, e.delta, e.reason_code, e.notes, order_id)
        for e in effects
    ]


def transfer(
    *,
    from_workstation_id: int,
    to_workstation_id: int,
    item_type: str,
    item_id: int,
    quantity: int,
    credit_reason: str = REASON_TRANSFER_IN,
    notes: Optional[str] = None,
    order_id: Optional[int] = None,
) -> tuple[StockLedgerEntry, StockLedgerEntry]:
    """Two-sided move: debit at the source and credit at the destination, atomically."""
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if from_workstation_id == to_workstation_id:
        raise ValidationError("Source and destination workstation must differ")

    effects = [
        StockEffect(from_workstation_id, item_type, item_id, -quantity, REASON_TRANSFER_OUT, notes),
        StockEffect(to_workstation_id, item_type, item_id, quantity, credit_reason, notes),
    ]

    def _op():
        with atomic():
            debit, credit = apply_effects(effects, order_id=order_id)
        return debit, credit

    return run_with_retry(_op, retry_on=(IntegrityError,))


def history(
    *,
    workstation_id: Optional[int] = None,
    item_type: Optional[str] = None,
    item_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[StockLedgerEntry]:
    """Ledger entries filtered by any subset of the key, most recent first."""
    query = db.session.query(StockLedgerEntry)
    if workstation_id is not None:
        query = query.filter(StockLedgerEntry.workstation_id == workstation_id)
    if item_type is not None:
        query = query.filter(StockLedgerEntry.item_type == item_type)
    if item_id is not None:
        query = query.filter(StockLedgerEntry.item_id == item_id)
    query = query.order_by(StockLedgerEntry.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def recent(limit: int = 20) -> list[StockLedgerEntry]:
    if limit <= 0:
        raise ValidationError("limit must be > 0")
    return (
        db.session.query(StockLedgerEntry)
        .order_by(StockLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )


def reconcile(*, workstation_id: Optional[int] = None) -> list[dict]:
    """
    Compare every stock record against its ledger.

    Returns one dict per mismatching key; an empty list means the cache and
    the ledger agree everywhere.
    """
    sums = (
        db.session.query(
            StockLedgerEntry.workstation_id,
            StockLedgerEntry.item_type,
            StockLedgerEntry.item_id,
            func.coalesce(func.sum(StockLedgerEntry.delta), 0),
            func.max(StockLedgerEntry.id),
        )
        .group_by(StockLedgerEntry.workstation_id, StockLedgerEntry.item_type, StockLedgerEntry.item_id)
    )
    if workstation_id is not None:
        sums = sums.filter(StockLedgerEntry.workstation_id == workstation_id)

    ledger = {}
    for ws, item_type, item_id, total, last_id in sums.all():
        last = db.session.get(StockLedgerEntry, last_id)
        ledger[(ws, item_type, item_id)] = (int(total), last.balance_after)

    records = db.session.query(StockRecord)
    if workstation_id is not None:
        records = records.filter(StockRecord.workstation_id == workstation_id)

    mismatches = []
    seen = set()
    for record in records.all():
        seen.add(record.key)
        total, last_balance = ledger.get(record.key, (0, None))
        if record.quantity != total or (last_balance is not None and record.quantity != last_balance):
            mismatches.append({
                "workstation_id": record.workstation_id,
                "item_type": record.item_type,
                "item_id": record.item_id,
                "quantity": record.quantity,
                "ledger_sum": total,
                "last_balance_after": last_balance,
            })
    for key, (total, last_balance) in ledger.items():
        if key not in seen:
            mismatches.append({
                "workstation_id": key[0],
                "item_type": key[1],
                "item_id": key[2],
                "quantity": None,
                "ledger_sum": total,
                "last_balance_after": last_balance,
            })
    return mismatches
