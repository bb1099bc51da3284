# Overview: Read access to current stock and the administrative set-level path.

from __future__ import annotations

from typing import Iterable, Optional

from ..extensions import db
from ..models import StockRecord, StockLedgerEntry
from ..validation import ValidationError, enforce_stock_key
from . import stock_ledger
from .concurrency import acquire_for_transaction, atomic, stock_key


def get(*, workstation_id: int, item_type: str, item_id: int) -> Optional[StockRecord]:
    return (
        db.session.query(StockRecord)
        .filter_by(workstation_id=workstation_id, item_type=item_type, item_id=item_id)
        .first()
    )


def quantity_of(workstation_id: int, item_type: str, item_id: int) -> int:
    record = get(workstation_id=workstation_id, item_type=item_type, item_id=item_id)
    return record.quantity if record else 0


def list_records(*, workstation_id: Optional[int] = None, item_type: Optional[str] = None) -> list[StockRecord]:
    query = db.session.query(StockRecord)
    if workstation_id is not None:
        query = query.filter(StockRecord.workstation_id == workstation_id)
    if item_type is not None:
        query = query.filter(StockRecord.item_type == item_type)
    return query.order_by(StockRecord.workstation_id, StockRecord.item_type, StockRecord.item_id).all()


def snapshot(keys: Iterable[tuple[int, str, int]]) -> dict[tuple[int, str, int], int]:
    """Current quantity for each (workstation_id, item_type, item_id); missing keys read as 0."""
    keys = set(keys)
    if not keys:
        return {}
    workstations = {k[0] for k in keys}
    rows = db.session.query(StockRecord).filter(StockRecord.workstation_id.in_(workstations)).all()
    found = {r.key: r.quantity for r in rows}
    return {k: found.get(k, 0) for k in keys}


def set_absolute(
    *,
    workstation_id: int,
    item_type: str,
    item_id: int,
    quantity: int,
    notes: Optional[str] = None,
) -> StockLedgerEntry:
    """
    Administrative "set stock level" write.

    Recorded as an ADMIN_RESET ledger entry with delta = target - current, so
    the ledger stays complete. Setting the current value appends a zero-delta
    entry as an audited no-op.
    """
    enforce_stock_key(workstation_id, item_type, item_id)
    if quantity is None or quantity < 0:
        raise ValidationError("quantity must be >= 0")

    with atomic():
        # current value must not move between the read and the write
        acquire_for_transaction(stock_key(workstation_id, item_type, item_id))
        current = quantity_of(workstation_id, item_type, item_id)
        return stock_ledger.adjust(
            workstation_id=workstation_id,
            item_type=item_type,
            item_id=item_id,
            delta=quantity - current,
            reason_code=stock_ledger.REASON_ADMIN_RESET,
            notes=notes or f"Set level {current} -> {quantity}",
        )
