# Overview: Low-stock threshold registry and alert evaluation.

"""
Threshold resolution

A stock record (ws, type, item) takes the most specific matching row:

    1. (ws,   type, item)
    2. (ws,   type, *)
    3. (*,    type, item)
    4. (*,    type, *)
    5. DEFAULT_LOW_STOCK_THRESHOLD from config, when set

Records with no match at any level are skipped. Alerts are derived on every
call and never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateThreshold, NotFound
from ..extensions import db
from ..models import LowStockThreshold, StockRecord
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_threshold,
    validate_payload,
)
from .concurrency import acquire_for_transaction, atomic, threshold_key
from . import stock_store


THRESHOLD_POLICY = ModelValidationPolicy(
    writable_fields={"id", "workstation_id", "item_type", "item_id", "threshold"},
    required_on_create={"item_type", "threshold"},
)


@dataclass(frozen=True)
class LowStockAlert:
    workstation_id: int
    item_type: str
    item_id: int
    quantity: int
    threshold: int

    @property
    def deficit(self) -> int:
        return self.threshold - self.quantity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["deficit"] = self.deficit
        return data


def list_thresholds() -> list[LowStockThreshold]:
    return (
        db.session.query(LowStockThreshold)
        .order_by(LowStockThreshold.item_type, LowStockThreshold.workstation_id, LowStockThreshold.item_id)
        .all()
    )


def _normalize(raw: dict) -> dict:
    patch = validate_payload(model=LowStockThreshold, payload=raw, policy=THRESHOLD_POLICY, partial=False)
    patch.setdefault("workstation_id", None)
    patch.setdefault("item_id", None)
    enforce_rules_threshold(patch)
    return patch


def _save_one(patch: dict) -> LowStockThreshold:
    scope = LowStockThreshold.make_scope_key(patch["workstation_id"], patch["item_type"], patch["item_id"])

    if patch.get("id") is not None:
        row = db.session.get(LowStockThreshold, patch["id"])
        if row is None:
            raise NotFound(f"Threshold {patch['id']} not found")
        acquire_for_transaction(threshold_key(row.scope_key), threshold_key(scope))
        if scope != row.scope_key:
            taken = db.session.query(LowStockThreshold).filter_by(scope_key=scope).first()
            if taken is not None:
                raise ValidationError(
                    f"Threshold {row.id} cannot move to scope {scope}: threshold {taken.id} already covers it"
                )
        row.workstation_id = patch["workstation_id"]
        row.item_type = patch["item_type"]
        row.item_id = patch["item_id"]
        row.threshold = patch["threshold"]
        row.scope_key = scope
        db.session.flush()
        return row

    acquire_for_transaction(threshold_key(scope))
    row = db.session.query(LowStockThreshold).filter_by(scope_key=scope).first()
    if row is None:
        row = LowStockThreshold(
            workstation_id=patch["workstation_id"],
            item_type=patch["item_type"],
            item_id=patch["item_id"],
            threshold=patch["threshold"],
            scope_key=scope,
        )
        db.session.add(row)
    else:
        row.threshold = patch["threshold"]
    db.session.flush()
    return row


def upsert(items: list[dict]) -> list[LowStockThreshold]:
    """
    Insert or update a batch of thresholds in one transaction.

    Rows without an id resolve to the existing row for their scope. If a
    concurrent writer inserts the same scope first, the unique constraint
    fires; the batch is retried once, and the colliding item then resolves
    to an update.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("thresholds must be a non-empty list")
    patches = [_normalize(raw) for raw in items]

    def _op() -> list[LowStockThreshold]:
        with atomic():
            return [_save_one(p) for p in patches]

    try:
        saved = _op()
    except IntegrityError:
        current_app.logger.warning("Threshold insert collided; retrying batch as update")
        try:
            saved = _op()
        except IntegrityError as exc:
            raise DuplicateThreshold(f"Threshold scope collided twice: {exc.orig}") from exc
    return saved


def delete_threshold(threshold_id: int) -> None:
    with atomic():
        row = db.session.get(LowStockThreshold, threshold_id)
        if row is None:
            raise NotFound(f"Threshold {threshold_id} not found")
        acquire_for_transaction(threshold_key(row.scope_key))
        db.session.delete(row)


def _index_thresholds() -> dict[str, int]:
    return {row.scope_key: row.threshold for row in db.session.query(LowStockThreshold).all()}


def resolve_threshold(
    index: dict[str, int],
    workstation_id: int,
    item_type: str,
    item_id: int,
    default: Optional[int] = None,
) -> Optional[int]:
    make = LowStockThreshold.make_scope_key
    for scope in (
        make(workstation_id, item_type, item_id),
        make(workstation_id, item_type, None),
        make(None, item_type, item_id),
        make(None, item_type, None),
    ):
        if scope in index:
            return index[scope]
    return default


def threshold_for(workstation_id: int, item_type: str, item_id: int) -> Optional[int]:
    return resolve_threshold(
        _index_thresholds(),
        workstation_id,
        item_type,
        item_id,
        current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD"),
    )


def evaluate(*, workstation_id: Optional[int] = None) -> list[LowStockAlert]:
    """Alerts for every stock record whose quantity is below its resolved threshold."""
    index = _index_thresholds()
    default = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD")

    alerts = []
    records: list[StockRecord] = stock_store.list_records(workstation_id=workstation_id)
    for record in records:
        threshold = resolve_threshold(index, record.workstation_id, record.item_type, record.item_id, default)
        if threshold is None:
            continue
        if record.quantity < threshold:
            alerts.append(LowStockAlert(
                workstation_id=record.workstation_id,
                item_type=record.item_type,
                item_id=record.item_id,
                quantity=record.quantity,
                threshold=threshold,
            ))
    return alerts
