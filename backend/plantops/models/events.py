from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class OrderAudit(db.Model):
    """
    Append-only order lifecycle trail.

    Written in the same transaction as the transition it records; never updated.
    """
    __tablename__ = "order_audit"
    __table_args__ = (
        db.Index("ix_order_audit_order_created", "order_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    from_status = db.Column(db.String(32), nullable=True)
    to_status = db.Column(db.String(32), nullable=True)
    detail = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "event_type": self.event_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "detail": self.detail,
            "created_at": to_utc_z(self.created_at),
        }


class PipelineEvent(db.Model):
    """
    Outbox row for a cross-order message (e.g. FinalAssemblySubmitted).

    Inserted by the emitting transition; consumed_at is set by the handler's
    transaction, so an unconsumed row can be replayed after a failure.
    """
    __tablename__ = "pipeline_events"
    __table_args__ = (
        db.Index("ix_pipeline_events_pending", "consumed_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    target_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    payload = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def payload_dict(self) -> dict:
        return json.loads(self.payload) if self.payload else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "order_id": self.order_id,
            "target_order_id": self.target_order_id,
            "payload": self.payload_dict(),
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "consumed_at": to_utc_z(self.consumed_at),
        }
