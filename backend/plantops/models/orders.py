from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_CUSTOMER = "CUSTOMER"
ORDER_WAREHOUSE = "WAREHOUSE"
ORDER_PRODUCTION = "PRODUCTION"
ORDER_PRODUCTION_CONTROL = "PRODUCTION_CONTROL"
ORDER_ASSEMBLY_CONTROL = "ASSEMBLY_CONTROL"
ORDER_WORKSTATION = "WORKSTATION"
ORDER_FINAL_ASSEMBLY = "FINAL_ASSEMBLY"
ORDER_SUPPLY = "SUPPLY"

CONTROL_ORDER_TYPES = (ORDER_PRODUCTION_CONTROL, ORDER_ASSEMBLY_CONTROL)


class Order(db.Model):
    """
    Every pipeline order lives in one table (single-table inheritance on order_type).

    parent_id points at the order that spawned this one, so lineage queries are
    a walk over one self-referencing table.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_number"),
        db.Index("ix_orders_type_status", "order_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_type = db.Column(db.String(32), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(32), nullable=False, index=True)
    priority = db.Column(db.String(16), nullable=False, default="NORMAL")

    parent_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    # Workstation that owns/executes the order; supply orders also record where parts come from
    workstation_id = db.Column(db.Integer, nullable=False, index=True)
    source_workstation_id = db.Column(db.Integer, nullable=True)

    scenario = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    halted_reason = db.Column(db.String(255), nullable=True)

    # Production scheduling
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    schedule_id = db.Column(db.String(64), nullable=True)
    expected_completion = db.Column(db.DateTime(timezone=True), nullable=True)
    schedule_payload = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Set on a warehouse order once every final-assembly child has been submitted
    lineage_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    parent = db.relationship("Order", remote_side=[id], backref=db.backref("children", lazy=True, order_by="Order.id"))
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {
        "polymorphic_on": order_type,
        "version_id_col": version_id,
    }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_type": self.order_type,
            "order_number": self.order_number,
            "status": self.status,
            "priority": self.priority,
            "parent_id": self.parent_id,
            "workstation_id": self.workstation_id,
            "source_workstation_id": self.source_workstation_id,
            "scenario": self.scenario,
            "notes": self.notes,
            "halted_reason": self.halted_reason,
            "due_date": to_utc_z(self.due_date),
            "schedule_id": self.schedule_id,
            "expected_completion": to_utc_z(self.expected_completion),
            "schedule": json.loads(self.schedule_payload) if self.schedule_payload else None,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "lineage_completed_at": to_utc_z(self.lineage_completed_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class CustomerOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_CUSTOMER}


class WarehouseOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_WAREHOUSE}


class ProductionOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_PRODUCTION}


class ProductionControlOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_PRODUCTION_CONTROL}


class AssemblyControlOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_ASSEMBLY_CONTROL}


class WorkstationOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_WORKSTATION}


class FinalAssemblyOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_FINAL_ASSEMBLY}


class SupplyOrder(Order):
    __mapper_args__ = {"polymorphic_identity": ORDER_SUPPLY}


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("requested_quantity > 0", name="ck_order_lines_requested_positive"),
        db.CheckConstraint("fulfilled_quantity >= 0", name="ck_order_lines_fulfilled_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    requested_quantity = db.Column(db.Integer, nullable=False)
    fulfilled_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Product a module line is destined for (warehouse/production lines)
    product_id = db.Column(db.Integer, nullable=True)

    order = db.relationship("Order", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "requested_quantity": self.requested_quantity,
            "fulfilled_quantity": self.fulfilled_quantity,
            "product_id": self.product_id,
        }


class OrderSequence(db.Model):
    """Per-order-type number allocator (CO-0001, WO-0001, ...)."""
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("order_type", name="uq_order_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
