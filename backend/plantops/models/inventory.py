from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockRecord(db.Model):
    """
    Current on-hand quantity for one (workstation, item_type, item_id) key.

    The row is a cache of the ledger: quantity always equals the balance_after
    of the newest StockLedgerEntry for the same key. Mutated only through
    services.stock_ledger.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("workstation_id", "item_type", "item_id", name="uq_stock_records_key"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_non_negative"),
        db.Index("ix_stock_records_ws_type", "workstation_id", "item_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    workstation_id = db.Column(db.Integer, nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def key(self) -> tuple[int, str, int]:
        return (self.workstation_id, self.item_type, self.item_id)

    def __repr__(self) -> str:
        return f"<StockRecord ws={self.workstation_id} {self.item_type}:{self.item_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workstation_id": self.workstation_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }


class StockLedgerEntry(db.Model):
    """Immutable signed quantity change plus the resulting balance."""
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_ledger_key", "workstation_id", "item_type", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    workstation_id = db.Column(db.Integer, nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)

    delta = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    reason_code = db.Column(db.String(32), nullable=False, index=True)
    notes = db.Column(db.String(500), nullable=True)

    # Order whose transition produced this entry, if any
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry id={self.id} ws={self.workstation_id} {self.item_type}:{self.item_id} "
            f"delta={self.delta} balance_after={self.balance_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workstation_id": self.workstation_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "delta": self.delta,
            "balance_after": self.balance_after,
            "reason_code": self.reason_code,
            "notes": self.notes,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class LowStockThreshold(db.Model):
    """
    Low-stock threshold for a (workstation, item_type, item) scope.

    NULL workstation_id = every workstation, NULL item_id = every item of the type.
    scope_key renders the tuple with '*' for NULLs so the unique constraint
    also covers wildcard rows (plain UNIQUE treats NULLs as distinct).
    """
    __tablename__ = "low_stock_thresholds"
    __table_args__ = (
        db.UniqueConstraint("scope_key", name="uq_low_stock_thresholds_scope"),
        db.CheckConstraint("threshold >= 0", name="ck_low_stock_thresholds_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    workstation_id = db.Column(db.Integer, nullable=True, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=True)
    threshold = db.Column(db.Integer, nullable=False)
    scope_key = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @staticmethod
    def make_scope_key(workstation_id: int | None, item_type: str, item_id: int | None) -> str:
        ws = "*" if workstation_id is None else str(workstation_id)
        item = "*" if item_id is None else str(item_id)
        return f"{ws}:{item_type}:{item}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workstation_id": self.workstation_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "threshold": self.threshold,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
