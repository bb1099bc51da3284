from __future__ import annotations

from ..extensions import db


class BomLine(db.Model):
    """One component of a product (modules) or module (parts)."""
    __tablename__ = "bom_lines"
    __table_args__ = (
        db.UniqueConstraint(
            "parent_type", "parent_id", "component_type", "component_id", name="uq_bom_lines_parent_component"
        ),
        db.CheckConstraint("quantity > 0", name="ck_bom_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parent_type = db.Column(db.String(16), nullable=False)
    parent_id = db.Column(db.Integer, nullable=False)
    component_type = db.Column(db.String(16), nullable=False)
    component_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parent_type": self.parent_type,
            "parent_id": self.parent_id,
            "component_type": self.component_type,
            "component_id": self.component_id,
            "quantity": self.quantity,
        }


class ProductionRoute(db.Model):
    """Workstation that manufactures or assembles an item."""
    __tablename__ = "production_routes"
    __table_args__ = (
        db.UniqueConstraint("item_type", "item_id", name="uq_production_routes_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    workstation_id = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "workstation_id": self.workstation_id,
        }
