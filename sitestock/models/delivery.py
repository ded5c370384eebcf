from decimal import Decimal

from sqlalchemy import func, CheckConstraint, Index
from sitestock.extensions import db


class Delivery(db.Model):
    __tablename__ = "deliveries"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=False, index=True)

    delivery_date = db.Column(db.Date, nullable=False)
    place_label = db.Column(db.String(255), nullable=True)
    person = db.Column(db.String(255), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    delivery_cost = db.Column(db.Numeric(12, 2), nullable=False, server_default=db.text("0"))
    materials_cost = db.Column(db.Numeric(12, 2), nullable=False, server_default=db.text("0"))
    invoice_path = db.Column(db.String(1024), nullable=True)

    approved = db.Column(db.Boolean, nullable=False, server_default=db.text("false"), default=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    items = db.relationship(
        "DeliveryItem",
        backref="delivery",
        cascade="all, delete-orphan",
        order_by="DeliveryItem.id",
    )

    __table_args__ = (
        CheckConstraint("delivery_cost >= 0", name="ck_deliveries_delivery_cost_nonneg"),
        CheckConstraint("materials_cost >= 0", name="ck_deliveries_materials_cost_nonneg"),
        Index("ix_deliveries_account_date", account_id, delivery_date),
    )

    def to_dict(self, with_items: bool = True) -> dict:
        out = {
            "id": self.id,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "inventory_location_id": self.inventory_location_id,
            "place_label": self.place_label,
            "person": self.person,
            "supplier": self.supplier,
            "delivery_cost": float(self.delivery_cost or Decimal("0")),
            "materials_cost": float(self.materials_cost or Decimal("0")),
            "invoice_path": self.invoice_path,
            "approved": bool(self.approved),
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approved_by": self.approved_by,
            "created_by": self.created_by,
            "deleted": self.deleted_at is not None,
        }
        if with_items:
            out["items"] = [i.to_dict() for i in self.items]
        return out

    def __repr__(self) -> str:
        return f"<Delivery id={self.id} date={self.delivery_date} approved={self.approved}>"


class DeliveryItem(db.Model):
    __tablename__ = "delivery_items"

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    qty = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 4), nullable=True)

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_delivery_items_qty_positive"),
        CheckConstraint("unit_price IS NULL OR unit_price >= 0", name="ck_delivery_items_unit_price_nonneg"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_id": self.material_id,
            "qty": float(self.qty),
            "unit_price": float(self.unit_price) if self.unit_price is not None else None,
        }
