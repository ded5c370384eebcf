from sqlalchemy import func, UniqueConstraint
from sitestock.extensions import db


class InventoryRelocation(db.Model):
    __tablename__ = "inventory_relocations"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    client_key = db.Column(db.String(120), nullable=True)

    from_material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False)
    to_material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False)
    from_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=False)

    qty = db.Column(db.Numeric(14, 3), nullable=False)
    note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        # idempotency: the same client submission never moves stock twice
        UniqueConstraint("account_id", "client_key", name="uq_inventory_relocations_account_client_key"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_key": self.client_key,
            "from_material_id": self.from_material_id,
            "to_material_id": self.to_material_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "qty": float(self.qty),
            "note": self.note,
            "created_by": self.created_by,
        }

    def __repr__(self) -> str:
        return f"<InventoryRelocation id={self.id} {self.from_material_id}->{self.to_material_id} qty={self.qty}>"
