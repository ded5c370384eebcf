from sqlalchemy import func, UniqueConstraint
from sitestock.extensions import db


class InventorySession(db.Model):
    """Stock count (audit) of one location; approval snaps stock to counted values."""

    __tablename__ = "inventory_sessions"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=False)
    session_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)
    person = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    items = db.relationship(
        "InventorySessionItem",
        backref="session",
        cascade="all, delete-orphan",
        order_by="InventorySessionItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_location_id": self.inventory_location_id,
            "session_date": self.session_date.isoformat() if self.session_date else None,
            "description": self.description,
            "person": self.person,
            "created_by": self.created_by,
            "approved": bool(self.approved),
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "items_count": len(self.items),
        }

    def __repr__(self) -> str:
        return f"<InventorySession id={self.id} date={self.session_date} approved={self.approved}>"


class InventorySessionItem(db.Model):
    __tablename__ = "inventory_session_items"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("inventory_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False)
    system_qty = db.Column(db.Numeric(14, 3), nullable=False)
    counted_qty = db.Column(db.Numeric(14, 3), nullable=True)

    __table_args__ = (
        UniqueConstraint("session_id", "material_id", name="uq_inventory_session_items_session_material"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_id": self.material_id,
            "system_qty": float(self.system_qty),
            "counted_qty": float(self.counted_qty) if self.counted_qty is not None else None,
        }
