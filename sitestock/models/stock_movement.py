from sqlalchemy import func, CheckConstraint, Index
from sitestock.extensions import db

KIND_DELIVERY = "delivery"
KIND_USAGE = "usage"
KIND_RELOCATION_OUT = "relocation_out"
KIND_RELOCATION_IN = "relocation_in"
KIND_AUDIT = "audit"
KIND_ADJUSTMENT = "adjustment"
KINDS = (KIND_DELIVERY, KIND_USAGE, KIND_RELOCATION_OUT, KIND_RELOCATION_IN, KIND_AUDIT, KIND_ADJUSTMENT)


class StockMovement(db.Model):
    """Append-only ledger; every stock mutation writes one row per material."""

    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=True)

    kind = db.Column(db.String(20), nullable=False)
    qty_delta = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 4), nullable=True)
    occurred_on = db.Column(db.Date, nullable=False)

    source_type = db.Column(db.String(40), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "kind IN ('delivery','usage','relocation_out','relocation_in','audit','adjustment')",
            name="ck_stock_movements_kind_valid",
        ),
        Index("ix_stock_movements_account_day", account_id, occurred_on),
    )

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} kind={self.kind} material={self.material_id} delta={self.qty_delta}>"
