from sqlalchemy import func, Index, text
from sitestock.extensions import db


class InventoryLocation(db.Model):
    __tablename__ = "inventory_locations"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    label = db.Column(db.String(160), nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index(
            "ux_inventory_locations_account_label_live",
            account_id,
            func.lower(label),
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "deleted": self.deleted_at is not None}

    def __repr__(self) -> str:
        return f"<InventoryLocation id={self.id} label={self.label!r}>"
