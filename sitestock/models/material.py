from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Index, text
from sqlalchemy.sql import func

from sitestock.extensions import db

"""
Materials catalog, critical indexes (doc only)

• materials
  - ix_materials_account_lower_title: case-insensitive search on title.
  - ux_materials_account_location_title_live:
    UNIQUE (account_id, inventory_location_id, lower(title)) WHERE deleted_at IS NULL
    Rationale: one live row per title in a location; soft-deleted history may repeat it.
  - ix_materials_account_family: relocation/plan lookups by family_key.
"""

DEFAULT_UNIT = "szt"


class Material(db.Model):
    __tablename__ = "materials"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_location_id = db.Column(
        db.Integer, db.ForeignKey("inventory_locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(20), nullable=False, server_default=DEFAULT_UNIT)
    family_key = db.Column(db.String(255), nullable=True)

    base_quantity = db.Column(db.Numeric(14, 3), nullable=False, server_default=text("0"))
    current_quantity = db.Column(db.Numeric(14, 3), nullable=False, server_default=text("0"))

    image_url = db.Column(db.String(1024), nullable=True)
    cta_url = db.Column(db.String(1024), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_materials_account_lower_title", account_id, func.lower(title)),
        Index("ix_materials_account_family", account_id, family_key),
        Index(
            "ux_materials_account_location_title_live",
            account_id,
            inventory_location_id,
            func.lower(title),
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def stock_pct(self) -> int:
        from sitestock.services.materials import stock_pct
        return stock_pct(self.current_quantity, self.base_quantity)

    @property
    def rollup_key(self) -> str:
        """Pricing/plan grouping: family key, else title+unit."""
        if self.family_key:
            return self.family_key
        return f"{(self.title or '').strip().lower()}|{(self.unit or '').strip().lower()}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "unit": self.unit,
            "family_key": self.family_key,
            "base_quantity": float(self.base_quantity or Decimal("0")),
            "current_quantity": float(self.current_quantity or Decimal("0")),
            "stock_pct": self.stock_pct,
            "image_url": self.image_url,
            "cta_url": self.cta_url,
            "inventory_location_id": self.inventory_location_id,
            "deleted": self.deleted_at is not None,
        }

    def __repr__(self) -> str:
        return f"<Material id={self.id} title={(self.title or '')[:40]!r} loc={self.inventory_location_id}>"
