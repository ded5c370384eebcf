from sqlalchemy import func, CheckConstraint
from sitestock.extensions import db


class DesignerPlan(db.Model):
    """Planned quantity of one material family (designer's bill of materials)."""

    __tablename__ = "designer_plans"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    family_key = db.Column(db.String(255), nullable=False)
    planned_qty = db.Column(db.Numeric(14, 3), nullable=False, server_default=db.text("0"))
    planned_unit_price = db.Column(db.Numeric(12, 4), nullable=True)
    planned_cost = db.Column(db.Numeric(12, 2), nullable=True)
    stage_id = db.Column(db.Integer, db.ForeignKey("project_places.id", ondelete="SET NULL"), nullable=True)
    place_id = db.Column(db.Integer, db.ForeignKey("project_places.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("planned_qty >= 0", name="ck_designer_plans_planned_qty_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<DesignerPlan id={self.id} family={self.family_key!r} qty={self.planned_qty}>"
