from sqlalchemy import func, CheckConstraint, UniqueConstraint, Index
from sitestock.extensions import db

CREW_MODE_CREW = "crew"
CREW_MODE_SOLO = "solo"
CREW_MODE_AD_HOC = "ad_hoc"
CREW_MODES = (CREW_MODE_CREW, CREW_MODE_SOLO, CREW_MODE_AD_HOC)


class DailyReport(db.Model):
    __tablename__ = "daily_reports"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    client_key = db.Column(db.String(120), nullable=False)

    date = db.Column(db.Date, nullable=False)
    person = db.Column(db.String(255), nullable=True)
    reporter_member_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)
    inventory_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=False)

    place = db.Column(db.String(255), nullable=True)
    stage_id = db.Column(db.Integer, db.ForeignKey("project_places.id", ondelete="SET NULL"), nullable=True)

    crew_mode = db.Column(db.String(10), nullable=False, server_default=CREW_MODE_SOLO)
    crew_id = db.Column(db.Integer, db.ForeignKey("crews.id", ondelete="SET NULL"), nullable=True)
    crew_name = db.Column(db.String(120), nullable=True)
    group_key = db.Column(db.String(255), nullable=True)
    members = db.Column(db.JSON, nullable=False, default=list)

    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)

    approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    items = db.relationship(
        "DailyReportItem",
        backref="report",
        cascade="all, delete-orphan",
        order_by="DailyReportItem.id",
    )

    __table_args__ = (
        UniqueConstraint("account_id", "client_key", name="uq_daily_reports_account_client_key"),
        CheckConstraint("crew_mode IN ('crew','solo','ad_hoc')", name="ck_daily_reports_crew_mode_valid"),
        Index("ix_daily_reports_account_date", account_id, date),
    )

    def to_dict(self, with_items: bool = True) -> dict:
        out = {
            "id": self.id,
            "client_key": self.client_key,
            "date": self.date.isoformat() if self.date else None,
            "person": self.person,
            "reporter_member_id": self.reporter_member_id,
            "inventory_location_id": self.inventory_location_id,
            "place": self.place,
            "stage_id": self.stage_id,
            "crew_mode": self.crew_mode,
            "crew_id": self.crew_id,
            "crew_name": self.crew_name,
            "group_key": self.group_key,
            "members": list(self.members or []),
            "task_id": self.task_id,
            "is_completed": bool(self.is_completed),
            "images": list(self.images or []),
            "notes": self.notes,
            "approved": bool(self.approved),
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approved_by": self.approved_by,
        }
        if with_items:
            out["items"] = [i.to_dict() for i in self.items]
        return out

    def __repr__(self) -> str:
        return f"<DailyReport id={self.id} date={self.date} approved={self.approved}>"


class DailyReportItem(db.Model):
    __tablename__ = "daily_report_items"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    qty_used = db.Column(db.Numeric(14, 3), nullable=False)

    __table_args__ = (
        CheckConstraint("qty_used > 0", name="ck_daily_report_items_qty_positive"),
    )

    def to_dict(self) -> dict:
        return {"id": self.id, "material_id": self.material_id, "qty_used": float(self.qty_used)}
