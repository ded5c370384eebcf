from sqlalchemy import func, CheckConstraint
from sitestock.extensions import db

STATUS_TODO = "todo"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DONE = "done"
TASK_STATUSES = (STATUS_TODO, STATUS_IN_PROGRESS, STATUS_DONE)


class ProjectPlace(db.Model):
    """Object/place on site. Top-level places double as project stages."""

    __tablename__ = "project_places"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("project_places.id", ondelete="SET NULL"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "parent_id": self.parent_id, "name": self.name, "description": self.description}

    def __repr__(self) -> str:
        return f"<ProjectPlace id={self.id} name={self.name!r}>"


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    place_id = db.Column(db.Integer, db.ForeignKey("project_places.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, server_default=STATUS_TODO, default=STATUS_TODO)

    assigned_crew_id = db.Column(db.Integer, db.ForeignKey("crews.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True, index=True
    )
    photos = db.Column(db.JSON, nullable=False, default=list)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    place = db.relationship("ProjectPlace", lazy="joined")

    __table_args__ = (
        CheckConstraint("status IN ('todo','in_progress','done')", name="ck_tasks_status_valid"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "place_id": self.place_id,
            "place_name": self.place.name if self.place else None,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "assigned_crew_id": self.assigned_crew_id,
            "assigned_member_id": self.assigned_member_id,
            "photos": list(self.photos or []),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self) -> str:
        return f"<Task id={self.id} title={self.title!r} status={self.status}>"
