from sitestock.extensions import db
from sitestock.utils.helpers import utcnow

EMAIL_QUEUED = "queued"
EMAIL_SENT = "sent"
EMAIL_FAILED = "failed"


class EmailLog(db.Model):
    """One row per outbound email attempt (invites today)."""

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    member_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)
    to_email = db.Column(db.String(320), nullable=False, index=True)
    template = db.Column(db.String(64), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, index=True, default=EMAIL_QUEUED)
    meta = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def mark(self, status: str, **meta) -> None:
        self.status = status
        if meta:
            self.meta = {**(self.meta or {}), **meta}

    def __repr__(self) -> str:
        return f"<EmailLog {self.id} {self.template}->{self.to_email} {self.status}>"
