from sqlalchemy import func, Index, text
from sitestock.extensions import db


class Crew(db.Model):
    __tablename__ = "crews"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    leader_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL", use_alter=True), nullable=True
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index(
            "ux_crews_account_name_live",
            account_id,
            func.lower(name),
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "leader_member_id": self.leader_member_id,
        }

    def __repr__(self) -> str:
        return f"<Crew id={self.id} name={self.name!r}>"
