from flask_login import UserMixin
from sqlalchemy import Index, func
from sqlalchemy.orm import validates
from werkzeug.security import check_password_hash, generate_password_hash

from sitestock.extensions import db, login_manager


class User(db.Model, UserMixin):
    """A login. Project access comes from TeamMember rows, one per account."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    # the project the user is working in right now
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="RESTRICT"), index=True, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ux_users_lower_email", func.lower(email), unique=True),)

    @validates("email")
    def _normalize_email(self, _key, value):
        return (value or "").strip().lower()

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


@login_manager.user_loader
def load_user(user_id: str):
    if not str(user_id).isdigit():
        return None
    return db.session.get(User, int(user_id))
