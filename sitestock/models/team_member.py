from sqlalchemy import func, CheckConstraint, Index, text
from sitestock.extensions import db

# Text + CHECK keeps roles evolvable (no DB enum migration pain)
ROLE_OWNER = "owner"
ROLE_MANAGER = "manager"
ROLE_STOREMAN = "storeman"
ROLE_FOREMAN = "foreman"
ROLE_WORKER = "worker"
ROLE_CHOICES = (ROLE_OWNER, ROLE_MANAGER, ROLE_STOREMAN, ROLE_FOREMAN, ROLE_WORKER)
# roles that can be handed out through an invite
INVITE_ROLES = (ROLE_MANAGER, ROLE_STOREMAN, ROLE_FOREMAN, ROLE_WORKER)

STATUS_INVITED = "invited"
STATUS_ACTIVE = "active"


class TeamMember(db.Model):
    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    # null until the invite is accepted
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    email = db.Column(db.String(320), nullable=False)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(40), nullable=True)

    role = db.Column(db.String(20), nullable=False, server_default=ROLE_WORKER)
    status = db.Column(db.String(20), nullable=False, server_default=STATUS_INVITED)
    crew_id = db.Column(db.Integer, db.ForeignKey("crews.id", ondelete="SET NULL", use_alter=True), nullable=True, index=True)

    invite_nonce = db.Column(db.String(64), nullable=True)
    invited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    invite_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('owner','manager','storeman','foreman','worker')",
            name="ck_team_members_role_valid",
        ),
        CheckConstraint("status IN ('invited','active')", name="ck_team_members_status_valid"),
        # one live membership per email / per user inside an account
        Index(
            "ux_team_members_account_email_live",
            account_id,
            func.lower(email),
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index(
            "ux_team_members_account_user_live",
            account_id,
            user_id,
            unique=True,
            postgresql_where=text("deleted_at IS NULL AND user_id IS NOT NULL"),
            sqlite_where=text("deleted_at IS NULL AND user_id IS NOT NULL"),
        ),
    )

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or self.email

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "display_name": self.display_name,
            "role": self.role,
            "status": self.status,
            "crew_id": self.crew_id,
        }

    def __repr__(self) -> str:
        return f"<TeamMember id={self.id} email={self.email!r} role={self.role} status={self.status}>"
