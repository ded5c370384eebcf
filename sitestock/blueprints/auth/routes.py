from flask import request, session, jsonify, current_app
from flask_login import login_user, logout_user, current_user, login_required
from sqlalchemy import func

from sitestock.extensions import db, limiter
from sitestock.models.team_member import TeamMember, STATUS_ACTIVE
from sitestock.models.user import User
from sitestock.observability import log_event
from sitestock.services import permissions, team
from sitestock.services.common import ServiceError, INVALID, NOT_FOUND
from sitestock.services.policy import current_snapshot, current_member
from sitestock.blueprints.api import json_body, committed
from sitestock.utils.helpers import utcnow
from . import bp


def _login_email_scope():
    """Per target email, on top of the per-client limit."""
    email = (json_body().get("email") or "").strip().lower()
    return f"login-email:{email or '-'}"


def _memberships(user):
    return (
        db.session.query(TeamMember)
        .filter(
            TeamMember.user_id == user.id,
            TeamMember.deleted_at.is_(None),
            TeamMember.status == STATUS_ACTIVE,
        )
        .order_by(TeamMember.account_id.asc())
        .all()
    )


@bp.post("/login")
@limiter.limit("10 per minute; 100 per hour")
@limiter.limit("5 per minute; 20 per hour", key_func=_login_email_scope)
def login_post():
    data = json_body()
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    if not email or not password:
        raise ServiceError("Email and password are required.", INVALID)

    user = db.session.execute(
        db.select(User).where(func.lower(User.email) == func.lower(email))
    ).scalar_one_or_none()
    if not user or not user.is_active or not user.check_password(password):
        current_app.logger.info("login_failed email=%s", email.lower())
        raise ServiceError("Invalid credentials.", INVALID)

    # fall back to the first live membership when the saved account is gone
    memberships = _memberships(user)
    account_ids = [m.account_id for m in memberships]
    if user.account_id not in account_ids and account_ids:
        user.account_id = account_ids[0]
    user.last_login_at = utcnow()
    db.session.commit()

    login_user(user)
    session["current_account_id"] = user.account_id
    log_event(current_app.logger, "login", user_id=user.id, account_id=user.account_id)
    return jsonify({"ok": True, "user_id": user.id, "account_id": user.account_id}), 200


@bp.post("/logout")
def logout_post():
    if current_user.is_authenticated:
        logout_user()
    session.pop("current_account_id", None)
    return jsonify({"ok": True}), 200


@bp.get("/me")
@login_required
def me():
    member = current_member()
    return jsonify({
        "user": {"id": current_user.id, "email": current_user.email, "account_id": current_user.account_id},
        "member": member.to_dict() if member else None,
        "accounts": [m.account_id for m in _memberships(current_user)],
    }), 200


@bp.get("/me/permissions")
def my_permissions():
    """Snapshot of the caller's permissions; empty for anonymous users."""
    if not current_user.is_authenticated:
        snap = permissions.EMPTY_SNAPSHOT
    else:
        snap = current_snapshot()
    return jsonify({**snap.to_dict(), "groups": permissions.visible_groups(snap)}), 200


@bp.post("/switch-account")
@login_required
def switch_account():
    data = json_body()
    try:
        account_id = int(data.get("account_id"))
    except (TypeError, ValueError):
        raise ServiceError("account_id must be an integer.", INVALID, field="account_id")
    if account_id not in [m.account_id for m in _memberships(current_user)]:
        # anti-enumeration: same answer for foreign and missing accounts
        raise ServiceError("Account not found.", NOT_FOUND)
    current_user.account_id = account_id
    db.session.commit()
    session["current_account_id"] = account_id
    return jsonify({"ok": True, "account_id": account_id}), 200


@bp.post("/invite/accept")
@limiter.limit("10 per minute; 50 per hour")
def accept_invite():
    data = json_body()
    token = (data.get("token") or request.args.get("token") or "").strip()
    member = committed(team.accept_invite, token, data.get("password"))
    user = db.session.get(User, member.user_id)
    login_user(user)
    session["current_account_id"] = member.account_id
    return jsonify({"ok": True, "member": member.to_dict(), "account_id": member.account_id}), 200
