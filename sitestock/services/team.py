from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitestock.models.crew import Crew
from sitestock.models.task import Task
from sitestock.models.team_member import (
    TeamMember,
    ROLE_OWNER,
    ROLE_WORKER,
    ROLE_CHOICES,
    INVITE_ROLES,
    STATUS_INVITED,
    STATUS_ACTIVE,
)
from sitestock.models.user import User
from sitestock.observability import log_event
from sitestock.utils.helpers import utcnow, as_utc
from sitestock.utils.validators import clean_str, is_valid_email, normalize_phone
from . import tokens
from .common import ServiceError, get_live, INVALID, FORBIDDEN, CONFLICT
from .permissions import PERM, ensure, can

INVITE_KIND = "invite"
MIN_PASSWORD_LEN = 8


# ---- Members --------------------------------------------------------------
def get_member(session: Session, account_id: int, member_id) -> TeamMember:
    return get_live(session, TeamMember, member_id, account_id, what="Member")


def list_members(session: Session, actor: TeamMember, *, include_invited: bool = True) -> List[TeamMember]:
    ensure(actor, PERM.TEAM_READ, PERM.TEAM_MEMBER_READ)
    q = session.query(TeamMember).filter(
        TeamMember.account_id == actor.account_id, TeamMember.deleted_at.is_(None)
    )
    if not include_invited:
        q = q.filter(TeamMember.status == STATUS_ACTIVE)
    return q.order_by(func.lower(TeamMember.email)).all()


def _live_by_email(session: Session, account_id: int, email: str) -> Optional[TeamMember]:
    return (
        session.query(TeamMember)
        .filter(
            TeamMember.account_id == account_id,
            func.lower(TeamMember.email) == email.lower(),
            TeamMember.deleted_at.is_(None),
        )
        .one_or_none()
    )


def _owner_count(session: Session, account_id: int) -> int:
    return (
        session.query(func.count(TeamMember.id))
        .filter(
            TeamMember.account_id == account_id,
            TeamMember.role == ROLE_OWNER,
            TeamMember.status == STATUS_ACTIVE,
            TeamMember.deleted_at.is_(None),
        )
        .scalar()
        or 0
    )


def _invite_url(token: str) -> str:
    from .email import absolute_url

    return absolute_url(f"/auth/invite/accept?token={token}")


def _issue_invite(member: TeamMember) -> Dict[str, Any]:
    ttl = int(current_app.config.get("INVITE_TTL_HOURS", 168))
    now = utcnow()
    member.invite_nonce = secrets.token_urlsafe(16)
    member.invited_at = now
    member.invite_expires_at = now + timedelta(hours=ttl)
    token = tokens.generate(INVITE_KIND, f"{member.id}:{member.invite_nonce}")
    return {"member": member, "token": token, "invite_url": _invite_url(token)}


def invite_member(
    session: Session,
    actor: TeamMember,
    *,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    role: str = ROLE_WORKER,
    send_email: bool = True,
) -> Dict[str, Any]:
    """
    Create an invited member and mail the invite link.
    Returns {"member", "token", "invite_url"}.
    """
    from .email import send_invite_email

    ensure(actor, PERM.TEAM_INVITE)
    errors: Dict[str, str] = {}
    email = (email or "").strip().lower()
    if not is_valid_email(email):
        errors["email"] = "Enter a valid email address."
    role = (role or ROLE_WORKER).strip().lower()
    if role not in INVITE_ROLES:
        errors["role"] = "Role must be manager, storeman, foreman or worker."
    phone_norm = None
    if phone not in (None, ""):
        phone_norm = normalize_phone(phone)
        if phone_norm is None:
            errors["phone"] = "Enter a valid phone number."
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    if _live_by_email(session, actor.account_id, email) is not None:
        raise ServiceError("This person is already on the team.", CONFLICT, field="email")

    member = TeamMember(
        account_id=actor.account_id,
        email=email,
        first_name=clean_str(first_name, 100),
        last_name=clean_str(last_name, 100),
        phone=phone_norm,
        role=role,
        status=STATUS_INVITED,
    )
    session.add(member)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError("This person is already on the team.", CONFLICT, field="email") from e

    out = _issue_invite(member)
    session.flush()
    if send_email:
        send_invite_email(member, out["invite_url"], inviter_name=actor.display_name)
    log_event(
        current_app.logger, "member_invited",
        account_id=actor.account_id, member_id=member.id, role=role,
    )
    return out


def rotate_invite_token(session: Session, actor: TeamMember, member_id, *, send_email: bool = False) -> Dict[str, Any]:
    """New nonce + expiry; previously issued links stop working."""
    from .email import send_invite_email

    ensure(actor, PERM.TEAM_INVITE)
    member = get_member(session, actor.account_id, member_id)
    if member.status != STATUS_INVITED:
        raise ServiceError("Member has already accepted the invite.", CONFLICT)
    out = _issue_invite(member)
    session.flush()
    if send_email:
        send_invite_email(member, out["invite_url"], inviter_name=actor.display_name)
    return out


def _member_from_token(session: Session, token: str) -> TeamMember:
    ttl = int(current_app.config.get("INVITE_TTL_HOURS", 168))
    identity = tokens.verify(INVITE_KIND, token or "", max_age_seconds=ttl * 3600)
    if not identity or ":" not in identity:
        raise ServiceError("Invite link is invalid or has expired.", INVALID, field="token")
    raw_id, nonce = identity.split(":", 1)
    try:
        member = session.get(TeamMember, int(raw_id))
    except ValueError:
        member = None
    if (
        member is None
        or member.deleted_at is not None
        or member.status != STATUS_INVITED
        or not member.invite_nonce
        or not secrets.compare_digest(member.invite_nonce, nonce)
    ):
        raise ServiceError("Invite link is invalid or has expired.", INVALID, field="token")
    expires = as_utc(member.invite_expires_at)
    if expires is not None and expires < utcnow():
        raise ServiceError("Invite link is invalid or has expired.", INVALID, field="token")
    return member


def accept_invite(session: Session, token: str, password: Optional[str]) -> TeamMember:
    """Link (or create) the user for an invite and activate the membership."""
    member = _member_from_token(session, token)

    user = session.query(User).filter(func.lower(User.email) == member.email.lower()).one_or_none()
    if user is None:
        if not password or len(password) < MIN_PASSWORD_LEN:
            raise ServiceError(
                f"Password must be at least {MIN_PASSWORD_LEN} characters.", INVALID, field="password"
            )
        user = User(email=member.email.lower(), account_id=member.account_id)
        user.set_password(password)
        session.add(user)
        session.flush()
    elif password and not user.check_password(password):
        raise ServiceError("Password does not match the existing account.", INVALID, field="password")

    clash = (
        session.query(TeamMember.id)
        .filter(
            TeamMember.account_id == member.account_id,
            TeamMember.user_id == user.id,
            TeamMember.deleted_at.is_(None),
            TeamMember.id != member.id,
        )
        .first()
    )
    if clash is not None:
        raise ServiceError("You are already a member of this project.", CONFLICT)

    member.user_id = user.id
    member.status = STATUS_ACTIVE
    member.accepted_at = utcnow()
    member.invite_nonce = None
    member.invite_expires_at = None
    user.account_id = member.account_id
    session.flush()
    log_event(
        current_app.logger, "invite_accepted",
        account_id=member.account_id, member_id=member.id, user_id=user.id,
    )
    return member


def set_member_role(session: Session, actor: TeamMember, member_id, role: str) -> TeamMember:
    ensure(actor, PERM.TEAM_MANAGE_ROLES)
    member = get_member(session, actor.account_id, member_id)
    role = (role or "").strip().lower()
    if role not in ROLE_CHOICES:
        raise ServiceError("Unknown role.", INVALID, field="role")
    if role == member.role:
        return member
    if ROLE_OWNER in (role, member.role) and actor.role != ROLE_OWNER:
        raise ServiceError("Only an owner can grant or revoke the owner role.", FORBIDDEN)
    if member.role == ROLE_OWNER and member.status == STATUS_ACTIVE and _owner_count(session, actor.account_id) <= 1:
        raise ServiceError("The project must keep at least one owner.", CONFLICT, field="role")
    old = member.role
    member.role = role
    session.flush()
    log_event(
        current_app.logger, "member_role_changed",
        account_id=actor.account_id, member_id=member.id, old_role=old, new_role=role,
    )
    return member


def update_member(session: Session, actor: TeamMember, member_id, data: Dict[str, Any]) -> TeamMember:
    """Profile fields need team.manage_roles; crew_id alone is enough with team.manage_crews."""
    snap = ensure(actor, PERM.TEAM_MANAGE_ROLES, PERM.TEAM_MANAGE_CREWS)
    member = get_member(session, actor.account_id, member_id)
    profile_keys = {"first_name", "last_name", "phone"} & set(data)
    if profile_keys and not can(snap, PERM.TEAM_MANAGE_ROLES):
        raise ServiceError("You can only change the crew of this member.", FORBIDDEN)
    if "crew_id" in data and not can(snap, PERM.TEAM_MANAGE_CREWS):
        raise ServiceError("You cannot change crew assignments.", FORBIDDEN)

    errors: Dict[str, str] = {}
    if "phone" in data:
        raw = data.get("phone")
        if raw in (None, ""):
            member.phone = None
        else:
            phone = normalize_phone(raw)
            if phone is None:
                errors["phone"] = "Enter a valid phone number."
            else:
                member.phone = phone
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)
    for key in ("first_name", "last_name"):
        if key in data:
            setattr(member, key, clean_str(data.get(key), 100))
    if "crew_id" in data:
        _assign(session, actor.account_id, member, data.get("crew_id"))
    session.flush()
    return member


def delete_team_member(session: Session, actor: TeamMember, member_id) -> TeamMember:
    ensure(actor, PERM.TEAM_REMOVE)
    member = get_member(session, actor.account_id, member_id)
    if member.id == actor.id:
        raise ServiceError("You cannot remove yourself.", CONFLICT)
    if member.role == ROLE_OWNER:
        if actor.role != ROLE_OWNER:
            raise ServiceError("Only an owner can remove an owner.", FORBIDDEN)
        if member.status == STATUS_ACTIVE and _owner_count(session, actor.account_id) <= 1:
            raise ServiceError("The project must keep at least one owner.", CONFLICT)

    for crew in session.query(Crew).filter(Crew.account_id == actor.account_id, Crew.leader_member_id == member.id):
        crew.leader_member_id = None
    member.crew_id = None
    member.deleted_at = utcnow()
    member.invite_nonce = None
    session.flush()
    log_event(current_app.logger, "member_removed", account_id=actor.account_id, member_id=member.id)
    return member


# ---- Crews ----------------------------------------------------------------
def get_crew(session: Session, account_id: int, crew_id) -> Crew:
    return get_live(session, Crew, crew_id, account_id, what="Crew")


def crew_members(session: Session, crew: Crew, *, active_only: bool = True) -> List[TeamMember]:
    q = session.query(TeamMember).filter(
        TeamMember.account_id == crew.account_id,
        TeamMember.crew_id == crew.id,
        TeamMember.deleted_at.is_(None),
    )
    if active_only:
        q = q.filter(TeamMember.status == STATUS_ACTIVE)
    return q.order_by(TeamMember.id.asc()).all()


def list_crews(session: Session, actor: TeamMember) -> List[Dict[str, Any]]:
    ensure(actor, PERM.CREWS_READ)
    crews = (
        session.query(Crew)
        .filter(Crew.account_id == actor.account_id, Crew.deleted_at.is_(None))
        .order_by(func.lower(Crew.name))
        .all()
    )
    counts = dict(
        session.query(TeamMember.crew_id, func.count(TeamMember.id))
        .filter(TeamMember.account_id == actor.account_id, TeamMember.deleted_at.is_(None))
        .group_by(TeamMember.crew_id)
        .all()
    )
    return [{**c.to_dict(), "members_count": int(counts.get(c.id, 0))} for c in crews]


def crew_detail(session: Session, actor: TeamMember, crew_id) -> Dict[str, Any]:
    ensure(actor, PERM.CREWS_READ)
    crew = get_crew(session, actor.account_id, crew_id)
    members = crew_members(session, crew, active_only=False)
    return {**crew.to_dict(), "members": [m.to_dict() for m in members]}


def _unique_crew_name(session: Session, account_id: int, name: str, *, exclude_id=None) -> None:
    q = session.query(Crew.id).filter(
        Crew.account_id == account_id,
        Crew.deleted_at.is_(None),
        func.lower(Crew.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.filter(Crew.id != exclude_id)
    if session.query(q.exists()).scalar():
        raise ServiceError("Crew with this name already exists.", CONFLICT, field="name")


def _assign(session: Session, account_id: int, member: TeamMember, crew_id) -> None:
    if crew_id in (None, ""):
        if member.crew_id is not None:
            old = session.get(Crew, member.crew_id)
            if old is not None and old.leader_member_id == member.id:
                old.leader_member_id = None
        member.crew_id = None
        return
    crew = get_crew(session, account_id, crew_id)
    if member.crew_id is not None and member.crew_id != crew.id:
        old = session.get(Crew, member.crew_id)
        if old is not None and old.leader_member_id == member.id:
            old.leader_member_id = None
    member.crew_id = crew.id


def create_crew(session: Session, actor: TeamMember, *, name: str, leader_member_id=None) -> Crew:
    ensure(actor, PERM.CREWS_CREATE)
    name = clean_str(name, 120)
    if not name:
        raise ServiceError("Name is required.", INVALID, field="name")
    _unique_crew_name(session, actor.account_id, name)
    leader = None
    if leader_member_id not in (None, ""):
        leader = get_member(session, actor.account_id, leader_member_id)
        if leader.status != STATUS_ACTIVE:
            raise ServiceError("Crew leader must be an active member.", INVALID, field="leader_member_id")
    crew = Crew(account_id=actor.account_id, name=name)
    session.add(crew)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError("Crew with this name already exists.", CONFLICT, field="name") from e
    if leader is not None:
        _assign(session, actor.account_id, leader, crew.id)
        crew.leader_member_id = leader.id
        session.flush()
    return crew


def rename_crew(session: Session, actor: TeamMember, crew_id, *, name: str) -> Crew:
    ensure(actor, PERM.CREWS_UPDATE)
    crew = get_crew(session, actor.account_id, crew_id)
    name = clean_str(name, 120)
    if not name:
        raise ServiceError("Name cannot be blank.", INVALID, field="name")
    _unique_crew_name(session, actor.account_id, name, exclude_id=crew.id)
    crew.name = name
    session.flush()
    return crew


def assign_member_to_crew(session: Session, actor: TeamMember, member_id, crew_id) -> TeamMember:
    """crew_id=None removes the member from their crew (and its leadership)."""
    ensure(actor, PERM.CREWS_ASSIGN)
    member = get_member(session, actor.account_id, member_id)
    _assign(session, actor.account_id, member, crew_id)
    session.flush()
    return member


def change_crew_leader(session: Session, actor: TeamMember, crew_id, member_id) -> Crew:
    ensure(actor, PERM.CREWS_CHANGE_LEADER)
    crew = get_crew(session, actor.account_id, crew_id)
    if member_id in (None, ""):
        crew.leader_member_id = None
        session.flush()
        return crew
    member = get_member(session, actor.account_id, member_id)
    if member.status != STATUS_ACTIVE:
        raise ServiceError("Crew leader must be an active member.", INVALID, field="member_id")
    if member.crew_id != crew.id:
        _assign(session, actor.account_id, member, crew.id)
    crew.leader_member_id = member.id
    session.flush()
    return crew


def delete_crew(session: Session, actor: TeamMember, crew_id) -> Crew:
    ensure(actor, PERM.CREWS_DELETE)
    crew = get_crew(session, actor.account_id, crew_id)
    (
        session.query(TeamMember)
        .filter(TeamMember.account_id == actor.account_id, TeamMember.crew_id == crew.id)
        .update({TeamMember.crew_id: None}, synchronize_session="fetch")
    )
    (
        session.query(Task)
        .filter(Task.account_id == actor.account_id, Task.assigned_crew_id == crew.id)
        .update({Task.assigned_crew_id: None}, synchronize_session="fetch")
    )
    crew.leader_member_id = None
    crew.deleted_at = utcnow()
    session.flush()
    log_event(current_app.logger, "crew_deleted", account_id=actor.account_id, crew_id=crew.id)
    return crew
