from functools import wraps
from flask import abort, session, request, g, jsonify
from flask_login import current_user
from sitestock.extensions import db
from sitestock.models.team_member import TeamMember, STATUS_ACTIVE
from sitestock.services import permissions


def _current_account_id():
    aid = session.get("current_account_id")
    if not aid and getattr(current_user, "is_authenticated", False):
        aid = getattr(current_user, "account_id", None)
    return aid


def _load_member():
    """Resolve (status, member) for the request; cached on g."""
    if "member" in g:
        return 200, g.member
    if not current_user.is_authenticated:
        return 401, None
    account_id = _current_account_id()
    if not account_id:
        return 401, None
    m = (
        db.session.query(TeamMember)
        .filter_by(account_id=account_id, user_id=current_user.id, deleted_at=None, status=STATUS_ACTIVE)
        .one_or_none()
    )
    if not m:
        return 404, None  # anti-enumeration
    g.member = m
    g.snapshot = permissions.snapshot_for_member(m)
    return 200, m


def current_member():
    status, m = _load_member()
    return m if status == 200 else None


def current_snapshot():
    status, _ = _load_member()
    if status != 200:
        return permissions.EMPTY_SNAPSHOT
    return g.snapshot


def require_member(fn):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        status, _ = _load_member()
        if status != 200:
            return _abort_smart(status)
        return fn(*args, **kwargs)
    return _wrap


def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            status, m = _load_member()
            if status != 200:
                return _abort_smart(status)
            if m.role not in roles:
                return _abort_smart(403)
            return fn(*args, **kwargs)
        return _wrap
    return deco


def permission_required(*keys):
    """Allow when the member's snapshot can do ANY of `keys`."""
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            status, _ = _load_member()
            if status != 200:
                return _abort_smart(status)
            if not permissions.can_any(g.snapshot, keys):
                return _abort_smart(403)
            return fn(*args, **kwargs)
        return _wrap
    return deco


def wants_json() -> bool:
    accept = (request.headers.get("Accept") or "").lower()
    return "application/json" in accept or request.is_json or request.path.endswith(".json")


def _abort_smart(code: int):
    # If the client asked for JSON, return a JSON-shaped error
    if wants_json():
        return jsonify({"error": {401: "unauthorized", 403: "forbidden", 404: "not_found"}[code], "code": code}), code
    abort(code)
