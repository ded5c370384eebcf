import types
from flask import Flask
from sitestock.services import policy
from sitestock.services.permissions import PERM


class DummyUser:
    def __init__(self, uid, auth=True): self.id, self.is_authenticated, self.account_id = uid, auth, 1


class DummyQuery:
    def __init__(self, obj): self._obj = obj
    def filter_by(self, **kw): return self
    def one_or_none(self): return self._obj


class DummySession:
    def __init__(self, obj): self._obj = obj
    def query(self, *args, **kw): return DummyQuery(self._obj)


def member(role):
    return types.SimpleNamespace(id=3, account_id=1, role=role, status="active", deleted_at=None)


def make_app():
    app = Flask(__name__); app.config.update(SECRET_KEY="x", TESTING=True)
    return app


def _wire(monkeypatch, user, found=None, sess=None):
    monkeypatch.setattr(policy, "current_user", user)
    monkeypatch.setattr(policy, "session", sess if sess is not None else {"current_account_id": 1})
    monkeypatch.setattr(policy, "db", types.SimpleNamespace(session=DummySession(found)))


def test_require_member_unauth_json(monkeypatch):
    app = make_app()
    @policy.require_member
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(None, auth=False), sess={})
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r[1] == 401 and r[0].json["error"] == "unauthorized"


def test_require_member_not_found_json(monkeypatch):
    app = make_app()
    @policy.require_member
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(7), found=None)
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r[1] == 404 and r[0].json["error"] == "not_found"


def test_require_member_ok(monkeypatch):
    app = make_app()
    @policy.require_member
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(7), found=member("worker"))
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r == ("ok", 200)


def test_role_required_forbidden(monkeypatch):
    app = make_app()
    @policy.role_required("manager", "owner")
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(7), found=member("worker"))
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r[1] == 403 and r[0].json["error"] == "forbidden"


def test_role_required_ok(monkeypatch):
    app = make_app()
    @policy.role_required("manager", "owner")
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(7), found=member("manager"))
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r == ("ok", 200)


def test_permission_required_uses_role_matrix(monkeypatch):
    app = make_app()
    @policy.permission_required(PERM.DELIVERIES_APPROVE)
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(7), found=member("foreman"))
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r[1] == 403
    _wire(monkeypatch, DummyUser(7), found=member("storeman"))
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        r = v(); assert r == ("ok", 200)


def test_permission_required_accepts_any_of_keys(monkeypatch):
    app = make_app()
    @policy.permission_required(PERM.TASKS_READ_ALL, PERM.TASKS_READ_OWN)
    def v(): return "ok", 200
    _wire(monkeypatch, DummyUser(7), found=member("worker"))
    with app.test_request_context("/x", headers={"Accept": "application/json"}):
        assert v() == ("ok", 200)


def test_current_snapshot_empty_when_anonymous(monkeypatch):
    app = make_app()
    _wire(monkeypatch, DummyUser(None, auth=False), sess={})
    with app.test_request_context("/x"):
        snap = policy.current_snapshot()
        assert snap.permissions == frozenset() and snap.role is None
