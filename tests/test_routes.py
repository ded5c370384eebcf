import io
import os
from urllib.parse import parse_qs, urlparse

import pytest

from sitestock.extensions import db
from sitestock.models.team_member import ROLE_WORKER, ROLE_STOREMAN
from conftest import Factory, login

JSON = {"Accept": "application/json"}


@pytest.fixture()
def seeded(app):
    """Owner + worker + storeman on one site with a stocked container."""
    make = Factory()
    with app.app_context():
        acc = make.account("Tower")
        owner = make.member(acc, email="owner@example.com", password="secret123")
        worker = make.member(acc, ROLE_WORKER, email="worker@example.com")
        storeman = make.member(acc, ROLE_STOREMAN, email="store@example.com")
        loc = make.location(acc, "Container 1")
        mat = make.material(acc, loc, title="Cable", qty=5, base=10)
        ids = {
            "account": acc.id,
            "owner_user": owner.user_id,
            "worker_user": worker.user_id,
            "storeman_user": storeman.user_id,
            "location": loc.id,
            "material": mat.id,
        }
        db.session.commit()
    return ids


def test_healthz(client):
    assert client.get("/healthz").get_json() == {"status": "ok"}


def test_login_and_me(client, seeded):
    r = client.post("/auth/login", json={"email": "OWNER@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.get_json()["account_id"] == seeded["account"]

    me = client.get("/auth/me").get_json()
    assert me["user"]["email"] == "owner@example.com"
    assert me["member"]["role"] == "owner"
    assert me["accounts"] == [seeded["account"]]


def test_login_rejects_bad_password(client, seeded):
    r = client.post("/auth/login", json={"email": "owner@example.com", "password": "nope"})
    assert r.status_code == 400
    assert r.get_json() == {"ok": False, "error": "invalid", "message": "Invalid credentials."}


def test_permissions_snapshot(client, seeded):
    anon = client.get("/auth/me/permissions").get_json()
    assert anon["permissions"] == []
    assert anon["groups"] == []

    login(client, seeded["worker_user"], seeded["account"])
    snap = client.get("/auth/me/permissions").get_json()
    assert snap["role"] == "worker"
    assert "materials.read" in snap["permissions"]
    assert "deliveries.approve" not in snap["permissions"]


def test_anonymous_gets_json_401(client, seeded):
    r = client.get("/materials", headers=JSON)
    assert r.status_code == 401
    assert r.get_json()["error"] == "unauthorized"


def test_worker_cannot_create_material(client, seeded):
    login(client, seeded["worker_user"], seeded["account"])
    r = client.post("/materials", json={"title": "Hammer"})
    assert r.status_code == 403
    assert r.get_json() == {"error": "forbidden", "code": 403}


def test_material_create_list_and_conflict(client, seeded):
    login(client, seeded["owner_user"], seeded["account"])
    r = client.post("/materials", json={"title": "Tape", "base_quantity": 4, "inventory_location_id": seeded["location"]})
    assert r.status_code == 201
    assert r.get_json()["material"]["stock_pct"] == 100

    dup = client.post("/materials", json={"title": "tape", "inventory_location_id": seeded["location"]})
    assert dup.status_code == 409
    assert "title" in dup.get_json()["errors"]

    listing = client.get("/materials?sort=title").get_json()
    assert [m["title"] for m in listing["items"]] == ["Cable", "Tape"]
    assert listing["visibility"]["can_write"] is True


def test_validation_errors_are_400_with_fields(client, seeded):
    login(client, seeded["owner_user"], seeded["account"])
    r = client.post("/materials", json={"title": ""})
    assert r.status_code == 400
    body = r.get_json()
    assert body["error"] == "invalid"
    assert "title" in body["errors"]


def test_delivery_approval_flow(client, seeded):
    login(client, seeded["storeman_user"], seeded["account"])
    r = client.post("/deliveries", json={
        "delivery_date": "2025-03-01",
        "inventory_location_id": seeded["location"],
        "items": [{"material_id": seeded["material"], "qty": 3, "unit_price": "2.5"}],
    })
    assert r.status_code == 201
    dlv_id = r.get_json()["delivery"]["id"]

    approved = client.post(f"/deliveries/{dlv_id}/approve").get_json()
    assert approved["delivery"]["approved"] is True
    mat = client.get(f"/materials/{seeded['material']}").get_json()["material"]
    assert mat["current_quantity"] == 8.0
    assert mat["stock_pct"] == 80


def test_daily_report_idempotency_header(client, seeded):
    login(client, seeded["worker_user"], seeded["account"])
    body = {
        "date": "2025-03-02",
        "inventory_location_id": seeded["location"],
        "items": [{"material_id": seeded["material"], "qty_used": 1}],
    }
    headers = {"Idempotency-Key": "offline-retry-42"}
    first = client.post("/daily-reports", json=body, headers=headers)
    again = client.post("/daily-reports", json=body, headers=headers)
    assert first.status_code == again.status_code == 201
    assert first.get_json()["report"]["id"] == again.get_json()["report"]["id"]


def test_switch_to_foreign_account_is_404(client, app, seeded):
    with app.app_context():
        other = Factory().account("Elsewhere")
        other_id = other.id
        db.session.commit()
    login(client, seeded["owner_user"], seeded["account"])
    r = client.post("/auth/switch-account", json={"account_id": other_id})
    assert r.status_code == 404


def test_invite_accept_logs_new_member_in(client, app, seeded):
    login(client, seeded["owner_user"], seeded["account"])
    r = client.post("/team/members/invite", json={"email": "new@example.com", "role": "foreman", "send_email": False})
    assert r.status_code == 201
    token = parse_qs(urlparse(r.get_json()["invite_url"]).query)["token"][0]

    fresh = app.test_client()
    accepted = fresh.post("/auth/invite/accept", json={"token": token, "password": "longenough"})
    assert accepted.status_code == 200
    assert accepted.get_json()["member"]["status"] == "active"
    assert fresh.get("/auth/me").get_json()["member"]["role"] == "foreman"

    reused = app.test_client().post("/auth/invite/accept", json={"token": token, "password": "longenough"})
    assert reused.status_code == 400


def test_draft_photo_upload_and_delete(client, app, seeded):
    with app.app_context():
        from sitestock.models import Account
        foreman = Factory().member(db.session.get(Account, seeded["account"]), "foreman", email="fm@example.com")
        foreman_user = foreman.user_id
        db.session.commit()
    login(client, foreman_user, seeded["account"])

    r = client.post(
        "/daily-reports/photos",
        data={"draft_key": "draft_123", "files": [(io.BytesIO(b"\xff\xd8jpeg"), "site.jpg")]},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.get_json()
    (path,) = r.get_json()["paths"]
    assert path.startswith(f"{seeded['account']}/daily-reports/draft-draft_123/")
    assert os.path.exists(os.path.join(app.config["UPLOAD_FOLDER"], path))

    gone = client.delete("/daily-reports/photos", json={"path": path})
    assert gone.get_json() == {"ok": True, "removed": True}

    bad = client.post(
        "/daily-reports/photos",
        data={"draft_key": "draft_123", "files": [(io.BytesIO(b"MZ"), "tool.exe")]},
        content_type="multipart/form-data",
    )
    assert bad.status_code == 400
