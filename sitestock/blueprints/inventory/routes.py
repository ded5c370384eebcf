from flask import jsonify

from sitestock.extensions import db
from sitestock.models.team_member import ROLE_OWNER, ROLE_MANAGER, ROLE_STOREMAN
from sitestock.services import inventory_audit as svc
from sitestock.services.policy import role_required, current_member
from sitestock.blueprints.api import json_body, committed, arg_int, arg_date
from . import bp

AUDITORS = (ROLE_OWNER, ROLE_MANAGER, ROLE_STOREMAN)


def _session_json(inv):
    d = inv.to_dict()
    d["items"] = [it.to_dict() for it in inv.items]
    return d


@bp.get("/sessions")
@role_required(*AUDITORS)
def list_sessions():
    rows = svc.list_sessions(
        db.session,
        current_member(),
        date_from=arg_date("from"),
        date_to=arg_date("to"),
        location_id=arg_int("location_id"),
    )
    return jsonify({"ok": True, "items": [s.to_dict() for s in rows]}), 200


@bp.post("/sessions")
@role_required(*AUDITORS)
def create_session():
    data = json_body()
    inv = committed(
        svc.create_session,
        current_member(),
        session_date=data.get("session_date") or data.get("date"),
        location_id=data.get("inventory_location_id") or data.get("location_id"),
        description=data.get("description"),
    )
    return jsonify({"ok": True, "session": _session_json(inv)}), 201


@bp.get("/sessions/<int:session_id>")
@role_required(*AUDITORS)
def get_session(session_id):
    inv = svc.get_session(db.session, current_member(), session_id)
    return jsonify({"ok": True, "session": _session_json(inv)}), 200


@bp.delete("/sessions/<int:session_id>")
@role_required(*AUDITORS)
def delete_session(session_id):
    committed(svc.delete_session, current_member(), session_id)
    return jsonify({"ok": True, "id": session_id}), 200


@bp.post("/sessions/<int:session_id>/items")
@role_required(*AUDITORS)
def add_item(session_id):
    data = json_body()
    item = committed(svc.add_item, current_member(), session_id, data.get("material_id"))
    return jsonify({"ok": True, "item": item.to_dict()}), 201


@bp.post("/sessions/<int:session_id>/items/all")
@role_required(*AUDITORS)
def add_all_items(session_id):
    added = committed(svc.add_all_items, current_member(), session_id)
    return jsonify({"ok": True, "added": added}), 200


@bp.patch("/items/<int:item_id>")
@role_required(*AUDITORS)
def set_counted(item_id):
    data = json_body()
    item = committed(svc.set_counted_qty, current_member(), item_id, data.get("counted_qty"))
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@bp.delete("/items/<int:item_id>")
@role_required(*AUDITORS)
def remove_item(item_id):
    committed(svc.remove_item, current_member(), item_id)
    return jsonify({"ok": True, "id": item_id}), 200


@bp.post("/sessions/<int:session_id>/approve")
@role_required(*AUDITORS)
def approve_session(session_id):
    inv = committed(svc.approve_session, current_member(), session_id)
    return jsonify({"ok": True, "session": _session_json(inv)}), 200


@bp.get("/sessions/<int:session_id>/report")
@role_required(*AUDITORS)
def report(session_id):
    return jsonify({"ok": True, **svc.audit_report(db.session, current_member(), session_id)}), 200
