from flask import request, jsonify

from sitestock.extensions import db
from sitestock.services import tasks as svc
from sitestock.services.permissions import PERM
from sitestock.services.policy import permission_required, require_member, current_member
from sitestock.blueprints.api import json_body, committed, arg_int, arg_bool
from . import bp


@bp.get("")
@permission_required(PERM.TASKS_READ_ALL, PERM.TASKS_READ_OWN)
def list_tasks():
    rows = svc.list_tasks(
        db.session,
        current_member(),
        status=(request.args.get("status") or "").strip() or None,
        place_id=arg_int("place_id"),
        mine=arg_bool("mine"),
    )
    return jsonify({"ok": True, "items": [t.to_dict() for t in rows]}), 200


@bp.post("")
@permission_required(PERM.TASKS_ASSIGN)
def create_task():
    task = committed(svc.create_task, current_member(), json_body())
    return jsonify({"ok": True, "task": task.to_dict()}), 201


@bp.get("/<int:task_id>")
@permission_required(PERM.TASKS_READ_ALL, PERM.TASKS_READ_OWN)
def get_task(task_id):
    task = svc.read_task(db.session, current_member(), task_id)
    return jsonify({"ok": True, "task": task.to_dict()}), 200


@bp.patch("/<int:task_id>")
@permission_required(PERM.TASKS_UPDATE_ALL, PERM.TASKS_UPDATE_OWN)
def update_task(task_id):
    task = committed(svc.update_task, current_member(), task_id, json_body())
    return jsonify({"ok": True, "task": task.to_dict()}), 200


@bp.post("/<int:task_id>/assign")
@permission_required(PERM.TASKS_ASSIGN)
def assign_task(task_id):
    data = json_body()
    task = committed(
        svc.assign_task, current_member(), task_id, crew_id=data.get("crew_id"), member_id=data.get("member_id")
    )
    return jsonify({"ok": True, "task": task.to_dict()}), 200


@bp.delete("/<int:task_id>")
@permission_required(PERM.TASKS_ASSIGN)
def delete_task(task_id):
    task = committed(svc.delete_task, current_member(), task_id)
    return jsonify({"ok": True, "id": task.id}), 200


@bp.post("/<int:task_id>/photos")
@permission_required(PERM.TASKS_UPLOAD_PHOTOS)
def upload_photos(task_id):
    task = committed(svc.upload_task_photos, current_member(), task_id, request.files.getlist("files"))
    return jsonify({"ok": True, "task": task.to_dict()}), 201


# ---- Places (stages are top-level places) ---------------------------------
def _place_json(place):
    d = place.to_dict()
    d["breadcrumb"] = [{"id": p.id, "name": p.name} for p in svc.breadcrumb(db.session, place)]
    return d


@bp.get("/places")
@require_member
def list_places():
    rows = svc.list_places(
        db.session,
        current_member().account_id,
        parent_id=arg_int("parent_id"),
        roots_only=arg_bool("roots"),
    )
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@bp.get("/places/<int:place_id>")
@require_member
def get_place(place_id):
    place = svc.get_place(db.session, current_member().account_id, place_id)
    return jsonify({"ok": True, "place": _place_json(place)}), 200


@bp.post("/places")
@permission_required(PERM.PROJECT_MANAGE, PERM.TASKS_ASSIGN)
def create_place():
    data = json_body()
    place = committed(
        svc.create_place,
        current_member(),
        name=data.get("name"),
        parent_id=data.get("parent_id"),
        description=data.get("description"),
    )
    return jsonify({"ok": True, "place": _place_json(place)}), 201


@bp.patch("/places/<int:place_id>")
@permission_required(PERM.PROJECT_MANAGE, PERM.TASKS_ASSIGN)
def update_place(place_id):
    place = committed(svc.update_place, current_member(), place_id, json_body())
    return jsonify({"ok": True, "place": _place_json(place)}), 200


@bp.delete("/places/<int:place_id>")
@permission_required(PERM.PROJECT_MANAGE)
def delete_place(place_id):
    place = committed(svc.delete_place, current_member(), place_id)
    return jsonify({"ok": True, "id": place.id}), 200
