from flask import request, jsonify

from sitestock.extensions import db
from sitestock.services import daily_reports as svc
from sitestock.services.permissions import PERM
from sitestock.services.policy import permission_required, current_member
from sitestock.blueprints.api import json_body, committed, arg_int, arg_date
from . import bp


@bp.get("")
@permission_required(PERM.DAILY_REPORTS_READ)
def list_reports():
    rows = svc.list_daily_reports(
        db.session,
        current_member(),
        status=(request.args.get("status") or svc.STATUS_ALL).strip().lower(),
        date_from=arg_date("from"),
        date_to=arg_date("to"),
        location_id=arg_int("location_id"),
    )
    return jsonify({"ok": True, "items": [r.to_dict(with_items=False) for r in rows]}), 200


@bp.get("/queue")
@permission_required(PERM.DAILY_REPORTS_QUEUE)
def approval_queue():
    rows = svc.list_daily_reports(db.session, current_member(), status=svc.STATUS_PENDING)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@bp.post("")
@permission_required(PERM.DAILY_REPORTS_CREATE)
def create_report():
    payload = json_body()
    payload.setdefault("client_key", request.headers.get("Idempotency-Key"))
    report = committed(svc.create_daily_report, current_member(), payload)
    return jsonify({"ok": True, "report": report.to_dict()}), 201


@bp.get("/<int:report_id>")
@permission_required(PERM.DAILY_REPORTS_READ)
def get_report(report_id):
    report = svc.read_daily_report(db.session, current_member(), report_id)
    return jsonify({"ok": True, "report": report.to_dict()}), 200


@bp.patch("/<int:report_id>")
@permission_required(PERM.DAILY_REPORTS_UPDATE_UNAPPROVED)
def update_report(report_id):
    report = committed(svc.update_daily_report, current_member(), report_id, json_body())
    return jsonify({"ok": True, "report": report.to_dict()}), 200


@bp.post("/<int:report_id>/approve")
@permission_required(PERM.DAILY_REPORTS_APPROVE)
def approve_report(report_id):
    report = committed(svc.approve_daily_report, current_member(), report_id)
    return jsonify({"ok": True, "report": report.to_dict()}), 200


@bp.delete("/<int:report_id>")
@permission_required(PERM.DAILY_REPORTS_DELETE_UNAPPROVED)
def delete_report(report_id):
    rid = committed(svc.delete_daily_report, current_member(), report_id)
    return jsonify({"ok": True, "id": rid}), 200


# ---- Photos ---------------------------------------------------------------
@bp.post("/photos")
@permission_required(PERM.DAILY_REPORTS_PHOTOS_UPLOAD)
def upload_photos():
    form = request.form
    paths = committed(
        svc.upload_report_photos,
        current_member(),
        request.files.getlist("files"),
        report_id=form.get("report_id"),
        draft_key=form.get("draft_key"),
    )
    return jsonify({"ok": True, "paths": paths}), 201


@bp.delete("/photos")
@permission_required(PERM.DAILY_REPORTS_PHOTOS_DELETE)
def delete_photo():
    data = json_body()
    removed = committed(svc.delete_report_photo, current_member(), data.get("path"), report_id=data.get("report_id"))
    return jsonify({"ok": True, "removed": removed}), 200
