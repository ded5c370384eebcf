from flask import request, jsonify, send_file

from sitestock.extensions import db
from sitestock.services import deliveries as svc
from sitestock.services.common import ServiceError, NOT_FOUND
from sitestock.services.permissions import PERM
from sitestock.services.policy import permission_required, current_member
from sitestock.services.storage import open_path
from sitestock.blueprints.api import json_body, committed, arg_int, arg_bool, arg_date
from . import bp


@bp.get("")
@permission_required(PERM.DELIVERIES_READ)
def list_deliveries():
    rows = svc.list_deliveries(
        db.session,
        current_member(),
        status=(request.args.get("status") or svc.STATUS_ALL).strip().lower(),
        date_from=arg_date("from"),
        date_to=arg_date("to"),
        location_id=arg_int("location_id"),
        include_deleted=arg_bool("include_deleted"),
    )
    return jsonify({"ok": True, "items": [d.to_dict(with_items=False) for d in rows]}), 200


@bp.get("/items-summary")
@permission_required(PERM.REPORTS_DELIVERIES_READ, PERM.REPORTS_ITEMS_READ)
def items_summary():
    rows = svc.list_deliveries(
        db.session,
        current_member(),
        status=svc.STATUS_APPROVED,
        date_from=arg_date("from"),
        date_to=arg_date("to"),
        location_id=arg_int("location_id"),
    )
    return jsonify({"ok": True, "items": svc.summarize_items(rows)}), 200


@bp.post("")
@permission_required(PERM.DELIVERIES_CREATE)
def create_delivery():
    dlv = committed(svc.create_delivery, current_member(), json_body())
    return jsonify({"ok": True, "delivery": dlv.to_dict()}), 201


@bp.get("/<int:delivery_id>")
@permission_required(PERM.DELIVERIES_READ)
def get_delivery(delivery_id):
    dlv = svc.get_delivery(db.session, current_member().account_id, delivery_id)
    return jsonify({"ok": True, "delivery": dlv.to_dict()}), 200


@bp.patch("/<int:delivery_id>")
@permission_required(PERM.DELIVERIES_UPDATE_UNAPPROVED)
def update_delivery(delivery_id):
    dlv = committed(svc.update_delivery, current_member(), delivery_id, json_body())
    return jsonify({"ok": True, "delivery": dlv.to_dict()}), 200


@bp.delete("/<int:delivery_id>")
@permission_required(PERM.DELIVERIES_DELETE_UNAPPROVED)
def delete_delivery(delivery_id):
    dlv = committed(svc.delete_delivery, current_member(), delivery_id)
    return jsonify({"ok": True, "delivery": dlv.to_dict(with_items=False)}), 200


@bp.post("/<int:delivery_id>/restore")
@permission_required(PERM.DELIVERIES_DELETE_UNAPPROVED)
def restore_delivery(delivery_id):
    dlv = committed(svc.restore_delivery, current_member(), delivery_id)
    return jsonify({"ok": True, "delivery": dlv.to_dict(with_items=False)}), 200


@bp.post("/<int:delivery_id>/approve")
@permission_required(PERM.DELIVERIES_APPROVE)
def approve_delivery(delivery_id):
    dlv = committed(svc.add_delivery_and_update_stock, current_member(), delivery_id)
    return jsonify({"ok": True, "delivery": dlv.to_dict()}), 200


@bp.post("/<int:delivery_id>/invoice")
@permission_required(PERM.DELIVERIES_CREATE, PERM.DELIVERIES_UPDATE_UNAPPROVED)
def upload_invoice(delivery_id):
    f = request.files.get("file")
    dlv = committed(svc.attach_invoice, current_member(), delivery_id, f)
    return jsonify({"ok": True, "delivery": dlv.to_dict(with_items=False)}), 200


@bp.get("/<int:delivery_id>/invoice")
@permission_required(PERM.REPORTS_DELIVERIES_INVOICES_READ, PERM.DELIVERIES_APPROVE)
def download_invoice(delivery_id):
    dlv = svc.get_delivery(db.session, current_member().account_id, delivery_id, include_deleted=True)
    if not dlv.invoice_path:
        raise ServiceError("This delivery has no invoice.", NOT_FOUND)
    return send_file(open_path(dlv.invoice_path), as_attachment=True)
