from flask import request, jsonify

from sitestock.services import materials as svc
from sitestock.services.permissions import PERM
from sitestock.services.policy import permission_required, require_member, current_member
from sitestock.services.relocations import (
    create_inventory_relocation,
    list_transfer_days,
    transfer_day_detail,
)
from sitestock.utils.helpers import parse_date
from sitestock.services.common import ServiceError, INVALID
from sitestock.extensions import db
from sitestock.blueprints.api import json_body, committed, arg_int, arg_bool, arg_date
from . import bp


@bp.get("")
@permission_required(PERM.MATERIALS_READ)
def list_materials():
    me = current_member()
    page = svc.list_materials(
        db.session,
        me,
        q=request.args.get("q"),
        sort=(request.args.get("sort") or "title").strip(),
        direction=(request.args.get("dir") or "asc").strip().lower(),
        include_deleted=arg_bool("include_deleted"),
        deleted_only=arg_bool("deleted_only"),
        location_id=arg_int("location_id"),
        page=arg_int("page") or 1,
        limit=arg_int("limit"),
    )
    return jsonify({
        "ok": True,
        "items": [m.to_dict() for m in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "visibility": svc.materials_visibility(me),
    }), 200


@bp.post("")
@permission_required(PERM.MATERIALS_WRITE)
def create_material():
    m = committed(svc.create_material, current_member(), json_body())
    return jsonify({"ok": True, "material": m.to_dict()}), 201


@bp.get("/<int:material_id>")
@permission_required(PERM.MATERIALS_READ)
def get_material(material_id):
    m = svc.get_material(db.session, current_member().account_id, material_id)
    return jsonify({"ok": True, "material": m.to_dict()}), 200


@bp.patch("/<int:material_id>")
@permission_required(PERM.MATERIALS_WRITE)
def update_material(material_id):
    m = committed(svc.update_material, current_member(), material_id, json_body())
    return jsonify({"ok": True, "material": m.to_dict()}), 200


@bp.delete("/<int:material_id>")
@permission_required(PERM.MATERIALS_SOFT_DELETE)
def delete_material(material_id):
    m = committed(svc.soft_delete_material, current_member(), material_id)
    return jsonify({"ok": True, "material": m.to_dict()}), 200


@bp.post("/<int:material_id>/restore")
@permission_required(PERM.MATERIALS_SOFT_DELETE)
def restore_material(material_id):
    m = committed(svc.restore_material, current_member(), material_id)
    return jsonify({"ok": True, "material": m.to_dict()}), 200


@bp.get("/low-stock")
@permission_required(PERM.LOW_STOCK_READ, PERM.LOW_STOCK_MANAGE)
def low_stock():
    rows = svc.low_stock(
        db.session, current_member(), location_id=arg_int("location_id"), threshold=arg_int("threshold")
    )
    return jsonify({"ok": True, "items": [m.to_dict() for m in rows]}), 200


# ---- Locations ------------------------------------------------------------
@bp.get("/locations")
@require_member
def list_locations():
    rows = svc.list_locations(db.session, current_member().account_id)
    return jsonify({"ok": True, "items": [loc.to_dict() for loc in rows]}), 200


@bp.post("/locations")
@permission_required(PERM.INVENTORY_MANAGE)
def create_location():
    data = json_body()
    loc = committed(svc.create_location, current_member(), label=data.get("label"))
    return jsonify({"ok": True, "location": loc.to_dict()}), 201


@bp.patch("/locations/<int:location_id>")
@permission_required(PERM.INVENTORY_MANAGE)
def rename_location(location_id):
    data = json_body()
    loc = committed(svc.rename_location, current_member(), location_id, label=data.get("label"))
    return jsonify({"ok": True, "location": loc.to_dict()}), 200


@bp.delete("/locations/<int:location_id>")
@permission_required(PERM.INVENTORY_MANAGE)
def delete_location(location_id):
    loc = committed(svc.delete_location, current_member(), location_id)
    return jsonify({"ok": True, "location": loc.to_dict()}), 200


# ---- Relocations ----------------------------------------------------------
@bp.post("/<int:material_id>/relocate")
@permission_required(PERM.INVENTORY_MANAGE)
def relocate(material_id):
    data = json_body()
    reloc = committed(
        create_inventory_relocation,
        current_member(),
        from_material_id=material_id,
        to_location_id=data.get("to_location_id"),
        qty=data.get("qty"),
        note=data.get("note"),
        client_key=data.get("client_key") or request.headers.get("Idempotency-Key"),
    )
    return jsonify({"ok": True, "relocation": reloc.to_dict()}), 201


@bp.get("/transfers")
@permission_required(PERM.INVENTORY_READ, PERM.REPORTS_INVENTORY_READ)
def transfers():
    days = list_transfer_days(
        db.session, current_member(), date_from=arg_date("from"), date_to=arg_date("to")
    )
    return jsonify({"ok": True, "days": days}), 200


@bp.get("/transfers/<day>")
@permission_required(PERM.INVENTORY_READ, PERM.REPORTS_INVENTORY_READ)
def transfer_day(day):
    d = parse_date(day)
    if d is None:
        raise ServiceError("day must be YYYY-MM-DD.", INVALID, field="day")
    rows = transfer_day_detail(
        db.session,
        current_member(),
        day=d,
        created_by=arg_int("created_by"),
        from_location_id=arg_int("from_location_id"),
        to_location_id=arg_int("to_location_id"),
    )
    return jsonify({"ok": True, "day": d.isoformat(), "items": [r.to_dict() for r in rows]}), 200
