from flask import request, jsonify

from sitestock.extensions import db
from sitestock.services import plans, pricing
from sitestock.services.metrics import project_metrics_dash
from sitestock.services.permissions import PERM
from sitestock.services.policy import permission_required, require_member, current_member
from sitestock.services.status import project_status, fmt_hours
from sitestock.services.summary import summary_bundle
from sitestock.blueprints.api import json_body, committed, arg_int, arg_date, date_range
from . import bp


def _interval():
    return (request.args.get("interval") or "week").strip().lower()


@bp.get("/metrics")
@require_member
def metrics():
    frm, to = date_range()
    dash = project_metrics_dash(
        db.session,
        current_member(),
        date_from=frm,
        date_to=to,
        location_id=arg_int("location_id"),
        interval=_interval(),
    )
    return jsonify({
        "ok": True,
        "from": frm.isoformat(),
        "to": to.isoformat(),
        "dash": dash,
        "status": project_status(dash),
        "avg_approval_label": fmt_hours(dash["avg_approval_hours"]),
    }), 200


@bp.get("/summary")
@permission_required(PERM.REPORTS_ITEMS_READ, PERM.REPORTS_DELIVERIES_READ, PERM.METRICS_READ)
def summary():
    frm, to = date_range()
    bundle = summary_bundle(
        db.session,
        current_member(),
        date_from=frm,
        date_to=to,
        location_id=arg_int("location_id"),
        interval=_interval(),
    )
    return jsonify({"ok": True, **bundle}), 200


# ---- Pricing --------------------------------------------------------------
@bp.get("/pricing")
@permission_required(PERM.REPORTS_ITEMS_READ, PERM.METRICS_READ)
def pricing_rollup():
    as_of = arg_date("as_of")
    location_id = arg_int("location_id")
    me = current_member()
    if location_id:
        rows = pricing.pricing_by_location(db.session, me, as_of=as_of, location_id=location_id)
    else:
        rows = pricing.pricing_rollup(db.session, me, as_of=as_of)
    return jsonify({"ok": True, "items": rows}), 200


@bp.get("/spend")
@permission_required(PERM.REPORTS_ITEMS_READ, PERM.REPORTS_DELIVERIES_READ)
def spend():
    frm, to = date_range()
    rows = pricing.spend_rollup(db.session, current_member(), date_from=frm, date_to=to, location_id=arg_int("location_id"))
    return jsonify({"ok": True, "from": frm.isoformat(), "to": to.isoformat(), "items": rows}), 200


@bp.get("/deliveries")
@permission_required(PERM.REPORTS_DELIVERIES_READ, PERM.DELIVERIES_READ)
def deliveries_range():
    frm, to = date_range()
    rows = pricing.deliveries_range(
        db.session, current_member(), date_from=frm, date_to=to, location_id=arg_int("location_id")
    )
    return jsonify({"ok": True, "from": frm.isoformat(), "to": to.isoformat(), "items": rows}), 200


# ---- Designer plans -------------------------------------------------------
@bp.get("/plans")
@permission_required(PERM.METRICS_MANAGE)
def list_plans():
    rows = plans.list_plans(
        db.session, current_member(), stage_id=arg_int("stage_id"), place_id=arg_int("place_id")
    )
    return jsonify({"ok": True, "items": [plans.plan_to_dict(p) for p in rows]}), 200


@bp.post("/plans")
@permission_required(PERM.METRICS_MANAGE)
def create_plan():
    plan = committed(plans.create_plan, current_member(), json_body())
    return jsonify({"ok": True, "plan": plans.plan_to_dict(plan)}), 201


@bp.patch("/plans/<int:plan_id>")
@permission_required(PERM.METRICS_MANAGE)
def update_plan(plan_id):
    data = json_body()
    plan = committed(plans.update_plan_qty, current_member(), plan_id, data.get("planned_qty"))
    return jsonify({"ok": True, "plan": plans.plan_to_dict(plan)}), 200


@bp.delete("/plans/<int:plan_id>")
@permission_required(PERM.METRICS_MANAGE)
def delete_plan(plan_id):
    committed(plans.delete_plan, current_member(), plan_id)
    return jsonify({"ok": True, "id": plan_id}), 200


@bp.get("/plans/overview")
@permission_required(PERM.METRICS_READ, PERM.METRICS_MANAGE, PERM.REPORTS_STAGES_READ)
def plan_overview():
    frm, to = arg_date("from"), arg_date("to")
    rows = plans.plan_overview(
        db.session,
        current_member(),
        date_from=frm,
        date_to=to,
        stage_id=arg_int("stage_id"),
        place_id=arg_int("place_id"),
        location_id=arg_int("location_id"),
        family=(request.args.get("family") or "").strip() or None,
    )
    return jsonify({"ok": True, "items": rows}), 200


@bp.get("/plans/timeseries")
@permission_required(PERM.METRICS_READ, PERM.METRICS_MANAGE, PERM.REPORTS_STAGES_READ)
def plan_timeseries():
    frm, to = date_range()
    rows = plans.plan_timeseries(
        db.session,
        current_member(),
        date_from=frm,
        date_to=to,
        family=(request.args.get("family") or "").strip() or None,
        stage_id=arg_int("stage_id"),
    )
    return jsonify({"ok": True, "items": rows}), 200
