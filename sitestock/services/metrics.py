"""Project metrics dashboard ("mission control")."""
from __future__ import annotations

import copy
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from sitestock.models.daily_report import DailyReport, DailyReportItem
from sitestock.models.delivery import Delivery
from sitestock.models.designer_plan import DesignerPlan
from sitestock.models.material import Material
from sitestock.models.team_member import TeamMember
from sitestock.utils.helpers import as_utc, q2
from .materials import low_stock_materials
from .permissions import PERM, can_any, snapshot_for_member
from .plans import plan_overview, STATUS_OVER
from .pricing import wac_table, wac_for
from .series import bucket_key, buckets_between, cumulative, INTERVALS

ZERO = Decimal("0")

EMPTY_PROJECT_METRICS_DASH = {
    "materials_cost_total": 0,
    "delivery_cost_total": 0,
    "usage_qty_total": 0,
    "usage_cost_total": 0,
    "daily_reports_count": 0,
    "pending_reports_count": 0,
    "avg_approval_hours": 0,
    "low_stock_count": 0,
    "within_plan_count": 0,
    "over_plan_count": 0,
    "top_usage": [],
    "costs_by_bucket": [],
    "cumulative_costs_by_bucket": [],
}


def empty_dash() -> Dict:
    return copy.deepcopy(EMPTY_PROJECT_METRICS_DASH)


def project_metrics_dash(
    session: Session,
    actor: Optional[TeamMember],
    *,
    date_from: date,
    date_to: date,
    location_id=None,
    interval: str = "week",
) -> Dict:
    snap = snapshot_for_member(actor)
    if not can_any(snap, (PERM.METRICS_READ, PERM.METRICS_MANAGE)):
        return empty_dash()
    if interval not in INTERVALS:
        interval = "week"
    account_id = actor.account_id

    # deliveries
    dq = session.query(Delivery).filter(
        Delivery.account_id == account_id,
        Delivery.approved.is_(True),
        Delivery.deleted_at.is_(None),
        Delivery.delivery_date >= date_from,
        Delivery.delivery_date <= date_to,
    )
    if location_id:
        dq = dq.filter(Delivery.inventory_location_id == location_id)
    materials_cost = delivery_cost = ZERO
    deliveries_by_bucket: Dict[str, Decimal] = {}
    for dlv in dq.all():
        mc = Decimal(dlv.materials_cost or 0)
        dc = Decimal(dlv.delivery_cost or 0)
        materials_cost += mc
        delivery_cost += dc
        k = bucket_key(dlv.delivery_date, interval)
        deliveries_by_bucket[k] = deliveries_by_bucket.get(k, ZERO) + mc + dc

    # reports
    rq = session.query(DailyReport).filter(
        DailyReport.account_id == account_id,
        DailyReport.date >= date_from,
        DailyReport.date <= date_to,
    )
    if location_id:
        rq = rq.filter(DailyReport.inventory_location_id == location_id)
    reports = rq.all()
    pending = sum(1 for r in reports if not r.approved)
    hours = [
        (as_utc(r.approved_at) - as_utc(r.created_at)).total_seconds() / 3600.0
        for r in reports
        if r.approved and r.approved_at and r.created_at
    ]
    avg_hours = round(sum(hours) / len(hours), 2) if hours else 0

    # usage priced at WAC as of the end of the range
    table = wac_table(session, account_id, date_to)
    usage_q = (
        session.query(DailyReportItem, DailyReport, Material)
        .join(DailyReport, DailyReportItem.report_id == DailyReport.id)
        .join(Material, DailyReportItem.material_id == Material.id)
        .filter(
            DailyReport.account_id == account_id,
            DailyReport.approved.is_(True),
            DailyReport.date >= date_from,
            DailyReport.date <= date_to,
        )
    )
    if location_id:
        usage_q = usage_q.filter(DailyReport.inventory_location_id == location_id)
    usage_qty = usage_cost = ZERO
    usage_by_bucket: Dict[str, Decimal] = {}
    per_material: Dict[int, Dict] = {}
    for item, rep, mat in usage_q.all():
        qty = Decimal(item.qty_used)
        wac = wac_for(table, mat)
        cost = qty * wac if wac is not None else ZERO
        usage_qty += qty
        usage_cost += cost
        k = bucket_key(rep.date, interval)
        usage_by_bucket[k] = usage_by_bucket.get(k, ZERO) + cost
        row = per_material.setdefault(mat.id, {"material_id": mat.id, "name": mat.title, "qty": ZERO, "cost": ZERO})
        row["qty"] += qty
        row["cost"] += cost

    limit = int(current_app.config.get("TOP_USAGE_LIMIT", 5))
    top = sorted(per_material.values(), key=lambda r: (-r["qty"], r["name"].lower()))[:limit]
    top_usage = [
        {
            "material_id": r["material_id"],
            "name": r["name"],
            "qty_used": float(r["qty"]),
            "est_cost": float(q2(r["cost"])),
        }
        for r in top
    ]

    # plan-vs-reality counts only cover families that have a plan
    planned = {
        k for (k,) in session.query(DesignerPlan.family_key).filter(DesignerPlan.account_id == account_id).all()
    }
    over = within = 0
    if planned:
        for row in plan_overview(session, actor, date_from=date_from, date_to=date_to, location_id=location_id):
            if row["family_key"] not in planned:
                continue
            if row["status"] == STATUS_OVER:
                over += 1
            else:
                within += 1

    costs: List[Dict] = [
        {
            "bucket": b,
            "deliveries_cost": float(q2(deliveries_by_bucket.get(b, ZERO))),
            "usage_cost": float(q2(usage_by_bucket.get(b, ZERO))),
        }
        for b in buckets_between(date_from, date_to, interval)
    ]
    cum = [
        {
            "bucket": r["bucket"],
            "cumulative_deliveries_cost": r["deliveries_cost"],
            "cumulative_usage_cost": r["usage_cost"],
        }
        for r in cumulative(costs, ("deliveries_cost", "usage_cost"))
    ]

    return {
        "materials_cost_total": float(q2(materials_cost)),
        "delivery_cost_total": float(q2(delivery_cost)),
        "usage_qty_total": float(usage_qty),
        "usage_cost_total": float(q2(usage_cost)),
        "daily_reports_count": len(reports),
        "pending_reports_count": pending,
        "avg_approval_hours": avg_hours,
        "low_stock_count": len(low_stock_materials(session, account_id, location_id=location_id)),
        "within_plan_count": within,
        "over_plan_count": over,
        "top_usage": top_usage,
        "costs_by_bucket": costs,
        "cumulative_costs_by_bucket": cum,
    }
