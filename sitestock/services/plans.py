"""Designer plans and the plan-vs-reality views."""
from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from sitestock.models.daily_report import DailyReport, DailyReportItem
from sitestock.models.delivery import Delivery, DeliveryItem
from sitestock.models.designer_plan import DesignerPlan
from sitestock.models.material import Material
from sitestock.models.task import Task
from sitestock.models.team_member import TeamMember
from sitestock.utils.helpers import to_decimal, q2, iso10
from .common import ServiceError, get_live, INVALID
from .materials import get_material
from .permissions import PERM, ensure
from .series import list_months_between, month_key
from .tasks import get_place

ZERO = Decimal("0")
STATUS_OVER = "over"
STATUS_WITHIN = "within"


def _f(v) -> Optional[float]:
    return None if v is None else float(v)


def plan_to_dict(p: DesignerPlan) -> dict:
    return {
        "id": p.id,
        "family_key": p.family_key,
        "planned_qty": float(p.planned_qty or 0),
        "planned_unit_price": _f(p.planned_unit_price),
        "planned_cost": _f(p.planned_cost),
        "stage_id": p.stage_id,
        "place_id": p.place_id,
    }


def get_plan(session: Session, account_id: int, plan_id) -> DesignerPlan:
    return get_live(session, DesignerPlan, plan_id, account_id, what="Plan")


def _plans(session: Session, account_id: int, stage_id=None, place_id=None) -> List[DesignerPlan]:
    q = session.query(DesignerPlan).filter(DesignerPlan.account_id == account_id)
    if stage_id:
        q = q.filter(DesignerPlan.stage_id == stage_id)
    if place_id:
        q = q.filter(DesignerPlan.place_id == place_id)
    return q.order_by(DesignerPlan.family_key.asc(), DesignerPlan.id.asc()).all()


def list_plans(session: Session, actor: TeamMember, *, stage_id=None, place_id=None) -> List[DesignerPlan]:
    ensure(actor, PERM.METRICS_MANAGE)
    return _plans(session, actor.account_id, stage_id, place_id)


def _qty(raw, field: str = "planned_qty") -> Decimal:
    val = to_decimal(raw)
    if val is None or val < 0:
        raise ServiceError("Planned quantity must be a non-negative number.", INVALID, field=field)
    return val


def _recost(plan: DesignerPlan) -> None:
    if plan.planned_unit_price is not None:
        plan.planned_cost = q2(Decimal(plan.planned_qty) * Decimal(plan.planned_unit_price))


def create_plan(session: Session, actor: TeamMember, data: Dict[str, Any]) -> DesignerPlan:
    """The plan inherits the family of the picked material."""
    ensure(actor, PERM.METRICS_MANAGE)
    mat = get_material(session, actor.account_id, data.get("material_id"))
    qty = _qty(data.get("planned_qty"))
    price = None
    if data.get("planned_unit_price") not in (None, ""):
        price = to_decimal(data.get("planned_unit_price"))
        if price is None or price < 0:
            raise ServiceError("Unit price must be a non-negative number.", INVALID, field="planned_unit_price")
    stage_id = place_id = None
    if data.get("stage_id") not in (None, ""):
        stage_id = get_place(session, actor.account_id, data.get("stage_id")).id
    if data.get("place_id") not in (None, ""):
        place_id = get_place(session, actor.account_id, data.get("place_id")).id

    plan = DesignerPlan(
        account_id=actor.account_id,
        family_key=mat.rollup_key,
        planned_qty=qty,
        planned_unit_price=price,
        stage_id=stage_id,
        place_id=place_id,
    )
    _recost(plan)
    session.add(plan)
    session.flush()
    return plan


def update_plan_qty(session: Session, actor: TeamMember, plan_id, planned_qty) -> DesignerPlan:
    ensure(actor, PERM.METRICS_MANAGE)
    plan = get_plan(session, actor.account_id, plan_id)
    plan.planned_qty = _qty(planned_qty)
    _recost(plan)
    session.flush()
    return plan


def delete_plan(session: Session, actor: TeamMember, plan_id) -> None:
    ensure(actor, PERM.METRICS_MANAGE)
    plan = get_plan(session, actor.account_id, plan_id)
    session.delete(plan)
    session.flush()


# ---- Plan vs reality ------------------------------------------------------
def _usage_rows(session: Session, account_id: int, date_from, date_to, stage_id=None, place_id=None,
                location_id=None):
    q = (
        session.query(DailyReportItem, DailyReport, Material)
        .join(DailyReport, DailyReportItem.report_id == DailyReport.id)
        .join(Material, DailyReportItem.material_id == Material.id)
        .filter(DailyReport.account_id == account_id, DailyReport.approved.is_(True))
    )
    if date_from:
        q = q.filter(DailyReport.date >= date_from)
    if date_to:
        q = q.filter(DailyReport.date <= date_to)
    if stage_id:
        q = q.filter(DailyReport.stage_id == stage_id)
    if place_id:
        # only task-linked reports know their place
        q = q.join(Task, DailyReport.task_id == Task.id).filter(Task.place_id == place_id)
    if location_id:
        q = q.filter(DailyReport.inventory_location_id == location_id)
    return [(Decimal(i.qty_used), r.date, m) for i, r, m in q.all()]


def _delivery_rows(session: Session, account_id: int, date_from, date_to, location_id=None):
    q = (
        session.query(DeliveryItem, Delivery, Material)
        .join(Delivery, DeliveryItem.delivery_id == Delivery.id)
        .join(Material, DeliveryItem.material_id == Material.id)
        .filter(
            Delivery.account_id == account_id,
            Delivery.approved.is_(True),
            Delivery.deleted_at.is_(None),
        )
    )
    if date_from:
        q = q.filter(Delivery.delivery_date >= date_from)
    if date_to:
        q = q.filter(Delivery.delivery_date <= date_to)
    if location_id:
        q = q.filter(Delivery.inventory_location_id == location_id)
    return [(Decimal(i.qty), d.delivery_date, m) for i, d, m in q.all()]


def plan_overview(
    session: Session,
    actor: TeamMember,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    stage_id=None,
    place_id=None,
    location_id=None,
    family: Optional[str] = None,
) -> List[dict]:
    """
    Plan vs reality per family. `place_id` narrows plans and task-linked usage;
    `location_id` narrows usage and deliveries.
    """
    ensure(actor, PERM.METRICS_READ, PERM.METRICS_MANAGE, PERM.REPORTS_STAGES_READ)
    rows: "OrderedDict[str, dict]" = OrderedDict()

    def row(key: str) -> dict:
        r = rows.get(key)
        if r is None:
            r = rows[key] = {
                "family_key": key,
                "rep_title": None,
                "unit": None,
                "planned_qty": ZERO,
                "planned_cost": None,
                "used_qty": ZERO,
                "delivered_qty": ZERO,
                "last_usage_at": None,
                "last_delivery_at": None,
            }
        return r

    for p in _plans(session, actor.account_id, stage_id, place_id):
        r = row(p.family_key)
        r["planned_qty"] += Decimal(p.planned_qty or 0)
        if p.planned_cost is not None:
            r["planned_cost"] = (r["planned_cost"] or ZERO) + Decimal(p.planned_cost)

    for qty, day, mat in _usage_rows(session, actor.account_id, date_from, date_to, stage_id, place_id, location_id):
        r = row(mat.rollup_key)
        r["rep_title"] = r["rep_title"] or mat.title
        r["unit"] = r["unit"] or mat.unit
        r["used_qty"] += qty
        if r["last_usage_at"] is None or day > r["last_usage_at"]:
            r["last_usage_at"] = day

    for qty, day, mat in _delivery_rows(session, actor.account_id, date_from, date_to, location_id):
        r = row(mat.rollup_key)
        r["rep_title"] = r["rep_title"] or mat.title
        r["unit"] = r["unit"] or mat.unit
        r["delivered_qty"] += qty
        if r["last_delivery_at"] is None or day > r["last_delivery_at"]:
            r["last_delivery_at"] = day

    # plans for families without movement still need a title
    missing = [k for k, r in rows.items() if r["rep_title"] is None]
    if missing:
        mats = (
            session.query(Material)
            .filter(Material.account_id == actor.account_id, Material.deleted_at.is_(None))
            .order_by(Material.id.asc())
            .all()
        )
        for m in mats:
            r = rows.get(m.rollup_key)
            if r is not None and r["rep_title"] is None:
                r["rep_title"], r["unit"] = m.title, m.unit

    out = []
    for key, r in rows.items():
        if family and key != family:
            continue
        deviation = r["used_qty"] - r["planned_qty"]
        out.append({
            "family_key": key,
            "rep_title": r["rep_title"] or key,
            "unit": r["unit"],
            "planned_qty": float(r["planned_qty"]),
            "planned_cost": _f(r["planned_cost"]),
            "used_qty": float(r["used_qty"]),
            "delivered_qty": float(r["delivered_qty"]),
            "last_usage_at": iso10(r["last_usage_at"]) or None,
            "last_delivery_at": iso10(r["last_delivery_at"]) or None,
            "deviation_qty": float(deviation),
            "status": STATUS_OVER if r["used_qty"] > r["planned_qty"] else STATUS_WITHIN,
        })
    out.sort(key=lambda x: (x["status"] != STATUS_OVER, -x["deviation_qty"], x["rep_title"].lower()))
    return out


def plan_timeseries(
    session: Session,
    actor: TeamMember,
    *,
    date_from: date,
    date_to: date,
    family: Optional[str] = None,
    stage_id=None,
) -> List[dict]:
    """Monthly used/delivered quantities (YYYY-MM buckets)."""
    ensure(actor, PERM.METRICS_READ, PERM.METRICS_MANAGE, PERM.REPORTS_STAGES_READ)
    used: Dict[str, Decimal] = {}
    delivered: Dict[str, Decimal] = {}
    for qty, day, mat in _usage_rows(session, actor.account_id, date_from, date_to, stage_id):
        if family and mat.rollup_key != family:
            continue
        k = month_key(day)
        used[k] = used.get(k, ZERO) + qty
    for qty, day, mat in _delivery_rows(session, actor.account_id, date_from, date_to):
        if family and mat.rollup_key != family:
            continue
        k = month_key(day)
        delivered[k] = delivered.get(k, ZERO) + qty
    return [
        {
            "bucket": b,
            "used_qty": float(used.get(b, ZERO)),
            "delivered_qty": float(delivered.get(b, ZERO)),
        }
        for b in list_months_between(date_from, date_to)
    ]
