"""
Warehouse summary: totals for a date range and the daily series behind the
trend charts. Series points are per day; bucketing happens in `series`.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.orm import Session

from sitestock.models.delivery import Delivery, DeliveryItem
from sitestock.models.material import Material
from sitestock.models.stock_movement import StockMovement, KIND_AUDIT
from sitestock.models.team_member import TeamMember
from sitestock.utils.helpers import q2
from .permissions import PERM, ensure, can, snapshot_for_member
from .pricing import stock_value_now
from .series import bucket_sum, bucket_abs_sum, bucket_max, INTERVALS

ZERO = Decimal("0")


def _deliveries(session: Session, account_id: int, date_from, date_to, location_id=None) -> List[Delivery]:
    q = session.query(Delivery).filter(
        Delivery.account_id == account_id,
        Delivery.approved.is_(True),
        Delivery.deleted_at.is_(None),
        Delivery.delivery_date >= date_from,
        Delivery.delivery_date <= date_to,
    )
    if location_id:
        q = q.filter(Delivery.inventory_location_id == location_id)
    return q.order_by(Delivery.delivery_date.asc(), Delivery.id.asc()).all()


def _items_value(dlv: Delivery) -> Decimal:
    total = ZERO
    for it in dlv.items:
        if it.unit_price is not None:
            total += Decimal(it.qty) * Decimal(it.unit_price)
    return total


def _audit_movements(session: Session, account_id: int, date_from, date_to, location_id=None) -> List[StockMovement]:
    q = session.query(StockMovement).filter(
        StockMovement.account_id == account_id,
        StockMovement.kind == KIND_AUDIT,
        StockMovement.occurred_on >= date_from,
        StockMovement.occurred_on <= date_to,
    )
    if location_id:
        q = q.filter(StockMovement.inventory_location_id == location_id)
    return q.all()


def summary_overview(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> Dict:
    ensure(actor, PERM.REPORTS_ITEMS_READ, PERM.REPORTS_DELIVERIES_READ, PERM.METRICS_READ)
    in_qty = in_value = dcost = ZERO
    deliveries = _deliveries(session, actor.account_id, date_from, date_to, location_id)
    for dlv in deliveries:
        in_qty += sum((Decimal(it.qty) for it in dlv.items), ZERO)
        in_value += _items_value(dlv)
        dcost += Decimal(dlv.delivery_cost or 0)

    shrink_qty = shrink_val = gain_qty = gain_val = ZERO
    for mv in _audit_movements(session, actor.account_id, date_from, date_to, location_id):
        delta = Decimal(mv.qty_delta)
        price = Decimal(mv.unit_price) if mv.unit_price is not None else ZERO
        if delta < 0:
            shrink_qty += -delta
            shrink_val += -delta * price
        else:
            gain_qty += delta
            gain_val += delta * price

    stock_qty, stock_val = stock_value_now(session, actor.account_id, as_of=date_to, location_id=location_id)
    return {
        "materials_in_qty": float(in_qty),
        "materials_in_value": float(q2(in_value)),
        "delivery_cost_value": float(q2(dcost)),
        "deliveries_count": len(deliveries),
        "stock_value_now_est": float(stock_val),
        "stock_qty_now": float(stock_qty),
        "shrink_qty": float(shrink_qty),
        "shrink_value_est": float(q2(shrink_val)),
        "inventory_gain_qty": float(gain_qty),
        "inventory_gain_value_est": float(q2(gain_val)),
        "inventory_net_qty": float(gain_qty - shrink_qty),
        "inventory_net_value_est": float(q2(gain_val - shrink_val)),
    }


def purchases_series(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> List[Dict]:
    """Daily value of priced delivery items: [{bucket, value, count}]."""
    ensure(actor, PERM.REPORTS_DELIVERIES_READ, PERM.METRICS_READ)
    by_day: Dict[str, Dict] = {}
    for dlv in _deliveries(session, actor.account_id, date_from, date_to, location_id):
        p = by_day.setdefault(dlv.delivery_date.isoformat(), {"value": ZERO, "count": 0})
        p["value"] += _items_value(dlv)
        p["count"] += 1
    return [{"bucket": k, "value": float(q2(v["value"])), "count": v["count"]} for k, v in sorted(by_day.items())]


def delivery_cost_series(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> List[Dict]:
    ensure(actor, PERM.REPORTS_DELIVERIES_READ, PERM.METRICS_READ)
    by_day: Dict[str, Dict] = {}
    for dlv in _deliveries(session, actor.account_id, date_from, date_to, location_id):
        p = by_day.setdefault(dlv.delivery_date.isoformat(), {"value": ZERO, "count": 0})
        p["value"] += Decimal(dlv.delivery_cost or 0)
        p["count"] += 1
    return [{"bucket": k, "value": float(q2(v["value"])), "count": v["count"]} for k, v in sorted(by_day.items())]


def inventory_shrink_series(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> List[Dict]:
    """Daily net audit loss value (loss minus gain): [{bucket, shrink_value_est}]."""
    if not can(snapshot_for_member(actor), PERM.MATERIALS_READ):
        return []
    by_day: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for mv in _audit_movements(session, actor.account_id, date_from, date_to, location_id):
        if mv.unit_price is None:
            continue
        by_day[mv.occurred_on.isoformat()] += -Decimal(mv.qty_delta) * Decimal(mv.unit_price)
    return [{"bucket": k, "shrink_value_est": float(q2(v))} for k, v in sorted(by_day.items())]


def stock_value_series(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> List[Dict]:
    """
    End-of-day stock value rebuilt from the ledger, priced at the WAC known on
    that day. The point at `to` is the current value.
    """
    if not can(snapshot_for_member(actor), PERM.MATERIALS_READ):
        return []
    account_id = actor.account_id
    mq = session.query(Material).filter(Material.account_id == account_id, Material.deleted_at.is_(None))
    if location_id:
        mq = mq.filter(Material.inventory_location_id == location_id)
    mats = {m.id: m for m in mq.all()}
    if not mats:
        series: List[Dict] = []
    else:
        moves = (
            session.query(StockMovement)
            .filter(
                StockMovement.account_id == account_id,
                StockMovement.material_id.in_(list(mats)),
                StockMovement.occurred_on >= date_from,
            )
            .all()
        )
        qty = {mid: Decimal(m.current_quantity or 0) for mid, m in mats.items()}
        deltas: Dict[date, List] = defaultdict(list)
        for mv in moves:
            qty[mv.material_id] -= Decimal(mv.qty_delta)
            deltas[mv.occurred_on].append(mv)

        # priced delivery items in the order they become known
        priced = (
            session.query(DeliveryItem.qty, DeliveryItem.unit_price, Delivery.delivery_date, Material)
            .join(Delivery, DeliveryItem.delivery_id == Delivery.id)
            .join(Material, DeliveryItem.material_id == Material.id)
            .filter(
                Delivery.account_id == account_id,
                Delivery.approved.is_(True),
                Delivery.deleted_at.is_(None),
                Delivery.delivery_date <= date_to,
                DeliveryItem.unit_price.isnot(None),
            )
            .order_by(Delivery.delivery_date.asc())
            .all()
        )
        acc: Dict[str, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        idx = 0

        series = []
        day = date_from
        while day <= date_to:
            while idx < len(priced) and priced[idx][2] <= day:
                q, price, _d, mat = priced[idx]
                acc[mat.rollup_key][0] += Decimal(q)
                acc[mat.rollup_key][1] += Decimal(q) * Decimal(price)
                idx += 1
            for mv in deltas.get(day, []):
                qty[mv.material_id] += Decimal(mv.qty_delta)
            total_qty = total_val = ZERO
            for mid, m in mats.items():
                total_qty += qty[mid]
                pq, pv = acc.get(m.rollup_key, (ZERO, ZERO))
                if pq > 0:
                    total_val += qty[mid] * (pv / pq)
            series.append({
                "bucket": day.isoformat(),
                "stock_value_est": float(q2(total_val)),
                "stock_qty_now": float(total_qty),
            })
            day += timedelta(days=1)

    now_qty, now_val = stock_value_now(session, account_id, as_of=date_to, location_id=location_id)
    now = {"bucket": date_to.isoformat(), "stock_value_est": float(now_val), "stock_qty_now": float(now_qty)}
    if series and series[-1]["bucket"] == now["bucket"]:
        series[-1] = now
    else:
        series.append(now)
    return series


def summary_bundle(session: Session, actor: TeamMember, *, date_from: date, date_to: date,
                   location_id=None, interval: str = "week") -> Dict:
    """Totals plus every trend series bucketed by `interval`."""
    if interval not in INTERVALS:
        interval = "week"
    kw = dict(date_from=date_from, date_to=date_to, location_id=location_id)
    totals = summary_overview(session, actor, **kw)
    snap = snapshot_for_member(actor)
    out = {
        "from": date_from.isoformat(),
        "to": date_to.isoformat(),
        "interval": interval,
        "totals": totals,
        "purchases": [],
        "delivery_costs": [],
        "shrink": [],
        "stock_value": [],
    }
    if can(snap, PERM.REPORTS_DELIVERIES_READ) or can(snap, PERM.METRICS_READ):
        out["purchases"] = bucket_sum(purchases_series(session, actor, **kw), interval, date_from, date_to)
        out["delivery_costs"] = bucket_sum(delivery_cost_series(session, actor, **kw), interval, date_from, date_to)
    out["shrink"] = bucket_abs_sum(
        inventory_shrink_series(session, actor, **kw), interval, date_from, date_to, field="shrink_value_est"
    )
    out["stock_value"] = bucket_max(
        stock_value_series(session, actor, **kw), interval, date_from, date_to, field="stock_value_est"
    )
    return out
