"""
Weighted average cost (WAC) and the pricing/spend rollups built on it.

WAC per rollup key = sum(qty * unit_price) / sum(qty) over priced items of
approved, non-deleted deliveries dated on or before the as-of date.
The rollup key is the material family, else lowercased title + unit.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, aliased

from sitestock.models.delivery import Delivery, DeliveryItem
from sitestock.models.material import Material
from sitestock.models.team_member import TeamMember
from sitestock.utils.helpers import q2, iso10
from .permissions import PERM, ensure

ZERO = Decimal("0")


def _approved_items(session: Session, account_id: int, *, date_from=None, date_to=None, location_id=None):
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
    return q.all()


def wac_table(session: Session, account_id: int, as_of: Optional[date] = None) -> Dict[str, dict]:
    """rollup_key -> {wac, priced_qty, priced_value, last_priced_at}."""
    out: Dict[str, dict] = {}
    for item, dlv, mat in _approved_items(session, account_id, date_to=as_of):
        if item.unit_price is None:
            continue
        row = out.setdefault(
            mat.rollup_key,
            {"priced_qty": ZERO, "priced_value": ZERO, "last_priced_at": None},
        )
        qty = Decimal(item.qty)
        row["priced_qty"] += qty
        row["priced_value"] += qty * Decimal(item.unit_price)
        if row["last_priced_at"] is None or dlv.delivery_date > row["last_priced_at"]:
            row["last_priced_at"] = dlv.delivery_date
    for row in out.values():
        row["wac"] = row["priced_value"] / row["priced_qty"] if row["priced_qty"] > 0 else None
    return out


def wac_for(table: Dict[str, dict], material: Material) -> Optional[Decimal]:
    row = table.get(material.rollup_key)
    return row["wac"] if row else None


def wac_for_material(session: Session, material: Material, as_of: Optional[date] = None) -> Optional[Decimal]:
    return wac_for(wac_table(session, material.account_id, as_of), material)


def _f(value) -> Optional[float]:
    return None if value is None else float(value)


def _live_materials(session: Session, account_id: int, location_id=None) -> List[Material]:
    q = session.query(Material).filter(Material.account_id == account_id, Material.deleted_at.is_(None))
    if location_id:
        q = q.filter(Material.inventory_location_id == location_id)
    return q.order_by(Material.id.asc()).all()


def stock_value_now(session: Session, account_id: int, *, as_of: Optional[date] = None, location_id=None):
    """(qty, value_est) of current stock priced at WAC; unpriced materials add qty only."""
    table = wac_table(session, account_id, as_of)
    qty = value = ZERO
    for m in _live_materials(session, account_id, location_id):
        cur = Decimal(m.current_quantity or 0)
        qty += cur
        wac = wac_for(table, m)
        if wac is not None:
            value += cur * wac
    return qty, q2(value)


def pricing_rollup(session: Session, actor: TeamMember, *, as_of: Optional[date] = None) -> List[dict]:
    ensure(actor, PERM.REPORTS_ITEMS_READ, PERM.METRICS_READ)
    table = wac_table(session, actor.account_id, as_of)
    groups: "OrderedDict[str, dict]" = OrderedDict()
    for m in _live_materials(session, actor.account_id):
        g = groups.get(m.rollup_key)
        if g is None:
            g = groups[m.rollup_key] = {
                "rollup_key": m.rollup_key,
                "title": m.title,
                "unit": m.unit,
                "stock_qty": ZERO,
            }
        g["stock_qty"] += Decimal(m.current_quantity or 0)
    out = []
    for key, g in groups.items():
        priced = table.get(key) or {}
        wac = priced.get("wac")
        out.append({
            "rollup_key": key,
            "title": g["title"],
            "unit": g["unit"],
            "stock_qty": float(g["stock_qty"]),
            "wac_unit_price": _f(wac),
            "stock_value_est": _f(q2(g["stock_qty"] * wac)) if wac is not None else None,
            "priced_qty_total": _f(priced.get("priced_qty")),
            "priced_value_total": _f(q2(priced["priced_value"])) if priced else None,
            "last_priced_delivery_date": iso10(priced.get("last_priced_at")) or None,
        })
    out.sort(key=lambda r: (-(r["stock_value_est"] or 0), (r["title"] or "").lower()))
    return out


def pricing_by_location(session: Session, actor: TeamMember, *, as_of: Optional[date] = None, location_id=None) -> List[dict]:
    ensure(actor, PERM.REPORTS_ITEMS_READ, PERM.METRICS_READ)
    table = wac_table(session, actor.account_id, as_of)
    out = []
    for m in _live_materials(session, actor.account_id, location_id):
        wac = wac_for(table, m)
        qty = Decimal(m.current_quantity or 0)
        out.append({
            "material_id": m.id,
            "title": m.title,
            "unit": m.unit,
            "inventory_location_id": m.inventory_location_id,
            "rollup_key": m.rollup_key,
            "stock_qty": float(qty),
            "wac_unit_price": _f(wac),
            "stock_value_est": _f(q2(qty * wac)) if wac is not None else None,
        })
    return out


def spend_rollup(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> List[dict]:
    ensure(actor, PERM.REPORTS_ITEMS_READ, PERM.REPORTS_DELIVERIES_READ)
    table = wac_table(session, actor.account_id, date_to)
    groups: "OrderedDict[str, dict]" = OrderedDict()
    for item, dlv, mat in _approved_items(
        session, actor.account_id, date_from=date_from, date_to=date_to, location_id=location_id
    ):
        g = groups.get(mat.rollup_key)
        if g is None:
            g = groups[mat.rollup_key] = {
                "rollup_key": mat.rollup_key,
                "title": mat.title,
                "unit": mat.unit,
                "qty": ZERO,
                "value": ZERO,
                "deliveries": set(),
                "last_delivery_date": None,
            }
        qty = Decimal(item.qty)
        g["qty"] += qty
        if item.unit_price is not None:
            g["value"] += qty * Decimal(item.unit_price)
        g["deliveries"].add(dlv.id)
        if g["last_delivery_date"] is None or dlv.delivery_date > g["last_delivery_date"]:
            g["last_delivery_date"] = dlv.delivery_date
    out = []
    for key, g in groups.items():
        priced = table.get(key)
        out.append({
            "rollup_key": key,
            "title": g["title"],
            "unit": g["unit"],
            "wac_unit_price": _f(priced["wac"]) if priced else None,
            "qty_in_range": float(g["qty"]),
            "value_in_range": float(q2(g["value"])),
            "deliveries_count": len(g["deliveries"]),
            "last_delivery_date": iso10(g["last_delivery_date"]),
        })
    out.sort(key=lambda r: -r["value_in_range"])
    return out


def deliveries_range(session: Session, actor: TeamMember, *, date_from: date, date_to: date, location_id=None) -> List[dict]:
    """Delivery rows in range with creator/approver names."""
    ensure(actor, PERM.REPORTS_DELIVERIES_READ, PERM.DELIVERIES_READ)
    creator = aliased(TeamMember)
    approver = aliased(TeamMember)
    q = (
        session.query(Delivery, creator, approver)
        .outerjoin(creator, Delivery.created_by == creator.id)
        .outerjoin(approver, Delivery.approved_by == approver.id)
        .filter(
            Delivery.account_id == actor.account_id,
            Delivery.deleted_at.is_(None),
            Delivery.delivery_date >= date_from,
            Delivery.delivery_date <= date_to,
        )
    )
    if location_id:
        q = q.filter(Delivery.inventory_location_id == location_id)
    rows = []
    for dlv, c, a in q.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).all():
        rows.append({
            **dlv.to_dict(with_items=False),
            "created_by_name": c.display_name if c else None,
            "approved_by_name": a.display_name if a else None,
        })
    return rows
