from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from sitestock.models.inventory_session import InventorySession, InventorySessionItem
from sitestock.models.material import Material
from sitestock.models.stock_movement import KIND_AUDIT
from sitestock.models.team_member import TeamMember, ROLE_OWNER, ROLE_MANAGER, ROLE_STOREMAN
from sitestock.observability import log_event
from sitestock.utils.helpers import to_decimal, parse_date, utcnow, q2
from sitestock.utils.validators import clean_str
from .common import ServiceError, get_live, INVALID, FORBIDDEN, NOT_FOUND, CONFLICT
from .materials import get_location, get_material
from .pricing import wac_table, wac_for
from .stock import apply_stock_delta

AUDIT_ROLES = (ROLE_OWNER, ROLE_MANAGER, ROLE_STOREMAN)
ZERO = Decimal("0")


def _ensure_auditor(actor: Optional[TeamMember]) -> None:
    if actor is None or actor.deleted_at is not None or actor.role not in AUDIT_ROLES:
        raise ServiceError("Only owners, managers and storemen can run stock counts.", FORBIDDEN)


def get_session(session: Session, actor: TeamMember, session_id) -> InventorySession:
    _ensure_auditor(actor)
    return get_live(session, InventorySession, session_id, actor.account_id, what="Inventory session")


def _editable(session: Session, actor: TeamMember, session_id) -> InventorySession:
    inv = get_session(session, actor, session_id)
    if inv.approved:
        raise ServiceError("Approved stock counts cannot be changed.", CONFLICT)
    return inv


def list_sessions(session: Session, actor: TeamMember, *, date_from: Optional[date] = None,
                  date_to: Optional[date] = None, location_id=None) -> List[InventorySession]:
    _ensure_auditor(actor)
    q = session.query(InventorySession).filter(InventorySession.account_id == actor.account_id)
    if date_from:
        q = q.filter(InventorySession.session_date >= date_from)
    if date_to:
        q = q.filter(InventorySession.session_date <= date_to)
    if location_id:
        q = q.filter(InventorySession.inventory_location_id == location_id)
    return q.order_by(InventorySession.session_date.desc(), InventorySession.id.desc()).all()


def create_session(session: Session, actor: TeamMember, *, session_date, location_id, description=None) -> InventorySession:
    _ensure_auditor(actor)
    errors: Dict[str, str] = {}
    d = parse_date(session_date) if session_date not in (None, "") else date.today()
    if d is None:
        errors["session_date"] = "Date must be YYYY-MM-DD or DD.MM.YYYY."
    location = None
    try:
        location = get_location(session, actor.account_id, location_id)
    except ServiceError:
        errors["inventory_location_id"] = "Choose a location."
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)
    inv = InventorySession(
        account_id=actor.account_id,
        inventory_location_id=location.id,
        session_date=d,
        description=clean_str(description, 2000),
        person=actor.display_name,
        created_by=actor.id,
        approved=False,
    )
    session.add(inv)
    session.flush()
    return inv


def add_item(session: Session, actor: TeamMember, session_id, material_id) -> InventorySessionItem:
    """Add a material to the count; adding it twice returns the existing line."""
    inv = _editable(session, actor, session_id)
    mat = get_material(session, actor.account_id, material_id)
    if mat.inventory_location_id != inv.inventory_location_id:
        raise ServiceError("Material is stored in another location.", INVALID, field="material_id")
    for it in inv.items:
        if it.material_id == mat.id:
            return it
    item = InventorySessionItem(material_id=mat.id, system_qty=Decimal(mat.current_quantity or 0))
    inv.items.append(item)
    session.flush()
    return item


def add_all_items(session: Session, actor: TeamMember, session_id) -> int:
    inv = _editable(session, actor, session_id)
    have = {it.material_id for it in inv.items}
    mats = (
        session.query(Material)
        .filter(
            Material.account_id == actor.account_id,
            Material.inventory_location_id == inv.inventory_location_id,
            Material.deleted_at.is_(None),
        )
        .order_by(Material.title.asc())
        .all()
    )
    added = 0
    for m in mats:
        if m.id in have:
            continue
        inv.items.append(InventorySessionItem(material_id=m.id, system_qty=Decimal(m.current_quantity or 0)))
        added += 1
    session.flush()
    return added


def _item(session: Session, actor: TeamMember, item_id) -> InventorySessionItem:
    try:
        item = session.get(InventorySessionItem, int(item_id))
    except (TypeError, ValueError):
        item = None
    if item is None or item.session.account_id != actor.account_id:
        raise ServiceError("Count line not found.", NOT_FOUND)
    if item.session.approved:
        raise ServiceError("Approved stock counts cannot be changed.", CONFLICT)
    return item


def set_counted_qty(session: Session, actor: TeamMember, item_id, raw: Any) -> InventorySessionItem:
    """Blank clears the count; comma decimals are accepted."""
    _ensure_auditor(actor)
    item = _item(session, actor, item_id)
    if raw is None or str(raw).strip() == "":
        item.counted_qty = None
    else:
        val = to_decimal(raw)
        if val is None or val < 0:
            raise ServiceError("Counted quantity must be a non-negative number.", INVALID, field="counted_qty")
        item.counted_qty = val
    session.flush()
    return item


def remove_item(session: Session, actor: TeamMember, item_id) -> None:
    _ensure_auditor(actor)
    item = _item(session, actor, item_id)
    session.delete(item)
    session.flush()


def delete_session(session: Session, actor: TeamMember, session_id) -> None:
    inv = _editable(session, actor, session_id)
    session.delete(inv)
    session.flush()


def approve_session(session: Session, actor: TeamMember, session_id) -> InventorySession:
    """Snap stock to the counted quantities; each difference becomes an audit movement."""
    inv = get_session(session, actor, session_id)
    if inv.approved:
        return inv
    table = wac_table(session, actor.account_id, inv.session_date)
    changed = 0
    for it in inv.items:
        if it.counted_qty is None:
            continue
        mat = session.get(Material, it.material_id)
        if mat is None or mat.account_id != actor.account_id:
            raise ServiceError(f"Material {it.material_id} no longer exists.", INVALID)
        current = Decimal(mat.current_quantity or 0)
        counted = Decimal(it.counted_qty)
        it.system_qty = current
        delta = counted - current
        if delta == 0:
            continue
        apply_stock_delta(
            session, mat, delta,
            kind=KIND_AUDIT, occurred_on=inv.session_date,
            unit_price=wac_for(table, mat),
            source_type="inventory_session", source_id=inv.id, actor_id=actor.id,
        )
        changed += 1
    inv.approved = True
    inv.approved_at = utcnow()
    inv.approved_by = actor.id
    session.flush()
    log_event(
        current_app.logger, "inventory_session_approved",
        account_id=actor.account_id, session_id=inv.id, changed=changed,
    )
    return inv


def audit_report(session: Session, actor: TeamMember, session_id) -> Dict[str, Any]:
    """Per-item deltas priced at WAC as of the count date plus session totals."""
    inv = get_session(session, actor, session_id)
    table = wac_table(session, actor.account_id, inv.session_date)
    loss = gain = ZERO
    rows = []
    for it in inv.items:
        mat = session.get(Material, it.material_id)
        wac = wac_for(table, mat) if mat is not None else None
        system = Decimal(it.system_qty)
        counted = None if it.counted_qty is None else Decimal(it.counted_qty)
        delta_value = None
        loss_qty = ZERO
        if counted is not None:
            loss_qty = max(ZERO, system - counted)
            if wac is not None:
                delta_value = (counted - system) * wac
                if delta_value < 0:
                    loss += -delta_value
                else:
                    gain += delta_value
        rows.append({
            "item_id": it.id,
            "material_id": it.material_id,
            "title": mat.title if mat else None,
            "unit": mat.unit if mat else None,
            "system_qty": float(system),
            "counted_qty": float(counted) if counted is not None else None,
            "wac_unit_price": float(wac) if wac is not None else None,
            "delta_value_est": float(q2(delta_value)) if delta_value is not None else None,
            "loss_qty": float(loss_qty),
        })
    return {
        "session": inv.to_dict(),
        "loss_value_est": float(q2(loss)),
        "gain_value_est": float(q2(gain)),
        "shrink_value_est": float(q2(loss - gain)),
        "items": rows,
    }
