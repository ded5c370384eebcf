from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from sitestock.models.delivery import Delivery, DeliveryItem
from sitestock.models.material import Material
from sitestock.models.stock_movement import KIND_DELIVERY
from sitestock.models.team_member import TeamMember
from sitestock.observability import log_event
from sitestock.utils.helpers import to_decimal, parse_date, utcnow, q2
from sitestock.utils.validators import clean_str
from .common import ServiceError, get_live, INVALID, CONFLICT
from .materials import get_location
from .permissions import PERM, ensure
from .stock import apply_stock_delta

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_ALL = "all"


def _clean_items(session: Session, account_id: int, location_id: int, raw_items, errors: Dict[str, str]) -> List[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        errors["items"] = "Add at least one item."
        return []
    items = []
    for idx, raw in enumerate(raw_items):
        raw = raw or {}
        mid = raw.get("material_id")
        qty = to_decimal(raw.get("qty"))
        price = raw.get("unit_price")
        unit_price = None if price in (None, "") else to_decimal(price)
        if qty is None or qty <= 0:
            errors[f"items.{idx}.qty"] = "Quantity must be greater than zero."
        if price not in (None, "") and (unit_price is None or unit_price < 0):
            errors[f"items.{idx}.unit_price"] = "Unit price must be a non-negative number."
        mat = None
        try:
            mat = session.get(Material, int(mid))
        except (TypeError, ValueError):
            pass
        if mat is None or mat.account_id != account_id or mat.deleted_at is not None:
            errors[f"items.{idx}.material_id"] = "Unknown material."
        elif mat.inventory_location_id != location_id:
            errors[f"items.{idx}.material_id"] = "Material is stored in another location."
        items.append({"material_id": mat.id if mat else None, "qty": qty, "unit_price": unit_price})
    return items


def _clean_money(data: Dict[str, Any], key: str, errors: Dict[str, str]) -> Optional[Decimal]:
    if data.get(key) in (None, ""):
        return None
    val = to_decimal(data.get(key))
    if val is None or val < 0:
        errors[key] = "Must be a non-negative amount."
        return None
    return q2(val)


def _items_value(items: List[dict]) -> Decimal:
    total = Decimal("0")
    for it in items:
        if it["unit_price"] is not None and it["qty"] is not None:
            total += it["qty"] * it["unit_price"]
    return q2(total)


def get_delivery(session: Session, account_id: int, delivery_id, *, include_deleted: bool = False) -> Delivery:
    return get_live(session, Delivery, delivery_id, account_id, what="Delivery", include_deleted=include_deleted)


def create_delivery(session: Session, actor: TeamMember, data: Dict[str, Any]) -> Delivery:
    ensure(actor, PERM.DELIVERIES_CREATE)
    errors: Dict[str, str] = {}

    d = parse_date(data.get("delivery_date") or data.get("date"))
    if d is None:
        errors["delivery_date"] = "Date must be YYYY-MM-DD or DD.MM.YYYY."
    location = None
    try:
        location = get_location(session, actor.account_id, data.get("inventory_location_id"))
    except ServiceError:
        errors["inventory_location_id"] = "Choose a location."
    delivery_cost = _clean_money(data, "delivery_cost", errors)
    materials_cost = _clean_money(data, "materials_cost", errors)
    items = _clean_items(session, actor.account_id, location.id if location else None, data.get("items"), errors)
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    dlv = Delivery(
        account_id=actor.account_id,
        inventory_location_id=location.id,
        delivery_date=d,
        place_label=clean_str(data.get("place_label"), 255),
        person=clean_str(data.get("person"), 255) or actor.display_name,
        supplier=clean_str(data.get("supplier"), 255),
        delivery_cost=delivery_cost or Decimal("0"),
        materials_cost=materials_cost if materials_cost is not None else _items_value(items),
        created_by=actor.id,
        approved=False,
    )
    dlv.items = [DeliveryItem(**it) for it in items]
    session.add(dlv)
    session.flush()
    return dlv


def update_delivery(session: Session, actor: TeamMember, delivery_id, data: Dict[str, Any]) -> Delivery:
    ensure(actor, PERM.DELIVERIES_UPDATE_UNAPPROVED)
    dlv = get_delivery(session, actor.account_id, delivery_id)
    if dlv.approved:
        raise ServiceError("Approved deliveries cannot be edited.", CONFLICT)
    errors: Dict[str, str] = {}

    if "delivery_date" in data or "date" in data:
        d = parse_date(data.get("delivery_date") or data.get("date"))
        if d is None:
            errors["delivery_date"] = "Date must be YYYY-MM-DD or DD.MM.YYYY."
        else:
            dlv.delivery_date = d
    for key in ("place_label", "person", "supplier"):
        if key in data:
            setattr(dlv, key, clean_str(data.get(key), 255))
    if "delivery_cost" in data:
        dlv.delivery_cost = _clean_money(data, "delivery_cost", errors) or Decimal("0")
    items = None
    if "items" in data:
        items = _clean_items(session, actor.account_id, dlv.inventory_location_id, data.get("items"), errors)
    if "materials_cost" in data:
        mc = _clean_money(data, "materials_cost", errors)
        if mc is not None:
            dlv.materials_cost = mc
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)
    if items is not None:
        dlv.items = [DeliveryItem(**it) for it in items]
        if data.get("materials_cost") in (None, ""):
            dlv.materials_cost = _items_value(items)
    session.flush()
    return dlv


def delete_delivery(session: Session, actor: TeamMember, delivery_id) -> Delivery:
    ensure(actor, PERM.DELIVERIES_DELETE_UNAPPROVED)
    dlv = get_delivery(session, actor.account_id, delivery_id, include_deleted=True)
    if dlv.approved:
        raise ServiceError("Approved deliveries cannot be deleted.", CONFLICT)
    if dlv.deleted_at is None:
        dlv.deleted_at = utcnow()
        session.flush()
    return dlv


def restore_delivery(session: Session, actor: TeamMember, delivery_id) -> Delivery:
    ensure(actor, PERM.DELIVERIES_DELETE_UNAPPROVED)
    dlv = get_delivery(session, actor.account_id, delivery_id, include_deleted=True)
    dlv.deleted_at = None
    session.flush()
    return dlv


def add_delivery_and_update_stock(session: Session, actor: TeamMember, delivery_id) -> Delivery:
    """Approve a delivery: book every item into stock. Re-approving is a no-op."""
    ensure(actor, PERM.DELIVERIES_APPROVE)
    dlv = get_delivery(session, actor.account_id, delivery_id)
    if dlv.approved:
        return dlv
    if not dlv.items:
        raise ServiceError("Delivery has no items.", INVALID)

    for item in dlv.items:
        mat = session.get(Material, item.material_id)
        if mat is None or mat.account_id != actor.account_id or mat.deleted_at is not None:
            raise ServiceError(f"Material {item.material_id} no longer exists.", INVALID, field="items")
        apply_stock_delta(
            session, mat, Decimal(item.qty),
            kind=KIND_DELIVERY, occurred_on=dlv.delivery_date,
            unit_price=item.unit_price,
            source_type="delivery", source_id=dlv.id, actor_id=actor.id,
        )

    dlv.approved = True
    dlv.approved_at = utcnow()
    dlv.approved_by = actor.id
    session.flush()
    log_event(
        current_app.logger, "delivery_approved",
        account_id=actor.account_id, delivery_id=dlv.id, items=len(dlv.items),
    )
    return dlv


approve_delivery = add_delivery_and_update_stock


def list_deliveries(
    session: Session,
    actor: TeamMember,
    *,
    status: str = STATUS_ALL,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    location_id: Optional[int] = None,
    include_deleted: bool = False,
) -> List[Delivery]:
    ensure(actor, PERM.DELIVERIES_READ)
    q = session.query(Delivery).filter(Delivery.account_id == actor.account_id)
    if not include_deleted:
        q = q.filter(Delivery.deleted_at.is_(None))
    if status == STATUS_PENDING:
        q = q.filter(Delivery.approved.is_(False))
    elif status == STATUS_APPROVED:
        q = q.filter(Delivery.approved.is_(True))
    if date_from:
        q = q.filter(Delivery.delivery_date >= date_from)
    if date_to:
        q = q.filter(Delivery.delivery_date <= date_to)
    if location_id:
        q = q.filter(Delivery.inventory_location_id == location_id)
    return q.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).all()


def attach_invoice(session: Session, actor: TeamMember, delivery_id, file_storage) -> Delivery:
    from .storage import save_upload, delete_upload

    ensure(actor, PERM.DELIVERIES_CREATE, PERM.DELIVERIES_UPDATE_UNAPPROVED)
    dlv = get_delivery(session, actor.account_id, delivery_id)
    if dlv.approved:
        raise ServiceError("Approved deliveries cannot be edited.", CONFLICT)
    old = dlv.invoice_path
    dlv.invoice_path = save_upload(file_storage, account_id=actor.account_id, area="deliveries", owner=str(dlv.id))
    if old:
        delete_upload(old)
    session.flush()
    return dlv


def summarize_items(deliveries: List[Delivery]) -> List[dict]:
    """Quantity and value per material across deliveries (items report)."""
    agg: "OrderedDict[int, dict]" = OrderedDict()
    for dlv in deliveries:
        for it in dlv.items:
            row = agg.setdefault(it.material_id, {"material_id": it.material_id, "qty": Decimal("0"), "value": Decimal("0")})
            row["qty"] += Decimal(it.qty)
            if it.unit_price is not None:
                row["value"] += Decimal(it.qty) * Decimal(it.unit_price)
    return [{"material_id": k, "qty": float(v["qty"]), "value": float(q2(v["value"]))} for k, v in agg.items()]
