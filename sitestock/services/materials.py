from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitestock.models.inventory_location import InventoryLocation
from sitestock.models.material import Material, DEFAULT_UNIT
from sitestock.models.stock_movement import KIND_ADJUSTMENT
from sitestock.models.team_member import TeamMember
from sitestock.utils.helpers import to_decimal, utcnow
from sitestock.utils.validators import clean_str
from .common import ServiceError, Page, get_live, INVALID, CONFLICT
from .permissions import PERM, ensure, can, snapshot_for_member
from .stock import apply_stock_delta

SORT_FIELDS = ("title", "current_quantity", "base_quantity", "created_at")
DUPLICATE_TITLE = "Material with this title already exists."
MAX_PAGE_SIZE = 200


def stock_pct(current: Any, base: Any) -> int:
    """Fill level 0..100; 0 when no base quantity is set."""
    b = to_decimal(base) or Decimal("0")
    c = to_decimal(current) or Decimal("0")
    if b <= 0:
        return 0
    pct = int((c / b * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, pct))


def default_family_key(title: str) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", (title or "").upper()).strip("_")


# ---- Inventory locations --------------------------------------------------
def list_locations(session: Session, account_id: int, *, include_deleted: bool = False):
    q = session.query(InventoryLocation).filter(InventoryLocation.account_id == account_id)
    if not include_deleted:
        q = q.filter(InventoryLocation.deleted_at.is_(None))
    return q.order_by(func.lower(InventoryLocation.label)).all()


def get_location(session: Session, account_id: int, location_id) -> InventoryLocation:
    return get_live(session, InventoryLocation, location_id, account_id, what="Location")


def create_location(session: Session, actor: TeamMember, *, label: str) -> InventoryLocation:
    ensure(actor, PERM.INVENTORY_MANAGE)
    label = clean_str(label, 160)
    if not label:
        raise ServiceError("Label is required.", INVALID, field="label")
    loc = InventoryLocation(account_id=actor.account_id, label=label)
    session.add(loc)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError("Location with this label already exists.", CONFLICT, field="label") from e
    return loc


def rename_location(session: Session, actor: TeamMember, location_id, *, label: str) -> InventoryLocation:
    ensure(actor, PERM.INVENTORY_MANAGE)
    loc = get_location(session, actor.account_id, location_id)
    label = clean_str(label, 160)
    if not label:
        raise ServiceError("Label cannot be blank.", INVALID, field="label")
    loc.label = label
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError("Location with this label already exists.", CONFLICT, field="label") from e
    return loc


def delete_location(session: Session, actor: TeamMember, location_id) -> InventoryLocation:
    ensure(actor, PERM.INVENTORY_MANAGE)
    loc = get_location(session, actor.account_id, location_id)
    stocked = (
        session.query(func.count(Material.id))
        .filter(
            Material.inventory_location_id == loc.id,
            Material.deleted_at.is_(None),
            Material.current_quantity > 0,
        )
        .scalar()
    )
    if stocked:
        raise ServiceError("Location still holds stock; relocate or zero it first.", CONFLICT)
    loc.deleted_at = utcnow()
    session.flush()
    return loc


# ---- Materials ------------------------------------------------------------
def get_material(session: Session, account_id: int, material_id, *, include_deleted: bool = False) -> Material:
    return get_live(session, Material, material_id, account_id, what="Material", include_deleted=include_deleted)


def list_materials(
    session: Session,
    actor: TeamMember,
    *,
    q: Optional[str] = None,
    sort: str = "title",
    direction: str = "asc",
    include_deleted: bool = False,
    deleted_only: bool = False,
    location_id: Optional[int] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Page:
    snap = ensure(actor, PERM.MATERIALS_READ)
    try:
        limit = int(limit or current_app.config.get("MATERIALS_PAGE_SIZE", 30))
    except (TypeError, ValueError):
        limit = int(current_app.config.get("MATERIALS_PAGE_SIZE", 30))
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    if sort not in SORT_FIELDS:
        sort = "title"
    if direction not in ("asc", "desc"):
        direction = "asc"
    try:
        page = max(1, int(page))
    except (TypeError, ValueError):
        page = 1

    # deleted rows are only visible to those who can soft-delete
    can_see_deleted = can(snap, PERM.MATERIALS_SOFT_DELETE)
    query = session.query(Material).filter(Material.account_id == actor.account_id)
    if deleted_only and can_see_deleted:
        query = query.filter(Material.deleted_at.isnot(None))
    elif not (include_deleted and can_see_deleted):
        query = query.filter(Material.deleted_at.is_(None))
    if location_id:
        query = query.filter(Material.inventory_location_id == location_id)
    if q and q.strip():
        like = f"%{q.strip().lower()}%"
        query = query.filter(func.lower(Material.title).like(like))

    col = getattr(Material, sort)
    if sort == "title":
        col = func.lower(Material.title)
    order = col.desc() if direction == "desc" else col.asc()

    total = query.count()
    offset = (page - 1) * limit
    items = query.order_by(order, Material.id.asc()).limit(limit).offset(offset).all()
    return Page(items=items, total=total, limit=limit, offset=offset)


def _ensure_unique_title(session: Session, account_id: int, location_id, title: str, *, exclude_id=None) -> None:
    # NULL locations never collide in the unique index, so check explicitly too
    q = session.query(Material.id).filter(
        Material.account_id == account_id,
        Material.deleted_at.is_(None),
        func.lower(Material.title) == title.lower(),
    )
    if location_id is None:
        q = q.filter(Material.inventory_location_id.is_(None))
    else:
        q = q.filter(Material.inventory_location_id == location_id)
    if exclude_id is not None:
        q = q.filter(Material.id != exclude_id)
    if session.query(q.exists()).scalar():
        raise ServiceError(DUPLICATE_TITLE, CONFLICT, field="title")


def _clean_quantities(data: Dict[str, Any], errors: Dict[str, str], *, partial: bool):
    out = {}
    for key in ("base_quantity", "current_quantity"):
        if key not in data or data.get(key) in (None, ""):
            continue
        val = to_decimal(data.get(key))
        if val is None or val < 0:
            errors[key] = "Must be a non-negative number."
        else:
            out[key] = val
    if not partial and "base_quantity" not in out and "base_quantity" not in errors:
        out["base_quantity"] = Decimal("0")
    return out


def _adjust_stock(session: Session, actor: TeamMember, m: Material, target: Decimal) -> None:
    """Set stock to `target` through an adjustment movement; no-op when unchanged."""
    delta = target - Decimal(m.current_quantity or 0)
    if delta:
        apply_stock_delta(
            session, m, delta,
            kind=KIND_ADJUSTMENT,
            occurred_on=date.today(),
            source_type="material",
            source_id=m.id,
            actor_id=actor.id,
        )


def create_material(session: Session, actor: TeamMember, data: Dict[str, Any]) -> Material:
    ensure(actor, PERM.MATERIALS_WRITE)
    errors: Dict[str, str] = {}

    title = clean_str(data.get("title"), 255)
    if not title:
        errors["title"] = "Title is required."
    qty = _clean_quantities(data, errors, partial=False)

    location_id = data.get("inventory_location_id")
    location = None
    if location_id not in (None, ""):
        try:
            location = get_location(session, actor.account_id, location_id)
        except ServiceError:
            errors["inventory_location_id"] = "Unknown location."
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    _ensure_unique_title(session, actor.account_id, location.id if location else None, title)
    base = qty["base_quantity"]
    opening = qty.get("current_quantity", base)
    m = Material(
        account_id=actor.account_id,
        title=title,
        description=clean_str(data.get("description"), 4000),
        unit=clean_str(data.get("unit"), 20) or DEFAULT_UNIT,
        family_key=clean_str(data.get("family_key"), 255) or default_family_key(title),
        base_quantity=base,
        current_quantity=Decimal("0"),
        image_url=clean_str(data.get("image_url"), 1024),
        cta_url=clean_str(data.get("cta_url"), 1024),
        inventory_location_id=location.id if location else None,
    )
    session.add(m)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError(DUPLICATE_TITLE, CONFLICT, field="title") from e
    _adjust_stock(session, actor, m, opening)
    return m


def update_material(session: Session, actor: TeamMember, material_id, data: Dict[str, Any]) -> Material:
    ensure(actor, PERM.MATERIALS_WRITE)
    m = get_material(session, actor.account_id, material_id)
    errors: Dict[str, str] = {}

    if "title" in data:
        title = clean_str(data.get("title"), 255)
        if not title:
            errors["title"] = "Title cannot be blank."
        else:
            _ensure_unique_title(session, actor.account_id, m.inventory_location_id, title, exclude_id=m.id)
            m.title = title
    qty = _clean_quantities(data, errors, partial=True)
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    if "base_quantity" in qty:
        m.base_quantity = qty["base_quantity"]
    if "current_quantity" in qty:
        _adjust_stock(session, actor, m, qty["current_quantity"])
    for key, max_len in (("description", 4000), ("image_url", 1024), ("cta_url", 1024)):
        if key in data:
            setattr(m, key, clean_str(data.get(key), max_len))
    if "unit" in data:
        m.unit = clean_str(data.get("unit"), 20) or DEFAULT_UNIT
    if "family_key" in data:
        m.family_key = clean_str(data.get("family_key"), 255) or default_family_key(m.title)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError(DUPLICATE_TITLE, CONFLICT, field="title") from e
    return m


def soft_delete_material(session: Session, actor: TeamMember, material_id) -> Material:
    ensure(actor, PERM.MATERIALS_SOFT_DELETE)
    m = get_material(session, actor.account_id, material_id, include_deleted=True)
    if m.deleted_at is None:
        m.deleted_at = utcnow()
        session.flush()
    return m


def restore_material(session: Session, actor: TeamMember, material_id) -> Material:
    ensure(actor, PERM.MATERIALS_SOFT_DELETE)
    m = get_material(session, actor.account_id, material_id, include_deleted=True)
    if m.deleted_at is None:
        return m
    _ensure_unique_title(session, actor.account_id, m.inventory_location_id, m.title, exclude_id=m.id)
    m.deleted_at = None
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError(DUPLICATE_TITLE, CONFLICT, field="title") from e
    return m


def low_stock(session: Session, actor: TeamMember, *, location_id: Optional[int] = None, threshold: Optional[int] = None):
    """Active materials at or under the low-stock threshold, emptiest first."""
    ensure(actor, PERM.LOW_STOCK_READ, PERM.LOW_STOCK_MANAGE)
    return low_stock_materials(session, actor.account_id, location_id=location_id, threshold=threshold)


def low_stock_materials(session: Session, account_id: int, *, location_id: Optional[int] = None, threshold: Optional[int] = None):
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_PCT", 25)
    q = session.query(Material).filter(
        Material.account_id == account_id,
        Material.deleted_at.is_(None),
        Material.base_quantity > 0,
    )
    if location_id:
        q = q.filter(Material.inventory_location_id == location_id)
    rows = [m for m in q.all() if stock_pct(m.current_quantity, m.base_quantity) <= threshold]
    rows.sort(key=lambda m: (stock_pct(m.current_quantity, m.base_quantity), (m.title or "").lower()))
    return rows


def materials_visibility(actor: TeamMember) -> dict:
    snap = snapshot_for_member(actor)
    return {
        "can_write": can(snap, PERM.MATERIALS_WRITE),
        "can_soft_delete": can(snap, PERM.MATERIALS_SOFT_DELETE),
        "can_relocate": can(snap, PERM.INVENTORY_MANAGE),
    }
