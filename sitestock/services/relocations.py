from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitestock.models.material import Material
from sitestock.models.relocation import InventoryRelocation
from sitestock.models.stock_movement import KIND_RELOCATION_IN, KIND_RELOCATION_OUT
from sitestock.models.team_member import TeamMember
from sitestock.observability import log_event
from sitestock.utils.helpers import to_decimal, utcnow, as_utc
from sitestock.utils.validators import clean_str, is_valid_client_key
from .common import ServiceError, INVALID, NOT_FOUND, CONFLICT
from .materials import get_material, get_location
from .permissions import PERM, ensure
from .stock import apply_stock_delta


def _find_by_client_key(session: Session, account_id: int, client_key: Optional[str]):
    if not client_key:
        return None
    return (
        session.query(InventoryRelocation)
        .filter_by(account_id=account_id, client_key=client_key)
        .one_or_none()
    )


def _destination_material(session: Session, source: Material, to_location_id: int) -> Material:
    """Same family (or title+unit) at the destination; created empty if missing."""
    q = session.query(Material).filter(
        Material.account_id == source.account_id,
        Material.inventory_location_id == to_location_id,
        Material.deleted_at.is_(None),
    )
    if source.family_key:
        q = q.filter(Material.family_key == source.family_key)
    else:
        q = q.filter(
            func.lower(Material.title) == (source.title or "").lower(),
            Material.unit == source.unit,
        )
    dest = q.order_by(Material.id.asc()).first()
    if dest is not None:
        return dest
    dest = Material(
        account_id=source.account_id,
        inventory_location_id=to_location_id,
        title=source.title,
        description=source.description,
        unit=source.unit,
        family_key=source.family_key,
        image_url=source.image_url,
        cta_url=source.cta_url,
        base_quantity=source.base_quantity,
        current_quantity=Decimal("0"),
    )
    session.add(dest)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise ServiceError(
            "A material with this title already exists at the destination under another family.",
            CONFLICT,
        ) from e
    return dest


def create_inventory_relocation(
    session: Session,
    actor: TeamMember,
    *,
    from_material_id,
    to_location_id,
    qty,
    note: Optional[str] = None,
    client_key: Optional[str] = None,
) -> InventoryRelocation:
    """
    Move `qty` of a material to another location.
    Replaying the same `client_key` returns the first relocation and moves nothing.
    """
    ensure(actor, PERM.INVENTORY_MANAGE)

    client_key = (client_key or "").strip() or None
    if client_key is not None and not is_valid_client_key(client_key):
        raise ServiceError("client_key must be 8-120 characters.", INVALID, field="client_key")
    existing = _find_by_client_key(session, actor.account_id, client_key)
    if existing is not None:
        return existing

    amount = to_decimal(qty)
    if amount is None or amount <= 0:
        raise ServiceError("Quantity must be greater than zero.", INVALID, field="qty")

    source = get_material(session, actor.account_id, from_material_id)
    try:
        dest_location = get_location(session, actor.account_id, to_location_id)
    except ServiceError as e:
        raise ServiceError("Unknown destination location.", INVALID, field="to_location_id") from e
    if source.inventory_location_id == dest_location.id:
        raise ServiceError("Destination must differ from the source location.", INVALID, field="to_location_id")
    if amount > Decimal(source.current_quantity or 0):
        raise ServiceError(
            f"Insufficient stock: {source.current_quantity} {source.unit} available.",
            INVALID,
            field="qty",
        )

    dest = _destination_material(session, source, dest_location.id)

    reloc = InventoryRelocation(
        account_id=actor.account_id,
        client_key=client_key,
        from_material_id=source.id,
        to_material_id=dest.id,
        from_location_id=source.inventory_location_id,
        to_location_id=dest_location.id,
        qty=amount,
        note=clean_str(note, 2000),
        created_by=actor.id,
    )
    session.add(reloc)
    try:
        session.flush()
    except IntegrityError as e:
        # concurrent replay of the same client_key
        session.rollback()
        existing = _find_by_client_key(session, actor.account_id, client_key)
        if existing is not None:
            return existing
        raise ServiceError("Relocation could not be saved.", CONFLICT) from e

    today = date.today()
    apply_stock_delta(
        session, source, -amount,
        kind=KIND_RELOCATION_OUT, occurred_on=today,
        source_type="relocation", source_id=reloc.id, actor_id=actor.id,
    )
    apply_stock_delta(
        session, dest, amount,
        kind=KIND_RELOCATION_IN, occurred_on=today,
        source_type="relocation", source_id=reloc.id, actor_id=actor.id,
    )
    session.flush()
    log_event(
        current_app.logger, "relocation_created",
        account_id=actor.account_id, relocation_id=reloc.id,
        from_material_id=source.id, to_material_id=dest.id, qty=str(amount),
    )
    return reloc


def list_transfer_days(session: Session, actor: TeamMember, *, date_from: Optional[date] = None, date_to: Optional[date] = None):
    """Relocations grouped by (day, creator, from, to), newest day first."""
    ensure(actor, PERM.INVENTORY_READ, PERM.REPORTS_INVENTORY_READ)
    rows = _transfers(session, actor.account_id, date_from, date_to)
    groups: "OrderedDict[tuple, dict]" = OrderedDict()
    for r in rows:
        day = as_utc(r.created_at).date().isoformat()
        key = (day, r.created_by, r.from_location_id, r.to_location_id)
        g = groups.get(key)
        if g is None:
            g = groups[key] = {
                "day": day,
                "created_by": r.created_by,
                "from_location_id": r.from_location_id,
                "to_location_id": r.to_location_id,
                "transfers_count": 0,
                "qty_total": Decimal("0"),
            }
        g["transfers_count"] += 1
        g["qty_total"] += Decimal(r.qty)
    out = list(groups.values())
    for g in out:
        g["qty_total"] = float(g["qty_total"])
    return out


def transfer_day_detail(session: Session, actor: TeamMember, *, day: date, created_by=None, from_location_id=None, to_location_id=None):
    ensure(actor, PERM.INVENTORY_READ, PERM.REPORTS_INVENTORY_READ)
    rows = _transfers(session, actor.account_id, day, day)
    if created_by is not None:
        rows = [r for r in rows if r.created_by == created_by]
    if from_location_id is not None:
        rows = [r for r in rows if r.from_location_id == from_location_id]
    if to_location_id is not None:
        rows = [r for r in rows if r.to_location_id == to_location_id]
    if not rows and created_by is not None:
        raise ServiceError("Transfer group not found.", NOT_FOUND)
    return rows


def _transfers(session: Session, account_id: int, date_from: Optional[date], date_to: Optional[date]):
    rows = (
        session.query(InventoryRelocation)
        .filter(InventoryRelocation.account_id == account_id)
        .order_by(InventoryRelocation.created_at.desc(), InventoryRelocation.id.desc())
        .all()
    )
    # created_at is a timestamp; filter on its UTC day so sqlite and postgres agree
    out = []
    for r in rows:
        d = as_utc(r.created_at or utcnow()).date()
        if date_from and d < date_from:
            continue
        if date_to and d > date_to:
            continue
        out.append(r)
    return out
