from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from sitestock.models.material import Material
from sitestock.models.stock_movement import StockMovement
from .common import ServiceError, INVALID


def apply_stock_delta(
    session: Session,
    material: Material,
    qty_delta: Decimal,
    *,
    kind: str,
    occurred_on: date,
    unit_price: Optional[Decimal] = None,
    source_type: Optional[str] = None,
    source_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    allow_negative: bool = False,
) -> StockMovement:
    """
    Change a material's stock and append the matching ledger row.
    Caller owns the transaction; nothing is committed here.
    """
    current = Decimal(material.current_quantity or 0)
    new_qty = current + qty_delta
    if new_qty < 0 and not allow_negative:
        raise ServiceError(
            f"Insufficient stock for '{material.title}': {current} {material.unit} available, "
            f"{-qty_delta} {material.unit} requested.",
            INVALID,
            field="qty",
        )
    material.current_quantity = new_qty
    mv = StockMovement(
        account_id=material.account_id,
        material_id=material.id,
        inventory_location_id=material.inventory_location_id,
        kind=kind,
        qty_delta=qty_delta,
        unit_price=unit_price,
        occurred_on=occurred_on,
        source_type=source_type,
        source_id=source_id,
        created_by=actor_id,
    )
    session.add(mv)
    return mv
