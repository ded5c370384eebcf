"""
Bulk material catalog import from a spreadsheet (xlsx/csv).

Rows are matched on (location, lower(title)) among active materials: matches are
updated, everything else is created through the regular material services so the
same validation and permission checks apply.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from sitestock.models.inventory_location import InventoryLocation
from sitestock.models.material import Material
from sitestock.models.team_member import TeamMember
from .common import ServiceError, INVALID
from .materials import create_material, update_material, create_location
from .permissions import PERM, ensure

logger = logging.getLogger("importer.materials")

COLUMN_ALIASES = {
    "Title": "title",
    "Name": "title",
    "Unit": "unit",
    "Base qty": "base_quantity",
    "Base quantity": "base_quantity",
    "Current qty": "current_quantity",
    "Current quantity": "current_quantity",
    "Family": "family_key",
    "Family key": "family_key",
    "Description": "description",
    "Location": "location",
    "Image URL": "image_url",
    "Link": "cta_url",
}
COLUMNS = [
    "title",
    "unit",
    "base_quantity",
    "current_quantity",
    "family_key",
    "description",
    "location",
    "image_url",
    "cta_url",
]


def read_catalog(path) -> pd.DataFrame:
    """Load and normalize a catalog sheet; raises ServiceError on unusable input."""
    path = Path(path)
    if not path.exists():
        raise ServiceError(f"File not found: {path}", INVALID)
    if path.suffix.lower() in (".xlsx", ".xls"):
        df = pd.read_excel(path)
    elif path.suffix.lower() == ".csv":
        df = pd.read_csv(path)
    else:
        raise ServiceError("Catalog must be .xlsx or .csv.", INVALID)

    df = df.rename(columns=COLUMN_ALIASES)
    if "title" not in df.columns:
        raise ServiceError("Catalog needs a Title column.", INVALID)
    for col in COLUMNS:
        if col not in df.columns:
            df[col] = None
    df = df[COLUMNS]

    for col in ("title", "unit", "family_key", "description", "location", "image_url", "cta_url"):
        df[col] = df[col].astype(str).str.strip().replace({"nan": None, "None": None, "": None})
    for col in ("base_quantity", "current_quantity"):
        df[col] = pd.to_numeric(
            df[col].astype(str).str.replace(",", ".", regex=False), errors="coerce"
        ).round(3)
    df = df[df["title"].notna()]
    df = df.replace({np.nan: None})
    return df


def _location(session: Session, actor: TeamMember, label: Optional[str], cache: Dict, dry_run: bool):
    if not label:
        return None
    key = label.lower()
    if key in cache:
        return cache[key]
    loc = (
        session.query(InventoryLocation)
        .filter(
            InventoryLocation.account_id == actor.account_id,
            func.lower(InventoryLocation.label) == key,
            InventoryLocation.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if loc is None and not dry_run:
        loc = create_location(session, actor, label=label)
    cache[key] = loc
    return loc


def import_catalog(session: Session, actor: TeamMember, df: pd.DataFrame, *, dry_run: bool = False,
                   limit: Optional[int] = None) -> Dict[str, int]:
    """Upsert catalog rows. The caller commits (or rolls back for dry runs)."""
    ensure(actor, PERM.MATERIALS_WRITE)
    if limit is not None:
        df = df.head(int(limit))
    logger.info("rows_prepared=%s dry_run=%s", len(df), dry_run)

    stats = {"created": 0, "updated": 0, "failed": 0}
    locations: Dict = {}
    for r in df.itertuples(index=False, name="Row"):
        loc = _location(session, actor, r.location, locations, dry_run)
        q = session.query(Material).filter(
            Material.account_id == actor.account_id,
            Material.deleted_at.is_(None),
            func.lower(Material.title) == r.title.lower(),
        )
        if loc is not None:
            q = q.filter(Material.inventory_location_id == loc.id)
        else:
            q = q.filter(Material.inventory_location_id.is_(None))
        existing = q.first()
        data = {k: getattr(r, k) for k in COLUMNS if k != "location" and getattr(r, k) is not None}
        if dry_run:
            stats["updated" if existing else "created"] += 1
            continue
        try:
            if existing is not None:
                data.pop("current_quantity", None)  # stock only moves through the ledger
                update_material(session, actor, existing.id, data)
                stats["updated"] += 1
            else:
                if loc is not None:
                    data["inventory_location_id"] = loc.id
                create_material(session, actor, data)
                stats["created"] += 1
        except ServiceError as e:
            stats["failed"] += 1
            logger.warning("row_failed title=%r error=%s", r.title, e.message)
    logger.info(
        "import_complete created=%s updated=%s failed=%s",
        stats["created"], stats["updated"], stats["failed"],
    )
    return stats
