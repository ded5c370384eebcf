from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

INVALID = "invalid"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
CONFLICT = "conflict"


class ServiceError(RuntimeError):
    """Recoverable service error (validation/permission/uniqueness/etc.)."""

    def __init__(
        self,
        message: str,
        code: str = INVALID,
        *,
        field: Optional[str] = None,
        errors: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.errors = dict(errors or {})
        if field:
            self.errors.setdefault(field, message)


@dataclass(frozen=True)
class Page:
    items: List
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1 if self.limit else 1


def get_live(session: Session, model, obj_id, account_id: int, *, what: str = None, include_deleted: bool = False):
    """Fetch a tenant-scoped row or raise not_found (also for other tenants' ids)."""
    label = what or model.__name__
    try:
        obj_id = int(obj_id)
    except (TypeError, ValueError):
        raise ServiceError(f"{label} not found.", NOT_FOUND)
    obj = session.get(model, obj_id)
    if obj is None or obj.account_id != account_id:
        raise ServiceError(f"{label} {obj_id} not found.", NOT_FOUND)
    if not include_deleted and getattr(obj, "deleted_at", None) is not None:
        raise ServiceError(f"{label} {obj_id} not found.", NOT_FOUND)
    return obj
