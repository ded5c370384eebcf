"""
Permission keys, the role matrix and the per-request permission snapshot.

The snapshot is the single source of truth for "who may do what": routes gate on it
through `policy.permission_required`, services re-check it through `ensure` so CLI
and internal callers cannot bypass it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from sitestock.extensions import db
from sitestock.models.team_member import (
    TeamMember,
    ROLE_OWNER,
    ROLE_MANAGER,
    ROLE_STOREMAN,
    ROLE_FOREMAN,
    ROLE_WORKER,
    STATUS_ACTIVE,
)
from .common import ServiceError, FORBIDDEN


class PERM:
    # Inventory / low stock
    INVENTORY_READ = "inventory.read"
    INVENTORY_MANAGE = "inventory.manage"
    LOW_STOCK_READ = "low_stock.read"
    LOW_STOCK_MANAGE = "low_stock.manage"

    # Materials
    MATERIALS_READ = "materials.read"
    MATERIALS_WRITE = "materials.write"
    MATERIALS_SOFT_DELETE = "materials.soft_delete"
    MATERIALS_AUDIT_READ = "materials.audit.read"

    # Deliveries
    DELIVERIES_READ = "deliveries.read"
    DELIVERIES_CREATE = "deliveries.create"
    DELIVERIES_UPDATE_UNAPPROVED = "deliveries.update_unapproved"
    DELIVERIES_DELETE_UNAPPROVED = "deliveries.delete_unapproved"
    DELIVERIES_APPROVE = "deliveries.approve"

    # Daily reports
    DAILY_REPORTS_READ = "daily_reports.read"
    DAILY_REPORTS_CREATE = "daily_reports.create"
    DAILY_REPORTS_UPDATE_UNAPPROVED = "daily_reports.update_unapproved"
    DAILY_REPORTS_APPROVE = "daily_reports.approve"
    DAILY_REPORTS_PHOTOS_UPLOAD = "daily_reports.photos.upload"
    DAILY_REPORTS_PHOTOS_DELETE = "daily_reports.photos.delete"
    # aliases only; both resolve to DAILY_REPORTS_APPROVE
    DAILY_REPORTS_QUEUE = "daily_reports.queue"
    DAILY_REPORTS_DELETE_UNAPPROVED = "daily_reports.delete_unapproved"

    # Tasks
    TASKS_READ_OWN = "tasks.read.own"
    TASKS_READ_ALL = "tasks.read.all"
    TASKS_UPDATE_OWN = "tasks.update.own"
    TASKS_UPDATE_ALL = "tasks.update.all"
    TASKS_ASSIGN = "tasks.assign"
    TASKS_UPLOAD_PHOTOS = "tasks.upload_photos"

    # Metrics / reports
    METRICS_READ = "metrics.read"
    METRICS_MANAGE = "metrics.manage"
    REPORTS_DELIVERIES_READ = "reports.deliveries.read"
    REPORTS_DELIVERIES_INVOICES_READ = "reports.deliveries.invoices.read"
    REPORTS_STAGES_READ = "reports.stages.read"
    REPORTS_ITEMS_READ = "reports.items.read"
    REPORTS_INVENTORY_READ = "reports.inventory.read"

    # Team / crews
    TEAM_READ = "team.read"
    TEAM_MEMBER_READ = "team.member.read"
    TEAM_MEMBER_FORCE_RESET = "team.member.force_reset"
    TEAM_INVITE = "team.invite"
    TEAM_REMOVE = "team.remove"
    TEAM_MANAGE_ROLES = "team.manage_roles"
    TEAM_MANAGE_CREWS = "team.manage_crews"
    CREWS_READ = "crews.read"
    CREWS_MANAGE = "crews.manage"  # umbrella for crews.*
    CREWS_CREATE = "crews.create"
    CREWS_UPDATE = "crews.update"
    CREWS_DELETE = "crews.delete"
    CREWS_ASSIGN = "crews.assign"
    CREWS_CHANGE_LEADER = "crews.change_leader"

    # Project
    PROJECT_MANAGE = "project.manage"
    PROJECT_SETTINGS_MANAGE = "project.settings.manage"


_ALIASES = {PERM.DAILY_REPORTS_QUEUE, PERM.DAILY_REPORTS_DELETE_UNAPPROVED}

ALL_PERMISSION_KEYS = tuple(
    v for k, v in vars(PERM).items() if k.isupper() and v not in _ALIASES
)

_LEGACY_KEYS = {
    "deliveries.update": PERM.DELIVERIES_UPDATE_UNAPPROVED,
    "deliveries.delete": PERM.DELIVERIES_DELETE_UNAPPROVED,
    "materials.delete": PERM.MATERIALS_SOFT_DELETE,
    PERM.DAILY_REPORTS_QUEUE: PERM.DAILY_REPORTS_APPROVE,
    PERM.DAILY_REPORTS_DELETE_UNAPPROVED: PERM.DAILY_REPORTS_APPROVE,
}


def normalize_permission_key(key) -> str:
    k = str(key or "").strip()
    return _LEGACY_KEYS.get(k, k)


def is_permission_key(key) -> bool:
    return normalize_permission_key(key) in ALL_PERMISSION_KEYS


PERM_GROUPS = {
    "warehouse": (
        PERM.LOW_STOCK_READ,
        PERM.LOW_STOCK_MANAGE,
        PERM.MATERIALS_READ,
        PERM.MATERIALS_WRITE,
        PERM.MATERIALS_SOFT_DELETE,
        PERM.DELIVERIES_READ,
        PERM.DELIVERIES_CREATE,
        PERM.DELIVERIES_UPDATE_UNAPPROVED,
        PERM.DELIVERIES_DELETE_UNAPPROVED,
        PERM.DELIVERIES_APPROVE,
        PERM.DAILY_REPORTS_READ,
        PERM.DAILY_REPORTS_CREATE,
        PERM.DAILY_REPORTS_UPDATE_UNAPPROVED,
        PERM.DAILY_REPORTS_APPROVE,
        PERM.DAILY_REPORTS_PHOTOS_UPLOAD,
        PERM.DAILY_REPORTS_PHOTOS_DELETE,
        PERM.INVENTORY_READ,
        PERM.INVENTORY_MANAGE,
    ),
    "tasks": (
        PERM.TASKS_READ_OWN,
        PERM.TASKS_READ_ALL,
        PERM.TASKS_UPDATE_OWN,
        PERM.TASKS_UPDATE_ALL,
        PERM.TASKS_ASSIGN,
        PERM.TASKS_UPLOAD_PHOTOS,
    ),
    "reports": (
        PERM.METRICS_READ,
        PERM.METRICS_MANAGE,
        PERM.REPORTS_DELIVERIES_READ,
        PERM.REPORTS_DELIVERIES_INVOICES_READ,
        PERM.REPORTS_STAGES_READ,
        PERM.REPORTS_ITEMS_READ,
        PERM.REPORTS_INVENTORY_READ,
    ),
    "team": (
        PERM.TEAM_READ,
        PERM.TEAM_MEMBER_READ,
        PERM.TEAM_INVITE,
        PERM.TEAM_REMOVE,
        PERM.TEAM_MANAGE_ROLES,
        PERM.TEAM_MANAGE_CREWS,
        PERM.CREWS_READ,
        PERM.CREWS_MANAGE,
    ),
    "project": (
        PERM.PROJECT_MANAGE,
        PERM.PROJECT_SETTINGS_MANAGE,
    ),
}


# ---- Role matrix ----------------------------------------------------------
_STOREMAN = frozenset({
    PERM.INVENTORY_READ, PERM.INVENTORY_MANAGE,
    PERM.LOW_STOCK_READ, PERM.LOW_STOCK_MANAGE,
    PERM.MATERIALS_READ, PERM.MATERIALS_WRITE, PERM.MATERIALS_SOFT_DELETE,
    PERM.DELIVERIES_READ, PERM.DELIVERIES_CREATE, PERM.DELIVERIES_UPDATE_UNAPPROVED,
    PERM.DELIVERIES_DELETE_UNAPPROVED, PERM.DELIVERIES_APPROVE,
    PERM.DAILY_REPORTS_READ, PERM.DAILY_REPORTS_APPROVE, PERM.DAILY_REPORTS_PHOTOS_UPLOAD,
    PERM.REPORTS_DELIVERIES_READ, PERM.REPORTS_DELIVERIES_INVOICES_READ,
    PERM.REPORTS_ITEMS_READ, PERM.REPORTS_INVENTORY_READ,
    PERM.METRICS_READ,
    PERM.TASKS_READ_OWN,
    PERM.TEAM_READ, PERM.CREWS_READ,
})

_FOREMAN = frozenset({
    PERM.MATERIALS_READ, PERM.LOW_STOCK_READ, PERM.INVENTORY_READ,
    PERM.DELIVERIES_READ, PERM.DELIVERIES_CREATE,
    PERM.DAILY_REPORTS_READ, PERM.DAILY_REPORTS_CREATE, PERM.DAILY_REPORTS_UPDATE_UNAPPROVED,
    PERM.DAILY_REPORTS_PHOTOS_UPLOAD, PERM.DAILY_REPORTS_PHOTOS_DELETE,
    PERM.TASKS_READ_ALL, PERM.TASKS_UPDATE_OWN, PERM.TASKS_UPLOAD_PHOTOS,
    PERM.REPORTS_STAGES_READ, PERM.METRICS_READ,
    PERM.TEAM_READ, PERM.CREWS_READ,
})

_WORKER = frozenset({
    PERM.MATERIALS_READ,
    PERM.DAILY_REPORTS_READ, PERM.DAILY_REPORTS_CREATE, PERM.DAILY_REPORTS_PHOTOS_UPLOAD,
    PERM.TASKS_READ_OWN, PERM.TASKS_UPDATE_OWN, PERM.TASKS_UPLOAD_PHOTOS,
    PERM.CREWS_READ,
})

ROLE_PERMISSIONS = {
    ROLE_OWNER: frozenset(ALL_PERMISSION_KEYS),
    ROLE_MANAGER: frozenset(ALL_PERMISSION_KEYS) - {PERM.PROJECT_SETTINGS_MANAGE},
    ROLE_STOREMAN: _STOREMAN,
    ROLE_FOREMAN: _FOREMAN,
    ROLE_WORKER: _WORKER,
}


@dataclass(frozen=True)
class PermissionSnapshot:
    account_id: Optional[int] = None
    role: Optional[str] = None
    member_id: Optional[int] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "role": self.role,
            "member_id": self.member_id,
            "permissions": sorted(self.permissions),
        }


EMPTY_SNAPSHOT = PermissionSnapshot()


def snapshot_for_member(member: Optional[TeamMember]) -> PermissionSnapshot:
    if member is None or member.deleted_at is not None or member.status != STATUS_ACTIVE:
        return EMPTY_SNAPSHOT
    return PermissionSnapshot(
        account_id=member.account_id,
        role=member.role,
        member_id=member.id,
        permissions=ROLE_PERMISSIONS.get(member.role, frozenset()),
    )


def current_member(user, account_id: Optional[int] = None) -> Optional[TeamMember]:
    """Live, accepted membership of `user` in `account_id` (default: user's current account)."""
    if user is None or not getattr(user, "is_authenticated", True):
        return None
    account_id = account_id or getattr(user, "account_id", None)
    if not account_id:
        return None
    return (
        db.session.query(TeamMember)
        .filter(
            TeamMember.account_id == account_id,
            TeamMember.user_id == user.id,
            TeamMember.deleted_at.is_(None),
            TeamMember.status == STATUS_ACTIVE,
        )
        .one_or_none()
    )


def my_permissions_snapshot(user, account_id: Optional[int] = None) -> PermissionSnapshot:
    """Snapshot for the signed-in user; empty when there is no user or membership."""
    return snapshot_for_member(current_member(user, account_id))


def can(snapshot: Optional[PermissionSnapshot], key: str) -> bool:
    if snapshot is None:
        return False
    k = normalize_permission_key(key)
    perms = snapshot.permissions
    if k in perms:
        return True
    # ALL implies OWN
    if k == PERM.TASKS_READ_OWN and PERM.TASKS_READ_ALL in perms:
        return True
    if k == PERM.TASKS_UPDATE_OWN and PERM.TASKS_UPDATE_ALL in perms:
        return True
    # crews umbrella
    if k.startswith("crews.") and (PERM.CREWS_MANAGE in perms or PERM.TEAM_MANAGE_CREWS in perms):
        return True
    return False


def can_any(snapshot: Optional[PermissionSnapshot], keys: Iterable[str]) -> bool:
    if snapshot is None:
        return False
    return any(can(snapshot, k) for k in keys)


def can_all(snapshot: Optional[PermissionSnapshot], keys: Iterable[str]) -> bool:
    if snapshot is None:
        return False
    return all(can(snapshot, k) for k in keys)


def visible_groups(snapshot: Optional[PermissionSnapshot]) -> list:
    return [name for name, keys in PERM_GROUPS.items() if can_any(snapshot, keys)]


def ensure(actor: Optional[TeamMember], *keys: str) -> PermissionSnapshot:
    """Raise forbidden unless the actor holds at least one of `keys`."""
    snap = snapshot_for_member(actor)
    if not can_any(snap, keys):
        raise ServiceError("You do not have permission to perform this action.", FORBIDDEN)
    return snap
