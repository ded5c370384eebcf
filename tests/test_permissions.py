import types

import pytest

from sitestock.services import permissions as perms
from sitestock.services.common import ServiceError
from sitestock.services.permissions import PERM


def member(role, status="active", deleted_at=None):
    return types.SimpleNamespace(id=1, account_id=9, role=role, status=status, deleted_at=deleted_at)


def test_owner_has_everything_manager_lacks_settings():
    owner = perms.snapshot_for_member(member("owner"))
    manager = perms.snapshot_for_member(member("manager"))
    assert set(perms.ALL_PERMISSION_KEYS) == set(owner.permissions)
    assert perms.can(owner, PERM.PROJECT_SETTINGS_MANAGE)
    assert not perms.can(manager, PERM.PROJECT_SETTINGS_MANAGE)
    assert perms.can(manager, PERM.TEAM_MANAGE_ROLES)


def test_inactive_or_removed_member_gets_empty_snapshot():
    assert perms.snapshot_for_member(member("owner", status="invited")) is perms.EMPTY_SNAPSHOT
    assert perms.snapshot_for_member(member("owner", deleted_at=object())) is perms.EMPTY_SNAPSHOT
    assert perms.snapshot_for_member(None) is perms.EMPTY_SNAPSHOT


def test_aliases_resolve_to_approve():
    storeman = perms.snapshot_for_member(member("storeman"))
    foreman = perms.snapshot_for_member(member("foreman"))
    assert perms.can(storeman, PERM.DAILY_REPORTS_QUEUE)
    assert perms.can(storeman, PERM.DAILY_REPORTS_DELETE_UNAPPROVED)
    assert not perms.can(foreman, PERM.DAILY_REPORTS_DELETE_UNAPPROVED)
    assert PERM.DAILY_REPORTS_QUEUE not in perms.ALL_PERMISSION_KEYS


def test_legacy_keys_normalize():
    assert perms.normalize_permission_key(" deliveries.update ") == PERM.DELIVERIES_UPDATE_UNAPPROVED
    assert perms.is_permission_key("materials.delete")
    assert not perms.is_permission_key("nope.nothing")


def test_all_implies_own_for_tasks():
    foreman = perms.snapshot_for_member(member("foreman"))
    assert perms.can(foreman, PERM.TASKS_READ_OWN)
    worker = perms.snapshot_for_member(member("worker"))
    assert perms.can(worker, PERM.TASKS_READ_OWN)
    assert not perms.can(worker, PERM.TASKS_READ_ALL)


def test_crews_umbrella_covers_crew_actions():
    manager = perms.snapshot_for_member(member("manager"))
    assert perms.can(manager, PERM.CREWS_CHANGE_LEADER)
    worker = perms.snapshot_for_member(member("worker"))
    assert perms.can(worker, PERM.CREWS_READ)
    assert not perms.can(worker, PERM.CREWS_CREATE)


def test_visible_groups_by_role():
    worker = perms.snapshot_for_member(member("worker"))
    assert perms.visible_groups(worker) == ["warehouse", "tasks", "team"]
    assert perms.visible_groups(perms.EMPTY_SNAPSHOT) == []


def test_ensure_raises_forbidden():
    with pytest.raises(ServiceError) as ei:
        perms.ensure(member("worker"), PERM.DELIVERIES_APPROVE)
    assert ei.value.code == "forbidden"
    snap = perms.ensure(member("storeman"), PERM.DELIVERIES_APPROVE, PERM.METRICS_MANAGE)
    assert snap.role == "storeman"
