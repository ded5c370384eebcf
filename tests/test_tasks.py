from io import BytesIO

import pytest
from werkzeug.datastructures import FileStorage

from sitestock.models.task import STATUS_DONE
from sitestock.models.team_member import ROLE_FOREMAN, ROLE_WORKER
from sitestock.services import tasks as svc
from sitestock.services import team
from sitestock.services.common import ServiceError


def test_place_tree_and_breadcrumb(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    building = svc.create_place(ctx, owner, name="Building A")
    floor = svc.create_place(ctx, owner, name="Floor 2", parent_id=building.id)
    room = svc.create_place(ctx, owner, name="Room 201", parent_id=floor.id)
    assert [p.name for p in svc.breadcrumb(ctx, room)] == ["Building A", "Floor 2", "Room 201"]
    assert [p.id for p in svc.list_places(ctx, acc.id, roots_only=True)] == [building.id]
    assert [p.id for p in svc.list_places(ctx, acc.id, parent_id=building.id)] == [floor.id]


def test_place_cannot_nest_in_own_subtree(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    top = svc.create_place(ctx, owner, name="Top")
    child = svc.create_place(ctx, owner, name="Child", parent_id=top.id)
    with pytest.raises(ServiceError) as ei:
        svc.update_place(ctx, owner, top.id, {"parent_id": child.id})
    assert "parent_id" in ei.value.errors


def test_place_with_children_cannot_be_deleted(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    top = svc.create_place(ctx, owner, name="Top")
    svc.create_place(ctx, owner, name="Child", parent_id=top.id)
    with pytest.raises(ServiceError) as ei:
        svc.delete_place(ctx, owner, top.id)
    assert ei.value.code == "conflict"


def _task_for(ctx, owner, **assign):
    place = svc.create_place(ctx, owner, name="Site")
    return svc.create_task(ctx, owner, {"title": "Install sockets", "place_id": place.id, **assign})


def test_worker_sees_only_own_tasks(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    mine = _task_for(ctx, owner, assigned_member_id=worker.id)
    svc.create_task(ctx, owner, {"title": "Other", "place_id": mine.place_id})

    assert [t.id for t in svc.list_tasks(ctx, worker)] == [mine.id]
    assert len(svc.list_tasks(ctx, owner)) == 2


def test_crew_task_visible_to_crew_member(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    crew = team.create_crew(ctx, owner, name="Sparks")
    team.assign_member_to_crew(ctx, owner, worker.id, crew.id)
    task = _task_for(ctx, owner, assigned_crew_id=crew.id)
    assert svc.read_task(ctx, worker, task.id).id == task.id


def test_hidden_task_reads_as_not_found(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    task = _task_for(ctx, owner)
    with pytest.raises(ServiceError) as ei:
        svc.read_task(ctx, worker, task.id)
    assert ei.value.code == "not_found"


def test_own_update_is_status_only(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    task = _task_for(ctx, owner, assigned_member_id=worker.id)

    svc.update_task(ctx, worker, task.id, {"status": "done"})
    assert task.status == STATUS_DONE
    assert task.completed_at is not None
    svc.update_task(ctx, worker, task.id, {"status": "in_progress"})
    assert task.completed_at is None

    with pytest.raises(ServiceError) as ei:
        svc.update_task(ctx, worker, task.id, {"title": "Renamed"})
    assert ei.value.code == "forbidden"


def test_foreman_cannot_update_foreign_task(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    foreman = make.member(acc, ROLE_FOREMAN)
    task = _task_for(ctx, owner)
    with pytest.raises(ServiceError) as ei:
        svc.update_task(ctx, foreman, task.id, {"status": "done"})
    assert ei.value.code == "forbidden"


def test_bad_status_rejected(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    task = _task_for(ctx, owner)
    with pytest.raises(ServiceError) as ei:
        svc.update_task(ctx, owner, task.id, {"status": "finished"})
    assert "status" in ei.value.errors


def test_assign_and_delete(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    task = _task_for(ctx, owner)
    svc.assign_task(ctx, owner, task.id, member_id=worker.id)
    assert task.assigned_member_id == worker.id
    with pytest.raises(ServiceError):
        svc.assign_task(ctx, owner, task.id, crew_id=12345)
    svc.delete_task(ctx, owner, task.id)
    assert svc.list_tasks(ctx, owner) == []


def _photo(name):
    return FileStorage(stream=BytesIO(b"\xff\xd8jpeg"), filename=name)


def test_task_photos_capped_and_own_only(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    mine = _task_for(ctx, owner, assigned_member_id=worker.id)
    place = svc.create_place(ctx, owner, name="Yard")
    other = svc.create_task(ctx, owner, {"title": "Fence", "place_id": place.id})

    svc.upload_task_photos(ctx, worker, mine.id, [_photo("a.jpg"), _photo("b.jpg")])
    assert len(mine.photos) == 2
    assert all(p.startswith(f"{acc.id}/tasks/{mine.id}/") for p in mine.photos)

    with pytest.raises(ServiceError) as ei:
        svc.upload_task_photos(ctx, worker, mine.id, [_photo("c.jpg"), _photo("d.jpg")])
    assert "files" in ei.value.errors
    assert len(mine.photos) == 2

    with pytest.raises(ServiceError) as ei:
        svc.upload_task_photos(ctx, worker, other.id, [_photo("e.jpg")])
    assert ei.value.code == "forbidden"
