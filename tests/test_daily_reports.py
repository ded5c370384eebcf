from decimal import Decimal
from io import BytesIO

import pytest
from werkzeug.datastructures import FileStorage

from sitestock.models import StockMovement, Task, ProjectPlace, Crew
from sitestock.models.task import STATUS_DONE
from sitestock.models.team_member import ROLE_FOREMAN, ROLE_STOREMAN, ROLE_WORKER
from sitestock.services import daily_reports as svc
from sitestock.services.common import ServiceError


def _report(loc, *items, **extra):
    data = {
        "client_key": "report-key-0001",
        "date": "2025-03-05",
        "inventory_location_id": loc.id,
        "items": list(items),
    }
    data.update(extra)
    return data


def test_create_merges_repeated_materials(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER, first_name="Ola")
    loc = make.location(acc)
    m = make.material(acc, loc, qty=10)
    r = svc.create_daily_report(ctx, worker, _report(
        loc, {"material_id": m.id, "qty_used": "1.5"}, {"material_id": m.id, "qty": 2}
    ))
    assert r.crew_mode == "solo"
    assert r.members == [worker.id]
    assert len(r.items) == 1
    assert r.items[0].qty_used == Decimal("3.5")
    assert r.approved is False


def test_same_client_key_returns_same_report(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=10)
    first = svc.create_daily_report(ctx, worker, _report(loc, {"material_id": m.id, "qty_used": 1}))
    again = svc.create_daily_report(ctx, worker, _report(loc, {"material_id": m.id, "qty_used": 5}))
    assert again.id == first.id
    assert again.items[0].qty_used == Decimal("1")


def test_client_key_required(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    loc = make.location(acc)
    with pytest.raises(ServiceError) as ei:
        svc.create_daily_report(ctx, worker, _report(loc, client_key="short"))
    assert "client_key" in ei.value.errors


def test_too_many_photos(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=1)
    with pytest.raises(ServiceError) as ei:
        svc.create_daily_report(ctx, worker, _report(
            loc, {"material_id": m.id, "qty_used": 1}, images=["a", "b", "c", "d"]
        ))
    assert "images" in ei.value.errors


def test_approve_subtracts_stock_and_is_idempotent(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    storeman = make.member(acc, ROLE_STOREMAN)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=10)
    r = svc.create_daily_report(ctx, worker, _report(loc, {"material_id": m.id, "qty_used": 4}))
    svc.approve_daily_report(ctx, storeman, r.id)
    svc.approve_daily_report(ctx, storeman, r.id)
    assert m.current_quantity == Decimal("6")
    assert ctx.query(StockMovement).filter_by(source_type="daily_report").count() == 1


def test_insufficient_stock_aborts_whole_approval(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    owner = make.member(acc)
    loc = make.location(acc)
    plenty = make.material(acc, loc, title="Plenty", qty=100)
    scarce = make.material(acc, loc, title="Scarce", qty=1)
    r = svc.create_daily_report(ctx, worker, _report(
        loc, {"material_id": plenty.id, "qty_used": 5}, {"material_id": scarce.id, "qty_used": 2}
    ))
    with pytest.raises(ServiceError) as ei:
        svc.approve_daily_report(ctx, owner, r.id)
    assert "Insufficient stock" in ei.value.message
    assert plenty.current_quantity == 100
    assert r.approved is False


def test_crew_mode_defaults_to_whole_crew(ctx, make):
    acc = make.account()
    crew = Crew(account_id=acc.id, name="Alpha")
    ctx.add(crew)
    ctx.flush()
    foreman = make.member(acc, ROLE_FOREMAN, crew_id=crew.id)
    mate = make.member(acc, ROLE_WORKER, crew_id=crew.id)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    r = svc.create_daily_report(ctx, foreman, _report(loc, {"material_id": m.id, "qty_used": 1}, crew_mode="crew"))
    assert r.crew_id == crew.id
    assert r.crew_name == "Alpha"
    assert r.members[0] == foreman.id
    assert set(r.members) == {foreman.id, mate.id}


def test_ad_hoc_needs_two_people(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    other = make.member(acc, ROLE_WORKER)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    with pytest.raises(ServiceError):
        svc.create_daily_report(ctx, worker, _report(loc, {"material_id": m.id, "qty_used": 1}, crew_mode="ad_hoc"))
    r = svc.create_daily_report(ctx, worker, _report(
        loc, {"material_id": m.id, "qty_used": 1}, crew_mode="ad_hoc", extra_members=[other.id]
    ))
    assert r.group_key == "2025-03-05::" + ",".join(sorted([str(worker.id), str(other.id)]))


def test_completed_report_closes_task_on_approval(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    place = ProjectPlace(account_id=acc.id, name="Floor 1")
    ctx.add(place)
    ctx.flush()
    task = Task(account_id=acc.id, place_id=place.id, title="Wiring", assigned_member_id=worker.id, photos=[])
    ctx.add(task)
    ctx.flush()
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    r = svc.create_daily_report(ctx, worker, _report(
        loc, {"material_id": m.id, "qty_used": 1}, task_id=task.id, is_completed=True
    ))
    assert r.place == "Floor 1"
    assert task.status != STATUS_DONE
    svc.approve_daily_report(ctx, owner, r.id)
    assert task.status == STATUS_DONE
    assert task.completed_at is not None


def test_task_must_be_assigned_to_reporter(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    place = ProjectPlace(account_id=acc.id, name="Roof")
    ctx.add(place)
    ctx.flush()
    task = Task(account_id=acc.id, place_id=place.id, title="Other", photos=[])
    ctx.add(task)
    ctx.flush()
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    with pytest.raises(ServiceError) as ei:
        svc.create_daily_report(ctx, worker, _report(loc, {"material_id": m.id, "qty_used": 1}, task_id=task.id))
    assert "task_id" in ei.value.errors


def test_delete_only_unapproved(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    r = svc.create_daily_report(ctx, owner, _report(loc, {"material_id": m.id, "qty_used": 1}))
    svc.approve_daily_report(ctx, owner, r.id)
    with pytest.raises(ServiceError) as ei:
        svc.delete_daily_report(ctx, owner, r.id)
    assert ei.value.code == "conflict"


def test_draft_photo_key_validated(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    with pytest.raises(ServiceError) as ei:
        svc.upload_report_photos(ctx, worker, [], draft_key="bad key!")
    assert "draft_key" in ei.value.errors


def _jpeg(name="site.jpg"):
    return FileStorage(stream=BytesIO(b"\xff\xd8jpeg"), filename=name)


def test_draft_photo_cap_counts_stored_files(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    paths = svc.upload_report_photos(ctx, worker, [_jpeg("a.jpg"), _jpeg("b.jpg")], draft_key="cap_check_77")
    assert len(paths) == 2
    svc.upload_report_photos(ctx, worker, [_jpeg("c.jpg")], draft_key="cap_check_77")
    with pytest.raises(ServiceError) as ei:
        svc.upload_report_photos(ctx, worker, [_jpeg("d.jpg")], draft_key="cap_check_77")
    assert "files" in ei.value.errors
    # a different draft has its own budget
    assert len(svc.upload_report_photos(ctx, worker, [_jpeg()], draft_key="cap_check_78")) == 1


def test_update_replaces_items_while_pending(ctx, make):
    acc = make.account()
    foreman = make.member(acc, ROLE_FOREMAN)
    loc = make.location(acc)
    sand = make.material(acc, loc, title="Sand", qty=10)
    lime = make.material(acc, loc, title="Lime", qty=10)
    r = svc.create_daily_report(ctx, foreman, _report(loc, {"material_id": sand.id, "qty_used": 2}))

    svc.update_daily_report(ctx, foreman, r.id, {
        "items": [{"material_id": lime.id, "qty_used": "1,5"}],
        "notes": "  wet day ",
    })
    assert [(it.material_id, it.qty_used) for it in r.items] == [(lime.id, Decimal("1.5"))]
    assert r.notes == "wet day"

    with pytest.raises(ServiceError) as ei:
        svc.update_daily_report(ctx, foreman, r.id, {"is_completed": True})
    assert ei.value.errors == {"is_completed": "Pick the task you finished."}

    svc.approve_daily_report(ctx, make.member(acc, ROLE_STOREMAN), r.id)
    with pytest.raises(ServiceError) as ei:
        svc.update_daily_report(ctx, foreman, r.id, {"notes": "late"})
    assert ei.value.code == "conflict"


def test_solo_mode_ignores_crew(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    crew = Crew(account_id=acc.id, name="Alpha")
    ctx.add(crew)
    ctx.flush()
    worker = make.member(acc, ROLE_WORKER, crew_id=crew.id)
    mate = make.member(acc, ROLE_WORKER, crew_id=crew.id)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    r = svc.create_daily_report(ctx, worker, _report(
        loc, {"material_id": m.id, "qty_used": 1}, crew_mode="solo", extra_members=[mate.id, owner.id]
    ))
    assert r.crew_mode == "solo"
    assert r.members == [worker.id]
    assert r.crew_id is None
    assert r.group_key is None


def test_unknown_crew_mode_rejected(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    with pytest.raises(ServiceError) as ei:
        svc.create_daily_report(ctx, worker, _report(loc, {"material_id": m.id, "qty_used": 1}, crew_mode="gang"))
    assert ei.value.code == "invalid"
    assert "crew_mode" in ei.value.errors
