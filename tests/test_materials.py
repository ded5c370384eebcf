from decimal import Decimal

import pytest
from flask import current_app

from sitestock.models import StockMovement
from sitestock.models.team_member import ROLE_WORKER, ROLE_STOREMAN
from sitestock.services import materials as svc
from sitestock.services.common import ServiceError


def test_stock_pct_clamps_and_rounds():
    assert svc.stock_pct(5, 10) == 50
    assert svc.stock_pct(1, 3) == 33
    assert svc.stock_pct(2, 3) == 67
    assert svc.stock_pct(20, 10) == 100
    assert svc.stock_pct(5, 0) == 0
    assert svc.stock_pct(None, None) == 0


def test_default_family_key():
    assert svc.default_family_key("Cable YDY 3x2,5") == "CABLE_YDY_3X2_5"


def test_create_material_defaults_current_to_base(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc, "Container A")
    m = svc.create_material(ctx, owner, {"title": "  Cable   YDY ", "base_quantity": "120", "inventory_location_id": loc.id})
    assert m.title == "Cable YDY"
    assert m.current_quantity == Decimal("120")
    assert m.unit == "szt"
    assert m.family_key == "CABLE_YDY"


def test_create_material_validation_errors(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    with pytest.raises(ServiceError) as ei:
        svc.create_material(ctx, owner, {"title": " ", "base_quantity": "-1", "inventory_location_id": 999})
    err = ei.value
    assert err.code == "invalid"
    assert set(err.errors) == {"title", "base_quantity", "inventory_location_id"}


def test_duplicate_title_in_same_location_conflicts(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    svc.create_material(ctx, owner, {"title": "Screws", "inventory_location_id": loc.id})
    with pytest.raises(ServiceError) as ei:
        svc.create_material(ctx, owner, {"title": "SCREWS", "inventory_location_id": loc.id})
    assert ei.value.code == "conflict"
    # another location is fine
    other = make.location(acc)
    svc.create_material(ctx, owner, {"title": "Screws", "inventory_location_id": other.id})


def test_worker_cannot_write(ctx, make):
    acc = make.account()
    worker = make.member(acc, ROLE_WORKER)
    with pytest.raises(ServiceError) as ei:
        svc.create_material(ctx, worker, {"title": "Tape"})
    assert ei.value.code == "forbidden"


def test_list_paginates_searches_and_hides_deleted(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    for title in ("Anchor", "bolt", "Cable", "Cable tie"):
        make.material(acc, title=title)
    gone = make.material(acc, title="Cable old")
    svc.soft_delete_material(ctx, owner, gone.id)

    page = svc.list_materials(ctx, owner, q="cable", limit=1, page=2)
    assert page.total == 2
    assert [m.title for m in page.items] == ["Cable tie"]
    assert page.page == 2

    titles = [m.title for m in svc.list_materials(ctx, owner, sort="title").items]
    assert titles == ["Anchor", "bolt", "Cable", "Cable tie"]

    deleted = svc.list_materials(ctx, owner, deleted_only=True).items
    assert [m.id for m in deleted] == [gone.id]


def test_deleted_rows_invisible_without_soft_delete_permission(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    worker = make.member(acc, ROLE_WORKER)
    m = make.material(acc, title="Gone")
    svc.soft_delete_material(ctx, owner, m.id)
    assert svc.list_materials(ctx, worker, include_deleted=True).items == []


def test_restore_blocked_by_live_duplicate(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    old = svc.create_material(ctx, owner, {"title": "Pipe"})
    svc.soft_delete_material(ctx, owner, old.id)
    svc.create_material(ctx, owner, {"title": "Pipe"})
    with pytest.raises(ServiceError) as ei:
        svc.restore_material(ctx, owner, old.id)
    assert ei.value.code == "conflict"


def test_other_tenant_material_is_not_found(ctx, make):
    a, b = make.account(), make.account()
    owner_b = make.member(b)
    m = make.material(a, title="Mine")
    with pytest.raises(ServiceError) as ei:
        svc.update_material(ctx, owner_b, m.id, {"title": "Yours"})
    assert ei.value.code == "not_found"


def test_low_stock_threshold_and_order(ctx, make):
    acc = make.account()
    storeman = make.member(acc, ROLE_STOREMAN)
    make.material(acc, title="Full", qty=10, base=10)
    make.material(acc, title="Quarter", qty=25, base=100)
    make.material(acc, title="Empty", qty=0, base=5)
    make.material(acc, title="No base", qty=0, base=0)
    rows = svc.low_stock(ctx, storeman)
    assert [m.title for m in rows] == ["Empty", "Quarter"]
    assert [m.title for m in svc.low_stock(ctx, storeman, threshold=0)] == ["Empty"]


def test_delete_location_with_stock_conflicts(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = svc.create_location(ctx, owner, label="Yard")
    make.material(acc, loc, qty=3)
    with pytest.raises(ServiceError) as ei:
        svc.delete_location(ctx, owner, loc.id)
    assert ei.value.code == "conflict"


def test_stock_edits_write_adjustment_movements(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = svc.create_material(ctx, owner, {
        "title": "Gravel", "base_quantity": "10", "current_quantity": "7", "inventory_location_id": loc.id,
    })
    svc.update_material(ctx, owner, m.id, {"current_quantity": "50"})
    # unchanged stock and base-only edits leave the ledger alone
    svc.update_material(ctx, owner, m.id, {"current_quantity": "50", "base_quantity": "60"})

    moves = ctx.query(StockMovement).filter_by(material_id=m.id).order_by(StockMovement.id).all()
    assert [(mv.kind, mv.qty_delta) for mv in moves] == [("adjustment", Decimal("7")), ("adjustment", Decimal("43"))]
    assert {mv.created_by for mv in moves} == {owner.id}
    assert m.current_quantity == Decimal("50")
    assert m.base_quantity == Decimal("60")


def test_empty_material_writes_no_movement(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    m = svc.create_material(ctx, owner, {"title": "Spare hinges"})
    assert m.current_quantity == 0
    assert ctx.query(StockMovement).filter_by(material_id=m.id).count() == 0


def test_page_size_is_clamped(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    for i in range(3):
        make.material(acc, loc, title=f"Item {i}")
    page = svc.list_materials(ctx, owner, limit=-5)
    assert page.limit == 1
    assert len(page.items) == 1
    assert page.total == 3
    assert svc.list_materials(ctx, owner, limit=10_000).limit == svc.MAX_PAGE_SIZE
    assert svc.list_materials(ctx, owner, limit="lots").limit == current_app.config["MATERIALS_PAGE_SIZE"]
