from datetime import date
from decimal import Decimal
from io import BytesIO
import os

import pytest
from werkzeug.datastructures import FileStorage

from sitestock.models import StockMovement
from sitestock.models.team_member import ROLE_FOREMAN, ROLE_STOREMAN
from sitestock.services import deliveries as svc
from sitestock.services import materials, storage
from sitestock.services.common import ServiceError


def _payload(loc, *items, **extra):
    data = {"delivery_date": "2025-03-04", "inventory_location_id": loc.id, "items": list(items)}
    data.update(extra)
    return data


def test_create_delivery_sums_materials_cost(ctx, make):
    acc = make.account()
    foreman = make.member(acc, ROLE_FOREMAN, first_name="Jan")
    loc = make.location(acc)
    a = make.material(acc, loc, qty=1)
    b = make.material(acc, loc, qty=0)
    dlv = svc.create_delivery(ctx, foreman, _payload(
        loc,
        {"material_id": a.id, "qty": "2", "unit_price": "10.50"},
        {"material_id": b.id, "qty": "3"},
    ))
    assert dlv.approved is False
    assert dlv.delivery_date == date(2025, 3, 4)
    assert dlv.materials_cost == Decimal("21.00")
    assert len(dlv.items) == 2
    # nothing moves before approval
    assert a.current_quantity == 1


def test_items_must_live_in_delivery_location(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc, other = make.location(acc), make.location(acc)
    m = make.material(acc, other)
    with pytest.raises(ServiceError) as ei:
        svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 1}))
    assert "items.0.material_id" in ei.value.errors


def test_missing_items_and_bad_date(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    with pytest.raises(ServiceError) as ei:
        svc.create_delivery(ctx, owner, {"delivery_date": "04/03/2025", "inventory_location_id": loc.id, "items": []})
    assert set(ei.value.errors) == {"delivery_date", "items"}


def test_approve_books_stock_once(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    storeman = make.member(acc, ROLE_STOREMAN)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=5)
    dlv = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": "4", "unit_price": "2"}))

    svc.approve_delivery(ctx, storeman, dlv.id)
    assert m.current_quantity == Decimal("9")
    assert dlv.approved and dlv.approved_by == storeman.id

    svc.approve_delivery(ctx, storeman, dlv.id)
    assert m.current_quantity == Decimal("9")
    moves = ctx.query(StockMovement).filter_by(source_type="delivery", source_id=dlv.id).all()
    assert len(moves) == 1
    assert moves[0].unit_price == Decimal("2")


def test_foreman_cannot_approve(ctx, make):
    acc = make.account()
    foreman = make.member(acc, ROLE_FOREMAN)
    loc = make.location(acc)
    m = make.material(acc, loc)
    dlv = svc.create_delivery(ctx, foreman, _payload(loc, {"material_id": m.id, "qty": 1}))
    with pytest.raises(ServiceError) as ei:
        svc.approve_delivery(ctx, foreman, dlv.id)
    assert ei.value.code == "forbidden"


def test_approved_delivery_is_frozen(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = make.material(acc, loc)
    dlv = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 1}))
    svc.approve_delivery(ctx, owner, dlv.id)
    for call in (
        lambda: svc.update_delivery(ctx, owner, dlv.id, {"supplier": "X"}),
        lambda: svc.delete_delivery(ctx, owner, dlv.id),
    ):
        with pytest.raises(ServiceError) as ei:
            call()
        assert ei.value.code == "conflict"


def test_list_filters_and_soft_delete(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = make.material(acc, loc)
    first = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 1}, delivery_date="2025-01-10"))
    second = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 1}, delivery_date="2025-02-10"))
    svc.approve_delivery(ctx, owner, second.id)

    assert [d.id for d in svc.list_deliveries(ctx, owner, status="pending")] == [first.id]
    assert [d.id for d in svc.list_deliveries(ctx, owner)] == [second.id, first.id]
    assert [d.id for d in svc.list_deliveries(ctx, owner, date_to=date(2025, 1, 31))] == [first.id]

    svc.delete_delivery(ctx, owner, first.id)
    assert [d.id for d in svc.list_deliveries(ctx, owner)] == [second.id]
    svc.restore_delivery(ctx, owner, first.id)
    assert len(svc.list_deliveries(ctx, owner)) == 2


def test_summarize_items_groups_by_material(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = make.material(acc, loc)
    d1 = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 2, "unit_price": "1.5"}))
    d2 = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 1}))
    assert svc.summarize_items([d1, d2]) == [{"material_id": m.id, "qty": 3.0, "value": 3.0}]


def test_update_replaces_items_and_recosts(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    a, b = make.material(acc, loc), make.material(acc, loc)
    dlv = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": a.id, "qty": 1, "unit_price": "3"}))
    svc.update_delivery(ctx, owner, dlv.id, {
        "supplier": " Hurt-Bud ",
        "items": [{"material_id": b.id, "qty": "4", "unit_price": "2,5"}],
    })
    assert [(it.material_id, it.qty) for it in dlv.items] == [(b.id, Decimal("4"))]
    assert dlv.materials_cost == Decimal("10.00")
    assert dlv.supplier == "Hurt-Bud"


def test_attach_invoice_replaces_previous_file(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = make.material(acc, loc)
    dlv = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 1}))

    svc.attach_invoice(ctx, owner, dlv.id, FileStorage(stream=BytesIO(b"%PDF-1"), filename="fv 1.pdf"))
    first = dlv.invoice_path
    assert first.startswith(f"{acc.id}/deliveries/{dlv.id}/")
    assert first.endswith("-fv_1.pdf")
    assert os.path.exists(storage.open_path(first))

    svc.attach_invoice(ctx, owner, dlv.id, FileStorage(stream=BytesIO(b"%PDF-2"), filename="fv2.pdf"))
    assert dlv.invoice_path != first
    assert not os.path.exists(storage.open_path(first))

    with pytest.raises(ServiceError):
        svc.attach_invoice(ctx, owner, dlv.id, FileStorage(stream=BytesIO(b"MZ"), filename="fv.exe"))


def test_approval_refuses_soft_deleted_material(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    m = make.material(acc, loc, qty=2)
    dlv = svc.create_delivery(ctx, owner, _payload(loc, {"material_id": m.id, "qty": 5}))
    materials.soft_delete_material(ctx, owner, m.id)
    with pytest.raises(ServiceError) as ei:
        svc.approve_delivery(ctx, owner, dlv.id)
    assert ei.value.code == "invalid"
    assert m.current_quantity == 2
    assert dlv.approved is False
    assert ctx.query(StockMovement).filter_by(source_type="delivery").count() == 0
