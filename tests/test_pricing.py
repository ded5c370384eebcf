from datetime import date
from decimal import Decimal

from sitestock.services import pricing
from sitestock.services.deliveries import approve_delivery, create_delivery


def _deliver(ctx, actor, loc, day, *items, approve=True, delivery_cost=None):
    data = {"delivery_date": day, "inventory_location_id": loc.id, "items": list(items)}
    if delivery_cost is not None:
        data["delivery_cost"] = delivery_cost
    dlv = create_delivery(ctx, actor, data)
    if approve:
        approve_delivery(ctx, actor, dlv.id)
    return dlv


def test_wac_is_quantity_weighted_and_dated(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    cable = make.material(acc, loc, title="Cable", family_key="CABLE")
    _deliver(ctx, owner, loc, "2025-01-10", {"material_id": cable.id, "qty": 10, "unit_price": "2"})
    _deliver(ctx, owner, loc, "2025-02-10", {"material_id": cable.id, "qty": 30, "unit_price": "4"})
    # unpriced and unapproved lines never count
    _deliver(ctx, owner, loc, "2025-02-11", {"material_id": cable.id, "qty": 100})
    _deliver(ctx, owner, loc, "2025-02-12", {"material_id": cable.id, "qty": 5, "unit_price": "99"}, approve=False)

    assert pricing.wac_for_material(ctx, cable) == Decimal("3.5")
    assert pricing.wac_for_material(ctx, cable, as_of=date(2025, 1, 31)) == Decimal("2")
    assert pricing.wac_for_material(ctx, cable, as_of=date(2024, 12, 31)) is None


def test_family_shares_wac_across_locations(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    a, b = make.location(acc, "A"), make.location(acc, "B")
    at_a = make.material(acc, a, title="Pipe 20", family_key="PIPE20")
    at_b = make.material(acc, b, title="Pipe 20mm", family_key="PIPE20", qty=3)
    _deliver(ctx, owner, a, "2025-01-10", {"material_id": at_a.id, "qty": 2, "unit_price": "10"})

    rollup = pricing.pricing_rollup(ctx, owner)
    assert len(rollup) == 1
    row = rollup[0]
    assert row["rollup_key"] == "PIPE20"
    assert row["stock_qty"] == 5.0
    assert row["wac_unit_price"] == 10.0
    assert row["stock_value_est"] == 50.0
    assert row["last_priced_delivery_date"] == "2025-01-10"

    by_loc = pricing.pricing_by_location(ctx, owner, location_id=b.id)
    assert [r["material_id"] for r in by_loc] == [at_b.id]
    assert by_loc[0]["stock_value_est"] == 30.0


def test_spend_rollup_and_delivery_rows(ctx, make):
    acc = make.account()
    owner = make.member(acc, first_name="Anna")
    loc = make.location(acc)
    m = make.material(acc, loc, title="Tape", family_key="TAPE")
    _deliver(ctx, owner, loc, "2025-03-01", {"material_id": m.id, "qty": 4, "unit_price": "1.25"})
    _deliver(ctx, owner, loc, "2025-03-02", {"material_id": m.id, "qty": 1})

    spend = pricing.spend_rollup(ctx, owner, date_from=date(2025, 3, 1), date_to=date(2025, 3, 31))
    assert spend == [{
        "rollup_key": "TAPE",
        "title": "Tape",
        "unit": "szt",
        "wac_unit_price": 1.25,
        "qty_in_range": 5.0,
        "value_in_range": 5.0,
        "deliveries_count": 2,
        "last_delivery_date": "2025-03-02",
    }]

    rows = pricing.deliveries_range(ctx, owner, date_from=date(2025, 3, 1), date_to=date(2025, 3, 1))
    assert len(rows) == 1
    assert rows[0]["created_by_name"] == "Anna"
    assert rows[0]["approved_by_name"] == "Anna"


def test_stock_value_now_skips_unpriced(ctx, make):
    acc = make.account()
    owner = make.member(acc)
    loc = make.location(acc)
    priced = make.material(acc, loc, title="Priced", family_key="P")
    make.material(acc, loc, title="Free", qty=7)
    _deliver(ctx, owner, loc, "2025-01-01", {"material_id": priced.id, "qty": 2, "unit_price": "3"})
    qty, value = pricing.stock_value_now(ctx, acc.id)
    assert qty == Decimal("9")
    assert value == Decimal("6.00")
