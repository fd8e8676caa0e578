from sticker_crm.duplicates import group_members, resolve


def test_ungrouped_orders_pass_through(make_order):
    a, b = make_order(), make_order()
    logical = list(resolve([a, b]))
    assert [lo.order.id for lo in logical] == [a.id, b.id]
    assert [lo.price for lo in logical] == [1000, 1000]


def test_group_collapses_to_one_logical_order(make_order):
    a = make_order(price=500, is_paid=False, duplicate_group_id="g1")
    b = make_order(price=500, is_paid=True, duplicate_group_id="g1")
    c = make_order(price=300)

    logical = list(resolve([a, c, b]))
    assert len(logical) == 2
    group = logical[0]
    assert group.order.id == a.id
    assert group.price == 1000
    assert group.paid is False
    assert group.order_ids == [a.id, b.id]


def test_group_paid_only_when_every_share_paid(make_order):
    a = make_order(is_paid=True, duplicate_group_id="g1")
    b = make_order(is_paid=True, duplicate_group_id="g1")
    (group,) = resolve([a, b])
    assert group.paid is True


def test_group_totals_come_from_universe(make_order):
    a = make_order(price=400, duplicate_group_id="g1")
    b = make_order(price=600, duplicate_group_id="g1")

    (alone,) = resolve([b])
    assert alone.price == 600

    (full,) = resolve([b], universe=[a, b])
    assert full.price == 1000
    assert full.order.id == b.id


def test_group_members(make_order):
    a = make_order(duplicate_group_id="g1")
    b = make_order()
    c = make_order(duplicate_group_id="g1")
    assert group_members([a, b, c], "g1") == [a, c]
