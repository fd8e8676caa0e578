from datetime import date, datetime

from sticker_crm.finance import aggregate, apply_overrides, revenue_by_channel
from sticker_crm.schemas import (
    ChannelAmounts,
    ChannelOverrides,
    Expense,
    Overrides,
    PeriodKind,
    PeriodSpec,
    Salary,
)

NOW = datetime(2025, 1, 20, 12, 0)
CURRENT_MONTH = PeriodSpec(kind=PeriodKind.CURRENT_MONTH)


def expense(amount, channel="cash", day=date(2025, 1, 10)):
    return Expense(id=f"e{amount}", exp_date=day, category="Смола", amount=amount, payment_source=channel)


def salary(amount, month="2025-01", channel="card", manager="Софа"):
    return Salary(id=f"s{amount}", month=month, manager=manager, amount=amount, payment_source=channel)


def test_unpaid_share_excludes_whole_group(make_order):
    orders = [
        make_order(price=1000, is_paid=True, payment_method="card"),
        make_order(price=500, is_paid=False, payment_method="cash", duplicate_group_id="g1"),
        make_order(price=500, is_paid=True, payment_method="card", duplicate_group_id="g1"),
    ]
    totals = aggregate(orders, [], [], CURRENT_MONTH, now=NOW)
    assert totals.revenue.card == 1000
    assert totals.revenue.cash == 0
    assert totals.total_revenue == 1000


def test_paid_group_counts_once_under_first_share_channel(make_order):
    orders = [
        make_order(price=400, is_paid=True, payment_method="terminal", duplicate_group_id="g1"),
        make_order(price=600, is_paid=True, payment_method="card", duplicate_group_id="g1"),
    ]
    revenue = revenue_by_channel(orders)
    assert revenue.terminal == 1000
    assert revenue.card == 0


def test_net_profit_per_channel(make_order):
    orders = [
        make_order(price=5000, is_paid=True, payment_method="cash"),
        make_order(price=3000, is_paid=True, payment_method="card"),
        make_order(price=9999, is_paid=True, payment_method="card", order_date=datetime(2024, 12, 31, 23, 0)),
    ]
    totals = aggregate(
        orders,
        [expense(700, "cash"), expense(100, "cash", day=date(2024, 12, 5))],
        [salary(1000, channel="card"), salary(50, month="2024-12")],
        CURRENT_MONTH,
        cash_reserve=ChannelAmounts(cash=300),
        now=NOW,
    )
    assert totals.revenue == ChannelAmounts(card=3000, cash=5000)
    assert totals.expenses == ChannelAmounts(cash=700)
    assert totals.salaries == ChannelAmounts(card=1000)
    assert totals.net_profit == ChannelAmounts(card=2000, cash=4000)
    assert totals.total_net_profit == 6000
    assert totals.cash_reserve.cash == 300


def test_unpaid_salaries_are_still_costs():
    s = salary(800)
    assert s.is_paid is False
    totals = aggregate([], [], [s], CURRENT_MONTH, now=NOW)
    assert totals.total_salaries == 800


def test_override_replaces_computed_value(make_order):
    orders = [make_order(price=1000, is_paid=True, payment_method="card")]
    overrides = Overrides(revenue=ChannelOverrides(card=1200, cash=0), expenses=ChannelOverrides(terminal=50))
    totals = aggregate(orders, [expense(100, "cash")], [], CURRENT_MONTH, overrides=overrides, now=NOW)
    assert totals.revenue.card == 1200
    assert totals.expenses.terminal == 50
    # an expense override on another channel leaves cash computed
    assert totals.expenses.cash == 100
    assert totals.total_revenue == 1200


def test_apply_overrides_zero_is_a_value():
    result = apply_overrides(ChannelAmounts(card=10, cash=5), ChannelOverrides(card=0))
    assert result == ChannelAmounts(card=0, cash=5)


def test_aggregate_is_deterministic(make_order):
    orders = [make_order(price=1000, is_paid=True)]
    a = aggregate(orders, [expense(10)], [salary(20)], CURRENT_MONTH, now=NOW)
    b = aggregate(orders, [expense(10)], [salary(20)], CURRENT_MONTH, now=NOW)
    assert a == b


def test_all_time_totals(make_order):
    orders = [
        make_order(price=100, is_paid=True, order_date=datetime(2023, 5, 1)),
        make_order(price=200, is_paid=True),
    ]
    totals = aggregate(orders, [], [], PeriodSpec(kind=PeriodKind.ALL), now=NOW)
    assert totals.total_revenue == 300
