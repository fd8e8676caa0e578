from datetime import date, datetime

from sticker_crm.analytics import UNSPECIFIED, dashboard, filter_orders, order_feed, orders_total
from sticker_crm.schemas import Category, Channel, PeriodKind, PeriodSpec

NOW = datetime(2025, 1, 20, 12, 0)


def test_dashboard(make_order):
    orders = [
        make_order(price=1000, is_paid=True, manager="Софа", order_source="Инстаграм",
                   category="Штучные стикеры опт"),
        make_order(price=400, is_paid=True, manager="Софа", duplicate_group_id="g1", order_source="Вконтакте"),
        make_order(price=600, is_paid=True, manager="Лена", duplicate_group_id="g1", order_source="Вконтакте"),
        make_order(price=300, is_paid=False, manager="Лена"),
        make_order(price=9000, is_paid=True, order_date=datetime(2024, 12, 1)),
    ]
    out = dashboard(orders, PeriodSpec(kind=PeriodKind.CURRENT_MONTH), now=NOW)

    assert out.total_orders == 3
    assert out.paid_orders == 2
    assert out.total_revenue == 2000
    assert out.pending_revenue == 300
    assert out.average_check == 1000
    assert round(out.conversion_rate, 2) == 66.67

    assert [(r.name, r.revenue) for r in out.categories] == [
        ("Штучные стикеры опт", 1000),
        ("Стикерпаки опт", 1000),
    ]
    sources = {r.name: r for r in out.sources}
    assert sources["Вконтакте"].revenue == 1000
    assert sources[UNSPECIFIED].orders == 1
    assert sources[UNSPECIFIED].paid == 0

    managers = {r.name: r for r in out.managers}
    assert managers["Софа"].revenue == 1400
    assert managers["Лена"].revenue == 600
    assert managers["Лена"].orders == 2


def test_empty_dashboard():
    out = dashboard([], PeriodSpec(kind=PeriodKind.ALL), now=NOW)
    assert out.total_orders == 0
    assert out.average_check == 0
    assert out.conversion_rate == 0


def test_filter_orders(make_order):
    orders = [
        make_order(title="Стикеры для кафе", manager="Софа", payment_method="cash"),
        make_order(title="Пак котиков", manager="Лена", category="Штучные стикеры розница"),
        make_order(title="Кафе меню", manager="Лена", order_date=datetime(2025, 1, 12, 18, 0)),
    ]
    assert len(filter_orders(orders, query="кафе")) == 2
    assert len(filter_orders(orders, category=Category.SINGLE_RETAIL)) == 1
    assert len(filter_orders(orders, payment_method=Channel.CASH)) == 1
    assert len(filter_orders(orders, manager="Лена")) == 2
    assert len(filter_orders(orders, date_from=date(2025, 1, 12), date_to=date(2025, 1, 12))) == 1


def test_orders_total_counts_groups_once(make_order):
    ledger = [
        make_order(price=400, manager="Софа", duplicate_group_id="g1"),
        make_order(price=600, manager="Лена", duplicate_group_id="g1"),
        make_order(price=100, manager="Лена"),
    ]
    assert orders_total(ledger, ledger) == 1100

    lena = filter_orders(ledger, manager="Лена")
    assert orders_total(lena, ledger, manager="Лена") == 700


def test_order_feed_buckets(make_order):
    orders = [
        make_order(created_at=datetime(2025, 1, 20, 9, 0)),
        make_order(created_at=datetime(2025, 1, 19, 22, 0)),
        make_order(created_at=datetime(2025, 1, 3, 12, 0)),
        make_order(created_at=datetime(2025, 1, 20, 11, 0), duplicate_group_id="g1", manager="Софа"),
        make_order(created_at=datetime(2025, 1, 20, 11, 0), duplicate_group_id="g1", manager="Лена"),
    ]
    feed = order_feed(orders, now=NOW)
    assert [len(item) for item in feed.today] == [2, 1]
    assert [item[0].id for item in feed.yesterday] == ["order_2"]
    assert [item[0].id for item in feed.earlier] == ["order_3"]

    own = order_feed(orders, now=NOW, manager="Лена")
    assert [[o.id for o in item] for item in own.today] == [["order_5"]]
