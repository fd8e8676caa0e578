from datetime import datetime

from sticker_crm.clients import find_match, rebuild_clients, roster_stats, search_clients
from sticker_crm.schemas import MatchType


def test_rebuild_groups_orders_by_name_and_phone(make_order):
    orders = [
        make_order(client_name="Аня", client_phone="+79990000001", price=1000, is_paid=True),
        make_order(client_name="Аня", client_phone="+79990000001", price=500,
                   order_date=datetime(2025, 1, 10, 9, 0)),
        make_order(client_name="Боря", client_phone="+79990000002", price=700),
    ]
    clients = rebuild_clients(orders)

    assert [c.name for c in clients] == ["Аня", "Боря"]
    anya = clients[0]
    assert anya.id == "client_Аня_+79990000001"
    assert anya.total_orders == 2
    # gross revenue, paid or not
    assert anya.total_revenue == 1500
    assert anya.last_order_date == datetime(2025, 1, 10, 9, 0)
    assert anya.order_ids == ["order_1", "order_2"]


def test_rebuild_skips_orders_without_contact(make_order):
    orders = [
        make_order(client_name="Аня"),
        make_order(client_phone="+79990000001"),
        make_order(),
    ]
    assert rebuild_clients(orders) == []


def test_rebuild_is_idempotent(make_order):
    orders = [
        make_order(client_name="Аня", client_phone="1"),
        make_order(client_name="Аня", client_phone="1"),
    ]
    assert rebuild_clients(orders) == rebuild_clients(orders)


def test_split_order_counts_once_for_client(make_order):
    orders = [
        make_order(client_name="Аня", client_phone="1", price=400, duplicate_group_id="g1", manager="Софа"),
        make_order(client_name="Аня", client_phone="1", price=600, duplicate_group_id="g1", manager="Лена"),
    ]
    (client,) = rebuild_clients(orders)
    assert client.total_orders == 1
    assert client.total_revenue == 1000
    assert client.order_ids == ["order_1", "order_2"]
    assert client.manager == "Софа"


def test_client_disappears_when_orders_removed(make_order):
    order = make_order(client_name="Аня", client_phone="1")
    assert len(rebuild_clients([order])) == 1
    assert rebuild_clients([]) == []


def test_registry_key_is_case_sensitive(make_order):
    orders = [
        make_order(client_name="Аня", client_phone="1"),
        make_order(client_name="аня", client_phone="1"),
    ]
    assert len(rebuild_clients(orders)) == 2


def test_find_match_kinds(make_order):
    clients = rebuild_clients([
        make_order(client_name="Аня", client_phone="1"),
        make_order(client_name="Боря", client_phone="2"),
    ])

    assert find_match("аня", "1", clients).match_type == MatchType.BOTH
    assert find_match("АНЯ", "9", clients).match_type == MatchType.NAME
    match = find_match("Вика", "2", clients)
    assert match.match_type == MatchType.PHONE
    assert match.client.name == "Боря"
    assert find_match("Вика", "9", clients) is None


def test_find_match_first_client_wins(make_order):
    clients = rebuild_clients([
        make_order(client_name="Аня", client_phone="1"),
        make_order(client_name="Боря", client_phone="2"),
    ])
    # name hits the first client before the phone hits the second one
    match = find_match("Аня", "2", clients)
    assert match.client.name == "Аня"
    assert match.match_type == MatchType.NAME


def test_find_match_requires_both_fields(make_order):
    clients = rebuild_clients([make_order(client_name="Аня", client_phone="1")])
    assert find_match("", "1", clients) is None
    assert find_match("Аня", "", clients) is None


def test_search_and_stats(make_order):
    clients = rebuild_clients([
        make_order(client_name="Аня", client_phone="+7111", manager="Софа"),
        make_order(client_name="Аня", client_phone="+7111", manager="Софа"),
        make_order(client_name="Боря", client_phone="+7222", manager="Лена"),
    ])
    assert [c.name for c in search_clients(clients, "лена")] == ["Боря"]
    assert [c.name for c in search_clients(clients, "+7111")] == ["Аня"]
    assert len(search_clients(clients, "  ")) == 2

    stats = roster_stats(clients)
    assert stats.total == 2
    assert stats.repeat == 1
    assert stats.total_revenue == 3000
