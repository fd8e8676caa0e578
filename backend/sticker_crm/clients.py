"""Client roster derived from the order ledger.

Clients are never edited directly. The roster is rebuilt from scratch
after every ledger change and replaces the previous one.
"""

from typing import Iterable

from .duplicates import resolve
from .schemas import Client, ClientMatch, ClientStats, MatchType, Order


def client_key(name: str, phone: str) -> str:
    # exact strings: "Аня" and "аня" with one phone are two registry entries
    return f"{name}_{phone}"


def client_id(name: str, phone: str) -> str:
    return f"client_{client_key(name, phone)}"


def rebuild_clients(orders: Iterable[Order]) -> list[Client]:
    registry: dict[str, Client] = {}

    for logical in resolve(orders):
        head = logical.order
        if not head.client_name or not head.client_phone:
            continue

        key = client_key(head.client_name, head.client_phone)
        client = registry.get(key)
        if client is None:
            registry[key] = Client(
                id=client_id(head.client_name, head.client_phone),
                name=head.client_name,
                phone=head.client_phone,
                manager=head.manager,
                order_source=head.order_source,
                order_ids=logical.order_ids,
                total_orders=1,
                total_revenue=logical.price,
                last_order_date=logical.order_date,
            )
            continue

        for oid in logical.order_ids:
            if oid not in client.order_ids:
                client.order_ids.append(oid)
        client.total_orders += 1
        client.total_revenue += logical.price
        if logical.order_date > client.last_order_date:
            client.last_order_date = logical.order_date

    return [c for c in registry.values() if c.total_orders > 0]


def find_match(name: str, phone: str, clients: Iterable[Client]) -> ClientMatch | None:
    """First client whose name (case-insensitive) or phone (exact) matches."""
    if not name or not phone:
        return None
    wanted = name.lower()
    for client in clients:
        name_match = client.name.lower() == wanted
        phone_match = client.phone == phone
        if name_match and phone_match:
            return ClientMatch(client=client, match_type=MatchType.BOTH)
        if name_match:
            return ClientMatch(client=client, match_type=MatchType.NAME)
        if phone_match:
            return ClientMatch(client=client, match_type=MatchType.PHONE)
    return None


def search_clients(clients: list[Client], query: str | None) -> list[Client]:
    if not query or not query.strip():
        return list(clients)
    q = query.strip().lower()
    return [
        c for c in clients
        if q in c.name.lower() or q in c.phone.lower() or (c.manager and q in c.manager.lower())
    ]


def client_orders(client: Client, orders: Iterable[Order]) -> list[Order]:
    ids = set(client.order_ids)
    return [o for o in orders if o.id in ids]


def roster_stats(clients: list[Client]) -> ClientStats:
    return ClientStats(
        total=len(clients),
        repeat=sum(1 for c in clients if c.total_orders > 1),
        total_revenue=sum(c.total_revenue for c in clients),
    )
