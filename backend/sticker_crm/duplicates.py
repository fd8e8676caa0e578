"""Collapse split orders into logical orders.

A sale split between two managers is stored as one physical order per
share, all carrying the same ``duplicate_group_id``. For counting and
reporting the group is one logical order whose price is the sum of the
shares and which is paid only when every share is paid.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator

from .schemas import Order


@dataclass(frozen=True)
class LogicalOrder:
    order: Order  # representative: first member in iteration order
    members: tuple[Order, ...]

    @property
    def price(self) -> float:
        return sum(o.price for o in self.members)

    @property
    def paid(self) -> bool:
        return all(o.is_paid for o in self.members)

    @property
    def order_ids(self) -> list[str]:
        return [o.id for o in self.members]

    @property
    def order_date(self):
        return max(o.order_date for o in self.members)


def group_members(orders: Iterable[Order], group_id: str) -> list[Order]:
    return [o for o in orders if o.duplicate_group_id == group_id]


def resolve(orders: Iterable[Order], universe: Iterable[Order] | None = None) -> Iterator[LogicalOrder]:
    """Yield one LogicalOrder per ungrouped order and per duplicate group.

    A group is emitted when its first member is reached; later members are
    skipped. Group membership is taken from *universe* when given (e.g. the
    whole ledger while iterating a filtered view), else from *orders*.
    """
    orders = list(orders)
    groups: dict[str, list[Order]] = {}
    for o in orders if universe is None else universe:
        if o.duplicate_group_id:
            groups.setdefault(o.duplicate_group_id, []).append(o)

    consumed: set[str] = set()
    for o in orders:
        gid = o.duplicate_group_id
        if not gid:
            yield LogicalOrder(o, (o,))
            continue
        if gid in consumed:
            continue
        consumed.add(gid)
        yield LogicalOrder(o, tuple(groups.get(gid) or (o,)))
