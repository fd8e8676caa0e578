"""Manager earnings.

A manager is credited with the ``price`` of their own physical orders,
which for a split sale is only their share of it.
"""

from datetime import date, datetime, time
from typing import Iterable, Optional

from .schemas import ManagerStats, Order


def manager_orders(
    orders: Iterable[Order],
    manager: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[Order]:
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to, time.max) if date_to else None
    out = []
    for o in orders:
        if o.manager != manager:
            continue
        if start and o.order_date < start:
            continue
        if end and o.order_date > end:
            continue
        out.append(o)
    return out


def commission(amount: float, percentage: float) -> float:
    return amount * percentage / 100


def manager_stats(
    orders: Iterable[Order],
    manager: str,
    percentage: float,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> ManagerStats:
    own = manager_orders(orders, manager, date_from, date_to)

    total_revenue = sum(o.price for o in own)
    paid_revenue = sum(o.price for o in own if o.is_paid)

    # a split sale is one order for the counters even if both shares are this manager's
    seen_groups: set[str] = set()
    total_orders = paid_orders = 0
    for o in own:
        if o.duplicate_group_id:
            if o.duplicate_group_id in seen_groups:
                continue
            seen_groups.add(o.duplicate_group_id)
        total_orders += 1
        if o.is_paid:
            paid_orders += 1

    return ManagerStats(
        manager=manager,
        total_revenue=total_revenue,
        paid_revenue=paid_revenue,
        unpaid_revenue=total_revenue - paid_revenue,
        total_orders=total_orders,
        paid_orders=paid_orders,
        unpaid_orders=total_orders - paid_orders,
        salary_percentage=percentage,
        salary=commission(total_revenue, percentage),
        paid_salary=commission(paid_revenue, percentage),
    )


def paid_commission(
    orders: Iterable[Order],
    manager: str,
    percentage: float,
    date_from: date,
    date_to: date,
) -> float:
    """Commission on the manager's paid shares within [date_from, date_to]."""
    own = manager_orders(orders, manager, date_from, date_to)
    return commission(sum(o.price for o in own if o.is_paid), percentage)
