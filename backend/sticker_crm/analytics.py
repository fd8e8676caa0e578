from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from .duplicates import resolve
from .periods import matches
from .schemas import (
    BreakdownRow,
    Category,
    Channel,
    DashboardOut,
    Order,
    OrderFeed,
    PeriodSpec,
)

UNSPECIFIED = "Не указан"


def _row(rows: dict[str, BreakdownRow], name: str) -> BreakdownRow:
    if name not in rows:
        rows[name] = BreakdownRow(name=name, orders=0, paid=0, revenue=0)
    return rows[name]


def _by_revenue(rows: dict[str, BreakdownRow]) -> list[BreakdownRow]:
    return sorted(rows.values(), key=lambda r: r.revenue, reverse=True)


def dashboard(orders: list[Order], period: PeriodSpec, now: datetime | None = None) -> DashboardOut:
    """Director overview of a period.

    Order counts, revenue and the category / source breakdowns use logical
    orders whose group totals come from the whole ledger. The manager
    breakdown uses physical orders so each manager sees their own shares.
    """
    now = now or datetime.now()
    in_period = [o for o in orders if matches(o.order_date, period, now)]
    logical = list(resolve(in_period, universe=orders))

    paid = [lo for lo in logical if lo.paid]
    total_revenue = sum(lo.price for lo in paid)
    pending_revenue = sum(lo.price for lo in logical if not lo.paid)

    categories: dict[str, BreakdownRow] = {}
    sources: dict[str, BreakdownRow] = {}
    for lo in logical:
        src = _row(sources, lo.order.order_source or UNSPECIFIED)
        src.orders += 1
        if lo.paid:
            cat = _row(categories, lo.order.category.value)
            cat.orders += 1
            cat.paid += 1
            cat.revenue += lo.price
            src.paid += 1
            src.revenue += lo.price

    managers: dict[str, BreakdownRow] = {}
    for o in in_period:
        row = _row(managers, o.manager or UNSPECIFIED)
        row.orders += 1
        if o.is_paid:
            row.paid += 1
            row.revenue += o.price

    return DashboardOut(
        total_orders=len(logical),
        paid_orders=len(paid),
        total_revenue=total_revenue,
        pending_revenue=pending_revenue,
        average_check=total_revenue / len(paid) if paid else 0,
        conversion_rate=len(paid) / len(logical) * 100 if logical else 0,
        categories=_by_revenue(categories),
        managers=_by_revenue(managers),
        sources=_by_revenue(sources),
    )


def filter_orders(
    orders: Iterable[Order],
    query: Optional[str] = None,
    category: Optional[Category] = None,
    payment_method: Optional[Channel] = None,
    manager: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[Order]:
    q = (query or "").strip().lower()
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to, time.max) if date_to else None
    out = []
    for o in orders:
        if q and q not in o.title.lower():
            continue
        if category and o.category != category:
            continue
        if payment_method and o.payment_method != payment_method:
            continue
        if manager and o.manager != manager:
            continue
        if start and o.order_date < start:
            continue
        if end and o.order_date > end:
            continue
        out.append(o)
    return out


def orders_total(filtered: list[Order], ledger: list[Order], manager: Optional[str] = None) -> float:
    """Sum of a filtered order list, counting each split sale once.

    Without a manager filter a split sale contributes its full ledger
    total; with one, only the shares visible in *filtered*.
    """
    universe = filtered if manager else ledger
    return sum(lo.price for lo in resolve(filtered, universe=universe))


def order_feed(orders: list[Order], now: datetime | None = None, manager: Optional[str] = None) -> OrderFeed:
    """Bucket orders by creation day into today / yesterday / earlier, newest first."""
    now = now or datetime.now()
    today = now.date()
    yesterday = today - timedelta(days=1)

    visible = [o for o in orders if not manager or o.manager == manager]

    if manager:
        # a manager only sees their own share, never the partner's
        items = [[o] for o in visible]
    else:
        items = [list(lo.members) for lo in resolve(visible)]

    feed = OrderFeed()
    for item in sorted(items, key=lambda it: it[0].created_at, reverse=True):
        day = item[0].created_at.date()
        if day == today:
            feed.today.append(item)
        elif day == yesterday:
            feed.yesterday.append(item)
        else:
            feed.earlier.append(item)
    return feed
