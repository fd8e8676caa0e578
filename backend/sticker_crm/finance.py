"""Per-channel revenue / expense / salary totals for a reporting period.

Everything here is a pure function of its arguments. The same inputs
always produce the same FinancialTotals.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .duplicates import resolve
from .periods import matches, salary_matches
from .schemas import (
    Channel,
    ChannelAmounts,
    ChannelOverrides,
    Expense,
    FinancialTotals,
    Order,
    Overrides,
    PeriodSpec,
    Salary,
)


@dataclass
class PeriodRecords:
    orders: list[Order]
    expenses: list[Expense]
    salaries: list[Salary]


def select_period(
    orders: Iterable[Order],
    expenses: Iterable[Expense],
    salaries: Iterable[Salary],
    period: PeriodSpec,
    now: datetime | None = None,
) -> PeriodRecords:
    """Records of the period, paid or not."""
    now = now or datetime.now()
    return PeriodRecords(
        orders=[o for o in orders if matches(o.order_date, period, now)],
        expenses=[e for e in expenses if matches(e.exp_date, period, now)],
        salaries=[s for s in salaries if salary_matches(s.month, period, now)],
    )


def revenue_by_channel(orders: Iterable[Order]) -> ChannelAmounts:
    """Paid logical orders only; a split sale counts once at its full price."""
    sums = {ch: 0.0 for ch in Channel}
    for logical in resolve(orders):
        if not logical.paid:
            continue
        sums[logical.order.payment_method] += logical.price
    return _amounts(sums)


def expenses_by_channel(expenses: Iterable[Expense]) -> ChannelAmounts:
    sums = {ch: 0.0 for ch in Channel}
    for e in expenses:
        sums[e.payment_source] += e.amount
    return _amounts(sums)


def salaries_by_channel(salaries: Iterable[Salary]) -> ChannelAmounts:
    sums = {ch: 0.0 for ch in Channel}
    for s in salaries:
        sums[s.payment_source] += s.amount
    return _amounts(sums)


def apply_overrides(amounts: ChannelAmounts, overrides: ChannelOverrides) -> ChannelAmounts:
    """An overridden channel takes the override value instead of the computed sum."""
    return _amounts({
        ch: overrides.get(ch) if overrides.get(ch) is not None else amounts.get(ch)
        for ch in Channel
    })


def aggregate(
    orders: Iterable[Order],
    expenses: Iterable[Expense],
    salaries: Iterable[Salary],
    period: PeriodSpec,
    overrides: Optional[Overrides] = None,
    cash_reserve: Optional[ChannelAmounts] = None,
    now: datetime | None = None,
) -> FinancialTotals:
    records = select_period(orders, expenses, salaries, period, now)
    return totals_for(records, overrides, cash_reserve)


def totals_for(
    records: PeriodRecords,
    overrides: Optional[Overrides] = None,
    cash_reserve: Optional[ChannelAmounts] = None,
) -> FinancialTotals:
    overrides = overrides or Overrides()
    reserve = cash_reserve or ChannelAmounts()

    revenue = apply_overrides(revenue_by_channel(records.orders), overrides.revenue)
    expenses = apply_overrides(expenses_by_channel(records.expenses), overrides.expenses)
    salaries = apply_overrides(salaries_by_channel(records.salaries), overrides.salaries)

    net = _amounts({
        ch: revenue.get(ch) - expenses.get(ch) - salaries.get(ch) - reserve.get(ch)
        for ch in Channel
    })

    return FinancialTotals(
        revenue=revenue,
        expenses=expenses,
        salaries=salaries,
        cash_reserve=reserve.model_copy(),
        net_profit=net,
        total_revenue=revenue.total,
        total_expenses=expenses.total,
        total_salaries=salaries.total,
        total_net_profit=net.total,
    )


def _amounts(sums: dict[Channel, float]) -> ChannelAmounts:
    return ChannelAmounts(**{ch.value: float(v) for ch, v in sums.items()})
