"""Monthly archive: a frozen copy of a month's totals.

A month is open until it is closed once; closing it again is rejected and
an existing archive is never rewritten or removed.
"""

from datetime import datetime
from typing import Iterable, Optional

from .errors import ConflictError, NotFoundError, ValidationError
from .finance import select_period, totals_for
from .periods import parse_month_key
from .schemas import (
    ChannelAmounts,
    Expense,
    MonthlyArchive,
    Order,
    Overrides,
    PeriodKind,
    PeriodSpec,
    Salary,
)


def is_closed(month: str, archives: Iterable[MonthlyArchive]) -> bool:
    return any(a.month == month for a in archives)


def close_month(
    month: str,
    archives: list[MonthlyArchive],
    orders: Iterable[Order],
    expenses: Iterable[Expense],
    salaries: Iterable[Salary],
    overrides: Optional[Overrides] = None,
    cash_reserve: Optional[ChannelAmounts] = None,
    now: datetime | None = None,
) -> MonthlyArchive:
    """Snapshot *month*. The caller appends the result; *archives* is not modified."""
    try:
        year, mon = parse_month_key(month)
    except ValueError as e:
        raise ValidationError(str(e))
    month = f"{year:04d}-{mon:02d}"
    if is_closed(month, archives):
        raise ConflictError(f"Месяц {month} уже закрыт")

    overrides = (overrides or Overrides()).model_copy(deep=True)
    records = select_period(orders, expenses, salaries, PeriodSpec(kind=PeriodKind.MONTH, month=month), now)
    return MonthlyArchive(
        month=month,
        closed_at=now or datetime.now(),
        stats=totals_for(records, overrides, cash_reserve),
        overrides=overrides,
        orders_count=len(records.orders),
        expenses_count=len(records.expenses),
        salaries_count=len(records.salaries),
    )


def with_archive(archives: Iterable[MonthlyArchive], archive: MonthlyArchive) -> list[MonthlyArchive]:
    """New archive list, newest month first."""
    return sorted([*archives, archive], key=lambda a: a.month, reverse=True)


def get_archive(month: str, archives: Iterable[MonthlyArchive]) -> MonthlyArchive:
    for a in archives:
        if a.month == month:
            return a
    raise NotFoundError(f"archive {month} not found")
