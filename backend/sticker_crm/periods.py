"""Reporting windows (today, current month, half-months, explicit month, custom range).

Records are compared by calendar day: a timestamp is normalised to the
start of its local day before it is checked against a window, so the
time of day never pushes a record out of its month or half-month.
"""

import re
from datetime import date, datetime, time, timedelta

from .schemas import MONTH_PATTERN, PeriodKind, PeriodSpec

# kinds whose salary set is the salaries of the current month
_CURRENT_MONTH_KINDS = (PeriodKind.TODAY, PeriodKind.CURRENT_MONTH, PeriodKind.FIRST_HALF, PeriodKind.SECOND_HALF)


def month_key(d: date | datetime) -> str:
    return d.strftime("%Y-%m")


def parse_month_key(key: str) -> tuple[int, int]:
    """'2025-01' -> (2025, 1). Surrounding blanks are ignored. Raises ValueError on anything else."""
    m = re.fullmatch(MONTH_PATTERN, (key or "").strip())
    if not m:
        raise ValueError("month must be YYYY-MM")
    return int(key.strip()[:4]), int(m.group(1))


def _last_day_of_month(year: int, month: int) -> int:
    if month == 12:
        nxt = date(year + 1, 1, 1)
    else:
        nxt = date(year, month + 1, 1)
    return (nxt - timedelta(days=1)).day


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time.max)


def month_window(key: str) -> tuple[datetime, datetime]:
    year, month = parse_month_key(key)
    return _day_start(date(year, month, 1)), _day_end(date(year, month, _last_day_of_month(year, month)))


def window(period: PeriodSpec, now: datetime | None = None) -> tuple[datetime | None, datetime | None]:
    """Inclusive [start, end] bounds of *period*; None means open."""
    now = now or datetime.now()
    kind = period.kind
    year, month = now.year, now.month

    if kind == PeriodKind.ALL:
        return None, None
    if kind == PeriodKind.TODAY:
        return _day_start(now.date()), _day_end(now.date())
    if kind == PeriodKind.CURRENT_MONTH:
        return month_window(month_key(now))
    if kind == PeriodKind.FIRST_HALF:
        return _day_start(date(year, month, 1)), _day_end(date(year, month, 15))
    if kind == PeriodKind.SECOND_HALF:
        return _day_start(date(year, month, 16)), _day_end(date(year, month, _last_day_of_month(year, month)))
    if kind == PeriodKind.MONTH:
        return month_window(period.month)
    # custom
    start = _day_start(period.date_from) if period.date_from else None
    end = _day_end(period.date_to) if period.date_to else None
    return start, end


def matches(ts: datetime | date, period: PeriodSpec, now: datetime | None = None) -> bool:
    if period.kind == PeriodKind.ALL:
        return True
    if not isinstance(ts, datetime):
        ts = _day_start(ts)
    now = now or datetime.now()
    if period.kind == PeriodKind.TODAY:
        start = _day_start(now.date())
        return start <= ts < start + timedelta(days=1)

    day = _day_start(ts.date())
    start, end = window(period, now)
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def salary_matches(month: str, period: PeriodSpec, now: datetime | None = None) -> bool:
    """Salaries carry a month, not a timestamp."""
    now = now or datetime.now()
    kind = period.kind
    if kind == PeriodKind.ALL:
        return True
    if kind in _CURRENT_MONTH_KINDS:
        return month == month_key(now)
    if kind == PeriodKind.MONTH:
        return month == period.month
    try:
        year, mon = parse_month_key(month)
    except ValueError:
        return False
    return matches(date(year, mon, 1), period, now)
