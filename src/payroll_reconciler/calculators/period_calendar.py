"""Semi-monthly pay period calendar.

Pure functions: every work date maps to exactly one period, periods are
contiguous and non-overlapping, and a period's id is the ISO date of its pay
date, so concurrent callers always agree on it.

With the default split day of 15:
- work days 1-15 are paid on the 15th of the same month
- work days 16-end are paid on the 1st of the following month
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from payroll_reconciler.errors import InvalidPayDateError


@dataclass(frozen=True)
class CalendarConfig:
    """Anchor for the semi-monthly split."""

    split_day: int = 15

    def __post_init__(self) -> None:
        # Day 1 would collide with the previous half's pay date
        if not 2 <= self.split_day <= 27:
            raise ValueError(f"split_day must be between 2 and 27, got {self.split_day}")


DEFAULT_CALENDAR = CalendarConfig()


@dataclass(frozen=True)
class SemiMonthlyPeriod:
    """A pay period: half-open work range plus the day it is paid."""

    period_id: str
    work_period_start: date
    work_period_end: date  # exclusive
    pay_date: date

    @property
    def last_work_day(self) -> date:
        return self.work_period_end - timedelta(days=1)

    def contains(self, work_date: date) -> bool:
        return self.work_period_start <= work_date < self.work_period_end


def period_id_for(pay_date: date) -> str:
    """Stable period identifier for a pay date."""
    return pay_date.isoformat()


def _first_of_next_month(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1)
    return date(year, month + 1, 1)


def _first_of_previous_month(year: int, month: int) -> date:
    if month == 1:
        return date(year - 1, 12, 1)
    return date(year, month - 1, 1)


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def period_for_work_date(
    work_date: date | datetime, config: CalendarConfig = DEFAULT_CALENDAR
) -> SemiMonthlyPeriod:
    """Map any work date to its enclosing pay period."""
    work_date = _as_date(work_date)
    year, month = work_date.year, work_date.month
    split = config.split_day

    if work_date.day <= split:
        pay_date = date(year, month, split)
        return SemiMonthlyPeriod(
            period_id=period_id_for(pay_date),
            work_period_start=date(year, month, 1),
            work_period_end=date(year, month, split) + timedelta(days=1),
            pay_date=pay_date,
        )

    pay_date = _first_of_next_month(year, month)
    return SemiMonthlyPeriod(
        period_id=period_id_for(pay_date),
        work_period_start=date(year, month, split + 1),
        work_period_end=pay_date,
        pay_date=pay_date,
    )


def period_for_pay_date(
    pay_date: date | datetime, config: CalendarConfig = DEFAULT_CALENDAR
) -> SemiMonthlyPeriod:
    """Map a pay date back to its period.

    Raises:
        InvalidPayDateError: If the date is neither the split day nor the 1st
    """
    pay_date = _as_date(pay_date)

    if pay_date.day == config.split_day:
        return period_for_work_date(pay_date, config)

    if pay_date.day == 1:
        previous = _first_of_previous_month(pay_date.year, pay_date.month)
        last_day = calendar.monthrange(previous.year, previous.month)[1]
        return period_for_work_date(previous.replace(day=last_day), config)

    raise InvalidPayDateError(pay_date, config.split_day)


def period_from_id(period_id: str, config: CalendarConfig = DEFAULT_CALENDAR) -> SemiMonthlyPeriod:
    """Parse a period id (``YYYY-MM-DD`` pay date) into its period."""
    try:
        pay_date = date.fromisoformat(period_id)
    except (TypeError, ValueError):
        raise InvalidPayDateError(period_id, config.split_day) from None
    return period_for_pay_date(pay_date, config)


def current_period(
    today: date | None = None, config: CalendarConfig = DEFAULT_CALENDAR
) -> SemiMonthlyPeriod:
    """Period containing today (or the given reference date)."""
    return period_for_work_date(today or date.today(), config)


def previous_period(
    period: SemiMonthlyPeriod, config: CalendarConfig = DEFAULT_CALENDAR
) -> SemiMonthlyPeriod:
    """Period immediately before the given one."""
    return period_for_work_date(period.work_period_start - timedelta(days=1), config)


def next_period(
    period: SemiMonthlyPeriod, config: CalendarConfig = DEFAULT_CALENDAR
) -> SemiMonthlyPeriod:
    """Period immediately after the given one."""
    return period_for_work_date(period.work_period_end, config)
