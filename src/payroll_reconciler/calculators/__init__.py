"""Pure payroll arithmetic and the pay period calendar.

The rate resolver needs the ORM models, which themselves use the types
defined here; import it from ``payroll_reconciler.calculators.rate_resolver``.
"""

from payroll_reconciler.calculators.entry_builder import EntryBuilder
from payroll_reconciler.calculators.period_calendar import (
    CalendarConfig,
    SemiMonthlyPeriod,
    period_for_pay_date,
    period_for_work_date,
    period_from_id,
)

__all__ = [
    "CalendarConfig",
    "EntryBuilder",
    "SemiMonthlyPeriod",
    "period_for_pay_date",
    "period_for_work_date",
    "period_from_id",
]
