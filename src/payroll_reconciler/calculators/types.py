"""Type definitions for the payroll ledger pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0.00")


class EntryType(str, Enum):
    """Ledger entry types."""

    EARNING = "earning"
    DEDUCTION = "deduction"


class EarningCategory(str, Enum):
    """Earning categories; also the set of pay-rate types."""

    PER_VISIT = "per_visit"
    HOURLY = "hourly"
    MONTHLY = "monthly"


RateType = EarningCategory


class DeductionCategory(str, Enum):
    """Deduction categories."""

    MISSED_DAY = "missed_day"
    UNIFORM = "uniform"
    SUPPLIES = "supplies"
    ADVANCE = "advance"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    OTHER = "other"


EARNING_CATEGORIES = frozenset(c.value for c in EarningCategory)
DEDUCTION_CATEGORIES = frozenset(c.value for c in DeductionCategory)


class Provenance(str, Enum):
    """Where an entry came from.

    Auto-managed kinds are the ones a reconciliation pass may delete and
    regenerate; everything else is permanent once written.
    """

    MANUAL = "manual"
    AUTO_JOB = "auto:job"
    AUTO_MONTHLY_BASE = "auto:monthly_base"
    AUTO_MISSED_DAY = "auto:missed_day"
    SYSTEM_RATE_REFRESH = "system:rate_refresh"

    @property
    def is_auto(self) -> bool:
        return self.value.startswith("auto:")

    @classmethod
    def monthly_replace_set(cls) -> frozenset[Provenance]:
        """Kinds rebuilt from scratch by every monthly attendance pass."""
        return frozenset({cls.AUTO_MONTHLY_BASE, cls.AUTO_MISSED_DAY})


@dataclass(frozen=True)
class RateSnapshot:
    """The rate actually used for an entry, frozen at creation time."""

    type: RateType
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "amount": str(self.amount)}


@dataclass(frozen=True)
class TotalsDelta:
    """Change to apply to a period's running totals."""

    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO

    def __sub__(self, other: TotalsDelta) -> TotalsDelta:
        return TotalsDelta(
            gross=self.gross - other.gross,
            deductions=self.deductions - other.deductions,
            net=self.net - other.net,
        )


@dataclass(frozen=True)
class PeriodTotals:
    """Period aggregate: gross, deductions (positive) and signed net."""

    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO

    @classmethod
    def zero(cls) -> PeriodTotals:
        return cls()

    def to_dict(self) -> dict[str, str]:
        return {
            "gross": str(self.gross),
            "deductions": str(self.deductions),
            "net": str(self.net),
        }


@dataclass(frozen=True)
class EntryOverride:
    """Audit record of a manual amount change."""

    original_amount: Decimal
    adjusted_by: str
    adjusted_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class JobAssignment:
    """One (job, assigned employee) row extracted from a job record."""

    employee_id: str
    job_id: str
    service_date: date
    location_id: str | None = None
    client_id: str | None = None
    duration_minutes: int | None = None


@dataclass
class EntryInput:
    """A ledger entry before persistence.

    ``amount`` may be given with either sign; the ledger stores it signed by
    ``entry_type``.
    """

    period_id: str
    employee_id: str
    entry_type: EntryType
    category: str
    amount: Decimal
    job_id: str | None = None
    hours: Decimal | None = None
    units: int | None = None
    rate_snapshot: RateSnapshot | None = None
    description: str | None = None
    job_completed_at: datetime | None = None
    source: Provenance = Provenance.MANUAL


@dataclass(frozen=True)
class EarningCalculation:
    """Earning amount and quantities computed for one assignment."""

    amount: Decimal
    hours: Decimal | None = None
    units: int | None = None


@dataclass
class EmployeeTotals:
    """Per-employee share of a period's totals."""

    employee_id: str
    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO


@dataclass
class Attendance:
    """Monthly-rate employee attendance within one period."""

    monthly_amount: Decimal
    scheduled_dates: set[date] = field(default_factory=set)
    completed_dates: set[date] = field(default_factory=set)

    @property
    def scheduled(self) -> int:
        return len(self.scheduled_dates)

    @property
    def completed(self) -> int:
        return len(self.completed_dates & self.scheduled_dates)

    @property
    def missed(self) -> int:
        return self.scheduled - self.completed
