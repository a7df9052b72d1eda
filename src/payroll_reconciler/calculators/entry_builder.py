"""Entry builder: sign conventions, rounding and earning arithmetic."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from payroll_reconciler.calculators.types import (
    ZERO,
    DeductionCategory,
    EarningCalculation,
    EarningCategory,
    EntryInput,
    EntryType,
    JobAssignment,
    PeriodTotals,
    Provenance,
    RateSnapshot,
    TotalsDelta,
)


class EntryBuilder:
    """Builds ledger entries and totals with consistent money handling.

    Sign conventions (non-negotiable):
    - EARNING: stored positive
    - DEDUCTION: stored negative

    Summing every stored amount in a period yields net directly; gross and
    deductions split that sum by sign.

    Rounding:
    - USD to 2 decimals, ROUND_HALF_UP, after every arithmetic step
    """

    OUTPUT_PRECISION = Decimal("0.01")
    HOURS_PRECISION = Decimal("0.01")

    # Net magnitudes at or below this are treated as zero
    HALF_CENT = Decimal("0.005")

    @staticmethod
    def round_to_cents(amount: Decimal | int | float | str) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return Decimal(str(amount)).quantize(
            EntryBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP
        )

    @staticmethod
    def signed_amount(entry_type: EntryType, amount: Decimal) -> Decimal:
        """Normalize an amount of either sign to the stored convention."""
        magnitude = EntryBuilder.round_to_cents(abs(Decimal(str(amount))))
        if entry_type == EntryType.EARNING:
            return magnitude
        return -magnitude

    @staticmethod
    def contribution(entry_type: EntryType, stored_amount: Decimal) -> TotalsDelta:
        """Totals contribution of one stored entry amount."""
        magnitude = EntryBuilder.round_to_cents(abs(stored_amount))
        if entry_type == EntryType.EARNING:
            return TotalsDelta(gross=magnitude, deductions=ZERO, net=magnitude)
        return TotalsDelta(gross=ZERO, deductions=magnitude, net=-magnitude)

    @staticmethod
    def apply_delta(totals: PeriodTotals, delta: TotalsDelta) -> PeriodTotals:
        """Apply a delta to running totals, rounding each component."""
        rc = EntryBuilder.round_to_cents
        return PeriodTotals(
            gross=rc(totals.gross + delta.gross),
            deductions=rc(totals.deductions + delta.deductions),
            net=rc(totals.net + delta.net),
        )

    @staticmethod
    def totals_from_amounts(amounts: Iterable[Decimal]) -> PeriodTotals:
        """Full recompute of totals from signed stored amounts."""
        rc = EntryBuilder.round_to_cents
        gross = ZERO
        deductions = ZERO
        for amount in amounts:
            if amount >= 0:
                gross = rc(gross + amount)
            else:
                deductions = rc(deductions + abs(amount))
        return PeriodTotals(gross=gross, deductions=deductions, net=rc(gross - deductions))

    @staticmethod
    def is_nonzero(amount: Decimal) -> bool:
        """Check if an amount is more than half a cent away from zero."""
        return abs(amount) > EntryBuilder.HALF_CENT

    @staticmethod
    def earning_for_assignment(
        rate: RateSnapshot, assignment: JobAssignment
    ) -> EarningCalculation:
        """Compute the earning a single job assignment produces.

        Monthly rates produce nothing here; monthly pay is reconciled per
        period from attendance.
        """
        if rate.type == EarningCategory.PER_VISIT:
            return EarningCalculation(
                amount=EntryBuilder.round_to_cents(rate.amount), units=1
            )

        if rate.type == EarningCategory.HOURLY:
            minutes = Decimal(assignment.duration_minutes or 0)
            if minutes <= 0:
                return EarningCalculation(amount=ZERO, hours=ZERO)
            hours = (minutes / 60).quantize(
                EntryBuilder.HOURS_PRECISION, rounding=ROUND_HALF_UP
            )
            amount = EntryBuilder.round_to_cents(rate.amount * minutes / 60)
            return EarningCalculation(amount=amount, hours=hours)

        return EarningCalculation(amount=ZERO)

    @staticmethod
    def semi_monthly_amount(monthly_amount: Decimal) -> Decimal:
        """Half of a monthly rate, the base pay for one period."""
        return EntryBuilder.round_to_cents(monthly_amount / 2)

    @staticmethod
    def missed_day_deduction(
        semi_monthly_amount: Decimal, scheduled: int, missed: int
    ) -> Decimal:
        """Pro-rata deduction for missed scheduled days."""
        if scheduled <= 0 or missed <= 0:
            return ZERO
        return EntryBuilder.round_to_cents(semi_monthly_amount / scheduled * missed)

    @staticmethod
    def create_job_earning(
        period_id: str,
        assignment: JobAssignment,
        rate: RateSnapshot,
        calculation: EarningCalculation,
        description: str | None = None,
        job_completed_at=None,
    ) -> EntryInput:
        """Create an earning entry for a job assignment (positive amount)."""
        return EntryInput(
            period_id=period_id,
            employee_id=assignment.employee_id,
            job_id=assignment.job_id,
            entry_type=EntryType.EARNING,
            category=rate.type.value,
            amount=EntryBuilder.round_to_cents(abs(calculation.amount)),
            hours=calculation.hours,
            units=calculation.units,
            rate_snapshot=rate,
            description=description,
            job_completed_at=job_completed_at,
            source=Provenance.AUTO_JOB,
        )

    @staticmethod
    def create_monthly_base(
        period_id: str, employee_id: str, amount: Decimal, monthly_rate: Decimal
    ) -> EntryInput:
        """Create the base semi-monthly salary earning."""
        return EntryInput(
            period_id=period_id,
            employee_id=employee_id,
            entry_type=EntryType.EARNING,
            category=EarningCategory.MONTHLY.value,
            amount=amount,
            rate_snapshot=RateSnapshot(type=EarningCategory.MONTHLY, amount=monthly_rate),
            description="Base monthly salary for period",
            source=Provenance.AUTO_MONTHLY_BASE,
        )

    @staticmethod
    def create_missed_day_deduction(
        period_id: str,
        employee_id: str,
        amount: Decimal,
        missed: int,
        completed: int,
        scheduled: int,
    ) -> EntryInput:
        """Create the attendance deduction (stored negative)."""
        plural = "" if missed == 1 else "s"
        return EntryInput(
            period_id=period_id,
            employee_id=employee_id,
            entry_type=EntryType.DEDUCTION,
            category=DeductionCategory.MISSED_DAY.value,
            amount=amount,
            description=(
                f"Missed {missed} scheduled workday{plural} "
                f"({completed}/{scheduled} completed)"
            ),
            source=Provenance.AUTO_MISSED_DAY,
        )
