"""Tests for monthly attendance reconciliation."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_reconciler.calculators.types import Attendance, EntryInput, EntryType, Provenance
from payroll_reconciler.errors import PeriodFinalizedError
from payroll_reconciler.models import PayrollPeriod
from payroll_reconciler.services.attendance_service import MonthlyAttendanceReconciler

JAN_15 = "2024-01-15"


@pytest.fixture
def reconciler(session_factory, ledger, roles) -> MonthlyAttendanceReconciler:
    return MonthlyAttendanceReconciler(session_factory, roles, ledger=ledger)


async def _schedule(seed, employee_id, completed_days, missed_days):
    for day in completed_days:
        await seed.job(f"{employee_id}-{day}", date(2024, 1, day), [employee_id])
    for day in missed_days:
        await seed.job(
            f"{employee_id}-{day}", date(2024, 1, day), [employee_id], status="scheduled"
        )


class TestCollectAttendance:
    async def test_distinct_dates(self, reconciler, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1200")
        await seed.job("a", date(2024, 1, 2), ["emp-m"])
        await seed.job("b", date(2024, 1, 2), ["emp-m"], status="scheduled")
        await seed.job("c", date(2024, 1, 3), ["emp-m"], status="cancelled")

        attendance = await reconciler.collect_attendance(jan_period)

        record = attendance["emp-m"]
        assert record.scheduled == 2
        assert record.completed == 1
        assert record.missed == 1

    async def test_highest_monthly_rate_wins(self, reconciler, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1000")
        await seed.rate("emp-m", "monthly", "1400", location_id="loc-big")
        await seed.job("a", date(2024, 1, 2), ["emp-m"])
        await seed.job("b", date(2024, 1, 3), ["emp-m"], location_id="loc-big")

        attendance = await reconciler.collect_attendance(jan_period)

        assert attendance["emp-m"].monthly_amount == Decimal("1400")

    async def test_non_monthly_and_owners_ignored(self, reconciler, seed, jan_period):
        await seed.rate("emp-e", "per_visit", "25")
        await seed.rate("owner-1", "monthly", "5000")
        await seed.job("a", date(2024, 1, 2), ["emp-e", "owner-1"])

        assert await reconciler.collect_attendance(jan_period) == {}

    async def test_jobs_outside_work_range_ignored(self, reconciler, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1200")
        await seed.job("a", date(2023, 12, 31), ["emp-m"])
        await seed.job("b", date(2024, 1, 16), ["emp-m"])

        assert await reconciler.collect_attendance(jan_period) == {}


class TestBuildEntries:
    def test_base_and_deduction(self):
        attendance = Attendance(monthly_amount=Decimal("1200"))
        attendance.scheduled_dates.update(date(2024, 1, d) for d in range(1, 11))
        attendance.completed_dates.update(date(2024, 1, d) for d in range(1, 9))

        base, deduction = MonthlyAttendanceReconciler.build_entries(JAN_15, {"emp-m": attendance})

        assert base.amount == Decimal("600.00")
        assert base.source == Provenance.AUTO_MONTHLY_BASE
        assert deduction.entry_type == EntryType.DEDUCTION
        assert deduction.amount == Decimal("120.00")
        assert deduction.source == Provenance.AUTO_MISSED_DAY

    def test_zero_rate_produces_nothing(self):
        attendance = Attendance(monthly_amount=Decimal("0"))
        attendance.scheduled_dates.add(date(2024, 1, 2))

        assert MonthlyAttendanceReconciler.build_entries(JAN_15, {"emp-m": attendance}) == []


class TestSyncMonthly:
    """Full-replace semantics of the monthly pass."""

    async def test_ten_scheduled_eight_completed(self, reconciler, ledger, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1200")
        await _schedule(seed, "emp-m", range(1, 9), [9, 10])

        result = await reconciler.sync_monthly(jan_period)

        assert result.created == 2
        assert result.removed == 0
        entries = await ledger.list_entries(JAN_15)
        by_category = {e.category: e for e in entries}
        assert by_category["monthly"].amount == Decimal("600.00")
        assert by_category["missed_day"].amount == Decimal("-120.00")
        assert by_category["missed_day"].description == (
            "Missed 2 scheduled workdays (8/10 completed)"
        )

        period = await ledger.get_period(JAN_15)
        assert period.gross == Decimal("600.00")
        assert period.deductions == Decimal("120.00")
        assert period.net == Decimal("480.00")

    async def test_rerun_replaces_instead_of_appending(self, reconciler, ledger, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1200")
        await _schedule(seed, "emp-m", range(1, 9), [9, 10])

        await reconciler.sync_monthly(jan_period)
        second = await reconciler.sync_monthly(jan_period)

        assert second.removed == 2
        assert second.created == 2
        assert len(await ledger.list_entries(JAN_15)) == 2
        assert (await ledger.get_period(JAN_15)).net == Decimal("480.00")

    async def test_late_completion_removes_deduction(self, reconciler, ledger, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1200")
        await _schedule(seed, "emp-m", range(1, 10), [10])
        await reconciler.sync_monthly(jan_period)
        assert (await ledger.get_period(JAN_15)).deductions == Decimal("60.00")

        await seed.set_job_status("emp-m-10", "completed")
        await reconciler.sync_monthly(jan_period)

        entries = await ledger.list_entries(JAN_15)
        assert [e.category for e in entries] == ["monthly"]
        period = await ledger.get_period(JAN_15)
        assert period.deductions == Decimal("0.00")
        assert period.net == Decimal("600.00")

    async def test_no_missed_entry_when_all_completed(self, reconciler, ledger, seed, jan_period):
        await seed.rate("emp-m", "monthly", "1200")
        await _schedule(seed, "emp-m", range(1, 6), [])

        result = await reconciler.sync_monthly(jan_period)

        assert result.created == 1
        assert {e.category for e in await ledger.list_entries(JAN_15)} == {"monthly"}

    async def test_other_entries_untouched(self, reconciler, ledger, seed, jan_period, period):
        await seed.rate("emp-m", "monthly", "1200")
        await _schedule(seed, "emp-m", [2], [])
        uniform_id = await ledger.add_entry(
            EntryInput(
                period_id=JAN_15,
                employee_id="emp-m",
                entry_type=EntryType.DEDUCTION,
                category="uniform",
                amount=Decimal("20"),
            )
        )

        await reconciler.sync_monthly(jan_period)
        await reconciler.sync_monthly(jan_period)

        assert await ledger.get_entry(uniform_id) is not None
        assert (await ledger.get_period(JAN_15)).net == Decimal("580.00")

    async def test_finalized_period_rejected(
        self, reconciler, session_factory, seed, jan_period, period
    ):
        await seed.rate("emp-m", "monthly", "1200")
        await _schedule(seed, "emp-m", [2], [])
        async with session_factory() as session:
            async with session.begin():
                (await session.get(PayrollPeriod, JAN_15)).status = "finalized"

        with pytest.raises(PeriodFinalizedError):
            await reconciler.sync_monthly(jan_period)
