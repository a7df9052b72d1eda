"""Monthly attendance reconciler.

Monthly-rate employees get half their monthly rate per period, less a
pro-rata deduction for every scheduled day they did not complete. Because
job statuses change after the fact, each pass replaces the previous pass's
entries instead of appending to them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.entry_builder import EntryBuilder
from payroll_reconciler.calculators.period_calendar import SemiMonthlyPeriod
from payroll_reconciler.calculators.rate_resolver import RateResolver
from payroll_reconciler.calculators.types import Attendance, EntryInput, Provenance, RateType
from payroll_reconciler.database import run_transaction
from payroll_reconciler.services.directory import RoleDirectory
from payroll_reconciler.services.jobs import (
    JobRepository,
    extract_assignments,
    is_completed,
)
from payroll_reconciler.services.ledger_service import EntryLedger
from payroll_reconciler.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonthlySyncResult:
    created: int
    removed: int


class MonthlyAttendanceReconciler:
    """Full-replace reconciliation of monthly base pay and missed days."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        roles: RoleDirectory,
        ledger: EntryLedger | None = None,
    ):
        self.session_factory = session_factory
        self.roles = roles
        self.ledger = ledger or EntryLedger(session_factory)

    async def collect_attendance(
        self, period: SemiMonthlyPeriod, roles: RoleDirectory | None = None
    ) -> dict[str, Attendance]:
        """Attendance of every monthly-rate employee scheduled in the period.

        The monthly amount is the highest monthly rate resolved for any of
        the employee's jobs; scheduled and completed days are distinct dates.
        """
        roles = roles or self.roles
        attendance: dict[str, Attendance] = {}

        async with self.session_factory() as session:
            resolver = RateResolver(session)
            jobs = await JobRepository(session).list_between(
                period.work_period_start, period.work_period_end
            )
            for job in jobs:
                completed = is_completed(job)
                for assignment in extract_assignments(job):
                    if await roles.is_owner(assignment.employee_id):
                        continue
                    rate = await resolver.resolve(
                        assignment.employee_id,
                        assignment.service_date,
                        assignment.location_id,
                        assignment.client_id,
                    )
                    if rate is None or rate.type != RateType.MONTHLY:
                        continue

                    record = attendance.setdefault(
                        assignment.employee_id, Attendance(monthly_amount=rate.amount)
                    )
                    record.monthly_amount = max(record.monthly_amount, rate.amount)
                    record.scheduled_dates.add(assignment.service_date)
                    if completed:
                        record.completed_dates.add(assignment.service_date)
        return attendance

    @staticmethod
    def build_entries(period_id: str, attendance: dict[str, Attendance]) -> list[EntryInput]:
        """Base and missed-day entries for collected attendance."""
        entries = []
        for employee_id in sorted(attendance):
            record = attendance[employee_id]
            if record.monthly_amount <= 0:
                continue

            semi_monthly = EntryBuilder.semi_monthly_amount(record.monthly_amount)
            entries.append(
                EntryBuilder.create_monthly_base(
                    period_id, employee_id, semi_monthly, record.monthly_amount
                )
            )

            deduction = EntryBuilder.missed_day_deduction(
                semi_monthly, record.scheduled, record.missed
            )
            if deduction > 0:
                entries.append(
                    EntryBuilder.create_missed_day_deduction(
                        period_id,
                        employee_id,
                        deduction,
                        missed=record.missed,
                        completed=record.completed,
                        scheduled=record.scheduled,
                    )
                )
        return entries

    async def sync_monthly(
        self, period: SemiMonthlyPeriod, roles: RoleDirectory | None = None
    ) -> MonthlySyncResult:
        """Replace the period's monthly base and missed-day entries.

        The delete, the inserts and the totals recompute commit together.

        Raises:
            PeriodFinalizedError: If the period is finalized
        """
        await self.ledger.ensure_period(period)
        attendance = await self.collect_attendance(period, roles)
        entries = self.build_entries(period.period_id, attendance)

        async def work(session: AsyncSession) -> MonthlySyncResult:
            stored = await self.ledger.lock_period(session, period.period_id)
            PeriodStateMachine.ensure_mutable(stored.period_id, stored.status)
            removed = await self.ledger.delete_entries_by_source(
                session, period.period_id, Provenance.monthly_replace_set()
            )
            for entry in entries:
                await self.ledger.insert_entry(session, stored, entry)
            await self.ledger.recompute_totals(session, stored)
            return MonthlySyncResult(created=len(entries), removed=removed)

        result = await run_transaction(self.session_factory, work, self.ledger.max_attempts)
        logger.info(
            "Monthly attendance for period %s: %d entries created, %d removed",
            period.period_id,
            result.created,
            result.removed,
        )
        return result
