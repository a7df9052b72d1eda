"""Job-to-entry synchronizer.

Turns completed jobs into per-visit and hourly earning entries, and drives
the batch reconciliation of a whole period.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.entry_builder import EntryBuilder
from payroll_reconciler.calculators.period_calendar import (
    DEFAULT_CALENDAR,
    CalendarConfig,
    SemiMonthlyPeriod,
    period_for_work_date,
    period_from_id,
)
from payroll_reconciler.calculators.rate_resolver import RateResolver
from payroll_reconciler.calculators.types import EntryType, JobAssignment, RateType
from payroll_reconciler.errors import DuplicateEntryError, JobNotFoundError
from payroll_reconciler.models import PayrollEntry, ServiceJob
from payroll_reconciler.services.attendance_service import (
    MonthlyAttendanceReconciler,
    MonthlySyncResult,
)
from payroll_reconciler.services.directory import CachedRoleDirectory, RoleDirectory
from payroll_reconciler.services.jobs import (
    PAYROLL_RELEVANT_STATUSES,
    JobRepository,
    extract_assignments,
    is_completed,
    resolve_job_status,
)
from payroll_reconciler.services.ledger_service import EntryLedger
from payroll_reconciler.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)


@dataclass
class JobSyncResult:
    """Outcome of syncing one job."""

    created_count: int = 0
    period_id: str | None = None
    missing_rate_employee_ids: list[str] = field(default_factory=list)
    has_monthly_assignments: bool = False
    duplicate_count: int = 0


@dataclass
class PeriodSyncResult:
    """Outcome of a batch sync over every job of a period."""

    period_id: str
    processed_jobs: int = 0
    created_entries: int = 0
    skipped_jobs: int = 0
    missing_rate_employee_ids: list[str] = field(default_factory=list)
    failed_job_ids: list[str] = field(default_factory=list)
    monthly: MonthlySyncResult | None = None


def _job_completed_at(job: ServiceJob) -> datetime:
    if job.completed_at is not None:
        return job.completed_at
    return datetime.combine(job.service_date, time.min, tzinfo=timezone.utc)


def _job_description(job: ServiceJob) -> str | None:
    label = job.location_name or job.location_id
    return f"Job completed at {label}" if label else None


def _batch_roles(roles: RoleDirectory) -> RoleDirectory:
    if isinstance(roles, CachedRoleDirectory):
        return roles
    return CachedRoleDirectory(roles)


class JobSyncService:
    """Creates earning entries from completed jobs.

    Notes:
    - Owners are never put on automated payroll.
    - Monthly-rate assignments are only flagged here; monthly pay comes
      from MonthlyAttendanceReconciler, once per period.
    - An earning already recorded for (job, employee, rate type) is never
      created twice; the unique constraint backs up the in-memory check.
    - Missing rates are reported in the result, never raised.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        roles: RoleDirectory,
        ledger: EntryLedger | None = None,
        calendar: CalendarConfig | None = None,
        monthly: MonthlyAttendanceReconciler | None = None,
    ):
        self.session_factory = session_factory
        self.roles = roles
        self.calendar = calendar or (ledger.calendar if ledger else DEFAULT_CALENDAR)
        self.ledger = ledger or EntryLedger(session_factory, self.calendar)
        self.monthly = monthly or MonthlyAttendanceReconciler(
            session_factory, roles, self.ledger
        )

    # ------------------------------------------------------------------
    # Single job
    # ------------------------------------------------------------------

    async def sync_job(self, job_id: str, roles: RoleDirectory | None = None) -> JobSyncResult:
        """Create the missing earning entries for one job.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        roles = roles or self.roles

        async with self.session_factory() as session:
            job = await JobRepository(session).get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if not is_completed(job):
                logger.debug(
                    "Job %s has status %r, nothing to sync", job_id, resolve_job_status(job)
                )
                return JobSyncResult()

            assignments = extract_assignments(job)
            if not assignments:
                return JobSyncResult()

            resolver = RateResolver(session)
            existing_keys = await self._existing_earning_keys(session, job_id)
            planned = []
            result = JobSyncResult()
            missing: set[str] = set()

            for assignment in assignments:
                if await roles.is_owner(assignment.employee_id):
                    continue
                rate = await resolver.resolve(
                    assignment.employee_id,
                    assignment.service_date,
                    assignment.location_id,
                    assignment.client_id,
                )
                if rate is None:
                    missing.add(assignment.employee_id)
                    continue
                if rate.type == RateType.MONTHLY:
                    result.has_monthly_assignments = True
                    continue
                if (assignment.employee_id, rate.type.value) in existing_keys:
                    result.duplicate_count += 1
                    continue

                calculation = EntryBuilder.earning_for_assignment(rate, assignment)
                if calculation.amount <= 0:
                    continue
                planned.append((assignment, rate, calculation))
                existing_keys.add((assignment.employee_id, rate.type.value))

            description = _job_description(job)
            completed_at = _job_completed_at(job)

        period = period_for_work_date(assignments[0].service_date, self.calendar)
        await self.ledger.ensure_period(period)
        result.period_id = period.period_id
        result.missing_rate_employee_ids = sorted(missing)

        for assignment, rate, calculation in planned:
            entry = EntryBuilder.create_job_earning(
                period.period_id,
                assignment,
                rate,
                calculation,
                description=description,
                job_completed_at=completed_at,
            )
            try:
                await self.ledger.add_entry(entry)
            except DuplicateEntryError:
                logger.info(
                    "Earning for job %s employee %s already recorded by a concurrent sync",
                    job_id,
                    assignment.employee_id,
                )
                result.duplicate_count += 1
                continue
            result.created_count += 1

        if result.created_count:
            await self.ledger.recalc_totals(period.period_id)
            logger.info(
                "Synced job %s into period %s: %d entries created",
                job_id,
                period.period_id,
                result.created_count,
            )
        return result

    @staticmethod
    async def _existing_earning_keys(session: AsyncSession, job_id: str) -> set[tuple[str, str]]:
        result = await session.execute(
            select(PayrollEntry.employee_id, PayrollEntry.category).where(
                PayrollEntry.job_id == job_id,
                PayrollEntry.entry_type == EntryType.EARNING.value,
            )
        )
        return {(employee_id, category) for employee_id, category in result.all()}

    # ------------------------------------------------------------------
    # Missing-rate checks
    # ------------------------------------------------------------------

    async def missing_rate_employee_ids_for_job(
        self, job_id: str, roles: RoleDirectory | None = None
    ) -> list[str]:
        """Employees on the job that no rate resolves for.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        async with self.session_factory() as session:
            job = await JobRepository(session).get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return await self._missing_for_assignments(
                RateResolver(session), extract_assignments(job), roles or self.roles
            )

    async def missing_rate_employee_ids_for_period(
        self, period: SemiMonthlyPeriod | str, roles: RoleDirectory | None = None
    ) -> list[str]:
        """Employees lacking a rate on any payroll-relevant job of the period."""
        if isinstance(period, str):
            period = period_from_id(period, self.calendar)
        roles = _batch_roles(roles or self.roles)

        missing: set[str] = set()
        async with self.session_factory() as session:
            resolver = RateResolver(session)
            jobs = await JobRepository(session).list_between(
                period.work_period_start, period.work_period_end
            )
            for job in jobs:
                if resolve_job_status(job) not in PAYROLL_RELEVANT_STATUSES:
                    continue
                missing.update(
                    await self._missing_for_assignments(
                        resolver, extract_assignments(job), roles
                    )
                )
        return sorted(missing)

    @staticmethod
    async def _missing_for_assignments(
        resolver: RateResolver, assignments: list[JobAssignment], roles: RoleDirectory
    ) -> list[str]:
        missing = []
        for assignment in assignments:
            if await roles.is_owner(assignment.employee_id):
                continue
            has_rate = await resolver.has_rate(
                assignment.employee_id,
                assignment.service_date,
                assignment.location_id,
                assignment.client_id,
            )
            if not has_rate:
                missing.append(assignment.employee_id)
        return missing

    # ------------------------------------------------------------------
    # Whole period
    # ------------------------------------------------------------------

    async def sync_period(self, period_id: str) -> PeriodSyncResult:
        """Sync every completed job of a period, then reconcile monthly pay.

        Jobs with employees lacking a rate are skipped and reported. A job
        that raises is logged and listed in ``failed_job_ids``; the rest of
        the batch still runs.
        """
        period = period_from_id(period_id, self.calendar)
        stored = await self.ledger.ensure_period(period)
        PeriodStateMachine.ensure_mutable(stored.period_id, stored.status)
        roles = _batch_roles(self.roles)
        result = PeriodSyncResult(period_id=period.period_id)
        missing: set[str] = set()

        async with self.session_factory() as session:
            jobs = await JobRepository(session).list_between(
                period.work_period_start, period.work_period_end
            )
            job_ids = [job.job_id for job in jobs if is_completed(job)]

        for job_id in job_ids:
            result.processed_jobs += 1
            try:
                missing_for_job = await self.missing_rate_employee_ids_for_job(job_id, roles)
                if missing_for_job:
                    missing.update(missing_for_job)
                    result.skipped_jobs += 1
                    continue
                job_result = await self.sync_job(job_id, roles)
            except Exception:
                logger.exception("Failed to sync payroll for job %s", job_id)
                result.failed_job_ids.append(job_id)
                continue
            result.created_entries += job_result.created_count

        result.monthly = await self.monthly.sync_monthly(period, roles)
        await self.ledger.recalc_totals(period.period_id)
        result.missing_rate_employee_ids = sorted(missing)

        logger.info(
            "Period %s sync: %d jobs processed, %d entries created, %d skipped, %d failed",
            period.period_id,
            result.processed_jobs,
            result.created_entries,
            result.skipped_jobs,
            len(result.failed_job_ids),
        )
        return result
