"""Re-price job-derived earnings from the current rate table.

Used to repair entries that were created while a rate was wrong. Every
change is recorded as an override so the original amount stays visible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.entry_builder import EntryBuilder
from payroll_reconciler.calculators.rate_resolver import RateResolver
from payroll_reconciler.calculators.types import (
    EntryType,
    JobAssignment,
    Provenance,
    RateSnapshot,
    RateType,
)
from payroll_reconciler.database import run_transaction
from payroll_reconciler.errors import EntryNotFoundError
from payroll_reconciler.models import PayrollEntry, ServiceJob
from payroll_reconciler.models.base import utcnow
from payroll_reconciler.services.jobs import JobRepository, extract_assignments
from payroll_reconciler.services.ledger_service import EntryLedger
from payroll_reconciler.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

REFRESH_ACTOR = Provenance.SYSTEM_RATE_REFRESH.value


@dataclass
class RateRefreshResult:
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class RateRefreshService:
    """Brings per-visit and hourly job earnings in line with current rates."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: EntryLedger | None = None,
    ):
        self.session_factory = session_factory
        self.ledger = ledger or EntryLedger(session_factory)

    async def refresh_entry_rates(
        self, period_id: str, min_amount: Decimal | None = None
    ) -> RateRefreshResult:
        """Re-price the period's job earnings.

        Args:
            period_id: Period to refresh
            min_amount: If given, only entries below this amount are touched

        Raises:
            PeriodNotFoundError: If the period does not exist
            PeriodFinalizedError: If the period is finalized
        """
        period = await self.ledger.require_period(period_id)
        PeriodStateMachine.ensure_mutable(period.period_id, period.status)

        result = RateRefreshResult()
        async with self.session_factory() as session:
            rows = await session.execute(
                select(PayrollEntry)
                .where(
                    PayrollEntry.period_id == period_id,
                    PayrollEntry.entry_type == EntryType.EARNING.value,
                )
                .order_by(PayrollEntry.created_at, PayrollEntry.entry_id)
            )
            entries = list(rows.scalars().all())
            resolver = RateResolver(session)
            jobs = JobRepository(session)

            repricings = []
            for entry in entries:
                if entry.job_id is None:
                    result.skipped += 1
                    continue
                if min_amount is not None and Decimal(entry.amount) >= min_amount:
                    result.skipped += 1
                    continue

                job = await jobs.get(entry.job_id)
                if job is None:
                    result.errors.append(
                        f"Job {entry.job_id} not found for entry {entry.entry_id}"
                    )
                    continue

                fresh = await resolver.resolve(
                    entry.employee_id, job.service_date, job.location_id, job.client_id
                )
                if fresh is None:
                    result.errors.append(
                        f"No rate found for employee {entry.employee_id} on entry {entry.entry_id}"
                    )
                    continue
                if fresh.type.value != entry.category:
                    result.errors.append(
                        f"Rate type mismatch for entry {entry.entry_id}: "
                        f"was {entry.category}, now {fresh.type.value}"
                    )
                    continue
                if fresh.type == RateType.MONTHLY:
                    result.skipped += 1
                    continue

                new_amount = EntryBuilder.earning_for_assignment(
                    fresh, self._assignment_for(job, entry)
                ).amount
                if abs(new_amount - Decimal(entry.amount)) < EntryBuilder.OUTPUT_PRECISION:
                    result.skipped += 1
                    continue
                repricings.append((entry.entry_id, Decimal(entry.amount), new_amount, fresh))

        for entry_id, old_amount, new_amount, fresh in repricings:
            try:
                await self._apply(entry_id, new_amount, fresh, old_amount)
            except Exception as exc:
                logger.exception("Error refreshing rate on entry %s", entry_id)
                result.errors.append(f"Error on entry {entry_id}: {exc}")
                continue
            logger.info(
                "Refreshed entry %s: %s -> %s", entry_id, old_amount, new_amount
            )
            result.updated += 1

        await self.ledger.recalc_totals(period_id)
        return result

    @staticmethod
    def _assignment_for(job: ServiceJob, entry: PayrollEntry) -> JobAssignment:
        for assignment in extract_assignments(job):
            if assignment.employee_id == entry.employee_id:
                return assignment
        # Employee no longer on the job; price from the recorded hours
        minutes = None
        if entry.hours is not None:
            minutes = int(Decimal(entry.hours) * 60)
        return JobAssignment(
            employee_id=entry.employee_id,
            job_id=job.job_id,
            service_date=job.service_date,
            location_id=job.location_id,
            client_id=job.client_id,
            duration_minutes=minutes,
        )

    async def _apply(
        self, entry_id: str, new_amount: Decimal, fresh: RateSnapshot, old_amount: Decimal
    ) -> None:
        reason = (
            f"Rate refreshed from ${old_amount:.2f} to ${new_amount:.2f} "
            f"(fresh rate: ${fresh.amount})"
        )

        async def work(session: AsyncSession) -> None:
            entry = await session.get(PayrollEntry, entry_id, with_for_update=True)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            period = await self.ledger.lock_period(session, entry.period_id)
            PeriodStateMachine.ensure_mutable(period.period_id, period.status)

            current = Decimal(entry.amount)
            delta = EntryBuilder.contribution(entry.type, new_amount) - EntryBuilder.contribution(
                entry.type, current
            )
            period.set_totals(EntryBuilder.apply_delta(period.totals, delta))

            now = utcnow()
            if entry.override_original_amount is None:
                entry.override_original_amount = current
            entry.amount = EntryBuilder.signed_amount(entry.type, new_amount)
            entry.rate_type = fresh.type.value
            entry.rate_amount = fresh.amount
            entry.override_adjusted_by = REFRESH_ACTOR
            entry.override_adjusted_at = now
            entry.override_reason = reason
            entry.updated_at = now
            await session.flush()

        await run_transaction(self.session_factory, work, self.ledger.max_attempts)
