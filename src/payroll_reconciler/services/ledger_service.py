"""Entry ledger - signed entries per period with transactional totals.

Provides:
- Race-safe, idempotent period creation
- Entry insertion that updates period totals in the same transaction
- Full totals recompute for consistency repair
- Delta-based amount overrides with a preserved original amount
- Read access to periods, entries and per-employee summaries
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.entry_builder import EntryBuilder
from payroll_reconciler.calculators.period_calendar import (
    DEFAULT_CALENDAR,
    CalendarConfig,
    SemiMonthlyPeriod,
    current_period,
    period_from_id,
)
from payroll_reconciler.calculators.types import (
    DEDUCTION_CATEGORIES,
    EARNING_CATEGORIES,
    EmployeeTotals,
    EntryInput,
    EntryType,
    PeriodTotals,
    Provenance,
)
from payroll_reconciler.database import is_permission_denied, run_transaction
from payroll_reconciler.errors import (
    DuplicateEntryError,
    EntryNotFoundError,
    InvalidCategoryError,
    PeriodNotFoundError,
    PeriodPermissionError,
)
from payroll_reconciler.models import PayrollEntry, PayrollPeriod
from payroll_reconciler.models.base import new_id, utcnow
from payroll_reconciler.services.state_machine import PeriodStateMachine, PeriodStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodSummary:
    """Period with its totals broken down per employee."""

    period: PayrollPeriod
    totals: PeriodTotals
    by_employee: list[EmployeeTotals]


def _category_value(category: object) -> str:
    return str(getattr(category, "value", category))


class EntryLedger:
    """Append-only ledger of payroll entries.

    Notes:
    - Every totals mutation runs in one short transaction that re-reads the
      period row (locked where the backend supports it) before writing.
    - PayrollPeriod.version makes concurrent writers conflict instead of
      overwriting each other; run_transaction retries the loser.
    - Finalized periods reject every mutation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        calendar: CalendarConfig | None = None,
        max_attempts: int | None = None,
    ):
        self.session_factory = session_factory
        self.calendar = calendar or DEFAULT_CALENDAR
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    async def ensure_period(self, period: SemiMonthlyPeriod | str) -> PayrollPeriod:
        """Create the period record if absent; safe to call concurrently.

        Raises:
            PeriodPermissionError: If the period is absent and cannot be created
        """
        if isinstance(period, str):
            period = period_from_id(period, self.calendar)

        try:
            existing = await self.get_period(period.period_id)
        except DBAPIError as exc:
            if not is_permission_denied(exc):
                raise
            logger.warning(
                "Could not read payroll period %s, attempting to create: %s",
                period.period_id,
                exc,
            )
            existing = None
        if existing is not None:
            return existing

        async def create(session: AsyncSession) -> PayrollPeriod:
            current = await session.get(PayrollPeriod, period.period_id)
            if current is None:
                current = PayrollPeriod(
                    period_id=period.period_id,
                    work_period_start=period.work_period_start,
                    work_period_end=period.work_period_end,
                    pay_date=period.pay_date,
                    status=PeriodStatus.DRAFT.value,
                    gross=Decimal("0.00"),
                    deductions=Decimal("0.00"),
                    net=Decimal("0.00"),
                    created_at=utcnow(),
                )
                session.add(current)
                await session.flush()
                logger.info("Created payroll period %s", period.period_id)
            return current

        try:
            return await run_transaction(self.session_factory, create, self.max_attempts)
        except IntegrityError:
            # A concurrent caller created it first
            winner = await self.get_period(period.period_id)
            if winner is None:
                raise
            return winner
        except DBAPIError as exc:
            if not is_permission_denied(exc):
                raise
            winner = await self._reread_period_quietly(period.period_id)
            if winner is not None:
                logger.info(
                    "Payroll period %s exists but caller lacks create permission",
                    period.period_id,
                )
                return winner
            raise PeriodPermissionError(period.period_id) from exc

    async def _reread_period_quietly(self, period_id: str) -> PayrollPeriod | None:
        try:
            return await self.get_period(period_id)
        except DBAPIError as exc:
            if not is_permission_denied(exc):
                raise
            return None

    async def ensure_current_period(self, today: date | None = None) -> PayrollPeriod:
        """Ensure the period containing today exists."""
        return await self.ensure_period(current_period(today, self.calendar))

    async def get_period(self, period_id: str) -> PayrollPeriod | None:
        async with self.session_factory() as session:
            return await session.get(PayrollPeriod, period_id)

    async def require_period(self, period_id: str) -> PayrollPeriod:
        period = await self.get_period(period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    async def list_periods(
        self,
        limit: int = 20,
        ensure_current: bool = True,
        today: date | None = None,
    ) -> list[PayrollPeriod]:
        """Most recent periods first, creating the current one lazily."""
        if ensure_current:
            await self.ensure_current_period(today)
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayrollPeriod).order_by(PayrollPeriod.pay_date.desc()).limit(limit)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    @staticmethod
    def validate_category(entry_type: EntryType | str, category: object) -> None:
        """Raise InvalidCategoryError unless category belongs to entry_type."""
        value = _category_value(category)
        type_value = _category_value(entry_type)
        if type_value == EntryType.EARNING.value:
            allowed = EARNING_CATEGORIES
        elif type_value == EntryType.DEDUCTION.value:
            allowed = DEDUCTION_CATEGORIES
        else:
            raise InvalidCategoryError(type_value, value)
        if value not in allowed:
            raise InvalidCategoryError(type_value, value)

    async def add_entry(self, entry: EntryInput) -> str:
        """Insert an entry and apply it to period totals atomically.

        Returns:
            The new entry id

        Raises:
            InvalidCategoryError: If category does not match the entry type
            PeriodNotFoundError: If the period has not been ensured
            PeriodFinalizedError: If the period is finalized
            DuplicateEntryError: If a job earning for this employee/category exists
        """
        self.validate_category(entry.entry_type, entry.category)

        async def work(session: AsyncSession) -> str:
            period = await self.lock_period(session, entry.period_id)
            row = await self.insert_entry(session, period, entry)
            return row.entry_id

        try:
            return await run_transaction(self.session_factory, work, self.max_attempts)
        except IntegrityError:
            is_job_earning = (
                entry.job_id is not None and EntryType(entry.entry_type) == EntryType.EARNING
            )
            if is_job_earning and await self._job_earning_exists(entry):
                raise DuplicateEntryError(
                    entry.job_id, entry.employee_id, _category_value(entry.category)
                ) from None
            raise

    async def _job_earning_exists(self, entry: EntryInput) -> bool:
        async with self.session_factory() as session:
            found = await session.scalar(
                select(PayrollEntry.entry_id)
                .where(
                    PayrollEntry.job_id == entry.job_id,
                    PayrollEntry.entry_type == EntryType.EARNING.value,
                    PayrollEntry.employee_id == entry.employee_id,
                    PayrollEntry.category == _category_value(entry.category),
                )
                .limit(1)
            )
        return found is not None

    async def recalc_totals(self, period_id: str) -> PeriodTotals:
        """Recompute totals from every entry and overwrite the stored ones.

        Safe to call any time and repeatedly. A finalized period is never
        rewritten; its stored totals are returned.
        """

        async def work(session: AsyncSession) -> PeriodTotals:
            period = await self.lock_period(session, period_id)
            if not PeriodStateMachine.can_modify_entries(period.status):
                return period.totals
            return await self.recompute_totals(session, period)

        return await run_transaction(self.session_factory, work, self.max_attempts)

    async def override_amount(
        self,
        entry_id: str,
        new_amount: Decimal,
        adjusted_by: str,
        reason: str | None = None,
    ) -> PayrollEntry:
        """Manually change an entry's amount.

        The period totals move by the difference between the old and new
        signed contribution. ``original_amount`` is captured on the first
        override and never replaced.
        """

        async def work(session: AsyncSession) -> PayrollEntry:
            entry = await session.get(PayrollEntry, entry_id, with_for_update=True)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            period = await self.lock_period(session, entry.period_id)
            PeriodStateMachine.ensure_mutable(period.period_id, period.status)

            entry_type = entry.type
            old_amount = Decimal(entry.amount)
            new_stored = EntryBuilder.signed_amount(entry_type, new_amount)
            delta = EntryBuilder.contribution(entry_type, new_stored) - EntryBuilder.contribution(
                entry_type, old_amount
            )
            period.set_totals(EntryBuilder.apply_delta(period.totals, delta))

            if entry.override_original_amount is None:
                entry.override_original_amount = old_amount
            entry.amount = new_stored
            entry.override_adjusted_by = adjusted_by
            entry.override_adjusted_at = utcnow()
            if reason is not None:
                entry.override_reason = reason
            entry.updated_at = utcnow()
            await session.flush()

            logger.info(
                "Entry %s overridden by %s: %s -> %s",
                entry_id,
                adjusted_by,
                old_amount,
                new_stored,
            )
            return entry

        return await run_transaction(self.session_factory, work, self.max_attempts)

    async def get_entry(self, entry_id: str) -> PayrollEntry | None:
        async with self.session_factory() as session:
            return await session.get(PayrollEntry, entry_id)

    async def list_entries(self, period_id: str) -> list[PayrollEntry]:
        """Entries of a period in creation order.

        If the ordered query cannot be served (e.g. a missing index on a
        managed backend) the entries come back unordered instead.
        """
        async with self.session_factory() as session:
            try:
                return await self._fetch_entries(session, period_id, ordered=True)
            except DBAPIError as exc:
                logger.warning(
                    "Ordered entry query failed for period %s, falling back to unordered: %s",
                    period_id,
                    exc,
                )
                await session.rollback()
                return await self._fetch_entries(session, period_id, ordered=False)

    async def _fetch_entries(
        self, session: AsyncSession, period_id: str, ordered: bool
    ) -> list[PayrollEntry]:
        query = select(PayrollEntry).where(PayrollEntry.period_id == period_id)
        if ordered:
            query = query.order_by(PayrollEntry.created_at.asc(), PayrollEntry.entry_id.asc())
        result = await session.execute(query)
        return list(result.scalars().all())

    async def get_summary(self, period_id: str) -> PeriodSummary | None:
        """Period totals plus the per-employee breakdown."""
        period = await self.get_period(period_id)
        if period is None:
            return None

        rc = EntryBuilder.round_to_cents
        by_employee: dict[str, EmployeeTotals] = {}
        for entry in await self.list_entries(period_id):
            totals = by_employee.setdefault(
                entry.employee_id, EmployeeTotals(employee_id=entry.employee_id)
            )
            contribution = EntryBuilder.contribution(entry.type, Decimal(entry.amount))
            totals.gross = rc(totals.gross + contribution.gross)
            totals.deductions = rc(totals.deductions + contribution.deductions)
            totals.net = rc(totals.net + contribution.net)

        return PeriodSummary(
            period=period,
            totals=period.totals,
            by_employee=sorted(by_employee.values(), key=lambda t: t.employee_id),
        )

    # ------------------------------------------------------------------
    # Session-level primitives (caller owns the transaction)
    # ------------------------------------------------------------------

    @staticmethod
    async def lock_period(session: AsyncSession, period_id: str) -> PayrollPeriod:
        """Read the period row for update inside the current transaction."""
        result = await session.execute(
            select(PayrollPeriod).where(PayrollPeriod.period_id == period_id).with_for_update()
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    async def insert_entry(
        self, session: AsyncSession, period: PayrollPeriod, entry: EntryInput
    ) -> PayrollEntry:
        """Add an entry row and apply its contribution to the locked period."""
        self.validate_category(entry.entry_type, entry.category)
        PeriodStateMachine.ensure_mutable(period.period_id, period.status)

        entry_type = EntryType(_category_value(entry.entry_type))
        snapshot = entry.rate_snapshot
        row = PayrollEntry(
            entry_id=new_id(),
            period_id=period.period_id,
            employee_id=entry.employee_id,
            job_id=entry.job_id,
            entry_type=entry_type.value,
            category=_category_value(entry.category),
            amount=EntryBuilder.signed_amount(entry_type, entry.amount),
            hours=entry.hours,
            units=entry.units,
            rate_type=snapshot.type.value if snapshot else None,
            rate_amount=snapshot.amount if snapshot else None,
            description=entry.description,
            job_completed_at=entry.job_completed_at,
            source=Provenance(entry.source).value,
            created_at=utcnow(),
        )
        period.set_totals(
            EntryBuilder.apply_delta(
                period.totals, EntryBuilder.contribution(entry_type, row.amount)
            )
        )
        session.add(row)
        await session.flush()
        return row

    async def recompute_totals(self, session: AsyncSession, period: PayrollPeriod) -> PeriodTotals:
        """Sum every entry of the locked period and store the result."""
        result = await session.execute(
            select(PayrollEntry.amount).where(PayrollEntry.period_id == period.period_id)
        )
        totals = EntryBuilder.totals_from_amounts(Decimal(a) for a in result.scalars().all())
        if totals != period.totals:
            period.set_totals(totals)
            await session.flush()
        return totals

    @staticmethod
    async def delete_entries_by_source(
        session: AsyncSession, period_id: str, kinds: Iterable[Provenance]
    ) -> int:
        """Delete auto-managed entries of the given provenance kinds."""
        values = sorted(Provenance(k).value for k in kinds)
        result = await session.execute(
            delete(PayrollEntry)
            .where(PayrollEntry.period_id == period_id, PayrollEntry.source.in_(values))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
