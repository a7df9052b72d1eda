"""Period finalization: draft -> finalized, plus one payroll expense."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.entry_builder import EntryBuilder
from payroll_reconciler.calculators.types import PeriodTotals
from payroll_reconciler.config import get_settings
from payroll_reconciler.database import run_transaction
from payroll_reconciler.errors import MissingRatesError
from payroll_reconciler.models import PayrollPeriod
from payroll_reconciler.models.base import utcnow
from payroll_reconciler.services.expenses import ExpenseDraft, ExpenseLedger, SqlExpenseLedger
from payroll_reconciler.services.ledger_service import EntryLedger
from payroll_reconciler.services.state_machine import PeriodStateMachine, PeriodStatus

logger = logging.getLogger(__name__)

MissingRatesCheck = Callable[[str], Awaitable[list[str]]]


@dataclass(frozen=True)
class FinalizeResult:
    totals: PeriodTotals
    expense_created: bool
    already_finalized: bool
    expense_id: str | None = None


def expense_memo(period: PayrollPeriod) -> str:
    """Human-readable work range, both ends inclusive."""
    last_work_day = period.work_period_end - timedelta(days=1)
    return f"Payroll for {period.work_period_start.isoformat()} - {last_work_day.isoformat()}"


class PeriodFinalizer:
    """Finalizes a period exactly once.

    Recompute, status flip and expense insert share one transaction: either
    the period ends up finalized with its totals and at most one expense, or
    it stays in draft. A second call reports ``already_finalized`` and
    changes nothing.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: EntryLedger | None = None,
        expenses: ExpenseLedger | None = None,
        missing_rates: MissingRatesCheck | None = None,
        block_on_missing_rates: bool | None = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.ledger = ledger or EntryLedger(session_factory)
        self.expenses = expenses or SqlExpenseLedger(vendor=settings.expense_vendor)
        self.missing_rates = missing_rates
        if block_on_missing_rates is None:
            block_on_missing_rates = settings.finalize_block_on_missing_rates
        self.block_on_missing_rates = block_on_missing_rates

    async def finalize(self, period_id: str, finalized_by: str) -> FinalizeResult:
        """Finalize a period and record its payroll expense.

        Raises:
            PeriodNotFoundError: If the period does not exist
            MissingRatesError: If blocking is enabled and employees lack rates
        """
        period = await self.ledger.require_period(period_id)
        if period.status == PeriodStatus.FINALIZED:
            return FinalizeResult(
                totals=period.totals, expense_created=False, already_finalized=True
            )

        if self.block_on_missing_rates and self.missing_rates is not None:
            missing = await self.missing_rates(period_id)
            if missing:
                raise MissingRatesError(period_id, missing)

        async def work(session: AsyncSession) -> FinalizeResult:
            current = await self.ledger.lock_period(session, period_id)
            if current.status == PeriodStatus.FINALIZED:
                return FinalizeResult(
                    totals=current.totals, expense_created=False, already_finalized=True
                )

            totals = await self.ledger.recompute_totals(session, current)
            PeriodStateMachine.validate_transition(current.status, PeriodStatus.FINALIZED)
            now = utcnow()
            current.status = PeriodStatus.FINALIZED.value
            current.finalized_at = now
            current.finalized_by = finalized_by
            current.updated_at = now
            await session.flush()

            if not EntryBuilder.is_nonzero(totals.net):
                return FinalizeResult(
                    totals=totals, expense_created=False, already_finalized=False
                )

            recorded = await self.expenses.record(
                session,
                ExpenseDraft(
                    payroll_period_id=period_id,
                    amount=EntryBuilder.round_to_cents(totals.net),
                    paid_at=current.pay_date,
                    memo=expense_memo(current),
                ),
            )
            return FinalizeResult(
                totals=totals,
                expense_created=recorded.is_new,
                already_finalized=False,
                expense_id=recorded.expense_id,
            )

        try:
            result = await run_transaction(self.session_factory, work, self.ledger.max_attempts)
        except IntegrityError:
            # The expense insert lost to a concurrent finalizer, which committed
            stored = await self.ledger.require_period(period_id)
            if stored.status != PeriodStatus.FINALIZED:
                raise
            return FinalizeResult(
                totals=stored.totals, expense_created=False, already_finalized=True
            )

        if not result.already_finalized:
            logger.info(
                "Finalized payroll period %s by %s: net %s, expense %s",
                period_id,
                finalized_by,
                result.totals.net,
                result.expense_id or "none",
            )
        return result
