"""Expense ledger adapter: one expense record per finalized period."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.models import Expense

PAYROLL_CATEGORY = "Payroll"


@dataclass(frozen=True)
class ExpenseDraft:
    """Expense to record for a finalized period."""

    payroll_period_id: str
    amount: Decimal
    paid_at: date
    memo: str


@dataclass(frozen=True)
class ExpenseRecordResult:
    expense_id: str
    is_new: bool


class ExpenseLedger(Protocol):
    """Write-once expense sink, used inside the finalize transaction."""

    async def find_for_period(self, session: AsyncSession, period_id: str) -> str | None:
        ...

    async def record(self, session: AsyncSession, draft: ExpenseDraft) -> ExpenseRecordResult:
        ...


class SqlExpenseLedger:
    """Expense ledger backed by the expense table.

    The existence check may run any number of times. Creation happens at most
    once: ``payroll_period_id`` is unique, so a racing second insert fails
    with IntegrityError and its whole transaction rolls back.
    """

    def __init__(self, vendor: str = "Payroll"):
        self.vendor = vendor

    async def find_for_period(self, session: AsyncSession, period_id: str) -> str | None:
        return await session.scalar(
            select(Expense.expense_id).where(Expense.payroll_period_id == period_id).limit(1)
        )

    async def record(self, session: AsyncSession, draft: ExpenseDraft) -> ExpenseRecordResult:
        existing = await self.find_for_period(session, draft.payroll_period_id)
        if existing is not None:
            return ExpenseRecordResult(expense_id=existing, is_new=False)

        expense = Expense(
            vendor=self.vendor,
            category=PAYROLL_CATEGORY,
            amount=draft.amount,
            paid_at=draft.paid_at,
            memo=draft.memo,
            payroll_period_id=draft.payroll_period_id,
        )
        session.add(expense)
        await session.flush()
        return ExpenseRecordResult(expense_id=expense.expense_id, is_new=True)
