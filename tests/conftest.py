"""Pytest fixtures for payroll reconciler tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from payroll_reconciler.calculators.period_calendar import SemiMonthlyPeriod, period_from_id
from payroll_reconciler.database import create_session_factory
from payroll_reconciler.models import Base, Employee, EmployeeRate, PayrollPeriod, ServiceJob
from payroll_reconciler.services.directory import StaticRoleDirectory
from payroll_reconciler.services.ledger_service import EntryLedger

# First half of January 2024: work days Jan 1-15, paid Jan 15
JAN_15 = "2024-01-15"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so several sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def ledger(session_factory) -> EntryLedger:
    return EntryLedger(session_factory, max_attempts=3)


@pytest.fixture
def roles() -> StaticRoleDirectory:
    """Directory where only ``owner-1`` is an owner."""
    return StaticRoleDirectory({"owner-1"})


@pytest.fixture
def jan_period() -> SemiMonthlyPeriod:
    return period_from_id(JAN_15)


@pytest_asyncio.fixture
async def period(ledger: EntryLedger, jan_period: SemiMonthlyPeriod) -> PayrollPeriod:
    """Draft period paid 2024-01-15."""
    return await ledger.ensure_period(jan_period)


class Seeder:
    """Writes employees, rates and jobs the way neighbouring systems would."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _add(self, obj: Any) -> Any:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(obj)
        return obj

    async def employee(self, employee_id: str, role: str = "employee") -> Employee:
        return await self._add(Employee(employee_id=employee_id, role=role))

    async def rate(
        self,
        employee_id: str | None,
        rate_type: str | None,
        amount: str | None,
        effective_date: date | None = date(2024, 1, 1),
        location_id: str | None = None,
        client_id: str | None = None,
        created_at: datetime | None = None,
        legacy_fields: dict[str, Any] | None = None,
        employee_profile_id: str | None = None,
    ) -> EmployeeRate:
        rate = EmployeeRate(
            employee_id=employee_id,
            employee_profile_id=employee_profile_id,
            rate_type=rate_type,
            amount=Decimal(amount) if amount is not None else None,
            effective_date=effective_date,
            location_id=location_id,
            client_id=client_id,
            legacy_fields=legacy_fields or {},
        )
        if created_at is not None:
            rate.created_at = created_at
        return await self._add(rate)

    async def job(
        self,
        job_id: str,
        service_date: date,
        employees: list[str] | None,
        status: str | None = "completed",
        location_id: str | None = None,
        location_name: str | None = None,
        client_id: str | None = None,
        duration_minutes: int | None = None,
        **extra: Any,
    ) -> ServiceJob:
        return await self._add(
            ServiceJob(
                job_id=job_id,
                service_date=service_date,
                assigned_employees=employees,
                status=status,
                location_id=location_id,
                location_name=location_name,
                client_id=client_id,
                duration_minutes=duration_minutes,
                **extra,
            )
        )

    async def set_job_status(self, job_id: str, status: str) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                job = await session.get(ServiceJob, job_id)
                job.status = status


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)
