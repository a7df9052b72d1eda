"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.period_calendar import CalendarConfig
from payroll_reconciler.config import get_settings
from payroll_reconciler.database import init_db
from payroll_reconciler.services.directory import CachedRoleDirectory, SqlRoleDirectory
from payroll_reconciler.services.finalize_service import PeriodFinalizer
from payroll_reconciler.services.job_sync_service import JobSyncService
from payroll_reconciler.services.ledger_service import EntryLedger
from payroll_reconciler.services.rate_refresh_service import RateRefreshService


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory configured on the app, or the global one."""
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        _, factory = init_db()
        request.app.state.session_factory = factory
    return factory


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def get_db_session(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        yield session


def get_calendar() -> CalendarConfig:
    return CalendarConfig(split_day=get_settings().pay_split_day)


def get_ledger(
    factory: SessionFactory,
    calendar: Annotated[CalendarConfig, Depends(get_calendar)],
) -> EntryLedger:
    return EntryLedger(factory, calendar)


def get_roles(factory: SessionFactory) -> CachedRoleDirectory:
    """Owner lookups cached for the lifetime of one request."""
    return CachedRoleDirectory(SqlRoleDirectory(factory))


Ledger = Annotated[EntryLedger, Depends(get_ledger)]
Roles = Annotated[CachedRoleDirectory, Depends(get_roles)]


def get_job_sync(factory: SessionFactory, ledger: Ledger, roles: Roles) -> JobSyncService:
    return JobSyncService(factory, roles, ledger=ledger)


JobSync = Annotated[JobSyncService, Depends(get_job_sync)]


def get_finalizer(factory: SessionFactory, ledger: Ledger, job_sync: JobSync) -> PeriodFinalizer:
    return PeriodFinalizer(
        factory,
        ledger=ledger,
        missing_rates=job_sync.missing_rate_employee_ids_for_period,
    )


def get_rate_refresh(factory: SessionFactory, ledger: Ledger) -> RateRefreshService:
    return RateRefreshService(factory, ledger=ledger)


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Finalizer = Annotated[PeriodFinalizer, Depends(get_finalizer)]
RateRefresh = Annotated[RateRefreshService, Depends(get_rate_refresh)]
