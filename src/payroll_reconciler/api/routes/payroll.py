"""Payroll period, entry and reconciliation endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from payroll_reconciler.api.dependencies import Finalizer, JobSync, Ledger, RateRefresh
from payroll_reconciler.api.schemas import (
    EntryCreate,
    EntryListResponse,
    EntryResponse,
    ErrorResponse,
    FinalizeRequest,
    FinalizeResponse,
    JobSyncResponse,
    MissingRatesResponse,
    MonthlySyncResponse,
    OverrideRequest,
    PeriodListResponse,
    PeriodResponse,
    PeriodSummaryResponse,
    PeriodSyncResponse,
    RateRefreshRequest,
    RateRefreshResponse,
    TotalsResponse,
)
from payroll_reconciler.calculators.period_calendar import period_from_id
from payroll_reconciler.calculators.types import EntryInput, Provenance
from payroll_reconciler.errors import EntryNotFoundError, PeriodNotFoundError

router = APIRouter(prefix="/payroll", tags=["payroll"])

PeriodId = Annotated[str, Path(pattern=r"^\d{4}-\d{2}-\d{2}$")]

NOT_FOUND = {404: {"model": ErrorResponse}}
CONFLICT = {409: {"model": ErrorResponse}}


# ============================================================================
# Periods
# ============================================================================


@router.get("/periods", response_model=PeriodListResponse)
async def list_periods(
    ledger: Ledger,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PeriodListResponse:
    """Most recent periods first; the current period is created if absent."""
    periods = await ledger.list_periods(limit=limit)
    return PeriodListResponse(items=[PeriodResponse.model_validate(p) for p in periods])


@router.put(
    "/periods/{period_id}",
    response_model=PeriodResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def ensure_period(ledger: Ledger, period_id: PeriodId) -> PeriodResponse:
    """Create the period if it does not exist yet."""
    period = await ledger.ensure_period(period_from_id(period_id, ledger.calendar))
    return PeriodResponse.model_validate(period)


@router.get("/periods/{period_id}", response_model=PeriodResponse, responses=NOT_FOUND)
async def get_period(ledger: Ledger, period_id: PeriodId) -> PeriodResponse:
    period = await ledger.require_period(period_id)
    return PeriodResponse.model_validate(period)


@router.get(
    "/periods/{period_id}/summary",
    response_model=PeriodSummaryResponse,
    responses=NOT_FOUND,
)
async def get_period_summary(ledger: Ledger, period_id: PeriodId) -> PeriodSummaryResponse:
    """Period totals broken down per employee."""
    summary = await ledger.get_summary(period_id)
    if summary is None:
        raise PeriodNotFoundError(period_id)
    return PeriodSummaryResponse.model_validate(summary)


@router.post(
    "/periods/{period_id}/recalc",
    response_model=TotalsResponse,
    responses=NOT_FOUND,
)
async def recalc_period(ledger: Ledger, period_id: PeriodId) -> TotalsResponse:
    """Recompute totals from every entry of the period."""
    totals = await ledger.recalc_totals(period_id)
    return TotalsResponse.model_validate(totals)


# ============================================================================
# Entries
# ============================================================================


@router.get(
    "/periods/{period_id}/entries",
    response_model=EntryListResponse,
    responses=NOT_FOUND,
)
async def list_entries(ledger: Ledger, period_id: PeriodId) -> EntryListResponse:
    await ledger.require_period(period_id)
    entries = await ledger.list_entries(period_id)
    return EntryListResponse(items=[EntryResponse.model_validate(e) for e in entries])


@router.post(
    "/periods/{period_id}/entries",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**NOT_FOUND, **CONFLICT, 422: {"model": ErrorResponse}},
)
async def add_entry(ledger: Ledger, period_id: PeriodId, payload: EntryCreate) -> EntryResponse:
    """Add a manual earning or deduction."""
    entry_id = await ledger.add_entry(
        EntryInput(
            period_id=period_id,
            employee_id=payload.employee_id,
            entry_type=payload.entry_type,
            category=payload.category,
            amount=payload.amount,
            job_id=payload.job_id,
            hours=payload.hours,
            units=payload.units,
            description=payload.description,
            source=Provenance.MANUAL,
        )
    )
    entry = await ledger.get_entry(entry_id)
    return EntryResponse.model_validate(entry)


@router.get("/entries/{entry_id}", response_model=EntryResponse, responses=NOT_FOUND)
async def get_entry(ledger: Ledger, entry_id: str) -> EntryResponse:
    entry = await ledger.get_entry(entry_id)
    if entry is None:
        raise EntryNotFoundError(entry_id)
    return EntryResponse.model_validate(entry)


@router.post(
    "/entries/{entry_id}/override",
    response_model=EntryResponse,
    responses={**NOT_FOUND, **CONFLICT},
)
async def override_entry(
    ledger: Ledger, entry_id: str, payload: OverrideRequest
) -> EntryResponse:
    """Change an entry's amount, keeping its original amount on record."""
    entry = await ledger.override_amount(
        entry_id, payload.amount, payload.adjusted_by, payload.reason
    )
    return EntryResponse.model_validate(entry)


# ============================================================================
# Reconciliation
# ============================================================================


@router.post(
    "/jobs/{job_id}/sync",
    response_model=JobSyncResponse,
    responses={**NOT_FOUND, **CONFLICT},
)
async def sync_job(job_sync: JobSync, job_id: str) -> JobSyncResponse:
    """Create earning entries for one completed job."""
    result = await job_sync.sync_job(job_id)
    return JobSyncResponse.model_validate(result)


@router.get(
    "/jobs/{job_id}/missing-rates",
    response_model=MissingRatesResponse,
    responses=NOT_FOUND,
)
async def job_missing_rates(job_sync: JobSync, job_id: str) -> MissingRatesResponse:
    missing = await job_sync.missing_rate_employee_ids_for_job(job_id)
    return MissingRatesResponse(count=len(missing), employee_ids=missing)


@router.post(
    "/periods/{period_id}/sync",
    response_model=PeriodSyncResponse,
    responses=CONFLICT,
)
async def sync_period(job_sync: JobSync, period_id: PeriodId) -> PeriodSyncResponse:
    """Sync every completed job of the period, then monthly attendance."""
    result = await job_sync.sync_period(period_id)
    return PeriodSyncResponse.model_validate(result)


@router.post(
    "/periods/{period_id}/sync-monthly",
    response_model=MonthlySyncResponse,
    responses=CONFLICT,
)
async def sync_monthly(job_sync: JobSync, period_id: PeriodId) -> MonthlySyncResponse:
    """Rebuild monthly base pay and missed-day deductions."""
    period = period_from_id(period_id, job_sync.calendar)
    result = await job_sync.monthly.sync_monthly(period)
    return MonthlySyncResponse.model_validate(result)


@router.get("/periods/{period_id}/missing-rates", response_model=MissingRatesResponse)
async def period_missing_rates(job_sync: JobSync, period_id: PeriodId) -> MissingRatesResponse:
    missing = await job_sync.missing_rate_employee_ids_for_period(period_id)
    return MissingRatesResponse(count=len(missing), employee_ids=missing)


@router.post(
    "/periods/{period_id}/refresh-rates",
    response_model=RateRefreshResponse,
    responses={**NOT_FOUND, **CONFLICT},
)
async def refresh_rates(
    refresher: RateRefresh,
    period_id: PeriodId,
    payload: RateRefreshRequest | None = None,
) -> RateRefreshResponse:
    """Re-price job earnings from the current rate table."""
    min_amount = payload.min_amount if payload else None
    result = await refresher.refresh_entry_rates(period_id, min_amount=min_amount)
    return RateRefreshResponse.model_validate(result)


@router.post(
    "/periods/{period_id}/finalize",
    response_model=FinalizeResponse,
    responses={**NOT_FOUND, **CONFLICT},
)
async def finalize_period(
    finalizer: Finalizer, period_id: PeriodId, payload: FinalizeRequest
) -> FinalizeResponse:
    """Finalize the period; repeating the call is harmless."""
    result = await finalizer.finalize(period_id, payload.finalized_by)
    return FinalizeResponse.model_validate(result)
