"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from payroll_reconciler.calculators.types import EntryType, RateType


# ============================================================================
# Periods
# ============================================================================


class TotalsResponse(BaseModel):
    """Gross, deductions and signed net of a period or employee."""

    model_config = ConfigDict(from_attributes=True)

    gross: Decimal
    deductions: Decimal
    net: Decimal


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: str
    work_period_start: date
    work_period_end: date
    pay_date: date
    status: str
    gross: Decimal
    deductions: Decimal
    net: Decimal
    version: int
    created_at: datetime
    updated_at: datetime | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None


class PeriodListResponse(BaseModel):
    items: list[PeriodResponse]


class EmployeeTotalsResponse(TotalsResponse):
    employee_id: str


class PeriodSummaryResponse(BaseModel):
    """Period totals with the per-employee breakdown."""

    model_config = ConfigDict(from_attributes=True)

    period: PeriodResponse
    totals: TotalsResponse
    by_employee: list[EmployeeTotalsResponse]


# ============================================================================
# Entries
# ============================================================================


class RateSnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: RateType
    amount: Decimal


class OverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_amount: Decimal
    adjusted_by: str
    adjusted_at: datetime
    reason: str | None = None


class EntryResponse(BaseModel):
    """Schema for payroll entry response."""

    model_config = ConfigDict(from_attributes=True)

    entry_id: str
    period_id: str
    employee_id: str
    job_id: str | None = None
    entry_type: EntryType
    category: str
    amount: Decimal
    hours: Decimal | None = None
    units: int | None = None
    rate_snapshot: RateSnapshotResponse | None = None
    description: str | None = None
    job_completed_at: datetime | None = None
    source: str
    override: OverrideResponse | None = None
    created_at: datetime
    updated_at: datetime | None = None


class EntryListResponse(BaseModel):
    items: list[EntryResponse]


class EntryCreate(BaseModel):
    """Manual entry; the amount may be given with either sign."""

    employee_id: str = Field(min_length=1)
    entry_type: EntryType
    category: str
    amount: Decimal
    job_id: str | None = None
    hours: Decimal | None = None
    units: int | None = None
    description: str | None = None


class OverrideRequest(BaseModel):
    amount: Decimal
    adjusted_by: str = Field(min_length=1)
    reason: str | None = None


# ============================================================================
# Reconciliation
# ============================================================================


class JobSyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created_count: int
    period_id: str | None = None
    missing_rate_employee_ids: list[str]
    has_monthly_assignments: bool
    duplicate_count: int


class MonthlySyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created: int
    removed: int


class PeriodSyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period_id: str
    processed_jobs: int
    created_entries: int
    skipped_jobs: int
    missing_rate_employee_ids: list[str]
    failed_job_ids: list[str]
    monthly: MonthlySyncResponse | None = None


class MissingRatesResponse(BaseModel):
    """Employees that need a rate before payroll is complete."""

    count: int
    employee_ids: list[str]


class RateRefreshRequest(BaseModel):
    min_amount: Decimal | None = None


class RateRefreshResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    updated: int
    skipped: int
    errors: list[str]


class FinalizeRequest(BaseModel):
    finalized_by: str = Field(min_length=1)


class FinalizeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    totals: TotalsResponse
    expense_created: bool
    expense_id: str | None = None
    already_finalized: bool


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str
