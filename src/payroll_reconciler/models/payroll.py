"""Payroll period, entry and employee rate models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_reconciler.calculators.types import (
    EntryOverride,
    EntryType,
    PeriodTotals,
    Provenance,
    RateSnapshot,
    RateType,
)
from payroll_reconciler.models.base import Base, TimestampMixin, UtcDateTime, new_id, utcnow


# ===== Pay Periods =====


class PayrollPeriod(Base, TimestampMixin):
    """Semi-monthly pay period with transactionally maintained totals.

    ``version`` is the optimistic concurrency token: every UPDATE checks it,
    so two writers that read the same totals cannot both commit.
    """

    __tablename__ = "payroll_period"

    period_id: Mapped[str] = mapped_column(String(10), primary_key=True)
    work_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    work_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    gross: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    deductions: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    net: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(
        UtcDateTime(), nullable=True
    )
    finalized_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'finalized')",
            name="payroll_period_status_check",
        ),
        CheckConstraint(
            "work_period_end > work_period_start",
            name="payroll_period_dates_check",
        ),
        CheckConstraint("gross >= 0", name="payroll_period_gross_check"),
        CheckConstraint("deductions >= 0", name="payroll_period_deductions_check"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def totals(self) -> PeriodTotals:
        return PeriodTotals(
            gross=Decimal(self.gross),
            deductions=Decimal(self.deductions),
            net=Decimal(self.net),
        )

    def set_totals(self, totals: PeriodTotals) -> None:
        self.gross = totals.gross
        self.deductions = totals.deductions
        self.net = totals.net
        self.updated_at = utcnow()


# ===== Ledger Entries =====


class PayrollEntry(Base, TimestampMixin):
    """One signed earning or deduction line within a period."""

    __tablename__ = "payroll_entry"

    entry_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    period_id: Mapped[str] = mapped_column(
        String(10),
        ForeignKey("payroll_period.period_id"),
        nullable=False,
    )
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    job_id: Mapped[str | None] = mapped_column(String, nullable=True)
    entry_type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    units: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Rate snapshot (immune to later rate edits)
    rate_type: Mapped[str | None] = mapped_column(String, nullable=True)
    rate_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_completed_at: Mapped[datetime | None] = mapped_column(
        UtcDateTime(), nullable=True
    )
    source: Mapped[str] = mapped_column(String, nullable=False, default=Provenance.MANUAL.value)

    # Override audit; original amount is fixed at the first override
    override_original_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    override_adjusted_by: Mapped[str | None] = mapped_column(String, nullable=True)
    override_adjusted_at: Mapped[datetime | None] = mapped_column(
        UtcDateTime(), nullable=True
    )
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)

    __table_args__ = (
        # One job earning per employee and category; deductions may repeat
        Index(
            "payroll_entry_job_employee_category_unique",
            "job_id",
            "employee_id",
            "category",
            unique=True,
            postgresql_where=text("entry_type = 'earning'"),
            sqlite_where=text("entry_type = 'earning'"),
        ),
        CheckConstraint(
            "entry_type IN ('earning', 'deduction')",
            name="payroll_entry_type_check",
        ),
        CheckConstraint(
            "(entry_type = 'earning' AND amount >= 0) "
            "OR (entry_type = 'deduction' AND amount <= 0)",
            name="payroll_entry_sign_check",
        ),
        Index("ix_payroll_entry_period_created", "period_id", "created_at"),
        Index("ix_payroll_entry_period_source", "period_id", "source"),
    )

    @property
    def type(self) -> EntryType:
        return EntryType(self.entry_type)

    @property
    def provenance(self) -> Provenance:
        return Provenance(self.source)

    @property
    def rate_snapshot(self) -> RateSnapshot | None:
        if self.rate_type is None or self.rate_amount is None:
            return None
        return RateSnapshot(type=RateType(self.rate_type), amount=Decimal(self.rate_amount))

    @property
    def override(self) -> EntryOverride | None:
        if self.override_original_amount is None or self.override_adjusted_at is None:
            return None
        return EntryOverride(
            original_amount=Decimal(self.override_original_amount),
            adjusted_by=self.override_adjusted_by or "",
            adjusted_at=self.override_adjusted_at,
            reason=self.override_reason,
        )


# ===== Pay Rates =====


class EmployeeRate(Base, TimestampMixin):
    """Administrator-maintained pay rate, optionally scoped.

    Historical records may lack ``rate_type``/``amount``/``effective_date``
    and carry their values under legacy keys in ``legacy_fields``; see
    ``normalize_rate_record``.
    """

    __tablename__ = "employee_rate"

    rate_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    employee_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    # Older records identify the employee by profile id only
    employee_profile_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    rate_type: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    location_id: Mapped[str | None] = mapped_column(String, nullable=True)
    client_id: Mapped[str | None] = mapped_column(String, nullable=True)
    legacy_fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "rate_type IS NULL OR rate_type IN ('per_visit', 'hourly', 'monthly')",
            name="employee_rate_type_check",
        ),
        CheckConstraint(
            "location_id IS NULL OR client_id IS NULL",
            name="employee_rate_single_scope_check",
        ),
        CheckConstraint(
            "employee_id IS NOT NULL OR employee_profile_id IS NOT NULL",
            name="employee_rate_employee_check",
        ),
    )

    @property
    def is_scoped(self) -> bool:
        return self.location_id is not None or self.client_id is not None

    def is_effective_on(self, as_of_date: date) -> bool:
        """Check if rate has taken effect on a given date."""
        return self.effective_date is not None and self.effective_date <= as_of_date
