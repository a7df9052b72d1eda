"""Records owned by neighbouring systems.

The engine reads employees and jobs and writes one expense per finalized
period; it never mutates the other two.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Date, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_reconciler.models.base import Base, TimestampMixin, UtcDateTime, new_id


class Employee(Base, TimestampMixin):
    """Employee directory row; only ``role`` matters to payroll."""

    __tablename__ = "employee"

    employee_id: Mapped[str] = mapped_column(String, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default="employee")


class ServiceJob(Base, TimestampMixin):
    """Service history record for one scheduled job."""

    __tablename__ = "service_job"

    job_id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    service_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    location_id: Mapped[str | None] = mapped_column(String, nullable=True)
    location_name: Mapped[str | None] = mapped_column(String, nullable=True)
    client_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    status_legacy: Mapped[str | None] = mapped_column(String, nullable=True)

    # Either a flat list of employee ids or the older [{"uid": ...}] shape
    assigned_employees: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    employee_assignments: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)


class Expense(Base, TimestampMixin):
    """Accounting expense line; at most one per payroll period."""

    __tablename__ = "expense"

    expense_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    vendor: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid_at: Mapped[date] = mapped_column(Date, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    payroll_period_id: Mapped[str | None] = mapped_column(
        String(10), nullable=True, unique=True
    )
