"""ORM models."""

from payroll_reconciler.models.base import Base, TimestampMixin
from payroll_reconciler.models.external import Employee, Expense, ServiceJob
from payroll_reconciler.models.payroll import EmployeeRate, PayrollEntry, PayrollPeriod

__all__ = [
    "Base",
    "TimestampMixin",
    "Employee",
    "EmployeeRate",
    "Expense",
    "PayrollEntry",
    "PayrollPeriod",
    "ServiceJob",
]
