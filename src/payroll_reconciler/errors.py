"""Domain exceptions for the payroll reconciler.

Data-quality gaps (an assignment with no resolvable rate) are never raised;
they are returned to callers as part of sync results. Everything here is an
invariant violation or an operational failure the caller must handle.
"""

from __future__ import annotations

from collections.abc import Iterable


class PayrollError(Exception):
    """Base class for payroll reconciler errors."""


class InvalidCategoryError(PayrollError):
    """Raised when an entry category does not belong to its entry type."""

    def __init__(self, entry_type: str, category: str):
        self.entry_type = entry_type
        self.category = category
        super().__init__(f"Invalid {entry_type} category '{category}'")


class PeriodNotFoundError(PayrollError):
    """Raised when a payroll period does not exist."""

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(
            f"Payroll period {period_id} does not exist. Call ensure_period first."
        )


class EntryNotFoundError(PayrollError):
    """Raised when a payroll entry does not exist."""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Payroll entry {entry_id} not found")


class JobNotFoundError(PayrollError):
    """Raised when a job record does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class PeriodFinalizedError(PayrollError):
    """Raised when a ledger mutation targets a finalized period."""

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(
            f"Payroll period {period_id} is finalized; "
            "corrections must be made as out-of-band adjustments"
        )


class InvalidTransitionError(PayrollError):
    """Raised when an invalid period status transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidPayDateError(PayrollError, ValueError):
    """Raised when a date or id does not name a semi-monthly pay date."""

    def __init__(self, value: object, split_day: int):
        self.value = value
        self.split_day = split_day
        super().__init__(
            f"Invalid pay date: {value}. Semi-monthly pay dates must be the 1st "
            f"or the {split_day}th of the month."
        )


class PeriodPermissionError(PayrollError):
    """Raised when a period is absent and the caller may not create it."""

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(
            f"Not permitted to create payroll period {period_id}. "
            "Please contact an administrator."
        )


class DuplicateEntryError(PayrollError):
    """Raised when a job earning already exists for the employee and category."""

    def __init__(self, job_id: str | None, employee_id: str, category: str):
        self.job_id = job_id
        self.employee_id = employee_id
        self.category = category
        super().__init__(
            f"Earning '{category}' for employee {employee_id} on job {job_id} already exists"
        )


class ConcurrencyConflictError(PayrollError):
    """Raised when a transaction keeps conflicting after bounded retries."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Transaction aborted after {attempts} conflicting attempt(s)")


class MissingRatesError(PayrollError):
    """Raised when finalization is blocked by employees without a rate."""

    def __init__(self, period_id: str, employee_ids: Iterable[str]):
        self.period_id = period_id
        self.employee_ids = sorted(employee_ids)
        super().__init__(
            f"Payroll period {period_id} has {len(self.employee_ids)} employee(s) "
            f"without a resolvable rate: {', '.join(self.employee_ids)}"
        )
