"""Payroll reconciler services."""

from payroll_reconciler.services.attendance_service import (
    MonthlyAttendanceReconciler,
    MonthlySyncResult,
)
from payroll_reconciler.services.directory import (
    CachedRoleDirectory,
    RoleDirectory,
    SqlRoleDirectory,
    StaticRoleDirectory,
)
from payroll_reconciler.services.finalize_service import FinalizeResult, PeriodFinalizer
from payroll_reconciler.services.job_sync_service import (
    JobSyncResult,
    JobSyncService,
    PeriodSyncResult,
)
from payroll_reconciler.services.ledger_service import EntryLedger, PeriodSummary
from payroll_reconciler.services.rate_refresh_service import RateRefreshResult, RateRefreshService
from payroll_reconciler.services.state_machine import PeriodStateMachine, PeriodStatus
from payroll_reconciler.services.subscriptions import LedgerFeed

__all__ = [
    "CachedRoleDirectory",
    "EntryLedger",
    "FinalizeResult",
    "JobSyncResult",
    "JobSyncService",
    "LedgerFeed",
    "MonthlyAttendanceReconciler",
    "MonthlySyncResult",
    "PeriodFinalizer",
    "PeriodStateMachine",
    "PeriodStatus",
    "PeriodSummary",
    "PeriodSyncResult",
    "RateRefreshResult",
    "RateRefreshService",
    "RoleDirectory",
    "SqlRoleDirectory",
    "StaticRoleDirectory",
]
