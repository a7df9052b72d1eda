"""Payroll reconciler command line interface.

Operational entry points for scheduled reconciliation runs:
- Period sync (jobs plus monthly attendance)
- Single job sync
- Totals recompute
- Missing-rate report
- Finalization

Usage:
    payroll-reconciler sync-period 2024-01-15
    payroll-reconciler sync-job JOB_ID
    payroll-reconciler recalc 2024-01-15
    payroll-reconciler missing-rates 2024-01-15
    payroll-reconciler finalize 2024-01-15 --by ops@example.com
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.period_calendar import CalendarConfig, current_period
from payroll_reconciler.config import configure_logging, get_settings
from payroll_reconciler.database import dispose_db, init_db
from payroll_reconciler.errors import PayrollError
from payroll_reconciler.services.directory import CachedRoleDirectory, SqlRoleDirectory
from payroll_reconciler.services.finalize_service import PeriodFinalizer
from payroll_reconciler.services.job_sync_service import JobSyncService
from payroll_reconciler.services.ledger_service import EntryLedger

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


class ReconcilerCli:
    """Payroll reconciler command line interface."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_factory = session_factory
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="payroll-reconciler",
            description="Payroll ledger reconciliation tools",
        )
        parser.add_argument(
            "--log-level",
            type=str.upper,
            help="Override LOG_LEVEL for this run",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        sync_period = subparsers.add_parser(
            "sync-period",
            help="Sync every completed job of a period and reconcile monthly pay",
        )
        sync_period.add_argument(
            "period_id",
            nargs="?",
            help="Period id (pay date, YYYY-MM-DD); defaults to the current period",
        )
        sync_period.add_argument(
            "--today",
            type=parse_date,
            help="Reference date for the current period (ISO format)",
        )

        sync_job = subparsers.add_parser("sync-job", help="Create earning entries for one job")
        sync_job.add_argument("job_id", help="Job id")

        recalc = subparsers.add_parser("recalc", help="Recompute period totals from entries")
        recalc.add_argument("period_id", help="Period id (pay date, YYYY-MM-DD)")

        missing = subparsers.add_parser(
            "missing-rates",
            help="List employees with work in the period but no resolvable rate",
        )
        missing.add_argument("period_id", help="Period id (pay date, YYYY-MM-DD)")

        finalize = subparsers.add_parser("finalize", help="Finalize a period")
        finalize.add_argument("period_id", help="Period id (pay date, YYYY-MM-DD)")
        finalize.add_argument(
            "--by",
            dest="finalized_by",
            required=True,
            help="Who is finalizing the period",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        return asyncio.run(self.run_async(args))

    async def run_async(self, args: list[str] | None = None) -> int:
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level)

        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "sync-period": self._cmd_sync_period,
            "sync-job": self._cmd_sync_job,
            "recalc": self._cmd_recalc,
            "missing-rates": self._cmd_missing_rates,
            "finalize": self._cmd_finalize,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        owns_db = self.session_factory is None
        if owns_db:
            _, self.session_factory = init_db()
        try:
            return await handler(parsed)
        except PayrollError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        finally:
            if owns_db:
                await dispose_db()
                self.session_factory = None

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _calendar(self) -> CalendarConfig:
        return CalendarConfig(split_day=get_settings().pay_split_day)

    def _ledger(self) -> EntryLedger:
        assert self.session_factory is not None
        return EntryLedger(self.session_factory, self._calendar())

    def _job_sync(self, ledger: EntryLedger) -> JobSyncService:
        assert self.session_factory is not None
        roles = CachedRoleDirectory(SqlRoleDirectory(self.session_factory))
        return JobSyncService(self.session_factory, roles, ledger=ledger)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _cmd_sync_period(self, args: argparse.Namespace) -> int:
        ledger = self._ledger()
        period_id = args.period_id or current_period(args.today, ledger.calendar).period_id
        result = await self._job_sync(ledger).sync_period(period_id)

        print(f"Period {result.period_id}")
        print(f"  Jobs processed:   {result.processed_jobs}")
        print(f"  Entries created:  {result.created_entries}")
        print(f"  Jobs skipped:     {result.skipped_jobs}")
        if result.monthly is not None:
            print(
                f"  Monthly entries:  {result.monthly.created} created, "
                f"{result.monthly.removed} removed"
            )
        if result.missing_rate_employee_ids:
            print(f"  Missing rates:    {', '.join(result.missing_rate_employee_ids)}")
        if result.failed_job_ids:
            print(f"  Failed jobs:      {', '.join(result.failed_job_ids)}")
            return 1
        return 0

    async def _cmd_sync_job(self, args: argparse.Namespace) -> int:
        ledger = self._ledger()
        result = await self._job_sync(ledger).sync_job(args.job_id)

        print(f"Job {args.job_id}")
        print(f"  Period:           {result.period_id or '-'}")
        print(f"  Entries created:  {result.created_count}")
        print(f"  Already recorded: {result.duplicate_count}")
        if result.missing_rate_employee_ids:
            print(f"  Missing rates:    {', '.join(result.missing_rate_employee_ids)}")
        return 0

    async def _cmd_recalc(self, args: argparse.Namespace) -> int:
        totals = await self._ledger().recalc_totals(args.period_id)
        print(f"Period {args.period_id}")
        print(f"  Gross:       {totals.gross:>12,.2f}")
        print(f"  Deductions:  {totals.deductions:>12,.2f}")
        print(f"  Net:         {totals.net:>12,.2f}")
        return 0

    async def _cmd_missing_rates(self, args: argparse.Namespace) -> int:
        ledger = self._ledger()
        missing = await self._job_sync(ledger).missing_rate_employee_ids_for_period(
            args.period_id
        )
        if not missing:
            print(f"Period {args.period_id}: every employee has a rate")
            return 0
        print(f"Period {args.period_id}: {len(missing)} employee(s) without a rate")
        for employee_id in missing:
            print(f"  - {employee_id}")
        return 1

    async def _cmd_finalize(self, args: argparse.Namespace) -> int:
        assert self.session_factory is not None
        ledger = self._ledger()
        finalizer = PeriodFinalizer(
            self.session_factory,
            ledger=ledger,
            missing_rates=self._job_sync(ledger).missing_rate_employee_ids_for_period,
        )
        result = await finalizer.finalize(args.period_id, args.finalized_by)

        if result.already_finalized:
            print(f"Period {args.period_id} was already finalized")
        else:
            print(f"Period {args.period_id} finalized")
        print(f"  Net:         {result.totals.net:>12,.2f}")
        if result.expense_created:
            print(f"  Expense:     {result.expense_id}")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = ReconcilerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
