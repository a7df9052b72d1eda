"""Tests for re-pricing job earnings from current rates."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_reconciler.calculators.types import EntryInput, EntryType, Provenance
from payroll_reconciler.errors import PeriodFinalizedError, PeriodNotFoundError
from payroll_reconciler.services.finalize_service import PeriodFinalizer
from payroll_reconciler.services.job_sync_service import JobSyncService
from payroll_reconciler.services.rate_refresh_service import REFRESH_ACTOR, RateRefreshService

JAN_15 = "2024-01-15"
OLD_RATE_DATE = date(2023, 12, 1)


@pytest.fixture
def refresher(session_factory, ledger) -> RateRefreshService:
    return RateRefreshService(session_factory, ledger=ledger)


@pytest.fixture
def job_sync(session_factory, ledger, roles) -> JobSyncService:
    return JobSyncService(session_factory, roles, ledger=ledger)


class TestRefreshEntryRates:
    async def test_per_visit_repriced_as_override(self, refresher, job_sync, ledger, seed):
        await seed.rate("emp-e", "per_visit", "25", effective_date=OLD_RATE_DATE)
        await seed.job("job-1", date(2024, 1, 3), ["emp-e"])
        await job_sync.sync_job("job-1")
        await seed.rate("emp-e", "per_visit", "30", effective_date=date(2024, 1, 1))

        result = await refresher.refresh_entry_rates(JAN_15)

        assert result.updated == 1
        assert result.errors == []
        (entry,) = await ledger.list_entries(JAN_15)
        assert entry.amount == Decimal("30.00")
        assert entry.rate_amount == Decimal("30")
        assert entry.provenance == Provenance.AUTO_JOB
        assert entry.override.original_amount == Decimal("25.00")
        assert entry.override.adjusted_by == REFRESH_ACTOR
        assert "Rate refreshed from $25.00 to $30.00" in entry.override.reason
        assert (await ledger.get_period(JAN_15)).gross == Decimal("30.00")

    async def test_hourly_repriced_from_job_duration(self, refresher, job_sync, ledger, seed):
        await seed.rate("emp-h", "hourly", "20", effective_date=OLD_RATE_DATE)
        await seed.job("job-1", date(2024, 1, 3), ["emp-h"], duration_minutes=90)
        await job_sync.sync_job("job-1")
        await seed.rate("emp-h", "hourly", "24", effective_date=date(2024, 1, 1))

        result = await refresher.refresh_entry_rates(JAN_15)

        (entry,) = await ledger.list_entries(JAN_15)
        assert result.updated == 1
        assert entry.amount == Decimal("36.00")
        assert (await ledger.get_period(JAN_15)).net == Decimal("36.00")

    async def test_unchanged_rate_skipped(self, refresher, job_sync, ledger, seed):
        await seed.rate("emp-e", "per_visit", "25")
        await seed.job("job-1", date(2024, 1, 3), ["emp-e"])
        await job_sync.sync_job("job-1")

        result = await refresher.refresh_entry_rates(JAN_15)

        assert result.updated == 0
        assert result.skipped == 1
        (entry,) = await ledger.list_entries(JAN_15)
        assert entry.override is None

    async def test_unchanged_hourly_rate_skipped_for_short_job(
        self, refresher, job_sync, ledger, seed
    ):
        await seed.rate("emp-h", "hourly", "25")
        await seed.job("job-1", date(2024, 1, 3), ["emp-h"], duration_minutes=20)
        await job_sync.sync_job("job-1")

        result = await refresher.refresh_entry_rates(JAN_15)

        assert result.updated == 0
        assert result.skipped == 1
        (entry,) = await ledger.list_entries(JAN_15)
        assert entry.amount == Decimal("8.33")
        assert entry.override is None

    async def test_min_amount_filter(self, refresher, job_sync, ledger, seed):
        await seed.rate("emp-low", "per_visit", "5", effective_date=OLD_RATE_DATE)
        await seed.rate("emp-ok", "per_visit", "40", effective_date=OLD_RATE_DATE)
        await seed.job("job-1", date(2024, 1, 3), ["emp-low", "emp-ok"])
        await job_sync.sync_job("job-1")
        await seed.rate("emp-low", "per_visit", "25", effective_date=date(2024, 1, 1))
        await seed.rate("emp-ok", "per_visit", "45", effective_date=date(2024, 1, 1))

        result = await refresher.refresh_entry_rates(JAN_15, min_amount=Decimal("10"))

        assert result.updated == 1
        assert result.skipped == 1
        amounts = {e.employee_id: e.amount for e in await ledger.list_entries(JAN_15)}
        assert amounts == {"emp-low": Decimal("25.00"), "emp-ok": Decimal("40.00")}

    async def test_manual_entries_skipped(self, refresher, ledger, period):
        await ledger.add_entry(
            EntryInput(
                period_id=JAN_15,
                employee_id="emp-1",
                entry_type=EntryType.EARNING,
                category="per_visit",
                amount=Decimal("10"),
            )
        )

        result = await refresher.refresh_entry_rates(JAN_15)

        assert result.updated == 0
        assert result.skipped == 1

    async def test_rate_type_change_reported(self, refresher, job_sync, ledger, seed):
        await seed.rate("emp-e", "per_visit", "25", effective_date=OLD_RATE_DATE)
        await seed.job("job-1", date(2024, 1, 3), ["emp-e"])
        await job_sync.sync_job("job-1")
        await seed.rate("emp-e", "hourly", "20", effective_date=date(2024, 1, 1))

        result = await refresher.refresh_entry_rates(JAN_15)

        assert result.updated == 0
        assert len(result.errors) == 1
        assert "Rate type mismatch" in result.errors[0]
        (entry,) = await ledger.list_entries(JAN_15)
        assert entry.amount == Decimal("25.00")

    async def test_unknown_period(self, refresher):
        with pytest.raises(PeriodNotFoundError):
            await refresher.refresh_entry_rates("2030-01-01")

    async def test_finalized_period_rejected(self, refresher, session_factory, ledger, period):
        await PeriodFinalizer(session_factory, ledger=ledger).finalize(JAN_15, "ops")

        with pytest.raises(PeriodFinalizedError):
            await refresher.refresh_entry_rates(JAN_15)
