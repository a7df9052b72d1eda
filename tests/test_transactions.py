"""Tests for the retrying transaction runner and optimistic concurrency."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm.exc import StaleDataError

from payroll_reconciler.database import (
    is_permission_denied,
    is_retryable_conflict,
    run_transaction,
)
from payroll_reconciler.errors import ConcurrencyConflictError
from payroll_reconciler.models import PayrollPeriod

JAN_15 = "2024-01-15"


class _PgError(Exception):
    def __init__(self, message: str, pgcode: str | None = None):
        super().__init__(message)
        self.pgcode = pgcode


def _dbapi_error(cls, message: str, pgcode: str | None = None):
    return cls("UPDATE payroll_period ...", {}, _PgError(message, pgcode))


class TestConflictClassification:
    def test_stale_data_is_retryable(self):
        assert is_retryable_conflict(StaleDataError("version mismatch"))

    @pytest.mark.parametrize("pgcode", ["40001", "40P01"])
    def test_serialization_failures_are_retryable(self, pgcode):
        assert is_retryable_conflict(_dbapi_error(OperationalError, "conflict", pgcode))

    def test_sqlite_lock_is_retryable(self):
        assert is_retryable_conflict(_dbapi_error(OperationalError, "database is locked"))

    def test_integrity_error_is_not_retryable(self):
        assert not is_retryable_conflict(_dbapi_error(IntegrityError, "duplicate key", "23505"))

    def test_permission_denied(self):
        assert is_permission_denied(_dbapi_error(ProgrammingError, "denied", "42501"))
        assert is_permission_denied(
            _dbapi_error(ProgrammingError, "permission denied for table payroll_period")
        )
        assert not is_permission_denied(ValueError("permission denied"))


class TestRunTransaction:
    async def test_commits_result(self, session_factory, period):
        async def work(session):
            stored = await session.get(PayrollPeriod, JAN_15)
            stored.gross = Decimal("10")
            stored.net = Decimal("10")
            return "done"

        assert await run_transaction(session_factory, work, max_attempts=3) == "done"

        async with session_factory() as session:
            assert (await session.get(PayrollPeriod, JAN_15)).net == Decimal("10.00")

    async def test_lost_update_is_retried(self, session_factory, period):
        """A writer that read stale totals retries against the fresh row."""
        attempts = []

        async def work(session):
            stored = await session.get(PayrollPeriod, JAN_15)
            attempts.append(stored.version)
            if len(attempts) == 1:
                async with session_factory() as other:
                    async with other.begin():
                        competitor = await other.get(PayrollPeriod, JAN_15)
                        competitor.gross = Decimal("5")
                        competitor.net = Decimal("5")
            stored.gross = stored.gross + Decimal("1")
            stored.net = stored.net + Decimal("1")
            await session.flush()

        await run_transaction(session_factory, work, max_attempts=3)

        assert len(attempts) == 2
        assert attempts[1] == attempts[0] + 1
        async with session_factory() as session:
            stored = await session.get(PayrollPeriod, JAN_15)
        assert stored.gross == Decimal("6.00")
        assert stored.version == attempts[0] + 2

    async def test_exhausted_retries_raise_conflict(self, session_factory):
        calls = 0

        async def work(session):
            nonlocal calls
            calls += 1
            raise StaleDataError("version mismatch")

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await run_transaction(session_factory, work, max_attempts=3)

        assert calls == 3
        assert exc_info.value.attempts == 3

    async def test_locked_database_retried(self, session_factory):
        calls = 0

        async def work(session):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise _dbapi_error(OperationalError, "database is locked")
            return calls

        assert await run_transaction(session_factory, work, max_attempts=3) == 2

    async def test_other_errors_propagate_immediately(self, session_factory):
        calls = 0

        async def work(session):
            nonlocal calls
            calls += 1
            raise _dbapi_error(IntegrityError, "duplicate key", "23505")

        with pytest.raises(IntegrityError):
            await run_transaction(session_factory, work, max_attempts=3)

        assert calls == 1

    async def test_failed_attempt_rolls_back(self, session_factory, period):
        async def work(session):
            stored = await session.get(PayrollPeriod, JAN_15)
            stored.gross = Decimal("99")
            stored.net = Decimal("99")
            await session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_transaction(session_factory, work, max_attempts=3)

        async with session_factory() as session:
            assert (await session.get(PayrollPeriod, JAN_15)).gross == Decimal("0.00")
