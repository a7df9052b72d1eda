"""Database connection, session management and transaction retries."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from payroll_reconciler.config import get_settings
from payroll_reconciler.errors import ConcurrencyConflictError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs that mean "another transaction won, try again"
RETRYABLE_SQLSTATES = {"40001", "40P01"}
PERMISSION_DENIED_SQLSTATE = "42501"


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by every service."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = create_session_factory(_engine)
    assert _session_factory is not None
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine, if any."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_retryable_conflict(exc: BaseException) -> bool:
    """Check if an error is a transient write conflict worth retrying."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        if _sqlstate(exc) in RETRYABLE_SQLSTATES:
            return True
        return "database is locked" in str(exc.orig).lower()
    return False


def is_permission_denied(exc: BaseException) -> bool:
    """Check if a database error is an authorization failure."""
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) == PERMISSION_DENIED_SQLSTATE:
        return True
    return "permission denied" in str(exc.orig).lower()


async def run_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    max_attempts: int | None = None,
) -> T:
    """Run ``work`` in one short transaction, retrying on write conflicts.

    Each attempt gets a fresh session so every read inside ``work`` observes
    the latest committed state. Retries are bounded; once exhausted the
    conflict surfaces to the caller as ConcurrencyConflictError.
    """
    attempts = max_attempts or get_settings().transaction_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await work(session)
        except (StaleDataError, DBAPIError) as exc:
            if not is_retryable_conflict(exc):
                raise
            if attempt == attempts:
                raise ConcurrencyConflictError(attempts) from exc
            logger.warning(
                "Transaction conflict on attempt %d/%d, retrying: %s",
                attempt,
                attempts,
                exc,
            )
    raise ConcurrencyConflictError(attempts)
