"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler import __version__
from payroll_reconciler.api.routes import health_router, payroll_router
from payroll_reconciler.database import dispose_db, init_db
from payroll_reconciler.errors import (
    ConcurrencyConflictError,
    DuplicateEntryError,
    EntryNotFoundError,
    InvalidCategoryError,
    InvalidPayDateError,
    InvalidTransitionError,
    JobNotFoundError,
    MissingRatesError,
    PayrollError,
    PeriodFinalizedError,
    PeriodNotFoundError,
    PeriodPermissionError,
)

logger = logging.getLogger(__name__)

# (HTTP status, error code) per domain error
ERROR_RESPONSES: dict[type[PayrollError], tuple[int, str]] = {
    PeriodNotFoundError: (status.HTTP_404_NOT_FOUND, "PERIOD_NOT_FOUND"),
    EntryNotFoundError: (status.HTTP_404_NOT_FOUND, "ENTRY_NOT_FOUND"),
    JobNotFoundError: (status.HTTP_404_NOT_FOUND, "JOB_NOT_FOUND"),
    PeriodFinalizedError: (status.HTTP_409_CONFLICT, "PERIOD_FINALIZED"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    DuplicateEntryError: (status.HTTP_409_CONFLICT, "DUPLICATE_ENTRY"),
    ConcurrencyConflictError: (status.HTTP_409_CONFLICT, "CONCURRENCY_CONFLICT"),
    MissingRatesError: (status.HTTP_409_CONFLICT, "MISSING_RATES"),
    InvalidCategoryError: (422, "INVALID_CATEGORY"),
    InvalidPayDateError: (422, "INVALID_PAY_DATE"),
    PeriodPermissionError: (status.HTTP_403_FORBIDDEN, "PERIOD_PERMISSION_DENIED"),
}


def error_response_for(exc: PayrollError) -> tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in ERROR_RESPONSES:
            return ERROR_RESPONSES[cls]
    return status.HTTP_400_BAD_REQUEST, "PAYROLL_ERROR"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    owns_db = getattr(app.state, "session_factory", None) is None
    if owns_db:
        _, app.state.session_factory = init_db()
    yield
    if owns_db:
        await dispose_db()


def create_app(session_factory: async_sessionmaker[AsyncSession] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        session_factory: Use this factory instead of the global database
    """
    app = FastAPI(
        title="Payroll Reconciler API",
        description="Semi-monthly payroll ledger and job reconciliation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        status_code, code = error_response_for(exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(payroll_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
