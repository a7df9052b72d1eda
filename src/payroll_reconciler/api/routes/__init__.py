"""API routes."""

from payroll_reconciler.api.routes.health import router as health_router
from payroll_reconciler.api.routes.payroll import router as payroll_router

__all__ = ["payroll_router", "health_router"]
