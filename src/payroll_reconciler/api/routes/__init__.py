"""API routes."""

from payroll_reconciler.api.routes.health import router as health_router
from payroll_reconciler.api.routes.imports import router as imports_router
from payroll_reconciler.api.routes.mandates import router as mandates_router
from payroll_reconciler.api.routes.payroll import router as payroll_router

__all__ = ["health_router", "imports_router", "mandates_router", "payroll_router"]
