"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_reconciler import __version__
from payroll_reconciler.api.routes import (
    health_router,
    imports_router,
    mandates_router,
    payroll_router,
)
from payroll_reconciler.config import get_settings
from payroll_reconciler.database import dispose_db, init_db
from payroll_reconciler.logging_config import configure_logging
from payroll_reconciler.services.import_state import InvalidTransitionError
from payroll_reconciler.services.import_validation import InvalidPeriodLabelError
from payroll_reconciler.services.locking_service import EntryNotFoundError
from payroll_reconciler.services.payroll_service import InvalidPeriodError
from payroll_reconciler.services.reconciler import ImportTooLargeError
from payroll_reconciler.services.repository import (
    FatalPreconditionError,
    MandateNotFoundError,
    UpsertConflictError,
)

logger = logging.getLogger(__name__)

# Domain exception -> HTTP status. Subclasses are matched before their bases.
ERROR_STATUS: dict[type[Exception], int] = {
    MandateNotFoundError: status.HTTP_404_NOT_FOUND,
    EntryNotFoundError: status.HTTP_404_NOT_FOUND,
    ImportTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    InvalidPeriodError: status.HTTP_400_BAD_REQUEST,
    InvalidPeriodLabelError: status.HTTP_400_BAD_REQUEST,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    UpsertConflictError: status.HTTP_409_CONFLICT,
    FatalPreconditionError: status.HTTP_400_BAD_REQUEST,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging(get_settings().log_level)
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Reconciler API",
        description="Time-record import and payroll calculation for hospitality mandates",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Map a domain exception to its status and error code."""
        status_code = status.HTTP_400_BAD_REQUEST
        for error_type, error_status in ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code = error_status
                break
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": getattr(exc, "code", "BAD_REQUEST")},
        )

    for error_type in ERROR_STATUS:
        app.add_exception_handler(error_type, domain_exception_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(imports_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(mandates_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
