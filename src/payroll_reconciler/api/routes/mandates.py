"""Mandate-scoped endpoints: import history and manual payroll."""

from typing import Annotated

from fastapi import APIRouter, Query, Response, status

from payroll_reconciler.api.dependencies import AppSettings, DbSession, TenantMandate
from payroll_reconciler.api.schemas import (
    ErrorResponse,
    ImportHistoryListResponse,
    ImportHistoryResponse,
    ManualPayrollEntryCreate,
    ManualPayrollEntryResponse,
    ManualPayrollListResponse,
)
from payroll_reconciler.services.import_history import ImportHistoryService
from payroll_reconciler.services.manual_payroll import ManualPayrollService
from payroll_reconciler.services.repository import UpsertConflictError, UpsertOutcome

router = APIRouter(prefix="/mandates", tags=["mandates"])


@router.get(
    "/{mandate_id}/imports",
    response_model=ImportHistoryListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_imports(
    db: DbSession,
    mandate: TenantMandate,
    year: Annotated[int | None, Query(ge=2000, le=2100)] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ImportHistoryListResponse:
    """Page through a mandate's imports, newest first."""
    items, total = await ImportHistoryService(db).list_history(
        mandate.mandate_id, year=year, limit=limit, offset=offset
    )
    return ImportHistoryListResponse(
        items=[ImportHistoryResponse.model_validate(h) for h in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{mandate_id}/payroll/manual",
    response_model=ManualPayrollListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_manual_entries(
    db: DbSession,
    settings: AppSettings,
    mandate: TenantMandate,
    year: Annotated[int | None, Query(ge=2000, le=2100)] = None,
) -> ManualPayrollListResponse:
    """List manual monthly payroll entries, newest month first."""
    entries = await ManualPayrollService(db, settings.payroll).list_entries(mandate.mandate_id, year)
    return ManualPayrollListResponse(
        items=[ManualPayrollEntryResponse.model_validate(e) for e in entries]
    )


@router.post(
    "/{mandate_id}/payroll/manual",
    response_model=ManualPayrollEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def upsert_manual_entry(
    db: DbSession,
    settings: AppSettings,
    mandate: TenantMandate,
    payload: ManualPayrollEntryCreate,
    response: Response,
) -> ManualPayrollEntryResponse:
    """Create or replace the manual payroll entry of a month."""
    entry, outcome = await ManualPayrollService(db, settings.payroll).upsert_entry(
        mandate.mandate_id,
        payload.year,
        payload.month,
        payload.gross_amount,
        social_charges=payload.social_charges,
        employee_count=payload.employee_count,
        notes=payload.notes,
    )
    if outcome == UpsertOutcome.CONFLICT:
        raise UpsertConflictError(
            "manual_payroll_entry",
            {"mandate_id": mandate.mandate_id, "year": payload.year, "month": payload.month},
        )
    await db.commit()

    if outcome == UpsertOutcome.CREATED:
        response.status_code = status.HTTP_201_CREATED
    return ManualPayrollEntryResponse.model_validate(entry)
