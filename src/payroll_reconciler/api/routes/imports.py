"""Import endpoints: validate, confirm and timesheet upload."""

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Form, UploadFile, status

from payroll_reconciler.api.dependencies import AppSettings, DbSession, SessionFactory, TenantId
from payroll_reconciler.api.schemas import (
    ConfirmImportRequest,
    ConfirmImportResponse,
    EmployeeImportResponse,
    ErrorResponse,
    ManualPayrollEntryResponse,
    MatchedEmployee,
    TimesheetImportResponse,
    ValidatedEmployeeResponse,
    ValidationResponse,
    ValidationStatisticsResponse,
)
from payroll_reconciler.importing.normalizer import CsvRecordNormalizer
from payroll_reconciler.services.import_validation import (
    ConfirmedImport,
    ImportValidationService,
    ReviewedEmployee,
)
from payroll_reconciler.services.reconciler import ImportReconciler

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post(
    "/validate",
    response_model=ValidationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def validate_import(
    db: DbSession,
    tenant_id: TenantId,
    settings: AppSettings,
    file: Annotated[UploadFile, File()],
    mandate_id: Annotated[UUID, Form()],
    default_hourly_rate: Annotated[Decimal | None, Form(ge=0)] = None,
    delimiter: Annotated[str, Form(min_length=1, max_length=1)] = ";",
) -> ValidationResponse:
    """Preview an import file. Nothing is written."""
    rows = CsvRecordNormalizer(delimiter=delimiter).normalize(await file.read())
    service = ImportValidationService(db, settings.imports, settings.payroll)
    report = await service.validate(
        rows,
        mandate_id,
        default_hourly_rate,
        tenant_id=tenant_id,
        filename=file.filename,
    )

    return ValidationResponse(
        filename=report.filename,
        employees=[
            ValidatedEmployeeResponse(
                external_id=e.identity.external_id,
                first_name=e.identity.first_name,
                last_name=e.identity.last_name,
                total_hours=e.total_hours,
                matched_employee=MatchedEmployee.model_validate(e.matched_employee)
                if e.matched_employee is not None
                else None,
                match_type=e.match_type.value,
                match_confidence=e.match_confidence,
                proposed_hourly_rate=e.proposed_hourly_rate,
                rate_source=e.rate_source,
                estimated_cost=e.estimated_cost,
                needs_review=e.needs_review,
                issues=e.issues,
                row_numbers=e.row_numbers,
            )
            for e in report.employees
        ],
        statistics=ValidationStatisticsResponse(**vars(report.statistics)),
        errors=report.errors,
        can_proceed=report.can_proceed,
    )


@router.post(
    "/confirm",
    response_model=ConfirmImportResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def confirm_import(
    db: DbSession,
    tenant_id: TenantId,
    settings: AppSettings,
    payload: ConfirmImportRequest,
) -> ConfirmImportResponse:
    """Write a reviewed monthly summary and record it in the import history."""
    request = ConfirmedImport(
        mandate_id=payload.mandate_id,
        period=payload.period,
        employees=[ReviewedEmployee(**e.model_dump()) for e in payload.employees],
        filename=payload.filename,
        default_hourly_rate=payload.default_hourly_rate,
        social_charge_rate_percent=payload.social_charge_rate,
    )
    service = ImportValidationService(db, settings.imports, settings.payroll)
    result = await service.confirm(request, tenant_id=tenant_id)
    await db.commit()

    return ConfirmImportResponse(
        entry=ManualPayrollEntryResponse.model_validate(result.manual_entry),
        outcome=result.outcome.value,
        import_history_id=result.import_history_id,
        total_employees=result.total_employees,
        total_hours=result.total_hours,
        total_gross=result.total_gross,
        social_charges=result.social_charges,
        total_cost=result.total_cost,
        employees_created=result.employees_created,
        employees_updated=result.employees_updated,
    )


@router.post(
    "/timesheet",
    response_model=TimesheetImportResponse,
    responses={404: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
)
async def import_timesheet(
    session_factory: SessionFactory,
    tenant_id: TenantId,
    settings: AppSettings,
    file: Annotated[UploadFile, File()],
    mandate_id: Annotated[UUID, Form()],
    default_hourly_rate: Annotated[Decimal | None, Form(ge=0)] = None,
    delimiter: Annotated[str, Form(min_length=1, max_length=1)] = ";",
) -> TimesheetImportResponse:
    """Import attendance rows. Chunks commit independently."""
    rows = CsvRecordNormalizer(delimiter=delimiter).normalize(await file.read())
    reconciler = ImportReconciler(session_factory, settings.imports, settings.payroll)
    result = await reconciler.reconcile(
        rows,
        mandate_id,
        default_hourly_rate,
        tenant_id=tenant_id,
        filename=file.filename,
    )

    return TimesheetImportResponse(
        import_history_id=result.import_history_id,
        status=result.status.value,
        total_rows=result.total_rows,
        created=result.created,
        updated=result.updated,
        skipped=result.skipped,
        errors=result.errors,
        needs_review=result.needs_review,
        can_proceed=result.can_proceed,
        employees=[
            EmployeeImportResponse(
                employee_id=e.employee_id,
                external_id=e.identity.external_id,
                first_name=e.identity.first_name,
                last_name=e.identity.last_name,
                match_type=e.match_type.value,
                match_confidence=e.confidence,
                employee_created=e.employee_created,
                total_hours=e.total_hours,
                hourly_rate=e.hourly_rate,
                rate_source=e.rate_source,
                gross_amount=e.gross_amount,
                needs_review=e.needs_review,
                issues=e.issues,
            )
            for e in result.employees
        ],
    )
