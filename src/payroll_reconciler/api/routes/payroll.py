"""Payroll calculation and entry locking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from payroll_reconciler.api.dependencies import AppSettings, DbSession, TenantId
from payroll_reconciler.api.schemas import (
    CalculatePayrollRequest,
    CalculatePayrollResponse,
    EmployeePayrollResponse,
    ErrorResponse,
    LockPeriodRequest,
    LockPeriodResponse,
    MandatePayrollResponse,
    PayrollEntryResponse,
    PayrollTotalsResponse,
    PeriodResultResponse,
)
from payroll_reconciler.calculators.types import PeriodResult
from payroll_reconciler.services.locking_service import LockingService
from payroll_reconciler.services.payroll_service import PayrollCalculationService, PayrollTotals

router = APIRouter(prefix="/payroll", tags=["payroll"])


def _period_response(result: PeriodResult) -> PeriodResultResponse:
    return PeriodResultResponse(
        payroll_entry_id=result.payroll_entry_id,
        period_start=result.period.start,
        period_end=result.period.end,
        period_type=result.period.period_type.value,
        is_locked=result.is_locked,
        recomputed=result.recomputed,
        **result.figures.to_dict(),
    )


def _totals_response(totals: PayrollTotals) -> PayrollTotalsResponse:
    return PayrollTotalsResponse(**vars(totals))


# ============================================================================
# Calculation
# ============================================================================


@router.post(
    "/calculate",
    response_model=CalculatePayrollResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def calculate_payroll(
    db: DbSession,
    tenant_id: TenantId,
    settings: AppSettings,
    payload: CalculatePayrollRequest,
) -> CalculatePayrollResponse:
    """Calculate payroll for one mandate, or every active mandate of the tenant."""
    service = PayrollCalculationService(db, settings.payroll)
    result = await service.calculate(
        payload.period_start,
        payload.period_end,
        payload.period_type,
        mandate_id=payload.mandate_id,
        recalculate=payload.recalculate,
        tenant_id=tenant_id,
    )
    await db.commit()

    return CalculatePayrollResponse(
        period_start=result.period_start,
        period_end=result.period_end,
        period_type=result.period_type.value,
        mandates=[
            MandatePayrollResponse(
                mandate_id=m.mandate_id,
                mandate_name=m.mandate_name,
                employee_count=m.employee_count,
                totals=_totals_response(m.totals),
                employees=[
                    EmployeePayrollResponse(
                        employee_id=e.employee_id,
                        external_id=e.external_id,
                        employee_name=e.employee_name,
                        periods=[_period_response(p) for p in e.periods],
                    )
                    for e in m.employees
                ],
            )
            for m in result.mandates
        ],
        totals=_totals_response(result.totals),
    )


# ============================================================================
# Locking
# ============================================================================


@router.post(
    "/entries/{payroll_entry_id}/lock",
    response_model=PayrollEntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def lock_entry(
    db: DbSession,
    tenant_id: TenantId,
    payroll_entry_id: Annotated[UUID, Path()],
) -> PayrollEntryResponse:
    """Lock an entry. Idempotent."""
    entry = await LockingService(db).lock_entry(payroll_entry_id, tenant_id)
    await db.commit()
    return PayrollEntryResponse.model_validate(entry)


@router.post(
    "/entries/{payroll_entry_id}/unlock",
    response_model=PayrollEntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def unlock_entry(
    db: DbSession,
    tenant_id: TenantId,
    payroll_entry_id: Annotated[UUID, Path()],
) -> PayrollEntryResponse:
    """Unlock an entry so the next calculation recomputes it."""
    entry = await LockingService(db).unlock_entry(payroll_entry_id, tenant_id)
    await db.commit()
    return PayrollEntryResponse.model_validate(entry)


@router.post(
    "/lock-period",
    response_model=LockPeriodResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def lock_period(
    db: DbSession,
    tenant_id: TenantId,
    payload: LockPeriodRequest,
) -> LockPeriodResponse:
    """Lock every unlocked entry of a mandate whose period starts in the range."""
    locked = await LockingService(db).lock_period(
        payload.mandate_id,
        payload.period_start,
        payload.period_end,
        payload.period_type,
        tenant_id=tenant_id,
    )
    await db.commit()
    return LockPeriodResponse(mandate_id=payload.mandate_id, locked=locked)
