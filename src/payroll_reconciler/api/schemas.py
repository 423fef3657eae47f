"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

MatchTypeValue = Literal["exact", "partial", "none"]
PeriodTypeValue = Literal["WEEKLY", "MONTHLY"]


class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""

    detail: str
    code: str


# ============================================================================
# Import validation schemas
# ============================================================================


class MatchedEmployee(BaseModel):
    """Registered employee a row was matched to."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    external_id: str
    first_name: str
    last_name: str
    hourly_rate: Decimal | None = None
    position: str | None = None
    is_active: bool


class ValidatedEmployeeResponse(BaseModel):
    external_id: str | None = None
    first_name: str
    last_name: str
    total_hours: Decimal
    matched_employee: MatchedEmployee | None = None
    match_type: MatchTypeValue
    match_confidence: int
    proposed_hourly_rate: Decimal
    rate_source: str
    estimated_cost: Decimal
    needs_review: bool
    issues: list[str]
    row_numbers: list[int]


class ValidationStatisticsResponse(BaseModel):
    total_employees: int
    exact_matches: int
    partial_matches: int
    no_matches: int
    needs_review: int
    total_hours: Decimal
    estimated_total_cost: Decimal


class ValidationResponse(BaseModel):
    """Result of validating an import file; nothing is written."""

    filename: str | None = None
    employees: list[ValidatedEmployeeResponse]
    statistics: ValidationStatisticsResponse
    errors: list[str]
    can_proceed: bool


# ============================================================================
# Confirmed import schemas
# ============================================================================


class ReviewedEmployeeRequest(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    total_hours: Decimal = Field(ge=0)
    hourly_rate: Decimal = Field(ge=0)
    external_id: str | None = None
    matched_employee_id: UUID | None = None
    match_type: MatchTypeValue | None = None
    match_confidence: int | None = Field(default=None, ge=0, le=100)


class ConfirmImportRequest(BaseModel):
    mandate_id: UUID
    period: str = Field(pattern=r"^\d{4}-\d{2}$")
    employees: list[ReviewedEmployeeRequest]
    filename: str | None = None
    default_hourly_rate: Decimal | None = Field(default=None, ge=0)
    social_charge_rate: Decimal = Field(default=Decimal("22"), ge=0, le=100)


class ManualPayrollEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    manual_payroll_entry_id: UUID
    mandate_id: UUID
    year: int
    month: int
    gross_amount: Decimal
    social_charges: Decimal
    total_cost: Decimal
    employee_count: int
    notes: str | None = None


class ConfirmImportResponse(BaseModel):
    entry: ManualPayrollEntryResponse
    outcome: str
    import_history_id: UUID
    total_employees: int
    total_hours: Decimal
    total_gross: Decimal
    social_charges: Decimal
    total_cost: Decimal
    employees_created: int
    employees_updated: int


# ============================================================================
# Timesheet import schemas
# ============================================================================


class EmployeeImportResponse(BaseModel):
    employee_id: UUID
    external_id: str | None = None
    first_name: str
    last_name: str
    match_type: MatchTypeValue
    match_confidence: int
    employee_created: bool
    total_hours: Decimal
    hourly_rate: Decimal
    rate_source: str
    gross_amount: Decimal
    needs_review: bool
    issues: list[str]


class TimesheetImportResponse(BaseModel):
    import_history_id: UUID | None = None
    status: str
    total_rows: int
    created: int
    updated: int
    skipped: int
    errors: list[str]
    needs_review: int
    can_proceed: bool
    employees: list[EmployeeImportResponse]


# ============================================================================
# Import history schemas
# ============================================================================


class ImportEmployeeResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID | None = None
    external_id: str | None = None
    first_name: str
    last_name: str
    match_type: str
    match_confidence: int
    employee_found: bool
    total_hours: Decimal
    hourly_rate: Decimal
    rate_source: str
    gross_amount: Decimal


class ImportHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    import_history_id: UUID
    mandate_id: UUID
    filename: str | None = None
    import_type: str
    period: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    total_rows: int
    total_employees: int
    total_hours: Decimal
    total_gross_amount: Decimal
    social_charges: Decimal
    total_cost: Decimal
    status: str
    error_count: int
    errors: list[str]
    created_at: datetime
    employee_entries: list[ImportEmployeeResultResponse] = []


class ImportHistoryListResponse(BaseModel):
    items: list[ImportHistoryResponse]
    total: int
    limit: int
    offset: int


# ============================================================================
# Payroll calculation schemas
# ============================================================================


class CalculatePayrollRequest(BaseModel):
    mandate_id: UUID | None = None
    period_start: date
    period_end: date
    period_type: PeriodTypeValue = "MONTHLY"
    recalculate: bool = False


class PeriodResultResponse(BaseModel):
    payroll_entry_id: UUID | None = None
    period_start: date
    period_end: date
    period_type: PeriodTypeValue
    regular_hours: Decimal
    overtime_hours: Decimal
    total_hours: Decimal
    hourly_rate: Decimal
    base_salary: Decimal
    overtime_pay: Decimal
    total_gross: Decimal
    social_charges: Decimal
    total_cost: Decimal
    is_locked: bool
    recomputed: bool


class EmployeePayrollResponse(BaseModel):
    employee_id: UUID
    external_id: str
    employee_name: str
    periods: list[PeriodResultResponse]


class PayrollTotalsResponse(BaseModel):
    total_employees: int
    total_hours: Decimal
    total_regular_hours: Decimal
    total_overtime_hours: Decimal
    total_gross_pay: Decimal
    total_social_charges: Decimal
    total_cost: Decimal


class MandatePayrollResponse(BaseModel):
    mandate_id: UUID
    mandate_name: str
    employee_count: int
    totals: PayrollTotalsResponse
    employees: list[EmployeePayrollResponse]


class CalculatePayrollResponse(BaseModel):
    period_start: date
    period_end: date
    period_type: PeriodTypeValue
    mandates: list[MandatePayrollResponse]
    totals: PayrollTotalsResponse


class PayrollEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_entry_id: UUID
    employee_id: UUID
    mandate_id: UUID
    period_start: date
    period_end: date
    period_type: PeriodTypeValue
    regular_hours: Decimal
    overtime_hours: Decimal
    total_hours: Decimal
    hourly_rate: Decimal
    base_salary: Decimal
    overtime_pay: Decimal
    total_gross: Decimal
    social_charges: Decimal
    total_cost: Decimal
    is_locked: bool
    locked_at: datetime | None = None


class LockPeriodRequest(BaseModel):
    mandate_id: UUID
    period_start: date
    period_end: date
    period_type: PeriodTypeValue = "MONTHLY"


class LockPeriodResponse(BaseModel):
    mandate_id: UUID
    locked: int


# ============================================================================
# Manual payroll schemas
# ============================================================================


class ManualPayrollEntryCreate(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    gross_amount: Decimal = Field(ge=0)
    social_charges: Decimal | None = Field(default=None, ge=0)
    employee_count: int | None = Field(default=None, ge=0)
    notes: str | None = None


class ManualPayrollListResponse(BaseModel):
    items: list[ManualPayrollEntryResponse]
