"""Validate-then-confirm flow for monthly summary imports."""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.calculators.employee_matcher import EmployeeMatcher
from payroll_reconciler.calculators.types import EmployeeIdentity, MatchType
from payroll_reconciler.config import ImportConfig, PayrollConfig
from payroll_reconciler.importing.normalizer import RawRow
from payroll_reconciler.importing.parsing import (
    RowValidationError,
    parse_row,
    parse_summary_row,
)
from payroll_reconciler.models import Employee, ImportEmployeeResult, ImportHistory, ManualPayrollEntry
from payroll_reconciler.services.import_state import ImportStatus, ImportStatusMachine, ImportType
from payroll_reconciler.services.manual_payroll import ManualPayrollService
from payroll_reconciler.services.repository import PayrollRepository, UpsertConflictError, UpsertOutcome

logger = logging.getLogger(__name__)

_PERIOD_LABEL = re.compile(r"^(\d{4})-(\d{2})$")


class InvalidPeriodLabelError(ValueError):
    """Raised when a confirmed import period is not a YYYY-MM month."""

    code = "INVALID_PERIOD"

    def __init__(self, period: str):
        self.period = period
        super().__init__(f"Invalid period '{period}', expected YYYY-MM")


def parse_period_label(period: str) -> tuple[int, int]:
    m = _PERIOD_LABEL.match(period.strip())
    if not m or not 1 <= int(m[2]) <= 12:
        raise InvalidPeriodLabelError(period)
    return int(m[1]), int(m[2])


# ===== Validation =====


@dataclass
class ValidatedEmployee:
    """One employee of the file, as it would be imported."""

    identity: EmployeeIdentity
    total_hours: Decimal
    matched_employee: Employee | None
    match_type: MatchType
    match_confidence: int
    proposed_hourly_rate: Decimal
    rate_source: str
    estimated_cost: Decimal
    needs_review: bool
    issues: list[str] = field(default_factory=list)
    row_numbers: list[int] = field(default_factory=list)


@dataclass
class ValidationStatistics:
    total_employees: int = 0
    exact_matches: int = 0
    partial_matches: int = 0
    no_matches: int = 0
    needs_review: int = 0
    total_hours: Decimal = Decimal("0")
    estimated_total_cost: Decimal = Decimal("0")


@dataclass
class ValidationReport:
    employees: list[ValidatedEmployee] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    statistics: ValidationStatistics = field(default_factory=ValidationStatistics)
    filename: str | None = None

    @property
    def can_proceed(self) -> bool:
        return self.statistics.needs_review == 0


# ===== Confirmation =====


@dataclass
class ReviewedEmployee:
    """An employee line approved by a human after validation."""

    first_name: str
    last_name: str
    total_hours: Decimal
    hourly_rate: Decimal
    external_id: str | None = None
    matched_employee_id: UUID | None = None
    match_type: MatchType | None = None
    match_confidence: int | None = None


@dataclass
class ConfirmedImport:
    mandate_id: UUID
    period: str
    employees: list[ReviewedEmployee]
    filename: str | None = None
    default_hourly_rate: Decimal | None = None
    social_charge_rate_percent: Decimal = Decimal("22")


@dataclass
class ConfirmedImportResult:
    manual_entry: ManualPayrollEntry
    outcome: UpsertOutcome
    import_history_id: UUID
    total_employees: int
    total_hours: Decimal
    total_gross: Decimal
    social_charges: Decimal
    total_cost: Decimal
    employees_created: int = 0
    employees_updated: int = 0


class ImportValidationService:
    """Validate-import (read-only) and confirmed-import (always writes).

    Validation groups rows per employee identity (external id, else the
    normalized full name) in first-seen order, matches each group against the
    mandate's employees and flags what needs a human look. Confirmation takes
    the reviewed list back and writes it in the caller's transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: ImportConfig | None = None,
        payroll_config: PayrollConfig | None = None,
        matcher: EmployeeMatcher | None = None,
    ):
        self.session = session
        self.config = config or ImportConfig()
        self.payroll_config = payroll_config or PayrollConfig()
        self.matcher = matcher or EmployeeMatcher(self.config)
        self.repository = PayrollRepository(session)

    async def validate(
        self,
        rows: Sequence[RawRow],
        mandate_id: UUID,
        default_hourly_rate: Decimal | None = None,
        *,
        tenant_id: UUID | None = None,
        filename: str | None = None,
    ) -> ValidationReport:
        """Preview an import. Writes nothing.

        Raises:
            MandateNotFoundError: If the mandate is missing or not the tenant's
        """
        if default_hourly_rate is None:
            default_hourly_rate = self.payroll_config.default_hourly_rate

        await self.repository.get_mandate(mandate_id, tenant_id)
        candidates = await self._load_employees(mandate_id)
        report = ValidationReport(filename=filename)

        groups: dict[str, tuple[EmployeeIdentity, Decimal, list[int]]] = {}
        for row in rows:
            try:
                identity, hours = self._row_hours(row)
            except RowValidationError as e:
                report.errors.append(str(e))
                continue
            if hours == 0:
                continue

            if identity.key in groups:
                first_identity, total, row_numbers = groups[identity.key]
                groups[identity.key] = (first_identity, total + hours, row_numbers + [row.row_number])
            else:
                groups[identity.key] = (identity, hours, [row.row_number])

        multiplier = 1 + self.payroll_config.social_charge_rate
        stats = report.statistics

        for identity, total_hours, row_numbers in groups.values():
            match = self.matcher.match(identity, candidates)
            if match.employee is not None and match.employee.hourly_rate:
                rate, rate_source = match.employee.hourly_rate, "employee"
            else:
                rate, rate_source = default_hourly_rate, "default"
            assessment = self.matcher.assess_review(identity, match, total_hours)

            validated = ValidatedEmployee(
                identity=identity,
                total_hours=total_hours,
                matched_employee=match.employee,
                match_type=match.match_type,
                match_confidence=match.confidence,
                proposed_hourly_rate=rate,
                rate_source=rate_source,
                estimated_cost=total_hours * rate * multiplier,
                needs_review=assessment.needs_review,
                issues=assessment.issues,
                row_numbers=row_numbers,
            )
            report.employees.append(validated)

            stats.total_employees += 1
            if match.match_type == MatchType.EXACT:
                stats.exact_matches += 1
            elif match.match_type == MatchType.PARTIAL:
                stats.partial_matches += 1
            else:
                stats.no_matches += 1
            if validated.needs_review:
                stats.needs_review += 1
            stats.total_hours += total_hours
            stats.estimated_total_cost += validated.estimated_cost

        logger.info(
            "Validated %d rows for mandate %s: %d employees, %d need review, %d errors",
            len(rows),
            mandate_id,
            stats.total_employees,
            stats.needs_review,
            len(report.errors),
        )
        return report

    async def confirm(self, request: ConfirmedImport, tenant_id: UUID | None = None) -> ConfirmedImportResult:
        """Write a reviewed monthly summary.

        Updates matched employees' rates, creates unmatched employees, upserts
        the month's manual payroll entry and records the import history.

        Raises:
            MandateNotFoundError: If the mandate is missing or not the tenant's
            InvalidPeriodLabelError: If period is not YYYY-MM
            UpsertConflictError: If the month's entry was written concurrently
        """
        await self.repository.get_mandate(request.mandate_id, tenant_id)
        year, month = parse_period_label(request.period)
        social_rate = request.social_charge_rate_percent / 100

        employees_created = 0
        employees_updated = 0
        total_hours = Decimal("0")
        total_gross = Decimal("0")
        audit_rows: list[ImportEmployeeResult] = []

        for position, reviewed in enumerate(request.employees):
            employee = None
            if reviewed.matched_employee_id is not None:
                employee = await self.session.get(Employee, reviewed.matched_employee_id)
                if employee is not None and employee.mandate_id != request.mandate_id:
                    employee = None
            if employee is None and reviewed.external_id:
                employee = await self.session.scalar(
                    select(Employee).where(
                        Employee.mandate_id == request.mandate_id,
                        Employee.external_id == reviewed.external_id,
                    )
                )

            found = employee is not None
            if employee is None:
                employee = Employee(
                    mandate_id=request.mandate_id,
                    external_id=reviewed.external_id or f"AUTO_{uuid.uuid4().hex[:12].upper()}",
                    first_name=reviewed.first_name,
                    last_name=reviewed.last_name,
                    hourly_rate=reviewed.hourly_rate,
                    is_active=True,
                )
                self.session.add(employee)
                employees_created += 1
            elif employee.hourly_rate != reviewed.hourly_rate:
                employee.hourly_rate = reviewed.hourly_rate
                employees_updated += 1
            await self.session.flush()

            gross = reviewed.total_hours * reviewed.hourly_rate
            total_hours += reviewed.total_hours
            total_gross += gross

            match_type = reviewed.match_type or (MatchType.EXACT if found else MatchType.NONE)
            audit_rows.append(
                ImportEmployeeResult(
                    position=position,
                    employee_id=employee.employee_id,
                    external_id=reviewed.external_id,
                    first_name=reviewed.first_name,
                    last_name=reviewed.last_name,
                    match_type=MatchType(match_type).value,
                    match_confidence=reviewed.match_confidence
                    if reviewed.match_confidence is not None
                    else (100 if found else 0),
                    employee_found=found,
                    total_hours=reviewed.total_hours,
                    hourly_rate=reviewed.hourly_rate,
                    rate_source="manual",
                    gross_amount=gross,
                )
            )

        social_charges = total_gross * social_rate
        manual_service = ManualPayrollService(self.session, self.payroll_config)
        entry, outcome = await manual_service.upsert_entry(
            request.mandate_id,
            year,
            month,
            total_gross,
            social_charges=social_charges,
            employee_count=len(request.employees),
            notes=f"Imported from {request.filename}" if request.filename else None,
        )
        if outcome == UpsertOutcome.CONFLICT:
            raise UpsertConflictError(
                "manual_payroll_entry", {"mandate_id": request.mandate_id, "year": year, "month": month}
            )

        history = ImportHistory(
            mandate_id=request.mandate_id,
            filename=request.filename,
            import_type=ImportType.MONTHLY_SUMMARY.value,
            period=request.period,
            total_rows=len(request.employees),
            default_hourly_rate=request.default_hourly_rate,
            status=ImportStatus.PROCESSING.value,
            errors=[],
        )
        self.session.add(history)
        await self.session.flush()

        for row in audit_rows:
            row.import_history_id = history.import_history_id
            self.session.add(row)

        ImportStatusMachine.validate_transition(history.status, ImportStatus.COMPLETED)
        history.status = ImportStatus.COMPLETED.value
        history.total_employees = len(request.employees)
        history.total_hours = total_hours
        history.total_gross_amount = total_gross
        history.social_charges = social_charges
        history.total_cost = total_gross + social_charges
        await self.session.flush()

        logger.info(
            "Confirmed import %s for mandate %s period %s: %d employees, entry %s",
            history.import_history_id,
            request.mandate_id,
            request.period,
            len(request.employees),
            outcome.value,
        )

        return ConfirmedImportResult(
            manual_entry=entry,
            outcome=outcome,
            import_history_id=history.import_history_id,
            total_employees=len(request.employees),
            total_hours=total_hours,
            total_gross=total_gross,
            social_charges=social_charges,
            total_cost=total_gross + social_charges,
            employees_created=employees_created,
            employees_updated=employees_updated,
        )

    def _row_hours(self, row: RawRow) -> tuple[EmployeeIdentity, Decimal]:
        """Identity and hours of a row, from a timesheet or a summary layout."""
        if row.work_date is not None and not row.hour_columns:
            record = parse_row(row)
            return record.identity, record.worked_hours
        summary = parse_summary_row(row)
        return summary.identity, summary.total_hours

    async def _load_employees(self, mandate_id: UUID) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.mandate_id == mandate_id)
            .order_by(Employee.created_at, Employee.last_name, Employee.first_name)
        )
        return list(result.scalars().all())
