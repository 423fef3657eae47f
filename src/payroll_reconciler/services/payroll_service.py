"""Payroll calculation across mandates, employees and periods."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.calculators.payroll_calculator import PayrollCalculator
from payroll_reconciler.calculators.periods import segment_periods
from payroll_reconciler.calculators.types import PayrollFigures, PayrollPeriod, PeriodResult, PeriodType
from payroll_reconciler.config import PayrollConfig
from payroll_reconciler.models import Employee, Mandate, PayrollEntry, TimeRecord
from payroll_reconciler.services.repository import PayrollRepository, UpsertOutcome

logger = logging.getLogger(__name__)


class InvalidPeriodError(Exception):
    """Raised when a calculation range is empty or reversed."""

    code = "INVALID_PERIOD"

    def __init__(self, period_start: date, period_end: date):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Invalid period: start {period_start} must be before end {period_end}"
        )


@dataclass
class PayrollTotals:
    """Summed figures over a set of period results."""

    total_employees: int = 0
    total_hours: Decimal = Decimal("0")
    total_regular_hours: Decimal = Decimal("0")
    total_overtime_hours: Decimal = Decimal("0")
    total_gross_pay: Decimal = Decimal("0")
    total_social_charges: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")

    def add(self, figures: PayrollFigures) -> None:
        self.total_hours += figures.total_hours
        self.total_regular_hours += figures.regular_hours
        self.total_overtime_hours += figures.overtime_hours
        self.total_gross_pay += figures.total_gross
        self.total_social_charges += figures.social_charges
        self.total_cost += figures.total_cost

    def merge(self, other: PayrollTotals) -> None:
        self.total_employees += other.total_employees
        self.total_hours += other.total_hours
        self.total_regular_hours += other.total_regular_hours
        self.total_overtime_hours += other.total_overtime_hours
        self.total_gross_pay += other.total_gross_pay
        self.total_social_charges += other.total_social_charges
        self.total_cost += other.total_cost


@dataclass
class EmployeePayroll:
    employee_id: UUID
    external_id: str
    employee_name: str
    periods: list[PeriodResult] = field(default_factory=list)


@dataclass
class MandatePayroll:
    mandate_id: UUID
    mandate_name: str
    employee_count: int
    totals: PayrollTotals = field(default_factory=PayrollTotals)
    employees: list[EmployeePayroll] = field(default_factory=list)


@dataclass
class PayrollCalculationResult:
    period_start: date
    period_end: date
    period_type: PeriodType
    mandates: list[MandatePayroll] = field(default_factory=list)
    totals: PayrollTotals = field(default_factory=PayrollTotals)


class PayrollCalculationService:
    """Runs the payroll calculator for mandates and persists the results.

    For each mandate: every active employee, every period of the range.
    Recomputed figures are upserted by (employee, mandate, period start,
    period type); locked entries are left untouched unless ``recalculate``.
    The mandate's cached payroll cost is updated once all of its employees
    are done. The caller owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: PayrollConfig | None = None,
        calculator: PayrollCalculator | None = None,
    ):
        self.session = session
        self.config = config or PayrollConfig()
        self.calculator = calculator or PayrollCalculator(self.config)
        self.repository = PayrollRepository(session)

    async def calculate(
        self,
        period_start: date,
        period_end: date,
        period_type: PeriodType | str,
        *,
        mandate_id: UUID | None = None,
        recalculate: bool = False,
        tenant_id: UUID | None = None,
    ) -> PayrollCalculationResult:
        """Calculate payroll for one mandate, or all mandates of the tenant.

        Raises:
            InvalidPeriodError: If period_start is not before period_end
            MandateNotFoundError: If mandate_id is given and not found
        """
        if period_start >= period_end:
            raise InvalidPeriodError(period_start, period_end)

        period_type = PeriodType(period_type)
        periods = segment_periods(period_start, period_end, period_type)
        result = PayrollCalculationResult(
            period_start=period_start,
            period_end=period_end,
            period_type=period_type,
        )

        for mandate in await self._load_mandates(mandate_id, tenant_id):
            mandate_result = await self._calculate_mandate(mandate, periods, recalculate)
            result.mandates.append(mandate_result)
            result.totals.merge(mandate_result.totals)

        logger.info(
            "Calculated %s payroll %s..%s for %d mandates, total cost %s",
            period_type.value,
            period_start,
            period_end,
            len(result.mandates),
            result.totals.total_cost,
        )
        return result

    async def _calculate_mandate(
        self,
        mandate: Mandate,
        periods: list[PayrollPeriod],
        recalculate: bool,
    ) -> MandatePayroll:
        employees = await self._load_active_employees(mandate.mandate_id)
        mandate_result = MandatePayroll(
            mandate_id=mandate.mandate_id,
            mandate_name=mandate.name,
            employee_count=len(employees),
        )

        for employee in employees:
            employee_result = await self._calculate_employee(
                employee, mandate.mandate_id, periods, recalculate
            )
            if not employee_result.periods:
                continue
            mandate_result.employees.append(employee_result)
            mandate_result.totals.total_employees += 1
            for period_result in employee_result.periods:
                mandate_result.totals.add(period_result.figures)

        mandate.total_payroll_cost = mandate_result.totals.total_cost
        mandate.last_payroll_calculation = datetime.now(timezone.utc)
        await self.session.flush()

        return mandate_result

    async def _calculate_employee(
        self,
        employee: Employee,
        mandate_id: UUID,
        periods: list[PayrollPeriod],
        recalculate: bool,
    ) -> EmployeePayroll:
        employee_result = EmployeePayroll(
            employee_id=employee.employee_id,
            external_id=employee.external_id,
            employee_name=employee.full_name,
        )
        if not periods:
            return employee_result

        records = await self._load_time_records(
            employee.employee_id, mandate_id, periods[0].start, periods[-1].end
        )
        existing = await self._load_entries(employee.employee_id, mandate_id, periods)

        for period in periods:
            period_result = self.calculator.compute_period(
                employee,
                period,
                records,
                recalculate=recalculate,
                existing_entry=existing.get(period.start),
            )
            if period_result is None:
                continue

            if period_result.recomputed:
                period_result.payroll_entry_id = await self._persist(
                    employee.employee_id, mandate_id, period_result
                )
            employee_result.periods.append(period_result)

        return employee_result

    async def _persist(self, employee_id: UUID, mandate_id: UUID, period_result: PeriodResult) -> UUID | None:
        period = period_result.period
        values = {
            "employee_id": employee_id,
            "mandate_id": mandate_id,
            "period_start": period.start,
            "period_end": period.end,
            "period_type": period.period_type.value,
            **period_result.figures.to_dict(),
        }
        outcome = await self.repository.upsert_payroll_entry(values)
        if outcome == UpsertOutcome.CONFLICT:
            logger.warning(
                "Payroll entry of employee %s for %s %s not written: conflict",
                employee_id,
                period.period_type.value,
                period.start,
            )
            return None
        entry = await self.repository.find_by_natural_key(PayrollEntry, values)
        return entry.payroll_entry_id

    async def _load_mandates(self, mandate_id: UUID | None, tenant_id: UUID | None) -> list[Mandate]:
        if mandate_id is not None:
            return [await self.repository.get_mandate(mandate_id, tenant_id)]

        query = select(Mandate).where(Mandate.is_active.is_(True))
        if tenant_id is not None:
            query = query.where(Mandate.tenant_id == tenant_id)
        result = await self.session.execute(query.order_by(Mandate.name))
        return list(result.scalars().all())

    async def _load_active_employees(self, mandate_id: UUID) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.mandate_id == mandate_id, Employee.is_active.is_(True))
            .order_by(Employee.last_name, Employee.first_name)
        )
        return list(result.scalars().all())

    async def _load_time_records(
        self, employee_id: UUID, mandate_id: UUID, start: date, end: date
    ) -> list[TimeRecord]:
        result = await self.session.execute(
            select(TimeRecord)
            .where(
                TimeRecord.employee_id == employee_id,
                TimeRecord.mandate_id == mandate_id,
                TimeRecord.work_date >= start,
                TimeRecord.work_date <= end,
            )
            .order_by(TimeRecord.work_date)
        )
        return list(result.scalars().all())

    async def _load_entries(
        self, employee_id: UUID, mandate_id: UUID, periods: list[PayrollPeriod]
    ) -> dict[date, PayrollEntry]:
        result = await self.session.execute(
            select(PayrollEntry)
            .where(
                PayrollEntry.employee_id == employee_id,
                PayrollEntry.mandate_id == mandate_id,
                PayrollEntry.period_type == periods[0].period_type.value,
                PayrollEntry.period_start.in_([p.start for p in periods]),
            )
            .execution_options(populate_existing=True)
        )
        return {entry.period_start: entry for entry in result.scalars().all()}
