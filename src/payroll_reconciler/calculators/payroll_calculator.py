"""Per-period payroll calculation."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from payroll_reconciler.calculators.types import (
    PayrollFigures,
    PayrollPeriod,
    PeriodResult,
    PeriodType,
)
from payroll_reconciler.config import PayrollConfig

if TYPE_CHECKING:
    from datetime import date

    from payroll_reconciler.models import PayrollEntry

logger = logging.getLogger(__name__)


class PayableEmployee(Protocol):
    employee_id: UUID
    hourly_rate: Decimal | None


class WorkedTime(Protocol):
    work_date: date
    worked_hours: Decimal


class PayrollCalculator:
    """Computes regular/overtime hours and cost for one employee and period.

    Pipeline:
    1) Keep the time records dated inside the period (none -> nothing to pay)
    2) Short-circuit on a locked entry unless recalculation is forced
    3) Split total hours at the overtime threshold of the period
    4) Price regular and overtime hours, then add social charges

    No rounding is applied; values are exact Decimals.
    """

    def __init__(self, config: PayrollConfig | None = None):
        self.config = config or PayrollConfig()

    def overtime_threshold(self, period: PayrollPeriod) -> Decimal:
        """Hours payable at the regular rate within the period.

        Weekly periods use the flat weekly threshold, even when clipped.
        Monthly periods get one weekly threshold per started week.
        """
        if period.period_type == PeriodType.WEEKLY:
            return self.config.weekly_overtime_threshold
        weeks = math.ceil(period.length_days / 7)
        return self.config.weekly_overtime_threshold * weeks

    def resolve_rate(self, employee: PayableEmployee) -> Decimal:
        if employee.hourly_rate is not None and employee.hourly_rate > 0:
            return employee.hourly_rate
        return self.config.default_hourly_rate

    def compute_figures(self, total_hours: Decimal, hourly_rate: Decimal, threshold: Decimal) -> PayrollFigures:
        """Price ``total_hours`` at ``hourly_rate`` with the given overtime threshold."""
        if total_hours <= threshold:
            regular_hours = total_hours
            overtime_hours = Decimal("0")
        else:
            regular_hours = threshold
            overtime_hours = total_hours - threshold

        base_salary = regular_hours * hourly_rate
        overtime_pay = overtime_hours * hourly_rate * self.config.overtime_multiplier
        total_gross = base_salary + overtime_pay
        social_charges = total_gross * self.config.social_charge_rate

        return PayrollFigures(
            regular_hours=regular_hours,
            overtime_hours=overtime_hours,
            total_hours=total_hours,
            hourly_rate=hourly_rate,
            base_salary=base_salary,
            overtime_pay=overtime_pay,
            total_gross=total_gross,
            social_charges=social_charges,
            total_cost=total_gross + social_charges,
        )

    def compute_period(
        self,
        employee: PayableEmployee,
        period: PayrollPeriod,
        time_records: Iterable[WorkedTime],
        recalculate: bool = False,
        existing_entry: PayrollEntry | None = None,
    ) -> PeriodResult | None:
        """Compute the payroll of ``employee`` for ``period``.

        Returns None when no time record falls inside the period. A locked
        existing entry is returned unchanged (``recomputed=False``) unless
        ``recalculate`` is set; a recomputed locked entry stays locked.
        """
        in_period = [r for r in time_records if period.contains(r.work_date)]
        if not in_period:
            return None

        if existing_entry is not None and existing_entry.is_locked and not recalculate:
            logger.debug(
                "Entry %s is locked, keeping stored figures",
                existing_entry.payroll_entry_id,
            )
            return PeriodResult(
                employee_id=employee.employee_id,
                period=period,
                figures=PayrollFigures.from_entry(existing_entry),
                recomputed=False,
                is_locked=True,
                payroll_entry_id=existing_entry.payroll_entry_id,
            )

        total_hours = sum((r.worked_hours for r in in_period), Decimal("0"))
        figures = self.compute_figures(
            total_hours,
            self.resolve_rate(employee),
            self.overtime_threshold(period),
        )

        return PeriodResult(
            employee_id=employee.employee_id,
            period=period,
            figures=figures,
            recomputed=True,
            is_locked=existing_entry.is_locked if existing_entry is not None else False,
            payroll_entry_id=existing_entry.payroll_entry_id if existing_entry is not None else None,
        )
