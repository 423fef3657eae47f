"""Payroll calculation and matching."""

from payroll_reconciler.calculators.employee_matcher import EmployeeMatcher
from payroll_reconciler.calculators.payroll_calculator import PayrollCalculator
from payroll_reconciler.calculators.periods import segment_periods
from payroll_reconciler.calculators.types import (
    EmployeeIdentity,
    MatchResult,
    MatchType,
    PayrollFigures,
    PayrollPeriod,
    PeriodResult,
    PeriodType,
)

__all__ = [
    "EmployeeIdentity",
    "EmployeeMatcher",
    "MatchResult",
    "MatchType",
    "PayrollCalculator",
    "PayrollFigures",
    "PayrollPeriod",
    "PeriodResult",
    "PeriodType",
    "segment_periods",
]
