"""ORM models."""

from payroll_reconciler.models.base import Base, TimestampMixin, UpdatedAtMixin
from payroll_reconciler.models.employee import Employee
from payroll_reconciler.models.imports import ImportEmployeeResult, ImportHistory
from payroll_reconciler.models.mandate import DayValue, Mandate
from payroll_reconciler.models.payroll import ManualPayrollEntry, PayrollEntry, TimeRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "DayValue",
    "Employee",
    "ImportEmployeeResult",
    "ImportHistory",
    "Mandate",
    "ManualPayrollEntry",
    "PayrollEntry",
    "TimeRecord",
]
