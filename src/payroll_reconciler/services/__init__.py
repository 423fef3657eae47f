"""Business services for payroll reconciliation."""

from payroll_reconciler.services.import_history import ImportHistoryService
from payroll_reconciler.services.import_state import ImportStatus, ImportStatusMachine
from payroll_reconciler.services.import_validation import ImportValidationService
from payroll_reconciler.services.locking_service import LockingService
from payroll_reconciler.services.mandate_stats import MandateStatsService
from payroll_reconciler.services.manual_payroll import ManualPayrollService
from payroll_reconciler.services.payroll_service import PayrollCalculationService
from payroll_reconciler.services.reconciler import ImportReconciler, ImportResult
from payroll_reconciler.services.repository import PayrollRepository, UpsertOutcome

__all__ = [
    "ImportHistoryService",
    "ImportReconciler",
    "ImportResult",
    "ImportStatus",
    "ImportStatusMachine",
    "ImportValidationService",
    "LockingService",
    "MandateStatsService",
    "ManualPayrollService",
    "PayrollCalculationService",
    "PayrollRepository",
    "UpsertOutcome",
]
