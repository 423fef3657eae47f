"""Payroll computation and time-record reconciliation for hospitality mandates."""

__version__ = "1.0.0"
