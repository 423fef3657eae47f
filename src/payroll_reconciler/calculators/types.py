"""Type definitions for the calculation pipeline."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from payroll_reconciler.models import Employee, PayrollEntry


class PeriodType(str, Enum):
    """Payroll period granularity."""

    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class MatchType(str, Enum):
    """Classification of an employee match."""

    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class PayrollPeriod:
    """A (start, end, type) window. Both ends inclusive."""

    start: date
    end: date
    period_type: PeriodType

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def normalize_name(value: str | None) -> str:
    """Lowercase, strip diacritics and surrounding whitespace."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.lower().strip()


@dataclass(frozen=True)
class EmployeeIdentity:
    """Identity fields of an imported row, as given by the source file."""

    external_id: str | None
    first_name: str
    last_name: str

    @property
    def key(self) -> str:
        """Grouping key: external id when present, else the normalized full name."""
        if self.external_id:
            return f"id:{self.external_id}"
        return f"name:{normalize_name(self.first_name)} {normalize_name(self.last_name)}"


@dataclass
class MatchResult:
    """Outcome of matching one identity against the registered employees."""

    employee: Employee | None
    match_type: MatchType
    confidence: int

    @property
    def matched(self) -> bool:
        return self.employee is not None


@dataclass
class ReviewAssessment:
    """Soft flags raised for human confirmation. Never blocks an import."""

    needs_review: bool = False
    issues: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PayrollFigures:
    """Hours split and money for one employee/period.

    total_gross = base_salary + overtime_pay
    total_cost = total_gross + social_charges
    """

    regular_hours: Decimal
    overtime_hours: Decimal
    total_hours: Decimal
    hourly_rate: Decimal
    base_salary: Decimal
    overtime_pay: Decimal
    total_gross: Decimal
    social_charges: Decimal
    total_cost: Decimal

    @classmethod
    def from_entry(cls, entry: PayrollEntry) -> PayrollFigures:
        """Read the stored figures of a persisted entry."""
        return cls(
            regular_hours=entry.regular_hours,
            overtime_hours=entry.overtime_hours,
            total_hours=entry.total_hours,
            hourly_rate=entry.hourly_rate,
            base_salary=entry.base_salary,
            overtime_pay=entry.overtime_pay,
            total_gross=entry.total_gross,
            social_charges=entry.social_charges,
            total_cost=entry.total_cost,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "regular_hours": self.regular_hours,
            "overtime_hours": self.overtime_hours,
            "total_hours": self.total_hours,
            "hourly_rate": self.hourly_rate,
            "base_salary": self.base_salary,
            "overtime_pay": self.overtime_pay,
            "total_gross": self.total_gross,
            "social_charges": self.social_charges,
            "total_cost": self.total_cost,
        }


@dataclass
class PeriodResult:
    """Calculator output for one employee and one period."""

    employee_id: UUID
    period: PayrollPeriod
    figures: PayrollFigures
    recomputed: bool
    is_locked: bool = False
    payroll_entry_id: UUID | None = None
